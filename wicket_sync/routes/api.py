# wicket_sync/routes/api.py

"""
JSON endpoints for the signed-in user's organization memberships
"""

from flask import current_app, jsonify, request
from flask_login import current_user, login_required

from wicket_sync.sync import get_sync_services
from wicket_sync.sync.adapters.wicket import WicketApiError, WicketApiUnconfigured
from wicket_sync.sync.primary import MembershipError

MIN_SEARCH_LENGTH = 2
SEARCHABLE_TYPES = ("company", "section")


def _error(message, status):
    return jsonify({"success": False, "error": message}), status


def _membership_failure(exc, action):
    """Translate a failed membership change into a JSON error response"""
    if isinstance(exc, MembershipError):
        return _error(str(exc), 400)
    if isinstance(exc, WicketApiUnconfigured):
        current_app.logger.error(f"Cannot {action}: {str(exc)}")
        return _error("Organization membership is temporarily unavailable.", 503)
    current_app.logger.error(f"Wicket API error while trying to {action}: {str(exc)}")
    return _error("Could not reach the membership service. Please try again.", 502)


def _requested_org_uuid():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return data, None
    org_uuid = str(data.get("org_uuid") or "").strip()
    return data, org_uuid or None


def _format_search_result(organization):
    return {
        "id": organization.uuid,
        "text": organization.display_name,
        "alternate_name": organization.alternate_name or "",
        "type": organization.org_type,
    }


def register_api_routes(app):
    """Register user-facing organization API routes"""

    @app.route("/api/organizations/search", methods=["GET"])
    @login_required
    def api_search_organizations():
        """
        Autocomplete search over the cached organization catalog.
        Optional ``type`` narrows results to companies or sections.
        """
        term = (request.args.get("term") or request.args.get("q") or "").strip()
        org_type = (request.args.get("type") or "").strip().lower() or None

        if len(term) < MIN_SEARCH_LENGTH:
            return _error(f"Search term must be at least {MIN_SEARCH_LENGTH} characters", 400)
        if org_type and org_type not in SEARCHABLE_TYPES:
            return _error(f"Unsupported organization type '{org_type}'", 400)

        store = get_sync_services(current_app).store
        organizations = store.search_organizations(term, org_type=org_type)
        current_app.logger.debug(f"Organization search '{term}' returned {len(organizations)} results")
        return jsonify({"results": [_format_search_result(org) for org in organizations]})

    @app.route("/api/organizations/mine", methods=["GET"])
    @login_required
    def api_my_organizations():
        """Current user's active organizations and primary pointer"""
        org_type = (request.args.get("type") or "").strip().lower() or None
        primary_service = get_sync_services(current_app).primary

        connections = primary_service.get_user_organizations(current_user, org_type=org_type)
        return jsonify(
            {
                "organizations": [connection.to_dict() for connection in connections],
                "primary_org_uuid": primary_service.get_primary_org_uuid(current_user),
            }
        )

    @app.route("/api/organizations/primary", methods=["POST"])
    @login_required
    def api_set_primary_organization():
        """Make an organization the user's primary, connecting first if needed"""
        _, org_uuid = _requested_org_uuid()
        if not org_uuid:
            return _error("org_uuid is required", 400)

        primary_service = get_sync_services(current_app).primary
        try:
            if primary_service.get_organization(org_uuid, strict=True) is None:
                return _error("Organization not found", 404)
            result = primary_service.set_primary_organization(current_user, org_uuid)
        except (MembershipError, WicketApiError) as exc:
            return _membership_failure(exc, "set primary organization")

        current_app.logger.info(f"User {current_user.id} set primary organization {org_uuid}")
        return jsonify(result)

    @app.route("/api/organizations/add", methods=["POST"])
    @login_required
    def api_add_organization():
        """Connect the current user to an organization"""
        data, org_uuid = _requested_org_uuid()
        if not org_uuid:
            return _error("org_uuid is required", 400)
        connection_type = str(data.get("connection_type") or "member").strip() or "member"
        description = data.get("description") or None

        primary_service = get_sync_services(current_app).primary
        try:
            if primary_service.get_organization(org_uuid, strict=True) is None:
                return _error("Organization not found", 404)
            result = primary_service.add_organization(
                current_user, org_uuid, connection_type=connection_type, description=description
            )
        except (MembershipError, WicketApiError) as exc:
            return _membership_failure(exc, "add organization")

        current_app.logger.info(f"User {current_user.id} connected to organization {org_uuid}")
        return jsonify(result)

    @app.route("/api/organizations/create", methods=["POST"])
    @login_required
    def api_create_organization():
        """Create a company in Wicket and make it the user's primary organization"""
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            data = {}
        legal_name = str(data.get("legal_name") or "").strip()
        org_type = str(data.get("org_type") or data.get("type") or "").strip()
        alternate_name = str(data.get("alternate_name") or "").strip() or None
        if not legal_name or not org_type:
            return _error("Company name and type are required", 400)

        try:
            result = get_sync_services(current_app).primary.create_organization(
                current_user, legal_name, org_type, alternate_name=alternate_name
            )
        except (MembershipError, WicketApiError) as exc:
            return _membership_failure(exc, "create organization")

        current_app.logger.info(f"User {current_user.id} created organization {result['org_uuid']}")
        return jsonify(result)

    @app.route("/api/organizations/remove", methods=["POST"])
    @login_required
    def api_remove_organization():
        """Remove the current user's connection to an organization"""
        _, org_uuid = _requested_org_uuid()
        if not org_uuid:
            return _error("org_uuid is required", 400)

        try:
            result = get_sync_services(current_app).primary.remove_organization(current_user, org_uuid)
        except (MembershipError, WicketApiError) as exc:
            return _membership_failure(exc, "remove organization")

        current_app.logger.info(f"User {current_user.id} removed organization {org_uuid}")
        return jsonify(result)

    @app.route("/api/organizations/sync-mine", methods=["POST"])
    @login_required
    def api_sync_my_organizations():
        """Refresh the current user's connections from Wicket"""
        services = get_sync_services(current_app)
        try:
            synced = services.connections.sync_user(current_user)
        except WicketApiError as exc:
            return _membership_failure(exc, "sync organizations")

        if not synced:
            return _error("Could not sync your organizations from Wicket.", 502)
        connections = services.primary.get_user_organizations(current_user)
        return jsonify(
            {
                "success": True,
                "organizations": [connection.to_dict() for connection in connections],
            }
        )
