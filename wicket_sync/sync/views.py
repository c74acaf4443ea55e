"""
Wicket sync admin blueprint: health, catalog sync, cached organizations and
bulk user sync control.
"""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from . import get_sync_services
from .adapters.wicket import (
    WicketApiError,
    WicketApiRemoteError,
    WicketApiTransportError,
    WicketApiUnconfigured,
)
from .celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from .pipeline import BulkSyncAlreadyRunning
from .pipeline.organization_sync import IN_PROGRESS_KEY, LAST_SYNC_KEY, LAST_SYNC_STATS_KEY
from .store import SchemaMissingError

wicket_blueprint = Blueprint("wicket", __name__, url_prefix="/wicket")

MAX_PER_PAGE = 100


def _services():
    return get_sync_services(current_app)


def _json_error(message: str, status: HTTPStatus):
    return jsonify({"success": False, "error": message}), status


def _ensure_admin_api():
    if not current_user.is_authenticated:
        return _json_error("Authentication required.", HTTPStatus.UNAUTHORIZED)
    if not getattr(current_user, "is_admin", False):
        return _json_error("Administrator access required.", HTTPStatus.FORBIDDEN)
    return None


def _wants_async() -> bool:
    payload = request.get_json(silent=True) or {}
    flag = payload.get("async", request.args.get("async"))
    return str(flag).strip().lower() in {"1", "true", "yes", "on"}


def _enqueue(task_name: str, **kwargs):
    celery_app = get_celery_app(current_app)
    task = celery_app.tasks.get(task_name) if celery_app is not None else None
    if task is None:
        return None
    return task.apply_async(kwargs=kwargs, queue=DEFAULT_QUEUE_NAME)


@wicket_blueprint.errorhandler(WicketApiUnconfigured)
def _handle_unconfigured(exc: WicketApiUnconfigured):
    current_app.logger.warning("Wicket API is not configured", extra={"wicket_missing_settings": list(exc.missing)})
    return _json_error(str(exc), HTTPStatus.SERVICE_UNAVAILABLE)


@wicket_blueprint.errorhandler(WicketApiRemoteError)
@wicket_blueprint.errorhandler(WicketApiTransportError)
def _handle_remote_failure(exc: WicketApiError):
    current_app.logger.error("Wicket API call failed: %s", exc)
    return _json_error("The Wicket API request failed. Try again later.", HTTPStatus.BAD_GATEWAY)


@wicket_blueprint.errorhandler(BulkSyncAlreadyRunning)
def _handle_bulk_running(exc: BulkSyncAlreadyRunning):
    return _json_error(str(exc), HTTPStatus.CONFLICT)


@wicket_blueprint.errorhandler(SchemaMissingError)
def _handle_schema_missing(exc: SchemaMissingError):
    current_app.logger.error("Wicket cache schema unavailable: %s", exc)
    return _json_error("Cache tables are missing and could not be created.", HTTPStatus.INTERNAL_SERVER_ERROR)


@wicket_blueprint.get("/health")
def wicket_healthcheck():
    """
    Report whether the sync feature is enabled and the adapter configured.
    """
    state = current_app.extensions.get("wicket_sync", {})
    readiness = state.get("readiness", {})
    return (
        jsonify(
            {
                "status": "ok" if readiness.get("status") == "ready" else "degraded",
                "enabled": state.get("enabled", False),
                "adapter": readiness,
            }
        ),
        HTTPStatus.OK,
    )


@wicket_blueprint.post("/organizations/sync")
def wicket_sync_organizations():
    auth_response = _ensure_admin_api()
    if auth_response:
        return auth_response

    services = _services()
    if _wants_async():
        services.client.ensure_configured()
        result = _enqueue("wicket_sync.sync_organizations")
        if result is None:
            return _json_error("Background worker is unavailable.", HTTPStatus.SERVICE_UNAVAILABLE)
        return jsonify({"success": True, "queued": True, "task_id": result.id}), HTTPStatus.ACCEPTED

    stats = services.organizations.sync_all()
    message = (
        f"Sync complete: {stats.created} created, {stats.updated} updated, {stats.errors} errors "
        f"across {stats.pages} pages."
    )
    return jsonify({"success": True, "message": message, "stats": stats.to_dict()}), HTTPStatus.OK


@wicket_blueprint.get("/organizations/sync/status")
def wicket_sync_status():
    auth_response = _ensure_admin_api()
    if auth_response:
        return auth_response

    services = _services()
    tables_exist = services.store.tables_exist()
    return jsonify(
        {
            "last_sync": services.settings.get(LAST_SYNC_KEY),
            "last_sync_stats": services.settings.get(LAST_SYNC_STATS_KEY),
            "in_progress": bool(services.settings.get(IN_PROGRESS_KEY, False)),
            "tables_exist": tables_exist,
            "organizations_cached": services.store.count_organizations() if tables_exist else 0,
        }
    )


@wicket_blueprint.get("/organizations")
def wicket_list_organizations():
    auth_response = _ensure_admin_api()
    if auth_response:
        return auth_response

    try:
        page = max(1, int(request.args.get("page", 1)))
        per_page = min(MAX_PER_PAGE, max(1, int(request.args.get("per_page", 20))))
    except ValueError:
        return _json_error("page and per_page must be integers.", HTTPStatus.BAD_REQUEST)
    order_by = request.args.get("order_by", "legal_name")
    order = request.args.get("order", "ASC")

    store = _services().store
    store.ensure_tables()
    organizations = store.list_organizations(page=page, per_page=per_page, order_by=order_by, order=order)
    return jsonify(
        {
            "organizations": [organization.to_dict() for organization in organizations],
            "page": page,
            "per_page": per_page,
            "total": store.count_organizations(),
        }
    )


@wicket_blueprint.post("/bulk-sync/start")
def wicket_bulk_start():
    auth_response = _ensure_admin_api()
    if auth_response:
        return auth_response

    services = _services()
    result = services.bulk.start()
    payload = {"success": True, "total": result["total"], "holder": result["holder"], "queued": False}
    if _wants_async():
        queued = _enqueue("wicket_sync.bulk_sync_step", chain=True, holder=result["holder"])
        payload["queued"] = queued is not None
    return jsonify(payload), HTTPStatus.OK


@wicket_blueprint.post("/bulk-sync/process")
def wicket_bulk_process():
    auth_response = _ensure_admin_api()
    if auth_response:
        return auth_response

    payload = request.get_json(silent=True) or {}
    holder = payload.get("holder") if isinstance(payload, dict) else None
    result = _services().bulk.process_batch(holder=holder or request.args.get("holder") or None)
    return jsonify({"success": result.in_progress or result.completed, **result.to_dict()})


@wicket_blueprint.post("/bulk-sync/cancel")
def wicket_bulk_cancel():
    auth_response = _ensure_admin_api()
    if auth_response:
        return auth_response

    result = _services().bulk.cancel()
    return jsonify({"success": True, **result})


@wicket_blueprint.get("/bulk-sync/status")
def wicket_bulk_status():
    auth_response = _ensure_admin_api()
    if auth_response:
        return auth_response

    try:
        log_tail = max(0, int(request.args.get("logs", 5)))
    except ValueError:
        return _json_error("logs must be an integer.", HTTPStatus.BAD_REQUEST)
    return jsonify(_services().bulk.status(log_tail=log_tail))
