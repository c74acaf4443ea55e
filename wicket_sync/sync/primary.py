"""
Primary organization selection and membership changes for a local user.
"""

from __future__ import annotations

import logging
from typing import Any

from wicket_sync.models import Organization, PersonOrgConnection

from .adapters.wicket import WicketApiError
from .adapters.wicket.resources import parse_organization_resource


class MembershipError(RuntimeError):
    """A membership change cannot be applied; the message is user facing."""


class PrimaryOrganizationService:
    """
    Maintain the user's primary organization pointer on top of the
    connection cache.

    The pointer must name an organization the person is actively connected
    to. When it does not, the earliest inserted active connection wins.
    """

    def __init__(self, client, store, connections, identity, *, logger: logging.Logger | None = None):
        self.client = client
        self.store = store
        self.connections = connections
        self.identity = identity
        self.logger = logger or logging.getLogger(__name__)

    def _require_person(self, user) -> str:
        person_uuid = self.identity.get_person_uuid(user)
        if not person_uuid:
            raise MembershipError("Your account is not linked to a Wicket person record yet.")
        return person_uuid

    def get_organization(self, org_uuid: str, *, strict: bool = False) -> Organization | None:
        """
        Read-through lookup: cache first, then Wicket, caching the result.

        A failed remote fetch is logged and treated as a miss unless
        ``strict`` is set, in which case the WicketApiError propagates.
        """
        organization = self.store.get_organization(org_uuid)
        if organization is not None or not org_uuid:
            return organization
        try:
            resource = self.client.get_organization(org_uuid)
            attributes = parse_organization_resource(resource) if resource else None
        except WicketApiError as exc:
            if strict:
                raise
            self.logger.warning(
                "Could not fetch organization %s: %s", org_uuid, exc, extra={"org_uuid": org_uuid}
            )
            return None
        except ValueError as exc:
            self.logger.warning("Malformed organization %s: %s", org_uuid, exc, extra={"org_uuid": org_uuid})
            return None
        if attributes is None:
            return None
        with self.store.transaction():
            self.store.upsert_organization(attributes)
        return self.store.get_organization(org_uuid)

    def get_user_organizations(self, user, org_type: str | None = None) -> list[PersonOrgConnection]:
        person_uuid = self.identity.get_person_uuid(user)
        if not person_uuid:
            return []
        return self.store.get_active_connections_for_person(person_uuid, org_type=org_type)

    def get_primary_org_uuid(self, user) -> str | None:
        """Resolve the primary pointer from the cache alone, repairing it when stale."""
        person_uuid = self.identity.get_person_uuid(user)
        if not person_uuid:
            return None
        stored = self.identity.get_primary_org_uuid(user)
        active = {row.org_uuid for row in self.store.get_active_connections_for_person(person_uuid)}
        if stored and stored in active:
            return stored

        first = self.store.get_first_active_connection(person_uuid)
        if first is None:
            if stored:
                self.identity.set_primary_org_uuid(user, None)
            return None
        if stored:
            self.logger.info(
                "Primary organization %s is stale for user %s; using %s",
                stored,
                user.id,
                first.org_uuid,
                extra={"user_id": user.id},
            )
        self.identity.set_primary_org_uuid(user, first.org_uuid)
        return first.org_uuid

    def get_primary_organization(self, user) -> Organization | None:
        org_uuid = self.get_primary_org_uuid(user)
        return self.get_organization(org_uuid) if org_uuid else None

    def set_primary_organization(self, user, org_uuid: str) -> dict[str, Any]:
        person_uuid = self._require_person(user)
        active = {row.org_uuid for row in self.store.get_active_connections_for_person(person_uuid)}
        created = False
        if org_uuid not in active:
            result = self.client.create_person_org_connection(person_uuid, org_uuid)
            created = not result.get("already_existed", False)
            self.connections.sync_person_connections(person_uuid, user_id=user.id)
        self.identity.set_primary_org_uuid(user, org_uuid)
        return {"success": True, "primary_org_uuid": org_uuid, "connection_created": created}

    def add_organization(
        self,
        user,
        org_uuid: str,
        connection_type: str = "member",
        description: str | None = None,
    ) -> dict[str, Any]:
        person_uuid = self._require_person(user)
        result = self.client.create_person_org_connection(
            person_uuid, org_uuid, connection_type=connection_type, description=description
        )
        self.connections.sync_person_connections(person_uuid, user_id=user.id)
        if not self.identity.get_primary_org_uuid(user):
            self.identity.set_primary_org_uuid(user, org_uuid)
        return {
            "success": True,
            "already_existed": bool(result.get("already_existed")),
            "connection_uuid": result.get("connection_uuid"),
        }

    def remove_organization(self, user, org_uuid: str) -> dict[str, Any]:
        person_uuid = self._require_person(user)
        rows = [row for row in self.store.get_active_connections_for_person(person_uuid) if row.org_uuid == org_uuid]
        if not rows:
            raise MembershipError("You are not connected to this organization.")

        for row in rows:
            self.client.delete_connection(row.connection_uuid)
            with self.store.transaction():
                self.store.deactivate_connection(row.connection_uuid)

        if self.identity.get_primary_org_uuid(user) == org_uuid:
            first = self.store.get_first_active_connection(person_uuid)
            self.identity.set_primary_org_uuid(user, first.org_uuid if first else None)

        return {
            "success": True,
            "removed": len(rows),
            "primary_org_uuid": self.identity.get_primary_org_uuid(user),
        }

    def create_organization(
        self,
        user,
        legal_name: str,
        org_type: str,
        alternate_name: str | None = None,
    ) -> dict[str, Any]:
        """
        Create a company in Wicket, connect the user to it and make it primary.

        The new organization is cached from the create response so it can be
        searched before the next full sync.
        """
        person_uuid = self._require_person(user)
        legal_name = (legal_name or "").strip()
        org_type = (org_type or "").strip().lower()
        alternate_name = (alternate_name or "").strip() or None
        if not legal_name or not org_type:
            raise MembershipError("Company name and type are required.")

        created = self.client.create_organization(legal_name, org_type, alternate_name=alternate_name)
        org_uuid = created["id"]
        try:
            attributes = parse_organization_resource(created) or {"uuid": org_uuid}
        except ValueError:
            attributes = {"uuid": org_uuid}
        attributes = {
            **attributes,
            "legal_name": attributes.get("legal_name") or legal_name,
            "org_type": attributes.get("org_type") or org_type,
            "alternate_name": attributes.get("alternate_name") or alternate_name,
        }
        with self.store.transaction():
            self.store.upsert_organization(attributes)

        result = self.client.create_person_org_connection(person_uuid, org_uuid)
        self.connections.sync_person_connections(person_uuid, user_id=user.id)
        self.identity.set_primary_org_uuid(user, org_uuid)
        self.logger.info(
            "Organization %s created by user %s", org_uuid, user.id, extra={"user_id": user.id, "org_uuid": org_uuid}
        )
        return {
            "success": True,
            "org_uuid": org_uuid,
            "connection_uuid": result.get("connection_uuid"),
            "primary_org_uuid": org_uuid,
        }
