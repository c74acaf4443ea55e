"""
Per-person reconciliation of Wicket person-to-organization connections.
"""

from __future__ import annotations

import logging
from typing import Iterable

from wicket_sync.models.base import utc_now

from ..adapters.wicket import WicketApiError
from ..adapters.wicket.resources import (
    NormalizedConnection,
    normalize_connection,
    parse_organization_resource,
)
from ..metrics import record_connection_sync


class ConnectionSyncEngine:
    """Rewrite a person's cached connections from the current remote set."""

    def __init__(self, client, store, identity, *, clock=utc_now, logger: logging.Logger | None = None):
        self.client = client
        self.store = store
        self.identity = identity
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def sync_person_connections(self, person_uuid: str, user_id: int | None = None) -> bool:
        """
        Deactivate every cached connection for the person, then reassert the
        ones Wicket reports as current.

        A failed fetch returns False and leaves the cache untouched. A
        successful empty answer deactivates everything.
        """
        if not person_uuid:
            return False
        self.store.ensure_tables()

        try:
            resources = self.client.get_person_connections(person_uuid)
        except WicketApiError as exc:
            record_connection_sync("failure")
            self.logger.warning(
                "Could not fetch connections for person %s: %s",
                person_uuid,
                exc,
                extra={"person_uuid": person_uuid},
            )
            return False

        connections = list(self._normalize_all(resources, person_uuid))
        self._cache_missing_organizations(connection.organization_uuid for connection in connections)

        now = self.clock()
        with self.store.transaction():
            deactivated = self.store.deactivate_all_connections_for_person(person_uuid)
            for connection in connections:
                # Rows outside their starts_at/ends_at window are cached but stay inactive
                self.store.upsert_connection(
                    person_uuid, connection, user_id=user_id, is_active=connection.is_current(now)
                )

        record_connection_sync("success")
        self.logger.info(
            "Synced %s connections for person %s",
            len(connections),
            person_uuid,
            extra={"person_uuid": person_uuid, "deactivated": deactivated},
        )
        return True

    def sync_user(self, user) -> bool:
        """
        Sync a local user, resolving the person by email first and falling
        back to the stored person UUID.
        """
        resolved_uuid = None
        if user.email:
            try:
                person = self.client.find_person_by_email(user.email)
            except WicketApiError as exc:
                person = None
                self.logger.warning(
                    "Person lookup by email failed for user %s: %s",
                    user.id,
                    exc,
                    extra={"user_id": user.id},
                )
            if person and person.get("id"):
                resolved_uuid = str(person["id"])
                if self.identity.get_person_uuid(user) != resolved_uuid:
                    self.identity.set_person_uuid(user, resolved_uuid)
                if self.sync_person_connections(resolved_uuid, user_id=user.id):
                    self.identity.mark_synced(user, self.clock())
                    return True

        stored_uuid = self.identity.get_person_uuid(user)
        if stored_uuid and stored_uuid != resolved_uuid:
            if self.sync_person_connections(stored_uuid, user_id=user.id):
                self.identity.mark_synced(user, self.clock())
                return True
        return False

    def _normalize_all(self, resources, person_uuid: str) -> Iterable[NormalizedConnection]:
        for resource in resources:
            connection = normalize_connection(resource)
            if connection is None:
                self.logger.debug(
                    "Skipping connection without an organization",
                    extra={"person_uuid": person_uuid, "resource_id": (resource or {}).get("id")},
                )
                continue
            yield connection

    def _cache_missing_organizations(self, org_uuids: Iterable[str]) -> None:
        """Point-fetch organizations the catalog sync has not cached yet."""
        for org_uuid in dict.fromkeys(org_uuids):
            if self.store.get_organization(org_uuid) is not None:
                continue
            try:
                resource = self.client.get_organization(org_uuid)
                attributes = parse_organization_resource(resource) if resource else None
            except (WicketApiError, ValueError) as exc:
                self.logger.warning("Could not fetch organization %s: %s", org_uuid, exc)
                continue
            if attributes is None:
                continue
            with self.store.transaction():
                self.store.upsert_organization(attributes)
