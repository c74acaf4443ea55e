"""
Local cache store for Wicket organizations and person-organization connections.

The cache answers search and membership lookups without a round trip to
Wicket. Store methods flush but never commit; callers own the transaction
boundary through ``transaction()``.
"""

from __future__ import annotations

import enum
import logging
from contextlib import contextmanager
from typing import Any, Mapping

from sqlalchemy import func, inspect, or_, select, update
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from wicket_sync.models import Organization, PersonOrgConnection, SystemSetting, db
from wicket_sync.models.base import utc_now

from .adapters.wicket.resources import NormalizedConnection

logger = logging.getLogger(__name__)

CACHE_TABLES = (Organization.__table__, PersonOrgConnection.__table__)
DEFAULT_SEARCH_LIMIT = 20
ORDERABLE_COLUMNS = {
    "legal_name": Organization.legal_name,
    "org_type": Organization.org_type,
    "people_count": Organization.people_count,
    "remote_updated_at": Organization.remote_updated_at,
}
ORGANIZATION_FIELDS = (
    "legal_name",
    "legal_name_en",
    "legal_name_fr",
    "legal_name_es",
    "alternate_name",
    "org_type",
    "slug",
    "description",
    "identifying_number",
    "parent_org_uuid",
    "people_count",
    "remote_created_at",
    "remote_updated_at",
)


class UpsertResult(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"


class SchemaMissingError(RuntimeError):
    """Raised when the cache tables are absent and could not be recreated."""


class OrganizationCacheStore:
    """Relational mirror of Wicket organizations and connections."""

    def __init__(self, session: Session | None = None, clock=utc_now):
        self._session = session
        self.clock = clock

    @property
    def session(self) -> Session:
        return self._session or db.session

    @contextmanager
    def transaction(self):
        try:
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    # Schema ---------------------------------------------------------------------

    def tables_exist(self) -> bool:
        inspector = inspect(self.session.get_bind())
        return all(inspector.has_table(table.name) for table in CACHE_TABLES)

    def create_tables(self) -> None:
        """Create the cache tables; safe to call repeatedly."""
        db.metadata.create_all(bind=self.session.get_bind(), tables=list(CACHE_TABLES), checkfirst=True)

    def ensure_tables(self) -> bool:
        """
        Recreate missing cache tables before a sync proceeds.

        Returns True when tables had to be created. Raises SchemaMissingError
        if they are still missing afterwards.
        """
        if self.tables_exist():
            return False
        logger.warning("Wicket cache tables missing; recreating schema")
        try:
            self.create_tables()
        except Exception as exc:
            raise SchemaMissingError(f"Could not create Wicket cache tables: {exc}") from exc
        if not self.tables_exist():
            raise SchemaMissingError("Wicket cache tables are still missing after schema creation.")
        logger.info("Wicket cache tables created")
        return True

    def _read(self, query):
        """
        Run a read against the cache tables. When it fails because the tables
        are gone, recreate them and retry once.
        """
        try:
            return query()
        except (OperationalError, ProgrammingError):
            self.session.rollback()
            if self.tables_exist():
                raise
            self.ensure_tables()
            return query()

    # Organizations --------------------------------------------------------------

    def upsert_organization(self, attributes: Mapping[str, Any]) -> UpsertResult:
        """Insert or fully update the organization identified by ``attributes['uuid']``."""
        uuid = attributes.get("uuid")
        if not uuid:
            raise ValueError("Organization uuid is required for upsert.")

        organization = self.get_organization(uuid)
        result = UpsertResult.UPDATED
        if organization is None:
            organization = Organization(uuid=uuid)
            self.session.add(organization)
            result = UpsertResult.CREATED

        for field in ORGANIZATION_FIELDS:
            value = attributes.get(field)
            if field == "people_count":
                value = value or 0
            setattr(organization, field, value)
        organization.synced_at = self.clock()
        self.session.flush()
        return result

    def get_organization(self, uuid: str) -> Organization | None:
        if not uuid:
            return None
        stmt = select(Organization).where(Organization.uuid == uuid)
        return self._read(lambda: self.session.scalars(stmt).first())

    def search_organizations(
        self,
        term: str,
        limit: int = DEFAULT_SEARCH_LIMIT,
        org_type: str | None = None,
    ) -> list[Organization]:
        """Case-insensitive substring search over legal and alternate names."""
        term = (term or "").strip()
        if not term:
            return []
        pattern = f"%{term}%"
        stmt = select(Organization).where(
            or_(
                Organization.legal_name.ilike(pattern),
                Organization.alternate_name.ilike(pattern),
                Organization.legal_name_en.ilike(pattern),
            )
        )
        if org_type:
            stmt = stmt.where(Organization.org_type == org_type)
        stmt = stmt.order_by(Organization.legal_name.asc()).limit(max(1, int(limit)))
        return self._read(lambda: list(self.session.scalars(stmt)))

    def list_organizations(
        self,
        page: int = 1,
        per_page: int = 20,
        order_by: str = "legal_name",
        order: str = "ASC",
    ) -> list[Organization]:
        column = ORDERABLE_COLUMNS.get(order_by, Organization.legal_name)
        direction = column.desc() if str(order).upper() == "DESC" else column.asc()
        page = max(1, int(page))
        per_page = max(1, int(per_page))
        stmt = (
            select(Organization)
            .order_by(direction, Organization.id.asc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return self._read(lambda: list(self.session.scalars(stmt)))

    def count_organizations(self) -> int:
        return int(self._read(lambda: self.session.scalar(select(func.count(Organization.id)))) or 0)

    # Connections ----------------------------------------------------------------

    def get_connection(self, connection_uuid: str) -> PersonOrgConnection | None:
        stmt = select(PersonOrgConnection).where(PersonOrgConnection.connection_uuid == connection_uuid)
        return self._read(lambda: self.session.scalars(stmt).first())

    def upsert_connection(
        self,
        person_uuid: str,
        connection: NormalizedConnection,
        user_id: int | None = None,
        is_active: bool = True,
    ) -> bool:
        """Insert or update a connection keyed by its remote UUID."""
        if not person_uuid or connection is None:
            return False
        row = self.get_connection(connection.connection_uuid)
        if row is None:
            row = PersonOrgConnection(connection_uuid=connection.connection_uuid)
            self.session.add(row)
        row.person_uuid = person_uuid
        row.org_uuid = connection.organization_uuid
        if user_id is not None:
            row.user_id = user_id
        for field, value in connection.to_attributes().items():
            setattr(row, field, value)
        row.is_active = is_active
        row.synced_at = self.clock()
        self.session.flush()
        return True

    def deactivate_all_connections_for_person(self, person_uuid: str) -> int:
        stmt = (
            update(PersonOrgConnection)
            .where(PersonOrgConnection.person_uuid == person_uuid)
            .where(PersonOrgConnection.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        result = self.session.execute(stmt)
        return int(result.rowcount or 0)

    def deactivate_connection(self, connection_uuid: str) -> bool:
        row = self.get_connection(connection_uuid)
        if row is None or not row.is_active:
            return False
        row.is_active = False
        self.session.flush()
        return True

    def get_active_connections_for_person(
        self,
        person_uuid: str,
        org_type: str | None = None,
    ) -> list[PersonOrgConnection]:
        """Active connections for the person joined with their cached organization."""
        if not person_uuid:
            return []
        stmt = (
            select(PersonOrgConnection)
            .outerjoin(Organization, Organization.uuid == PersonOrgConnection.org_uuid)
            .where(PersonOrgConnection.person_uuid == person_uuid)
            .where(PersonOrgConnection.is_active.is_(True))
        )
        if org_type:
            stmt = stmt.where(Organization.org_type == org_type)
        stmt = stmt.order_by(Organization.legal_name.asc(), PersonOrgConnection.id.asc())
        return self._read(lambda: list(self.session.scalars(stmt).unique()))

    def get_first_active_connection(self, person_uuid: str) -> PersonOrgConnection | None:
        """Earliest inserted active connection; the primary-organization fallback."""
        stmt = (
            select(PersonOrgConnection)
            .where(PersonOrgConnection.person_uuid == person_uuid)
            .where(PersonOrgConnection.is_active.is_(True))
            .order_by(PersonOrgConnection.id.asc())
            .limit(1)
        )
        return self._read(lambda: self.session.scalars(stmt).unique().first())


class SettingsStore:
    """Scalar run-state keys persisted in ``system_settings``."""

    def get(self, key: str, default=None):
        return SystemSetting.get_setting(key, default)

    def set(self, key: str, value, value_type: str = "string") -> bool:
        return SystemSetting.set_setting(key, value, value_type=value_type)

    def delete(self, key: str) -> bool:
        return SystemSetting.delete_setting(key)
