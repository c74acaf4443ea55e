"""
Host identity collaborator: local users and their Wicket metadata.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select

from wicket_sync.models import User, db

PERSON_UUID_KEY = "wicket_person_uuid"
PRIMARY_ORG_KEY = "wicket_primary_org_uuid"
LAST_SYNC_KEY = "wicket_last_sync"


class UserIdentityProvider:
    """Read and write the per-user keys the sync engines depend on."""

    def get_user(self, user_id: int) -> User | None:
        return db.session.get(User, user_id)

    def count_users(self) -> int:
        return int(db.session.scalar(select(func.count(User.id))) or 0)

    def get_users(self, offset: int, limit: int) -> list[User]:
        stmt = select(User).order_by(User.id.asc()).offset(max(0, offset)).limit(max(1, limit))
        return list(db.session.scalars(stmt))

    def get_person_uuid(self, user: User) -> str | None:
        return user.get_meta(PERSON_UUID_KEY) or None

    def set_person_uuid(self, user: User, person_uuid: str) -> None:
        user.set_meta(PERSON_UUID_KEY, person_uuid)
        db.session.commit()

    def get_primary_org_uuid(self, user: User) -> str | None:
        return user.get_meta(PRIMARY_ORG_KEY) or None

    def set_primary_org_uuid(self, user: User, org_uuid: str | None) -> None:
        if org_uuid:
            user.set_meta(PRIMARY_ORG_KEY, org_uuid)
        else:
            user.delete_meta(PRIMARY_ORG_KEY)
        db.session.commit()

    def mark_synced(self, user: User, when: datetime) -> None:
        user.set_meta(LAST_SYNC_KEY, when.isoformat())
        db.session.commit()
