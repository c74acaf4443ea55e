# wicket_sync/models/connection.py

from sqlalchemy import Index

from .base import BaseModel, db


class PersonOrgConnection(BaseModel):
    """Locally cached person-to-organization connection from Wicket"""

    __tablename__ = "person_org_connections"

    id = db.Column(db.Integer, primary_key=True)
    connection_uuid = db.Column(db.String(36), unique=True, nullable=False, index=True)
    # References are by remote UUID and intentionally not foreign keys
    person_uuid = db.Column(db.String(36), nullable=False, index=True)
    org_uuid = db.Column(db.String(36), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)

    connection_type = db.Column(db.String(100), default="member", nullable=False)
    description = db.Column(db.Text, nullable=True)
    starts_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ends_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    organization = db.relationship(
        "Organization",
        primaryjoin="foreign(PersonOrgConnection.org_uuid) == Organization.uuid",
        viewonly=True,
        lazy="joined",
    )

    __table_args__ = (Index("idx_connection_person_active", "person_uuid", "is_active"),)

    def __repr__(self):
        return f"<PersonOrgConnection {self.connection_uuid} {self.person_uuid}->{self.org_uuid}>"

    def to_dict(self):
        org = self.organization
        return {
            "connection_uuid": self.connection_uuid,
            "person_uuid": self.person_uuid,
            "org_uuid": self.org_uuid,
            "connection_type": self.connection_type,
            "description": self.description,
            "starts_at": self.starts_at.isoformat() if self.starts_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "is_active": self.is_active,
            "legal_name": org.legal_name if org else None,
            "alternate_name": org.alternate_name if org else None,
            "org_type": org.org_type if org else None,
        }
