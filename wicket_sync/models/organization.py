# wicket_sync/models/organization.py

from flask import current_app
from sqlalchemy import Index
from sqlalchemy.exc import SQLAlchemyError

from .base import BaseModel, db


class Organization(BaseModel):
    """Locally cached copy of a Wicket organization, keyed by its remote UUID"""

    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, index=True)

    # Names
    legal_name = db.Column(db.String(255), nullable=True, index=True)
    legal_name_en = db.Column(db.String(255), nullable=True)
    legal_name_fr = db.Column(db.String(255), nullable=True)
    legal_name_es = db.Column(db.String(255), nullable=True)
    alternate_name = db.Column(db.String(255), nullable=True)

    # Classification
    org_type = db.Column(db.String(100), nullable=True, index=True)  # free text, e.g. company, section
    slug = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)
    identifying_number = db.Column(db.String(50), nullable=True)
    parent_org_uuid = db.Column(db.String(36), nullable=True, index=True)
    people_count = db.Column(db.Integer, default=0, nullable=False)

    # Remote and local timestamps
    remote_created_at = db.Column(db.DateTime(timezone=True), nullable=True)
    remote_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_org_type_legal_name", "org_type", "legal_name"),)

    def __repr__(self):
        return f"<Organization {self.uuid} {self.legal_name}>"

    @property
    def display_name(self):
        return self.legal_name or self.alternate_name or self.uuid

    def to_dict(self):
        return {
            "uuid": self.uuid,
            "legal_name": self.legal_name,
            "legal_name_en": self.legal_name_en,
            "legal_name_fr": self.legal_name_fr,
            "legal_name_es": self.legal_name_es,
            "alternate_name": self.alternate_name,
            "org_type": self.org_type,
            "slug": self.slug,
            "description": self.description,
            "identifying_number": self.identifying_number,
            "parent_org_uuid": self.parent_org_uuid,
            "people_count": self.people_count,
            "remote_created_at": self.remote_created_at.isoformat() if self.remote_created_at else None,
            "remote_updated_at": self.remote_updated_at.isoformat() if self.remote_updated_at else None,
            "synced_at": self.synced_at.isoformat() if self.synced_at else None,
        }

    @staticmethod
    def find_by_uuid(uuid):
        """Find organization by remote UUID with error handling"""
        try:
            return Organization.query.filter_by(uuid=uuid).first()
        except SQLAlchemyError as e:
            current_app.logger.error(f"Database error finding organization by uuid {uuid}: {str(e)}")
            return None
