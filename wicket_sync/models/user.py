# wicket_sync/models/user.py

from flask import current_app
from flask_login import UserMixin
from sqlalchemy.exc import SQLAlchemyError

from .base import BaseModel, db


class User(UserMixin, BaseModel):
    """Local account linked to a Wicket person through user metadata"""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=True, index=True)
    display_name = db.Column(db.String(200), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)

    meta = db.relationship("UserMeta", back_populates="user", cascade="all, delete-orphan", lazy="dynamic")

    def __repr__(self):
        return f"<User {self.username}>"

    def get_meta(self, key, default=None):
        entry = self.meta.filter_by(meta_key=key).first()
        return entry.meta_value if entry else default

    def set_meta(self, key, value):
        """Create or update a metadata value (caller commits)"""
        entry = self.meta.filter_by(meta_key=key).first()
        if entry is None:
            entry = UserMeta(user=self, meta_key=key)
            db.session.add(entry)
        entry.meta_value = None if value is None else str(value)
        return entry

    def delete_meta(self, key):
        UserMeta.query.filter_by(user_id=self.id, meta_key=key).delete()

    @staticmethod
    def find_by_email(email):
        """Find user by email with error handling"""
        try:
            return User.query.filter_by(email=email).first()
        except SQLAlchemyError as e:
            current_app.logger.error(f"Database error finding user by email {email}: {str(e)}")
            return None


class UserMeta(BaseModel):
    """Arbitrary per-user key/value metadata"""

    __tablename__ = "user_meta"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    meta_key = db.Column(db.String(100), nullable=False, index=True)
    meta_value = db.Column(db.Text, nullable=True)

    user = db.relationship("User", back_populates="meta")

    __table_args__ = (db.UniqueConstraint("user_id", "meta_key", name="_user_meta_key_uc"),)

    def __repr__(self):
        return f"<UserMeta user={self.user_id} key={self.meta_key}>"
