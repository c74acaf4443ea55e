# wicket_sync/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .connection import PersonOrgConnection
from .organization import Organization
from .setting import SystemSetting
from .user import User, UserMeta

__all__ = [
    "db",
    "BaseModel",
    "Organization",
    "PersonOrgConnection",
    "SystemSetting",
    "User",
    "UserMeta",
]
