# roster_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .importer import ImportRun, ImportRunStatus, MergeLog
from .organization import Organization
from .role import UserRole
from .staff import ATTRIBUTE_FIELDS, PLACEHOLDER_PREFIX, StaffMember
from .user import User

__all__ = [
    "db",
    "BaseModel",
    "User",
    "UserRole",
    "Organization",
    "StaffMember",
    "ATTRIBUTE_FIELDS",
    "PLACEHOLDER_PREFIX",
    # Importer ledger
    "ImportRun",
    "ImportRunStatus",
    "MergeLog",
]
