"""Database models for the access control service.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.user import UserProfile
from db.models.permission import Permission
from db.models.role import Role, RolePermission
from db.models.user_role import UserRole
from db.models.user_permission import UserPermission
from db.models.audit_log import AuditLog

__all__ = [
    "UserProfile",
    "Permission",
    "Role",
    "RolePermission",
    "UserRole",
    "UserPermission",
    "AuditLog",
]
