"""Permission, role and effective-permission schemas.

Each response model has a pure ``*_to_dto`` mapper from the ORM row or
resolver value, so the storage shape never leaks into the API.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from api.schemas.common import UUIDStr
from core.constants import PermissionSource
from core.utils import as_utc
from db.models.permission import Permission
from db.models.role import Role
from db.models.user_role import UserRole
from services.resolver import EffectivePermissions, PermissionEntry

PERMISSION_NAME_PATTERN = r"^[a-z][a-z0-9_]*:[a-z][a-z0-9_]*$"


# ─── Permissions ─────────────────────────────────────────────────────────────

class PermissionCreate(BaseModel):
    name: str = Field(min_length=3, max_length=100, pattern=PERMISSION_NAME_PATTERN,
                      description="resource:action")
    resource: Optional[str] = Field(default=None, min_length=1, max_length=50)
    action: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    conditions: Optional[dict[str, Any]] = None


class PermissionUpdate(BaseModel):
    description: Optional[str] = Field(default=None, max_length=500)
    conditions: Optional[dict[str, Any]] = None


class PermissionOut(BaseModel):
    id: str
    name: str
    resource: str
    action: str
    description: Optional[str] = None
    conditions: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None


def permission_to_dto(permission: Permission) -> PermissionOut:
    return PermissionOut(
        id=permission.id,
        name=permission.name,
        resource=permission.resource,
        action=permission.action,
        description=permission.description,
        conditions=permission.conditions,
        created_at=as_utc(permission.created_at),
    )


# ─── Roles ───────────────────────────────────────────────────────────────────

class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    permission_ids: list[UUIDStr] = Field(default_factory=list, max_length=500)


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    is_active: Optional[bool] = None


class RolePermissionsRequest(BaseModel):
    permission_ids: list[UUIDStr] = Field(min_length=1, max_length=500)


class RoleOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    is_system: bool
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    permissions: list[PermissionOut] = Field(default_factory=list)
    user_count: Optional[int] = None


def role_to_dto(role: Role, user_count: Optional[int] = None) -> RoleOut:
    return RoleOut(
        id=role.id,
        name=role.name,
        description=role.description,
        is_system=role.is_system,
        is_active=role.is_active,
        created_at=as_utc(role.created_at),
        updated_at=as_utc(role.updated_at),
        permissions=sorted(
            (permission_to_dto(p) for p in role.permissions),
            key=lambda p: p.name,
        ),
        user_count=user_count,
    )


class RoleBundleChangeOut(BaseModel):
    message: str
    count: int


# ─── User-role assignments ───────────────────────────────────────────────────

class UserRoleOut(BaseModel):
    id: str
    user_id: str
    role_id: str
    role_name: Optional[str] = None
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: bool


def user_role_to_dto(assignment: UserRole, role_name: Optional[str] = None) -> UserRoleOut:
    return UserRoleOut(
        id=assignment.id,
        user_id=assignment.user_id,
        role_id=assignment.role_id,
        role_name=role_name,
        assigned_by=assignment.assigned_by,
        assigned_at=as_utc(assignment.assigned_at),
        expires_at=as_utc(assignment.expires_at),
        is_active=assignment.is_active,
    )


# ─── Direct overrides ────────────────────────────────────────────────────────

class GrantPermissionRequest(BaseModel):
    user_id: UUIDStr
    permission_id: UUIDStr
    granted: bool = True
    expires_at: Optional[datetime] = None
    reason: Optional[str] = Field(default=None, max_length=500)


class RevokePermissionRequest(BaseModel):
    user_id: UUIDStr
    permission_id: UUIDStr


class BulkPermissionItem(BaseModel):
    permission_id: UUIDStr
    granted: bool = True
    expires_at: Optional[datetime] = None
    reason: Optional[str] = Field(default=None, max_length=500)


class BulkUpdateRequest(BaseModel):
    user_id: UUIDStr
    permissions: list[BulkPermissionItem] = Field(max_length=500)
    replace_all: bool = False


class BulkItemOut(BaseModel):
    permission_id: str
    success: bool
    error: Optional[str] = None


class BulkUpdateOut(BaseModel):
    results: list[BulkItemOut]
    summary: dict[str, int]


class OverrideOut(BaseModel):
    user_id: str
    permission_id: str
    granted: bool
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    reason: Optional[str] = None


def override_to_dto(override) -> OverrideOut:
    return OverrideOut(
        user_id=override.user_id,
        permission_id=override.permission_id,
        granted=override.granted,
        assigned_by=override.assigned_by,
        assigned_at=as_utc(override.assigned_at),
        expires_at=as_utc(override.expires_at),
        reason=override.reason,
    )


# ─── Effective permissions ───────────────────────────────────────────────────

class EffectivePermissionOut(BaseModel):
    permission_id: str
    name: str
    resource: str
    action: str
    source: PermissionSource
    granted: bool
    role_name: Optional[str] = None
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    reason: Optional[str] = None


def entry_to_dto(entry: PermissionEntry) -> EffectivePermissionOut:
    return EffectivePermissionOut(
        permission_id=entry.permission_id,
        name=entry.name,
        resource=entry.resource,
        action=entry.action,
        source=entry.source,
        granted=entry.granted,
        role_name=entry.role_name,
        assigned_by=entry.assigned_by,
        assigned_at=entry.assigned_at,
        expires_at=entry.expires_at,
        reason=entry.reason,
    )


class EffectivePermissionsOut(BaseModel):
    user_id: str
    effective_permissions: list[EffectivePermissionOut]
    granted_permissions: list[EffectivePermissionOut]
    denied_permissions: list[EffectivePermissionOut]
    summary: dict[str, int]


def effective_to_dto(effective: EffectivePermissions) -> EffectivePermissionsOut:
    return EffectivePermissionsOut(
        user_id=effective.user_id,
        effective_permissions=[
            entry_to_dto(e) for e in sorted(effective.entries.values(), key=lambda e: e.name)
        ],
        granted_permissions=[entry_to_dto(e) for e in effective.granted],
        denied_permissions=[entry_to_dto(e) for e in effective.denied],
        summary=effective.summary,
    )


class PermissionCheckOut(BaseModel):
    user_id: str
    permission: str
    has_permission: bool
