"""User profile schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from api.schemas.common import UUIDStr
from core.utils import as_utc
from db.models.user import UserProfile


class UserOut(BaseModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool
    email_verified: bool
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    roles: Optional[list[str]] = None


def user_to_dto(user: UserProfile, roles: Optional[list[str]] = None) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        avatar_url=user.avatar_url,
        phone=user.phone,
        is_active=user.is_active,
        email_verified=user.email_verified,
        last_login_at=as_utc(user.last_login_at),
        created_at=as_utc(user.created_at),
        updated_at=as_utc(user.updated_at),
        roles=roles,
    )


class MeOut(BaseModel):
    user: UserOut
    roles: list[str]
    permissions: list[str]
    is_admin: bool


class UserCreateRequest(BaseModel):
    """Admin-created profile. ``id`` is the account's id at the identity provider."""

    id: UUIDStr
    email: EmailStr
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=32)
    email_verified: bool = False
    # Role names; the configured default role when omitted
    roles: Optional[list[str]] = Field(default=None, max_length=50)


class UserUpdateRequest(BaseModel):
    """Profile edit. ``email``, ``is_active`` and ``email_verified`` only apply for admins."""

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    avatar_url: Optional[str] = Field(default=None, max_length=500)
    phone: Optional[str] = Field(default=None, max_length=32)
    email: Optional[EmailStr] = None
    is_active: Optional[bool] = None
    email_verified: Optional[bool] = None


class AssignRoleRequest(BaseModel):
    role_id: UUIDStr
    expires_at: Optional[datetime] = None


class ReplaceRolesRequest(BaseModel):
    role_ids: list[UUIDStr] = Field(max_length=50)


class UserPermissionRequest(BaseModel):
    permission_id: UUIDStr
    granted: bool = True
    expires_at: Optional[datetime] = None
    reason: Optional[str] = Field(default=None, max_length=500)
