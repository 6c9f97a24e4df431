"""User profile and user-role endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import MessageResponse, PageResponse, uuid_path
from api.schemas.rbac import OverrideOut, UserRoleOut, override_to_dto, user_role_to_dto
from api.schemas.users import (
    AssignRoleRequest,
    MeOut,
    ReplaceRolesRequest,
    UserCreateRequest,
    UserOut,
    UserPermissionRequest,
    UserUpdateRequest,
    user_to_dto,
)
from app.config import Settings
from app.dependencies import (
    AuditTrail,
    AuthContext,
    get_audit_trail,
    get_current_user,
    get_db,
    get_settings_from_app,
)
from core.constants import AuditAction, SortOrder
from core.permissions import Perm
from core.rbac import can_act_on, require_admin, require_permission
from core.utils import total_pages
from services.assignment_service import AssignmentService
from services.override_service import OverrideService
from services.resolver import PermissionResolver
from services.user_service import SORTABLE_FIELDS, UserService

router = APIRouter(tags=["users"])


@router.get("/me", response_model=MeOut)
async def get_me(ctx: AuthContext = Depends(get_current_user)):
    """The caller's profile with roles and granted permission names."""
    return MeOut(
        user=user_to_dto(ctx.profile, roles=ctx.roles),
        roles=ctx.roles,
        permissions=sorted(ctx.permissions.granted_names),
        is_admin=ctx.is_admin,
    )


@router.get(
    "",
    response_model=PageResponse[UserOut],
    dependencies=[Depends(require_permission(Perm.USERS_LIST))],
)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    sort_by: str = Query("created_at", pattern=f"^({'|'.join(SORTABLE_FIELDS)})$"),
    sort_order: SortOrder = Query(SortOrder.DESC),
    role: Optional[str] = Query(None, max_length=50),
    is_active: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    users, total = await UserService(db).list_users(
        page=page,
        limit=limit,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order.value,
        role=role,
        is_active=is_active,
    )
    return PageResponse[UserOut](
        items=[user_to_dto(u) for u in users],
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
    )


@router.post(
    "",
    response_model=UserOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission(Perm.USERS_CREATE))],
)
async def create_user(
    body: UserCreateRequest,
    ctx: AuthContext = Depends(get_current_user),
    trail: AuditTrail = Depends(get_audit_trail),
    settings: Settings = Depends(get_settings_from_app),
    db: AsyncSession = Depends(get_db),
):
    """Create a profile for an existing identity and assign roles by name."""
    role_names = body.roles if body.roles is not None else [settings.DEFAULT_ROLE]
    user = await UserService(db).create_user(body.model_dump(exclude={"roles"}))
    if role_names:
        await AssignmentService(db).assign_roles_by_name(user.id, role_names, assigned_by=ctx.user_id)
    await trail.record(
        AuditAction.USER_CREATED_BY_ADMIN,
        resource="user",
        resource_id=user.id,
        details={"email": user.email, "roles": role_names},
    )
    return user_to_dto(user, roles=await PermissionResolver(db).role_names(user.id))


@router.get(
    "/{user_id}",
    response_model=UserOut,
    dependencies=[Depends(require_permission(Perm.USERS_READ))],
)
async def get_user(
    user_id: str = uuid_path("User ID"),
    db: AsyncSession = Depends(get_db),
):
    user = await UserService(db).get_or_404(user_id)
    return user_to_dto(user, roles=await PermissionResolver(db).role_names(user_id))


@router.patch("/{user_id}", response_model=UserOut)
async def update_user(
    body: UserUpdateRequest,
    user_id: str = uuid_path("User ID"),
    ctx: AuthContext = Depends(get_current_user),
    trail: AuditTrail = Depends(get_audit_trail),
    db: AsyncSession = Depends(get_db),
):
    """Edit a profile.

    Anyone may edit their own profile. Editing others needs ``users:update``
    or an admin role, and ``email``, ``is_active`` and ``email_verified``
    are only applied for admins.
    """
    user, changed = await UserService(db).update_profile(
        acting_user_id=ctx.user_id,
        acting_is_admin=ctx.is_admin,
        user_id=user_id,
        data=body.model_dump(exclude_none=True),
        can_edit_others=can_act_on(ctx, user_id) or ctx.permissions.has(Perm.USERS_UPDATE.value),
    )
    if changed and user_id != ctx.user_id:
        await trail.record(
            AuditAction.USER_MODIFIED_BY_ADMIN,
            resource="user",
            resource_id=user_id,
            details={"fields": changed},
        )
    return user_to_dto(user, roles=await PermissionResolver(db).role_names(user_id))


@router.post(
    "/{user_id}/deactivate",
    response_model=MessageResponse,
    dependencies=[Depends(require_permission(Perm.USERS_DELETE))],
)
async def deactivate_user(
    user_id: str = uuid_path("User ID"),
    ctx: AuthContext = Depends(get_current_user),
    trail: AuditTrail = Depends(get_audit_trail),
    db: AsyncSession = Depends(get_db),
):
    user = await UserService(db).deactivate(ctx.user_id, user_id)
    await trail.record(
        AuditAction.USER_DEACTIVATED,
        resource="user",
        resource_id=user_id,
        details={"email": user.email},
    )
    return MessageResponse(message=f"User {user.email} deactivated")


# ─── Role assignments ────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/roles",
    response_model=list[UserRoleOut],
    dependencies=[Depends(require_permission(Perm.USERS_READ))],
)
async def list_user_roles(
    user_id: str = uuid_path("User ID"),
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """Role assignments of a user. Revoked and expired rows only on request."""
    await UserService(db).get_or_404(user_id)
    assignments = await AssignmentService(db).list_user_roles(user_id, include_inactive=include_inactive)
    return [user_role_to_dto(a, role_name=a.role.name) for a in assignments]


@router.post(
    "/{user_id}/roles",
    response_model=UserRoleOut,
    dependencies=[Depends(require_permission(Perm.ROLES_ASSIGN))],
)
async def assign_role(
    body: AssignRoleRequest,
    user_id: str = uuid_path("User ID"),
    ctx: AuthContext = Depends(get_current_user),
    trail: AuditTrail = Depends(get_audit_trail),
    db: AsyncSession = Depends(get_db),
):
    """Assign a role. Re-assigning reactivates the row and refreshes its expiry."""
    assignment = await AssignmentService(db).assign_role_to_user(
        user_id, body.role_id, assigned_by=ctx.user_id, expires_at=body.expires_at
    )
    await trail.record(
        AuditAction.ROLE_ASSIGNED,
        resource="user_role",
        resource_id=user_id,
        details={
            "role_id": body.role_id,
            "expires_at": body.expires_at.isoformat() if body.expires_at else None,
        },
    )
    return user_role_to_dto(assignment)


@router.delete(
    "/{user_id}/roles/{role_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_permission(Perm.ROLES_ASSIGN))],
)
async def remove_role(
    user_id: str = uuid_path("User ID"),
    role_id: str = uuid_path("Role ID"),
    trail: AuditTrail = Depends(get_audit_trail),
    db: AsyncSession = Depends(get_db),
):
    await AssignmentService(db).remove_role_from_user(user_id, role_id)
    await trail.record(
        AuditAction.ROLE_REMOVED,
        resource="user_role",
        resource_id=user_id,
        details={"role_id": role_id},
    )
    return MessageResponse(message="Role removed from user")


@router.put(
    "/{user_id}/roles",
    response_model=list[UserRoleOut],
    dependencies=[Depends(require_permission(Perm.ROLES_ASSIGN))],
)
async def replace_roles(
    body: ReplaceRolesRequest,
    user_id: str = uuid_path("User ID"),
    ctx: AuthContext = Depends(get_current_user),
    trail: AuditTrail = Depends(get_audit_trail),
    db: AsyncSession = Depends(get_db),
):
    """Replace every role of a user with exactly ``role_ids``."""
    svc = AssignmentService(db)
    await svc.replace_user_roles(user_id, body.role_ids, assigned_by=ctx.user_id)
    assignments = await svc.list_user_roles(user_id, include_inactive=True)
    await trail.record(
        AuditAction.ROLE_ASSIGNED,
        resource="user_role",
        resource_id=user_id,
        details={"mode": "replace", "role_ids": list(body.role_ids)},
    )
    return [user_role_to_dto(a, role_name=a.role.name) for a in assignments]


@router.post(
    "/{user_id}/permissions",
    response_model=OverrideOut,
    dependencies=[Depends(require_admin())],
)
async def set_user_permission(
    body: UserPermissionRequest,
    user_id: str = uuid_path("User ID"),
    ctx: AuthContext = Depends(get_current_user),
    trail: AuditTrail = Depends(get_audit_trail),
    db: AsyncSession = Depends(get_db),
):
    """Admin shortcut for a direct grant or deny on one user."""
    override = await OverrideService(db).grant_user_permission(
        user_id=user_id,
        permission_id=body.permission_id,
        granted=body.granted,
        expires_at=body.expires_at,
        reason=body.reason,
        assigned_by=ctx.user_id,
    )
    await trail.record(
        AuditAction.PERMISSION_GRANTED,
        resource="user_permission",
        resource_id=user_id,
        details={"permission_id": body.permission_id, "granted": body.granted},
    )
    return override_to_dto(override)
