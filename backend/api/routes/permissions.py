"""Permission catalog, direct override and permission inspection endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import UUID_PATTERN, MessageResponse, uuid_path
from api.schemas.rbac import (
    BulkUpdateOut,
    BulkUpdateRequest,
    EffectivePermissionsOut,
    GrantPermissionRequest,
    OverrideOut,
    PermissionCheckOut,
    PermissionCreate,
    PermissionOut,
    PermissionUpdate,
    RevokePermissionRequest,
    effective_to_dto,
    override_to_dto,
    permission_to_dto,
)
from app.dependencies import AuditTrail, AuthContext, get_audit_trail, get_current_user, get_db
from core.constants import AuditAction
from core.permissions import Perm
from core.rbac import ensure_self_or_permission, require_permission
from services.override_service import OverrideService, PermissionChange
from services.permission_service import PermissionService
from services.resolver import PermissionResolver
from services.user_service import UserService

router = APIRouter(tags=["permissions"])

# Viewing another user's permissions needs one of these
VIEW_OTHER_USERS = (Perm.PERMISSIONS_READ, Perm.USERS_READ)


# ─── Catalog ─────────────────────────────────────────────────────────────────

@router.get("", dependencies=[Depends(require_permission(Perm.PERMISSIONS_READ))])
async def list_permissions(
    resource: Optional[str] = Query(None, max_length=50),
    group_by_resource: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """List the catalog, optionally filtered by resource or grouped by it."""
    svc = PermissionService(db)
    permissions = await svc.list_all(resource=resource)
    if group_by_resource:
        return {
            "groups": [
                {"resource": res, "permissions": [permission_to_dto(p) for p in perms]}
                for res, perms in svc.group_by_resource(permissions).items()
            ],
            "total": len(permissions),
        }
    return {"permissions": [permission_to_dto(p) for p in permissions], "total": len(permissions)}


@router.get("/resources", dependencies=[Depends(require_permission(Perm.PERMISSIONS_READ))])
async def list_resources(db: AsyncSession = Depends(get_db)):
    return {"resources": await PermissionService(db).unique_resources()}


@router.get("/actions", dependencies=[Depends(require_permission(Perm.PERMISSIONS_READ))])
async def list_actions(db: AsyncSession = Depends(get_db)):
    return {"actions": await PermissionService(db).unique_actions()}


@router.post(
    "",
    response_model=PermissionOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission(Perm.PERMISSIONS_MANAGE))],
)
async def create_permission(body: PermissionCreate, db: AsyncSession = Depends(get_db)):
    """Add a permission to the catalog. Names are unique."""
    permission = await PermissionService(db).create(
        name=body.name,
        resource=body.resource,
        action=body.action,
        description=body.description,
        conditions=body.conditions,
    )
    return permission_to_dto(permission)


# ─── Inspection ──────────────────────────────────────────────────────────────

@router.get("/users/effective", response_model=EffectivePermissionsOut)
async def get_user_permissions(
    user_id: Optional[str] = Query(None, pattern=UUID_PATTERN, description="Defaults to the caller"),
    include_expired: bool = Query(False),
    ctx: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Effective permissions of a user, with the source of every entry."""
    target = user_id or ctx.user_id
    ensure_self_or_permission(ctx, target, *VIEW_OTHER_USERS)
    await UserService(db).get_or_404(target)
    effective = await PermissionResolver(db).resolve(target, include_expired=include_expired)
    return effective_to_dto(effective)


@router.get("/check", response_model=PermissionCheckOut)
async def check_permission(
    permission: str = Query(..., min_length=3, max_length=100),
    user_id: Optional[str] = Query(None, pattern=UUID_PATTERN, description="Defaults to the caller"),
    ctx: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    target = user_id or ctx.user_id
    ensure_self_or_permission(ctx, target, *VIEW_OTHER_USERS)
    allowed = await PermissionResolver(db).has_permission(target, permission)
    return PermissionCheckOut(user_id=target, permission=permission, has_permission=allowed)


# ─── Direct overrides ────────────────────────────────────────────────────────

@router.post(
    "/users/grant",
    response_model=OverrideOut,
    dependencies=[Depends(require_permission(Perm.PERMISSIONS_ASSIGN))],
)
async def grant_user_permission(
    body: GrantPermissionRequest,
    ctx: AuthContext = Depends(get_current_user),
    trail: AuditTrail = Depends(get_audit_trail),
    db: AsyncSession = Depends(get_db),
):
    """Grant (or, with ``granted=false``, explicitly deny) a permission to a user."""
    override = await OverrideService(db).grant_user_permission(
        user_id=body.user_id,
        permission_id=body.permission_id,
        granted=body.granted,
        expires_at=body.expires_at,
        reason=body.reason,
        assigned_by=ctx.user_id,
    )
    await trail.record(
        AuditAction.PERMISSION_GRANTED,
        resource="user_permission",
        resource_id=body.user_id,
        details={
            "permission_id": body.permission_id,
            "granted": body.granted,
            "expires_at": body.expires_at.isoformat() if body.expires_at else None,
            "reason": body.reason,
        },
    )
    return override_to_dto(override)


@router.post(
    "/users/revoke",
    dependencies=[Depends(require_permission(Perm.PERMISSIONS_ASSIGN))],
)
async def revoke_user_permission(
    body: RevokePermissionRequest,
    trail: AuditTrail = Depends(get_audit_trail),
    db: AsyncSession = Depends(get_db),
):
    """Remove a direct override so the user's roles decide again."""
    removed = await OverrideService(db).revoke_user_permission(body.user_id, body.permission_id)
    if removed:
        await trail.record(
            AuditAction.PERMISSION_REVOKED,
            resource="user_permission",
            resource_id=body.user_id,
            details={"permission_id": body.permission_id},
        )
        return {"message": "Permission override removed", "removed": True}
    return {"message": "No override existed for this permission", "removed": False}


@router.post(
    "/users/bulk",
    response_model=BulkUpdateOut,
    dependencies=[Depends(require_permission(Perm.PERMISSIONS_ASSIGN))],
)
async def bulk_update_user_permissions(
    body: BulkUpdateRequest,
    ctx: AuthContext = Depends(get_current_user),
    trail: AuditTrail = Depends(get_audit_trail),
    db: AsyncSession = Depends(get_db),
):
    """Apply many overrides at once. Per-item failures are reported, not raised."""
    outcome = await OverrideService(db).bulk_update_user_permissions(
        user_id=body.user_id,
        permissions=[
            PermissionChange(
                permission_id=item.permission_id,
                granted=item.granted,
                expires_at=item.expires_at,
                reason=item.reason,
            )
            for item in body.permissions
        ],
        replace_all=body.replace_all,
        assigned_by=ctx.user_id,
    )
    await trail.record(
        AuditAction.BULK_OPERATION_PERFORMED,
        resource="user_permission",
        resource_id=body.user_id,
        details={"replace_all": body.replace_all, "summary": outcome.summary},
    )
    return outcome.to_dict()


# ─── Single permission ───────────────────────────────────────────────────────

@router.get(
    "/{permission_id}",
    response_model=PermissionOut,
    dependencies=[Depends(require_permission(Perm.PERMISSIONS_READ))],
)
async def get_permission(
    permission_id: str = uuid_path("Permission ID"),
    db: AsyncSession = Depends(get_db),
):
    return permission_to_dto(await PermissionService(db).get_or_404(permission_id))


@router.patch(
    "/{permission_id}",
    response_model=PermissionOut,
    dependencies=[Depends(require_permission(Perm.PERMISSIONS_MANAGE))],
)
async def update_permission(
    body: PermissionUpdate,
    permission_id: str = uuid_path("Permission ID"),
    db: AsyncSession = Depends(get_db),
):
    permission = await PermissionService(db).update(
        permission_id, description=body.description, conditions=body.conditions
    )
    return permission_to_dto(permission)


@router.delete(
    "/{permission_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_permission(Perm.PERMISSIONS_MANAGE))],
)
async def delete_permission(
    permission_id: str = uuid_path("Permission ID"),
    db: AsyncSession = Depends(get_db),
):
    """Delete a permission no role or user override references."""
    permission = await PermissionService(db).delete(permission_id)
    return MessageResponse(message=f"Permission '{permission.name}' deleted")
