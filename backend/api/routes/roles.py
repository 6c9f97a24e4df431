"""Role management endpoints.

System roles are read-only here: any update or delete of one is rejected
with 403 whatever the caller's own privileges.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import MessageResponse, uuid_path
from api.schemas.rbac import (
    RoleBundleChangeOut,
    RoleCreate,
    RoleOut,
    RolePermissionsRequest,
    RoleUpdate,
    role_to_dto,
    user_role_to_dto,
)
from api.schemas.users import user_to_dto
from app.dependencies import AuditTrail, get_audit_trail, get_db
from core.constants import AuditAction
from core.permissions import Perm
from core.rbac import require_permission
from services.assignment_service import AssignmentService
from services.role_service import RoleService

router = APIRouter(tags=["roles"])


@router.get(
    "",
    response_model=list[RoleOut],
    dependencies=[Depends(require_permission(Perm.ROLES_READ))],
)
async def list_roles(
    include_system: bool = Query(True),
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """List roles with their permission bundles and active user counts."""
    svc = RoleService(db)
    roles = await svc.list_roles(include_system=include_system, include_inactive=include_inactive)
    counts = await svc.assignment_counts([r.id for r in roles])
    return [role_to_dto(r, user_count=counts.get(r.id, 0)) for r in roles]


@router.get(
    "/{role_id}",
    response_model=RoleOut,
    dependencies=[Depends(require_permission(Perm.ROLES_READ))],
)
async def get_role(
    role_id: str = uuid_path("Role ID"),
    db: AsyncSession = Depends(get_db),
):
    svc = RoleService(db)
    role = await svc.get(role_id)
    return role_to_dto(role, user_count=await svc.active_assignment_count(role_id))


@router.post(
    "",
    response_model=RoleOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission(Perm.ROLES_MANAGE))],
)
async def create_role(
    body: RoleCreate,
    trail: AuditTrail = Depends(get_audit_trail),
    db: AsyncSession = Depends(get_db),
):
    """Create a role and its permission links in one transaction."""
    role = await RoleService(db).create_role(
        name=body.name,
        description=body.description,
        permission_ids=body.permission_ids,
    )
    await trail.record(
        AuditAction.ROLE_CREATED,
        resource="role",
        resource_id=role.id,
        details={"name": role.name, "permission_ids": list(body.permission_ids)},
    )
    return role_to_dto(role, user_count=0)


@router.patch(
    "/{role_id}",
    response_model=RoleOut,
    dependencies=[Depends(require_permission(Perm.ROLES_MANAGE))],
)
async def update_role(
    body: RoleUpdate,
    role_id: str = uuid_path("Role ID"),
    trail: AuditTrail = Depends(get_audit_trail),
    db: AsyncSession = Depends(get_db),
):
    changes = body.model_dump(exclude_none=True)
    role = await RoleService(db).update_role(role_id, **changes)
    await trail.record(
        AuditAction.ROLE_MODIFIED,
        resource="role",
        resource_id=role.id,
        details={"changes": changes},
    )
    return role_to_dto(role)


@router.delete(
    "/{role_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_permission(Perm.ROLES_MANAGE))],
)
async def delete_role(
    role_id: str = uuid_path("Role ID"),
    trail: AuditTrail = Depends(get_audit_trail),
    db: AsyncSession = Depends(get_db),
):
    """Delete a non-system role no active assignment references."""
    role = await RoleService(db).delete_role(role_id)
    await trail.record(
        AuditAction.ROLE_DELETED,
        resource="role",
        resource_id=role_id,
        details={"name": role.name},
    )
    return MessageResponse(message=f"Role '{role.name}' deleted")


# ─── Permission bundle ───────────────────────────────────────────────────────

@router.post(
    "/{role_id}/permissions",
    response_model=RoleBundleChangeOut,
    dependencies=[Depends(require_permission(Perm.PERMISSIONS_ASSIGN))],
)
async def assign_role_permissions(
    body: RolePermissionsRequest,
    role_id: str = uuid_path("Role ID"),
    trail: AuditTrail = Depends(get_audit_trail),
    db: AsyncSession = Depends(get_db),
):
    """Add permissions to a role. Already-assigned ones are reported, not duplicated."""
    count, message = await RoleService(db).assign_permissions(role_id, body.permission_ids)
    if count:
        await trail.record(
            AuditAction.ROLE_MODIFIED,
            resource="role",
            resource_id=role_id,
            details={"permissions_added": list(body.permission_ids), "added": count},
        )
    return RoleBundleChangeOut(message=message, count=count)


@router.post(
    "/{role_id}/permissions/remove",
    response_model=RoleBundleChangeOut,
    dependencies=[Depends(require_permission(Perm.PERMISSIONS_ASSIGN))],
)
async def remove_role_permissions(
    body: RolePermissionsRequest,
    role_id: str = uuid_path("Role ID"),
    trail: AuditTrail = Depends(get_audit_trail),
    db: AsyncSession = Depends(get_db),
):
    count, message = await RoleService(db).remove_permissions(role_id, body.permission_ids)
    if count:
        await trail.record(
            AuditAction.ROLE_MODIFIED,
            resource="role",
            resource_id=role_id,
            details={"permissions_removed": list(body.permission_ids), "removed": count},
        )
    return RoleBundleChangeOut(message=message, count=count)


@router.get(
    "/{role_id}/users",
    dependencies=[Depends(require_permission(Perm.ROLES_READ))],
)
async def list_role_users(
    role_id: str = uuid_path("Role ID"),
    db: AsyncSession = Depends(get_db),
):
    """Users holding an active assignment of this role."""
    rows = await AssignmentService(db).users_by_role(role_id)
    return {
        "role_id": role_id,
        "users": [
            {"user": user_to_dto(user), "assignment": user_role_to_dto(assignment)}
            for assignment, user in rows
        ],
        "total": len(rows),
    }
