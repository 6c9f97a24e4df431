"""Role-Based Access Control (RBAC) enforcement.

Provides dependency-injection helpers for FastAPI routes to enforce
permission and role checks at the endpoint level.

Usage:
    @router.get("/roles", dependencies=[Depends(require_permission(Perm.ROLES_READ))])
    async def list_roles(...): ...

    @router.post("/users/{id}/permissions", dependencies=[Depends(require_admin())])
    async def grant(...): ...

Permission checks emit ``permission_check_success`` / ``permission_check_failed``.
Role checks emit ``role_check_failed`` on denial only.
"""

import logging
from typing import Union

from fastapi import Depends, Request

from app.dependencies import AuthContext, client_info, get_audit_logger, get_current_user
from core.constants import ADMIN_ROLES, AuditAction, SystemRole
from core.exceptions import ForbiddenError
from core.permissions import Perm, register_reference, to_perm
from services.audit_service import AuditLogger

logger = logging.getLogger(__name__)


def _role_name(role: Union[SystemRole, str]) -> str:
    return role.value if isinstance(role, SystemRole) else role


def require_permission(permission: Union[Perm, str]):
    """FastAPI dependency that enforces a single permission.

    The name is checked against the catalog when the route module is
    imported, so a typo fails at startup rather than on first request.
    """
    perm = register_reference(permission)

    async def _check(
        request: Request,
        ctx: AuthContext = Depends(get_current_user),
        audit: AuditLogger = Depends(get_audit_logger),
    ) -> AuthContext:
        if ctx.permissions.has(perm.value):
            await audit.log_event(
                AuditAction.PERMISSION_CHECK_SUCCESS,
                user_id=ctx.user_id,
                resource="permission",
                details={"required_permission": perm.value, "path": request.url.path},
                **client_info(request),
            )
            return ctx

        logger.warning("RBAC denied: user=%s permission=%s", ctx.profile.email, perm.value)
        await audit.log_event(
            AuditAction.PERMISSION_CHECK_FAILED,
            user_id=ctx.user_id,
            resource="permission",
            details={
                "required_permission": perm.value,
                "user_permissions": sorted(ctx.permissions.granted_names),
                "path": request.url.path,
            },
            **client_info(request),
        )
        raise ForbiddenError(f"Permission required: {perm.value}")

    return _check


def _require_roles(roles: tuple, match_all: bool):
    required = tuple(_role_name(r) for r in roles)

    async def _check(
        request: Request,
        ctx: AuthContext = Depends(get_current_user),
        audit: AuditLogger = Depends(get_audit_logger),
    ) -> AuthContext:
        held = set(ctx.roles)
        allowed = held.issuperset(required) if match_all else bool(held.intersection(required))
        if allowed:
            return ctx

        logger.warning("RBAC denied: user=%s roles=%s required=%s", ctx.profile.email, ctx.roles, required)
        await audit.log_event(
            AuditAction.ROLE_CHECK_FAILED,
            user_id=ctx.user_id,
            resource="role",
            details={
                "required_roles": list(required),
                "match": "all" if match_all else "any",
                "user_roles": list(ctx.roles),
                "path": request.url.path,
            },
            **client_info(request),
        )
        if match_all:
            raise ForbiddenError(f"All of these roles are required: {', '.join(required)}")
        raise ForbiddenError(f"One of these roles is required: {', '.join(required)}")

    return _check


def require_any_role(*roles: Union[SystemRole, str]):
    """FastAPI dependency: the caller holds at least one of ``roles``."""
    return _require_roles(roles, match_all=False)


def require_all_roles(*roles: Union[SystemRole, str]):
    """FastAPI dependency: the caller holds every one of ``roles``."""
    return _require_roles(roles, match_all=True)


def require_admin():
    """Shortcut: super_admin or admin."""
    return require_any_role(*sorted(ADMIN_ROLES))


def can_act_on(ctx: AuthContext, target_user_id: str) -> bool:
    """Self-vs-other guard: a user may act on themselves, admins on anyone."""
    return ctx.user_id == target_user_id or ctx.is_admin


def ensure_self_or_permission(ctx: AuthContext, target_user_id: str, *permissions: Union[Perm, str]) -> None:
    """Allow acting on oneself; acting on others needs one of ``permissions``.

    Raises:
        ForbiddenError: target is someone else and none of the permissions is held
    """
    if ctx.user_id == target_user_id:
        return
    names = [to_perm(p).value for p in permissions]
    if any(ctx.permissions.has(name) for name in names):
        return
    raise ForbiddenError(f"Permission required: one of {', '.join(names)}")
