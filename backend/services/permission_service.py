"""Permission catalog service."""

import logging
from collections import OrderedDict
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import BadRequestError, ConflictError, NotFoundError
from db.models.permission import Permission
from db.models.role import RolePermission
from db.models.user_permission import UserPermission
from services.base import BaseService

logger = logging.getLogger(__name__)


def split_permission_name(name: str) -> tuple[str, str]:
    """Split ``resource:action``; BadRequestError when the name is malformed."""
    resource, sep, action = name.partition(":")
    if not sep or not resource or not action or ":" in action:
        raise BadRequestError(f"Permission name must be 'resource:action', got {name!r}")
    return resource, action


class PermissionService(BaseService[Permission]):
    """Create, look up and retire catalog permissions."""

    not_found_message = "Permission not found"

    def __init__(self, db: AsyncSession):
        super().__init__(Permission, db)

    # ─── Read ──────────────────────────────────────────────

    async def get_by_name(self, name: str) -> Optional[Permission]:
        result = await self.db.execute(select(Permission).where(Permission.name == name))
        return result.scalar_one_or_none()

    async def get_many(self, ids: Sequence[str]) -> list[Permission]:
        if not ids:
            return []
        result = await self.db.execute(select(Permission).where(Permission.id.in_(set(ids))))
        return list(result.scalars().all())

    async def find_by_resource_and_action(self, resource: str, action: str) -> Optional[Permission]:
        """Resource + action is a natural key, though not enforced by the store."""
        result = await self.db.execute(
            select(Permission)
            .where(Permission.resource == resource, Permission.action == action)
            .order_by(Permission.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_by_resource(self, resource: str) -> list[Permission]:
        return await self.list_all(resource=resource)

    async def list_all(self, resource: Optional[str] = None) -> list[Permission]:
        query = select(Permission).order_by(Permission.resource, Permission.action)
        if resource:
            query = query.where(Permission.resource == resource)
        return list((await self.db.execute(query)).scalars().all())

    async def unique_resources(self) -> list[str]:
        result = await self.db.execute(
            select(Permission.resource).distinct().order_by(Permission.resource)
        )
        return list(result.scalars().all())

    async def unique_actions(self) -> list[str]:
        result = await self.db.execute(
            select(Permission.action).distinct().order_by(Permission.action)
        )
        return list(result.scalars().all())

    @staticmethod
    def group_by_resource(permissions: Sequence[Permission]) -> "OrderedDict[str, list[Permission]]":
        grouped: "OrderedDict[str, list[Permission]]" = OrderedDict()
        for permission in permissions:
            grouped.setdefault(permission.resource, []).append(permission)
        return grouped

    async def reference_count(self, permission_id: str) -> int:
        """How many role bundles and user overrides point at a permission."""
        role_refs = await self.db.execute(
            select(func.count()).select_from(RolePermission)
            .where(RolePermission.permission_id == permission_id)
        )
        user_refs = await self.db.execute(
            select(func.count()).select_from(UserPermission)
            .where(UserPermission.permission_id == permission_id)
        )
        return (role_refs.scalar() or 0) + (user_refs.scalar() or 0)

    # ─── Write ─────────────────────────────────────────────

    async def create(
        self,
        name: str,
        resource: Optional[str] = None,
        action: Optional[str] = None,
        description: Optional[str] = None,
        conditions: Optional[dict[str, Any]] = None,
    ) -> Permission:
        """Add a permission to the catalog.

        Raises:
            ConflictError: a permission with this name exists
            BadRequestError: name is not ``resource:action`` or disagrees with the parts given
        """
        parsed_resource, parsed_action = split_permission_name(name)
        resource = resource or parsed_resource
        action = action or parsed_action
        if (resource, action) != (parsed_resource, parsed_action):
            raise BadRequestError(
                f"Permission name {name!r} does not match resource {resource!r} and action {action!r}"
            )

        if await self.get_by_name(name):
            raise ConflictError("Permission name already exists")

        permission = await super().create({
            "name": name,
            "resource": resource,
            "action": action,
            "description": description,
            "conditions": conditions,
        })
        logger.info("Permission created: %s", name)
        return permission

    async def update(
        self,
        permission_id: str,
        description: Optional[str] = None,
        conditions: Optional[dict[str, Any]] = None,
    ) -> Permission:
        """Administrative edit. The name, resource and action never change."""
        permission = await self.get_or_404(permission_id)
        return await self.apply_changes(
            permission, {"description": description, "conditions": conditions}
        )

    async def delete(self, permission_id: str) -> Permission:
        """Remove an unreferenced permission.

        Raises:
            NotFoundError: unknown id
            ConflictError: still linked to a role or user override
        """
        permission = await self.get_or_404(permission_id)
        references = await self.reference_count(permission_id)
        if references:
            raise ConflictError(
                f"Cannot delete permission: referenced by {references} role or user assignment(s)"
            )
        await self.hard_delete(permission)
        logger.info("Permission deleted: %s", permission.name)
        return permission

    async def require_all(self, ids: Sequence[str]) -> list[Permission]:
        """Load every id or raise NotFoundError naming the missing ones."""
        found = await self.get_many(ids)
        missing = sorted(set(ids) - {p.id for p in found})
        if missing:
            raise NotFoundError(f"Permission not found: {', '.join(missing)}")
        return found
