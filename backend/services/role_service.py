"""Role management service.

Invariants enforced here:
- system roles are never modified or deleted, whoever asks
- a role with active user assignments cannot be deleted
- a role and its initial permission links are created together or not at all
"""

import logging
from typing import Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from db.models.role import Role, RolePermission
from db.models.user_role import UserRole
from services.base import BaseService
from services.permission_service import PermissionService

logger = logging.getLogger(__name__)


class RoleService(BaseService[Role]):
    """CRUD for roles and their permission bundles."""

    not_found_message = "Role not found"

    def __init__(self, db: AsyncSession):
        super().__init__(Role, db)
        self.permissions = PermissionService(db)

    # ─── Read ──────────────────────────────────────────────

    def _with_bundle(self, query):
        return query.options(
            selectinload(Role.permission_links).selectinload(RolePermission.permission)
        ).execution_options(populate_existing=True)

    async def get(self, role_id: str) -> Role:
        """Role with its permission bundle freshly loaded."""
        result = await self.db.execute(self._with_bundle(select(Role).where(Role.id == role_id)))
        role = result.scalar_one_or_none()
        if role is None:
            raise NotFoundError(self.not_found_message)
        return role

    async def get_by_name(self, name: str) -> Optional[Role]:
        result = await self.db.execute(self._with_bundle(select(Role).where(Role.name == name)))
        return result.scalar_one_or_none()

    async def list_roles(
        self,
        include_system: bool = True,
        include_inactive: bool = False,
    ) -> list[Role]:
        query = select(Role).order_by(Role.name)
        if not include_system:
            query = query.where(Role.is_system.is_(False))
        if not include_inactive:
            query = query.where(Role.is_active.is_(True))
        return list((await self.db.execute(self._with_bundle(query))).scalars().all())

    async def active_assignment_count(self, role_id: str) -> int:
        """Assignments with the active flag set. Expiry is not considered."""
        result = await self.db.execute(
            select(func.count()).select_from(UserRole).where(
                UserRole.role_id == role_id,
                UserRole.is_active.is_(True),
            )
        )
        return result.scalar() or 0

    async def assignment_counts(self, role_ids: Sequence[str]) -> dict[str, int]:
        if not role_ids:
            return {}
        result = await self.db.execute(
            select(UserRole.role_id, func.count())
            .where(UserRole.role_id.in_(role_ids), UserRole.is_active.is_(True))
            .group_by(UserRole.role_id)
        )
        return {role_id: count for role_id, count in result.all()}

    async def lock(self, role_id: str) -> Role:
        """Load a role with a row lock held until the transaction ends."""
        result = await self.db.execute(
            select(Role).where(Role.id == role_id).with_for_update()
        )
        role = result.scalar_one_or_none()
        if role is None:
            raise NotFoundError(self.not_found_message)
        return role

    # ─── Create ────────────────────────────────────────────

    async def create_role(
        self,
        name: str,
        description: Optional[str] = None,
        permission_ids: Sequence[str] = (),
        is_system: bool = False,
    ) -> Role:
        """Create a role and its permission links atomically.

        Raises:
            ConflictError: name already taken
            BadRequestError: a permission link could not be written
        """
        if await self.get_by_name(name):
            raise ConflictError("Role name already exists")

        permission_ids = list(dict.fromkeys(permission_ids))
        try:
            async with self.db.begin_nested():
                role = Role(name=name, description=description, is_system=is_system)
                self.db.add(role)
                await self.db.flush()

                if permission_ids:
                    found = {p.id for p in await self.permissions.get_many(permission_ids)}
                    missing = [pid for pid in permission_ids if pid not in found]
                    if missing:
                        raise BadRequestError(
                            f"Failed to assign permissions to role: unknown permission(s) {', '.join(missing)}"
                        )
                    self.db.add_all(
                        RolePermission(role_id=role.id, permission_id=pid) for pid in permission_ids
                    )
                    await self.db.flush()
        except IntegrityError as e:
            logger.warning("Role creation rolled back for %s: %s", name, e.orig)
            raise BadRequestError("Failed to create role") from e

        logger.info("Role created: %s (%d permission(s))", name, len(permission_ids))
        return await self.get(role.id)

    # ─── Update ────────────────────────────────────────────

    async def update_role(
        self,
        role_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Role:
        """Edit a non-system role.

        Raises:
            NotFoundError: unknown id
            ForbiddenError: role is a system role (any field)
            ConflictError: another role already uses ``name``
        """
        role = await self.get_or_404(role_id)
        if role.is_system:
            raise ForbiddenError("Cannot modify system roles")

        if name is not None and name != role.name:
            clash = await self.db.execute(
                select(Role.id).where(Role.name == name, Role.id != role_id)
            )
            if clash.first():
                raise ConflictError("Role name already exists")

        await self.apply_changes(
            role, {"name": name, "description": description, "is_active": is_active}
        )
        return await self.get(role_id)

    # ─── Delete ────────────────────────────────────────────

    async def delete_role(self, role_id: str) -> Role:
        """Delete a non-system role that no active assignment references.

        The role row stays locked from the count to the delete, and
        ``AssignmentService`` takes the same lock before assigning.

        Raises:
            NotFoundError: unknown id
            ForbiddenError: role is a system role
            ConflictError: active assignments exist
        """
        role = await self.lock(role_id)
        if role.is_system:
            raise ForbiddenError("Cannot delete system roles")

        active = await self.active_assignment_count(role_id)
        if active:
            raise ConflictError(f"Cannot delete role: assigned to {active} user(s)")

        await self.db.execute(delete(UserRole).where(UserRole.role_id == role_id))
        await self.db.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
        await self.db.execute(delete(Role).where(Role.id == role_id))
        await self.db.flush()
        self.db.expunge(role)
        logger.info("Role deleted: %s", role.name)
        return role

    # ─── Bundle ────────────────────────────────────────────

    async def assign_permissions(self, role_id: str, permission_ids: Sequence[str]) -> tuple[int, str]:
        """Link permissions to a role. Already-linked ids are skipped.

        Returns:
            (number newly linked, message)
        """
        await self.get_or_404(role_id)
        requested = list(dict.fromkeys(permission_ids))
        await self.permissions.require_all(requested)

        existing = set((await self.db.execute(
            select(RolePermission.permission_id).where(RolePermission.role_id == role_id)
        )).scalars().all())
        new_ids = [pid for pid in requested if pid not in existing]
        if not new_ids:
            return 0, "All permissions already assigned to role"

        self.db.add_all(RolePermission(role_id=role_id, permission_id=pid) for pid in new_ids)
        await self.db.flush()
        return len(new_ids), f"Assigned {len(new_ids)} permission(s) to role"

    async def remove_permissions(self, role_id: str, permission_ids: Sequence[str]) -> tuple[int, str]:
        """Unlink permissions. Ids that were never linked are ignored."""
        await self.get_or_404(role_id)
        if not permission_ids:
            return 0, "Removed 0 permission(s) from role"
        result = await self.db.execute(
            delete(RolePermission).where(
                RolePermission.role_id == role_id,
                RolePermission.permission_id.in_(set(permission_ids)),
            )
        )
        await self.db.flush()
        removed = result.rowcount or 0
        return removed, f"Removed {removed} permission(s) from role"
