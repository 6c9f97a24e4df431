"""User-role assignment service."""

import logging
from datetime import datetime
from typing import Callable, Optional, Sequence

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.exceptions import NotFoundError
from core.utils import as_utc, utc_now
from db.models.role import Role
from db.models.user import UserProfile
from db.models.user_role import UserRole
from services.role_service import RoleService

logger = logging.getLogger(__name__)


def live_assignment_clause(now: datetime):
    """SQL filter for assignments that count toward resolution at ``now``."""
    now = as_utc(now)
    return (
        UserRole.is_active.is_(True)
        & or_(UserRole.expires_at.is_(None), UserRole.expires_at > now)
    )


class AssignmentService:
    """Assign, revoke and replace the roles a user holds."""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock
        self.roles = RoleService(db)

    async def _require_user(self, user_id: str) -> UserProfile:
        user = await self.db.get(UserProfile, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def get_assignment(self, user_id: str, role_id: str) -> Optional[UserRole]:
        result = await self.db.execute(
            select(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        )
        return result.scalar_one_or_none()

    async def assign_role_to_user(
        self,
        user_id: str,
        role_id: str,
        assigned_by: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> UserRole:
        """Upsert keyed on (user_id, role_id).

        An existing row is reactivated and gets a fresh assigned_by,
        assigned_at and expires_at; otherwise a new row is inserted.
        """
        await self._require_user(user_id)
        # Same lock RoleService.delete_role holds while counting assignments
        await self.roles.lock(role_id)

        now = self.clock()
        assignment = await self.get_assignment(user_id, role_id)
        if assignment is None:
            assignment = UserRole(user_id=user_id, role_id=role_id)
            self.db.add(assignment)
        assignment.is_active = True
        assignment.assigned_by = assigned_by
        assignment.assigned_at = now
        assignment.expires_at = as_utc(expires_at)
        await self.db.flush()
        logger.info("Role %s assigned to user %s by %s", role_id, user_id, assigned_by)
        return assignment

    async def remove_role_from_user(self, user_id: str, role_id: str) -> UserRole:
        """Soft revoke: the row stays for the audit trail with is_active = false."""
        assignment = await self.get_assignment(user_id, role_id)
        if assignment is None:
            raise NotFoundError("Role assignment not found")
        assignment.is_active = False
        await self.db.flush()
        logger.info("Role %s removed from user %s", role_id, user_id)
        return assignment

    async def replace_user_roles(
        self,
        user_id: str,
        role_ids: Sequence[str],
        assigned_by: Optional[str] = None,
    ) -> list[UserRole]:
        """Destructive replace: every existing assignment row is deleted,
        then one fresh row per role id is inserted, attributed to ``assigned_by``.
        """
        await self._require_user(user_id)
        role_ids = list(dict.fromkeys(role_ids))
        for role_id in role_ids:
            await self.roles.lock(role_id)

        await self.db.execute(delete(UserRole).where(UserRole.user_id == user_id))
        now = self.clock()
        assignments = [
            UserRole(user_id=user_id, role_id=role_id, assigned_by=assigned_by, assigned_at=now)
            for role_id in role_ids
        ]
        self.db.add_all(assignments)
        await self.db.flush()
        logger.info("Roles of user %s replaced with %d role(s)", user_id, len(assignments))
        return assignments

    async def assign_roles_by_name(
        self,
        user_id: str,
        names: Sequence[str],
        assigned_by: Optional[str] = None,
    ) -> list[UserRole]:
        result = await self.db.execute(select(Role).where(Role.name.in_(list(names))))
        roles = {role.name: role for role in result.scalars().all()}
        missing = [name for name in names if name not in roles]
        if missing:
            raise NotFoundError(f"Role not found: {', '.join(missing)}")
        return [
            await self.assign_role_to_user(user_id, roles[name].id, assigned_by=assigned_by)
            for name in names
        ]

    async def list_user_roles(self, user_id: str, include_inactive: bool = False) -> list[UserRole]:
        """Assignments with their role loaded; live ones only unless asked otherwise."""
        query = (
            select(UserRole)
            .join(Role, Role.id == UserRole.role_id)
            .where(UserRole.user_id == user_id)
            .order_by(Role.name)
            .options(selectinload(UserRole.role))
            .execution_options(populate_existing=True)
        )
        if not include_inactive:
            query = query.where(live_assignment_clause(self.clock()))
        return list((await self.db.execute(query)).scalars().all())

    async def users_by_role(self, role_id: str) -> list[tuple[UserRole, UserProfile]]:
        await self.roles.get_or_404(role_id)
        result = await self.db.execute(
            select(UserRole, UserProfile)
            .join(UserProfile, UserProfile.id == UserRole.user_id)
            .where(UserRole.role_id == role_id, UserRole.is_active.is_(True))
            .order_by(UserProfile.email)
        )
        return [(assignment, user) for assignment, user in result.all()]
