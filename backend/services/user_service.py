"""User profile service: provisioning, listing and profile edits."""

import logging
from typing import Any, Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ConflictError, ForbiddenError
from core.security import UserIdentity
from core.utils import calculate_offset, utc_now
from db.models.role import Role
from db.models.user import UserProfile
from db.models.user_role import UserRole
from services.assignment_service import live_assignment_clause
from services.base import BaseService

logger = logging.getLogger(__name__)

SELF_EDITABLE_FIELDS = frozenset({"first_name", "last_name", "avatar_url", "phone"})
ADMIN_ONLY_FIELDS = frozenset({"email", "is_active", "email_verified"})
SORTABLE_FIELDS = ("email", "first_name", "last_name", "created_at", "last_login_at")


class UserService(BaseService[UserProfile]):
    """Service for user profiles."""

    not_found_message = "User not found"

    def __init__(self, db: AsyncSession):
        super().__init__(UserProfile, db)

    async def get_by_email(self, email: str) -> Optional[UserProfile]:
        result = await self.db.execute(
            select(UserProfile).where(func.lower(UserProfile.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def list_users(
        self,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> tuple[Sequence[UserProfile], int]:
        """Paginated, filterable user list.

        Returns:
            Tuple of (users, total_count)
        """
        query = select(UserProfile)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(or_(
                func.lower(UserProfile.email).like(pattern),
                func.lower(UserProfile.first_name).like(pattern),
                func.lower(UserProfile.last_name).like(pattern),
            ))
        if is_active is not None:
            query = query.where(UserProfile.is_active.is_(is_active))
        if role:
            holders = (
                select(UserRole.user_id)
                .join(Role, Role.id == UserRole.role_id)
                .where(Role.name == role, live_assignment_clause(utc_now()))
            )
            query = query.where(UserProfile.id.in_(holders))

        total = (await self.db.execute(
            select(func.count()).select_from(query.subquery())
        )).scalar() or 0

        column = getattr(UserProfile, sort_by if sort_by in SORTABLE_FIELDS else "created_at")
        query = (
            query.order_by(column.asc() if sort_order == "asc" else column.desc())
            .offset(calculate_offset(page, limit))
            .limit(limit)
        )
        users = (await self.db.execute(query)).scalars().all()
        return users, total

    async def provision(self, identity: UserIdentity) -> UserProfile:
        """Create the profile for a first-time identity."""
        if await self.get_by_email(identity.email):
            raise ConflictError("Email already registered to another user")
        profile = await self.create({
            "id": identity.id,
            "email": identity.email,
            "first_name": identity.first_name,
            "last_name": identity.last_name,
            "email_verified": bool(identity.claims.get("email_confirmed_at")),
            "last_login_at": utc_now(),
        })
        logger.info("Provisioned profile for %s", identity.email)
        return profile

    async def create_user(self, data: dict[str, Any]) -> UserProfile:
        """Create a profile on behalf of an administrator.

        ``data["id"]`` is the identity provider's id for the account.

        Raises:
            ConflictError: the id or the email is already taken
        """
        if await self.get_by_id(data["id"]):
            raise ConflictError("User already exists")
        if await self.get_by_email(data["email"]):
            raise ConflictError("Email already registered to another user")
        profile = await self.create(data)
        logger.info("Created profile for %s", profile.email)
        return profile

    async def update_profile(
        self,
        acting_user_id: str,
        acting_is_admin: bool,
        user_id: str,
        data: dict[str, Any],
        can_edit_others: bool = False,
    ) -> tuple[UserProfile, list[str]]:
        """Apply a profile edit under the self-vs-other rule.

        Editing someone else needs ``can_edit_others`` or an admin role.
        Administrative fields sent by a non-admin are ignored.

        Returns:
            (profile, names of the fields that changed)
        """
        if acting_user_id != user_id and not (acting_is_admin or can_edit_others):
            raise ForbiddenError("You can only update your own profile")
        if acting_user_id == user_id and data.get("is_active") is False:
            raise ForbiddenError("Cannot deactivate your own account")

        profile = await self.get_or_404(user_id)
        allowed = SELF_EDITABLE_FIELDS | (ADMIN_ONLY_FIELDS if acting_is_admin else frozenset())
        changes = {
            key: value for key, value in data.items()
            if key in allowed and value is not None and getattr(profile, key) != value
        }

        if "email" in changes:
            clash = await self.get_by_email(changes["email"])
            if clash is not None and clash.id != user_id:
                raise ConflictError("Email already registered to another user")

        await self.apply_changes(profile, changes)
        return profile, sorted(changes)

    async def deactivate(self, acting_user_id: str, user_id: str) -> UserProfile:
        """Mark a user inactive. Nobody may deactivate themselves."""
        if acting_user_id == user_id:
            raise ForbiddenError("Cannot deactivate your own account")
        profile = await self.get_or_404(user_id)
        profile.is_active = False
        await self.db.flush()
        logger.info("User %s deactivated by %s", user_id, acting_user_id)
        return profile
