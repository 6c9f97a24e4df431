"""Direct user-permission overrides.

An override row either grants (``granted=True``) or explicitly denies
(``granted=False``) one permission for one user. Revoking deletes the row,
which is not the same as denying: the user's roles decide again.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import AccessControlError, NotFoundError
from core.utils import as_utc, utc_now
from db.models.permission import Permission
from db.models.user import UserProfile
from db.models.user_permission import UserPermission

logger = logging.getLogger(__name__)


@dataclass
class PermissionChange:
    """One entry of a bulk override update."""

    permission_id: str
    granted: bool = True
    expires_at: Optional[datetime] = None
    reason: Optional[str] = None


@dataclass
class BulkItemResult:
    permission_id: str
    success: bool
    error: Optional[str] = None


@dataclass
class BulkUpdateResult:
    results: list[BulkItemResult]

    @property
    def summary(self) -> dict[str, int]:
        successful = sum(1 for r in self.results if r.success)
        return {
            "total": len(self.results),
            "successful": successful,
            "failed": len(self.results) - successful,
        }

    def to_dict(self) -> dict[str, Any]:
        return {"results": [asdict(r) for r in self.results], "summary": self.summary}


class OverrideService:
    """Grant, deny and revoke permissions on individual users."""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock

    async def _require_user(self, user_id: str) -> None:
        if await self.db.get(UserProfile, user_id) is None:
            raise NotFoundError("User not found")

    async def _require_permission(self, permission_id: str) -> Permission:
        permission = await self.db.get(Permission, permission_id)
        if permission is None:
            raise NotFoundError("Permission not found")
        return permission

    async def get_override(self, user_id: str, permission_id: str) -> Optional[UserPermission]:
        result = await self.db.execute(
            select(UserPermission).where(
                UserPermission.user_id == user_id,
                UserPermission.permission_id == permission_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_overrides(self, user_id: str) -> list[UserPermission]:
        """Every override row of a user, live or not."""
        result = await self.db.execute(
            select(UserPermission)
            .where(UserPermission.user_id == user_id)
            .order_by(UserPermission.assigned_at)
        )
        return list(result.scalars().all())

    async def _upsert(
        self,
        user_id: str,
        permission_id: str,
        granted: bool,
        expires_at: Optional[datetime],
        reason: Optional[str],
        assigned_by: Optional[str],
    ) -> UserPermission:
        override = await self.get_override(user_id, permission_id)
        if override is None:
            override = UserPermission(user_id=user_id, permission_id=permission_id)
            self.db.add(override)
        override.granted = granted
        override.expires_at = as_utc(expires_at)
        override.reason = reason
        override.assigned_by = assigned_by
        override.assigned_at = self.clock()
        await self.db.flush()
        return override

    async def grant_user_permission(
        self,
        user_id: str,
        permission_id: str,
        granted: bool = True,
        expires_at: Optional[datetime] = None,
        reason: Optional[str] = None,
        assigned_by: Optional[str] = None,
    ) -> UserPermission:
        """Upsert keyed on (user_id, permission_id); every mutable field is replaced."""
        await self._require_user(user_id)
        permission = await self._require_permission(permission_id)
        override = await self._upsert(
            user_id, permission_id, granted, expires_at, reason, assigned_by
        )
        logger.info(
            "Permission %s %s for user %s by %s",
            permission.name,
            "granted" if granted else "denied",
            user_id,
            assigned_by,
        )
        return override

    async def revoke_user_permission(self, user_id: str, permission_id: str) -> bool:
        """Delete the override row. Returns False when there was none."""
        result = await self.db.execute(
            delete(UserPermission).where(
                UserPermission.user_id == user_id,
                UserPermission.permission_id == permission_id,
            )
        )
        await self.db.flush()
        removed = (result.rowcount or 0) > 0
        if removed:
            logger.info("Override of permission %s removed for user %s", permission_id, user_id)
        return removed

    async def bulk_update_user_permissions(
        self,
        user_id: str,
        permissions: Sequence[PermissionChange],
        replace_all: bool = False,
        assigned_by: Optional[str] = None,
    ) -> BulkUpdateResult:
        """Apply many overrides, one savepoint per entry.

        With ``replace_all`` every existing override of the user is deleted
        first. A failing entry is reported in the results and never aborts
        the others.
        """
        await self._require_user(user_id)

        if replace_all:
            await self.db.execute(delete(UserPermission).where(UserPermission.user_id == user_id))
            await self.db.flush()

        results: list[BulkItemResult] = []
        for change in permissions:
            try:
                async with self.db.begin_nested():
                    await self._require_permission(change.permission_id)
                    await self._upsert(
                        user_id,
                        change.permission_id,
                        change.granted,
                        change.expires_at,
                        change.reason,
                        assigned_by,
                    )
            except (AccessControlError, SQLAlchemyError) as e:
                message = e.message if isinstance(e, AccessControlError) else str(e.__cause__ or e)
                logger.warning(
                    "Bulk override failed for user %s permission %s: %s",
                    user_id, change.permission_id, message,
                )
                results.append(BulkItemResult(change.permission_id, False, message))
            else:
                results.append(BulkItemResult(change.permission_id, True))

        outcome = BulkUpdateResult(results)
        logger.info("Bulk override update for user %s: %s", user_id, outcome.summary)
        return outcome
