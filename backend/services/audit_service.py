"""Audit log writing and querying.

``AuditLogger`` writes each event in its own short-lived session so an
audit failure can never roll back, or be rolled back with, the primary
operation. Failures are logged and swallowed.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import AuditAction
from core.utils import as_utc, calculate_offset
from db.models.audit_log import AuditLog
from db.models.user import UserProfile

logger = logging.getLogger(__name__)


class AuditLogger:
    """Best-effort, append-only audit sink."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def log_event(
        self,
        action: Union[AuditAction, str],
        user_id: Optional[str] = None,
        resource: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """Append one entry. Never raises."""
        action_value = action.value if isinstance(action, AuditAction) else str(action)
        try:
            async with self.session_factory() as session:
                session.add(AuditLog(
                    user_id=user_id,
                    action=action_value,
                    resource=resource,
                    resource_id=resource_id,
                    details=details,
                    ip_address=ip_address,
                    user_agent=user_agent,
                ))
                await session.commit()
        except Exception as e:
            logger.error(
                "Failed to write audit event %s for user %s: %s",
                action_value,
                user_id,
                e,
                exc_info=True,
            )


class AuditService:
    """Read side of the audit log."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _filtered(query, user_id=None, action=None, resource=None, start_date=None, end_date=None):
        if user_id:
            query = query.where(AuditLog.user_id == user_id)
        if action:
            query = query.where(AuditLog.action == action)
        if resource:
            query = query.where(AuditLog.resource == resource)
        if start_date:
            query = query.where(AuditLog.created_at >= as_utc(start_date))
        if end_date:
            query = query.where(AuditLog.created_at <= as_utc(end_date))
        return query

    async def list_logs(
        self,
        page: int = 1,
        limit: int = 50,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        resource: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> tuple[list[tuple[AuditLog, Optional[str]]], int]:
        """Newest first, each entry paired with the acting user's email.

        Returns:
            Tuple of ([(entry, email)], total_count)
        """
        filters = dict(
            user_id=user_id,
            action=action,
            resource=resource,
            start_date=start_date,
            end_date=end_date,
        )
        query = self._filtered(
            select(AuditLog, UserProfile.email)
            .outerjoin(UserProfile, UserProfile.id == AuditLog.user_id),
            **filters,
        )
        query = (
            query.order_by(AuditLog.created_at.desc())
            .offset(calculate_offset(page, limit))
            .limit(limit)
        )
        count_query = self._filtered(select(func.count()).select_from(AuditLog), **filters)

        rows = (await self.db.execute(query)).all()
        total = (await self.db.execute(count_query)).scalar() or 0
        return [(entry, email) for entry, email in rows], total

    async def list_user_logs(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 50,
        action: Optional[str] = None,
    ) -> tuple[list[tuple[AuditLog, Optional[str]]], int]:
        return await self.list_logs(page=page, limit=limit, user_id=user_id, action=action)

    async def stats(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Totals per action and per day for the given window."""
        window = dict(start_date=start_date, end_date=end_date)

        total = (await self.db.execute(
            self._filtered(select(func.count()).select_from(AuditLog), **window)
        )).scalar() or 0

        by_action = (await self.db.execute(
            self._filtered(
                select(AuditLog.action, func.count().label("count"))
                .group_by(AuditLog.action)
                .order_by(func.count().desc(), AuditLog.action),
                **window,
            )
        )).all()

        day = func.date(AuditLog.created_at)
        by_day = (await self.db.execute(
            self._filtered(
                select(day.label("date"), func.count().label("count"))
                .group_by(day)
                .order_by(day),
                **window,
            )
        )).all()

        return {
            "total": total,
            "by_action": [{"action": action, "count": count} for action, count in by_action],
            "by_day": [{"date": str(date), "count": count} for date, count in by_day],
        }

    async def actions(self) -> list[str]:
        """Distinct actions present in the log."""
        result = await self.db.execute(
            select(AuditLog.action).distinct().order_by(AuditLog.action)
        )
        return list(result.scalars().all())
