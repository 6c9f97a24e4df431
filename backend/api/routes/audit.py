"""Audit log API routes.

Read-only access to the audit trail. Entries are written by the gate and
by the mutating endpoints, never through this router.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.audit import AuditLogOut, AuditStatsOut, audit_log_to_dto
from api.schemas.common import UUID_PATTERN, PageResponse
from app.dependencies import AuthContext, get_current_user, get_db
from core.permissions import Perm
from core.rbac import require_permission
from core.utils import total_pages
from services.audit_service import AuditService

router = APIRouter(tags=["audit"])


@router.get(
    "/logs",
    response_model=PageResponse[AuditLogOut],
    dependencies=[Depends(require_permission(Perm.AUDIT_READ))],
)
async def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    user_id: Optional[str] = Query(None, pattern=UUID_PATTERN),
    action: Optional[str] = Query(None, max_length=50),
    resource: Optional[str] = Query(None, max_length=50),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """List audit entries, newest first."""
    rows, total = await AuditService(db).list_logs(
        page=page,
        limit=limit,
        user_id=user_id,
        action=action,
        resource=resource,
        start_date=start_date,
        end_date=end_date,
    )
    return PageResponse[AuditLogOut](
        items=[audit_log_to_dto(entry, email) for entry, email in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
    )


@router.get(
    "/stats",
    response_model=AuditStatsOut,
    dependencies=[Depends(require_permission(Perm.AUDIT_READ))],
)
async def audit_stats(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await AuditService(db).stats(start_date=start_date, end_date=end_date)


@router.get("/actions", dependencies=[Depends(require_permission(Perm.AUDIT_READ))])
async def list_audit_actions(db: AsyncSession = Depends(get_db)):
    return {"actions": await AuditService(db).actions()}


@router.get("/me", response_model=PageResponse[AuditLogOut])
async def my_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    action: Optional[str] = Query(None, max_length=50),
    ctx: AuthContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's own audit trail. No permission beyond authentication."""
    rows, total = await AuditService(db).list_user_logs(
        ctx.user_id, page=page, limit=limit, action=action
    )
    return PageResponse[AuditLogOut](
        items=[audit_log_to_dto(entry, email) for entry, email in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
    )
