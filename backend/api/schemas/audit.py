"""Audit log schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from core.utils import as_utc
from db.models.audit_log import AuditLog


class AuditLogOut(BaseModel):
    id: str
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    action: str
    resource: Optional[str] = None
    resource_id: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None


def audit_log_to_dto(entry: AuditLog, user_email: Optional[str] = None) -> AuditLogOut:
    return AuditLogOut(
        id=entry.id,
        user_id=entry.user_id,
        user_email=user_email,
        action=entry.action,
        resource=entry.resource,
        resource_id=entry.resource_id,
        details=entry.details,
        ip_address=entry.ip_address,
        user_agent=entry.user_agent,
        created_at=as_utc(entry.created_at),
    )


class AuditActionCount(BaseModel):
    action: str
    count: int


class AuditDayCount(BaseModel):
    date: str
    count: int


class AuditStatsOut(BaseModel):
    total: int
    by_action: list[AuditActionCount]
    by_day: list[AuditDayCount]
