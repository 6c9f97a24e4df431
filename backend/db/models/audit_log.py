"""AuditLog model."""

from typing import Optional

from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class AuditLog(BaseModel):
    """Append-only record of a security-relevant event.

    Attributes:
        id: Unique identifier (UUID string)
        user_id: Acting user, if any (not a foreign key; entries outlive users)
        action: One of ``core.constants.AuditAction``
        resource: Affected resource type (e.g. 'role', 'user_permission')
        resource_id: Affected resource id
        details: Structured event details
        ip_address: Client address
        user_agent: Client user agent
        created_at: Event timestamp
    """

    __tablename__ = "auth_audit_log"

    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    resource_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
