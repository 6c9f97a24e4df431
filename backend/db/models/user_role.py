"""User-role assignment model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.utils import utc_now
from db.base import Base, new_id


class UserRole(Base):
    """Links a user to a role.

    Unique per (user_id, role_id): re-assigning updates the row in place.
    A row counts toward resolution only while ``is_active`` is true and
    ``expires_at`` is unset or in the future.
    """

    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role_id: Mapped[str] = mapped_column(
        ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assigned_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False, index=True)

    user: Mapped["UserProfile"] = relationship(
        "UserProfile", back_populates="role_assignments", foreign_keys=[user_id]
    )
    role: Mapped["Role"] = relationship("Role", lazy="selectin")
