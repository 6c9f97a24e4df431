"""User profile model.

The identity provider owns credentials; this table holds the profile the
service keys its role assignments and overrides on. ``id`` equals the
identity provider's subject.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel, UpdatedAtMixin


class UserProfile(UpdatedAtMixin, BaseModel):
    """User profile.

    Attributes:
        id: Identity provider subject (UUID string)
        email: Unique email address
        first_name / last_name: Display name parts
        avatar_url: Optional avatar location
        phone: Optional phone number
        is_active: False once the account is deactivated
        email_verified: Mirrors the provider's verification state
        last_login_at: Last authenticated request after provisioning
    """

    __tablename__ = "user_profiles"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    email_verified: Mapped[bool] = mapped_column(default=False, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    role_assignments: Mapped[list["UserRole"]] = relationship(
        "UserRole",
        back_populates="user",
        foreign_keys="UserRole.user_id",
        lazy="noload",
    )

    def __repr__(self) -> str:
        return f"<UserProfile {self.email}>"
