"""Base model classes for all SQLAlchemy models."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from core.utils import utc_now


class Base(DeclarativeBase):
    """Declarative base shared by every table."""

    pass


def new_id() -> str:
    return str(uuid4())


class CreatedAtMixin:
    """Adds an immutable creation timestamp."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )


class BaseModel(CreatedAtMixin, Base):
    """Abstract base model with a UUID primary key and creation timestamp.

    Tables that are edited in place also mix in ``UpdatedAtMixin``.
    """

    __abstract__ = True

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)


class UpdatedAtMixin:
    """Adds a last-modified timestamp maintained on every UPDATE."""

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )
