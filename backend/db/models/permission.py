"""Permission model."""

from typing import Optional

from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Permission(BaseModel):
    """Atomic capability in the catalog.

    Attributes:
        id: Unique identifier (UUID string)
        name: Unique ``resource:action`` name (e.g. 'roles:assign')
        resource: Noun part of the name
        action: Verb part of the name
        conditions: Opaque structured conditions, stored but not evaluated
        description: Human-readable description
    """

    __tablename__ = "permissions"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resource: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    conditions: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Permission {self.name}>"
