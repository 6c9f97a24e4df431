"""Role model and its role_permissions link table."""

from typing import Optional

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel, UpdatedAtMixin


class Role(UpdatedAtMixin, BaseModel):
    """Named bundle of permissions.

    Attributes:
        id: Unique identifier (UUID string)
        name: Unique role name
        description: Role description
        is_system: Built-in role; never renamed, modified or deleted
        is_active: Inactive roles contribute no permissions
    """

    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_system: Mapped[bool] = mapped_column(default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    permission_links: Mapped[list["RolePermission"]] = relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def permissions(self) -> list["Permission"]:
        return [link.permission for link in self.permission_links]

    def __repr__(self) -> str:
        return f"<Role {self.name}>"


class RolePermission(BaseModel):
    """One permission inside a role's bundle."""

    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permissions_role_permission"),
    )

    role_id: Mapped[str] = mapped_column(
        ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    permission_id: Mapped[str] = mapped_column(
        ForeignKey("permissions.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    role: Mapped["Role"] = relationship("Role", back_populates="permission_links")
    permission: Mapped["Permission"] = relationship("Permission", lazy="selectin")
