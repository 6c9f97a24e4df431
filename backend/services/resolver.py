"""Effective permission resolution.

For one user:

1. every live role assignment (active, unexpired, role active) seeds an
   entry per permission in the role's bundle, ``source="role"``; a
   permission reachable through several roles is recorded once;
2. every live direct override replaces the entry for its permission,
   ``source="direct"``, whether it grants or denies;
3. entries are split into granted and denied. Only granted entries
   authorize anything.

Expired rows are treated as absent. Nothing is cached: every call reads
the store and compares expiry against the injected clock.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import PermissionSource
from core.utils import as_utc, utc_now
from db.models.permission import Permission
from db.models.role import Role, RolePermission
from db.models.user_permission import UserPermission
from db.models.user_role import UserRole


@dataclass(frozen=True)
class RoleGrant:
    """A permission reached through a live role assignment."""

    permission_id: str
    name: str
    resource: str
    action: str
    role_name: str


@dataclass(frozen=True)
class OverrideGrant:
    """A live direct override row."""

    permission_id: str
    name: str
    resource: str
    action: str
    granted: bool
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class PermissionEntry:
    permission_id: str
    name: str
    resource: str
    action: str
    source: PermissionSource
    granted: bool
    role_name: Optional[str] = None
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    reason: Optional[str] = None


@dataclass
class EffectivePermissions:
    """Resolved permission map of one user, keyed by permission id."""

    user_id: str
    entries: dict[str, PermissionEntry] = field(default_factory=dict)

    @property
    def granted(self) -> list[PermissionEntry]:
        return sorted((e for e in self.entries.values() if e.granted), key=lambda e: e.name)

    @property
    def denied(self) -> list[PermissionEntry]:
        return sorted((e for e in self.entries.values() if not e.granted), key=lambda e: e.name)

    @property
    def granted_names(self) -> frozenset[str]:
        return frozenset(e.name for e in self.entries.values() if e.granted)

    @property
    def denied_names(self) -> frozenset[str]:
        return frozenset(e.name for e in self.entries.values() if not e.granted)

    def has(self, permission_name: str) -> bool:
        return permission_name in self.granted_names

    @property
    def summary(self) -> dict[str, int]:
        entries = list(self.entries.values())
        granted = sum(1 for e in entries if e.granted)
        return {
            "total": len(entries),
            "granted": granted,
            "denied": len(entries) - granted,
            "from_roles": sum(1 for e in entries if e.source is PermissionSource.ROLE),
            "direct": sum(1 for e in entries if e.source is PermissionSource.DIRECT),
        }


def merge_effective_permissions(
    role_grants: Iterable[RoleGrant],
    overrides: Iterable[OverrideGrant],
) -> dict[str, PermissionEntry]:
    """Apply override precedence to already-filtered live rows."""
    entries: dict[str, PermissionEntry] = {}

    for grant in role_grants:
        if grant.permission_id in entries:
            continue
        entries[grant.permission_id] = PermissionEntry(
            permission_id=grant.permission_id,
            name=grant.name,
            resource=grant.resource,
            action=grant.action,
            source=PermissionSource.ROLE,
            granted=True,
            role_name=grant.role_name,
        )

    for override in overrides:
        entries[override.permission_id] = PermissionEntry(
            permission_id=override.permission_id,
            name=override.name,
            resource=override.resource,
            action=override.action,
            source=PermissionSource.DIRECT,
            granted=override.granted,
            assigned_by=override.assigned_by,
            assigned_at=as_utc(override.assigned_at),
            expires_at=as_utc(override.expires_at),
            reason=override.reason,
        )

    return entries


class PermissionResolver:
    """Computes effective permissions from the store on every call."""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock

    def _now(self) -> datetime:
        return as_utc(self.clock())

    @staticmethod
    def _unexpired(column, now: datetime):
        return or_(column.is_(None), column > now)

    async def role_grants(self, user_id: str, include_expired: bool = False) -> list[RoleGrant]:
        query = (
            select(
                Permission.id,
                Permission.name,
                Permission.resource,
                Permission.action,
                Role.name,
            )
            .select_from(UserRole)
            .join(Role, Role.id == UserRole.role_id)
            .join(RolePermission, RolePermission.role_id == Role.id)
            .join(Permission, Permission.id == RolePermission.permission_id)
            .where(
                UserRole.user_id == user_id,
                UserRole.is_active.is_(True),
                Role.is_active.is_(True),
            )
            .order_by(Role.name, Permission.name)
        )
        if not include_expired:
            query = query.where(self._unexpired(UserRole.expires_at, self._now()))
        rows = (await self.db.execute(query)).all()
        return [RoleGrant(*row) for row in rows]

    async def override_grants(self, user_id: str, include_expired: bool = False) -> list[OverrideGrant]:
        query = (
            select(UserPermission, Permission)
            .join(Permission, Permission.id == UserPermission.permission_id)
            .where(UserPermission.user_id == user_id)
            .order_by(Permission.name)
        )
        if not include_expired:
            query = query.where(self._unexpired(UserPermission.expires_at, self._now()))
        rows = (await self.db.execute(query)).all()
        return [
            OverrideGrant(
                permission_id=permission.id,
                name=permission.name,
                resource=permission.resource,
                action=permission.action,
                granted=override.granted,
                assigned_by=override.assigned_by,
                assigned_at=override.assigned_at,
                expires_at=override.expires_at,
                reason=override.reason,
            )
            for override, permission in rows
        ]

    async def resolve(self, user_id: str, include_expired: bool = False) -> EffectivePermissions:
        """Full effective permission map of ``user_id``.

        ``include_expired`` is for inspection only; authorization always
        resolves with expiry applied.
        """
        role_grants = await self.role_grants(user_id, include_expired)
        overrides = await self.override_grants(user_id, include_expired)
        return EffectivePermissions(
            user_id=user_id,
            entries=merge_effective_permissions(role_grants, overrides),
        )

    async def granted_names(self, user_id: str) -> frozenset[str]:
        return (await self.resolve(user_id)).granted_names

    async def has_permission(self, user_id: str, permission_name: str) -> bool:
        """Single-permission check with the same precedence as ``resolve``.

        A live override decides on its own; otherwise any live role grant
        is enough.
        """
        now = self._now()
        override = await self.db.execute(
            select(UserPermission.granted)
            .join(Permission, Permission.id == UserPermission.permission_id)
            .where(
                UserPermission.user_id == user_id,
                Permission.name == permission_name,
                self._unexpired(UserPermission.expires_at, now),
            )
            .limit(1)
        )
        decision = override.scalar_one_or_none()
        if decision is not None:
            return bool(decision)

        via_role = await self.db.execute(
            select(func.count())
            .select_from(UserRole)
            .join(Role, Role.id == UserRole.role_id)
            .join(RolePermission, RolePermission.role_id == Role.id)
            .join(Permission, Permission.id == RolePermission.permission_id)
            .where(
                UserRole.user_id == user_id,
                UserRole.is_active.is_(True),
                Role.is_active.is_(True),
                self._unexpired(UserRole.expires_at, now),
                Permission.name == permission_name,
            )
        )
        return (via_role.scalar() or 0) > 0

    async def role_names(self, user_id: str) -> list[str]:
        """Names of the roles behind the user's live assignments."""
        result = await self.db.execute(
            select(Role.name)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(
                UserRole.user_id == user_id,
                UserRole.is_active.is_(True),
                Role.is_active.is_(True),
                self._unexpired(UserRole.expires_at, self._now()),
            )
            .distinct()
            .order_by(Role.name)
        )
        return list(result.scalars().all())
