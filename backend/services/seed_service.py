"""Idempotent bootstrap of the permission catalog and the system roles."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.permissions import DEFAULT_ROLES, PERMISSION_DESCRIPTIONS, Perm
from db.models.permission import Permission
from db.models.role import Role, RolePermission

logger = logging.getLogger(__name__)


async def seed_catalog(db: AsyncSession) -> dict[str, int]:
    """Create missing catalog permissions, system roles and bundle links.

    Existing rows are left untouched, so running it twice changes nothing.

    Returns:
        Counts of rows created per kind
    """
    created = {"permissions": 0, "roles": 0, "links": 0}

    existing_perms = {
        p.name: p for p in (await db.execute(select(Permission))).scalars().all()
    }
    for perm in Perm:
        if perm.value in existing_perms:
            continue
        permission = Permission(
            name=perm.value,
            resource=perm.resource,
            action=perm.action,
            description=PERMISSION_DESCRIPTIONS[perm],
        )
        db.add(permission)
        existing_perms[perm.value] = permission
        created["permissions"] += 1
    await db.flush()

    existing_roles = {r.name: r for r in (await db.execute(select(Role))).scalars().all()}
    for definition in DEFAULT_ROLES:
        role = existing_roles.get(definition.name)
        if role is None:
            role = Role(name=definition.name, description=definition.description, is_system=True)
            db.add(role)
            await db.flush()
            existing_roles[definition.name] = role
            created["roles"] += 1

        linked = set((await db.execute(
            select(RolePermission.permission_id).where(RolePermission.role_id == role.id)
        )).scalars().all())
        for perm in definition.permissions:
            permission_id = existing_perms[perm.value].id
            if permission_id not in linked:
                db.add(RolePermission(role_id=role.id, permission_id=permission_id))
                linked.add(permission_id)
                created["links"] += 1
    await db.flush()

    logger.info(
        "Catalog seeded: %d permission(s), %d role(s), %d link(s) created",
        created["permissions"], created["roles"], created["links"],
    )
    return created
