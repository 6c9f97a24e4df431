"""Permission vocabulary and built-in role bundles.

Permissions are referenced through the ``Perm`` enum, never as free-form
strings. ``validate_catalog()`` runs at startup and fails fast when a role
bundle or a gated route refers to a name outside the catalog.

Usage:
    @router.get("/roles", dependencies=[Depends(require_permission(Perm.ROLES_READ))])
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from core.constants import SystemRole


class Perm(str, Enum):
    """Closed vocabulary of capabilities, ``resource:action``."""

    USERS_CREATE = "users:create"
    USERS_READ = "users:read"
    USERS_UPDATE = "users:update"
    USERS_DELETE = "users:delete"
    USERS_LIST = "users:list"

    ROLES_CREATE = "roles:create"
    ROLES_READ = "roles:read"
    ROLES_UPDATE = "roles:update"
    ROLES_DELETE = "roles:delete"
    ROLES_ASSIGN = "roles:assign"
    ROLES_MANAGE = "roles:manage"

    PERMISSIONS_READ = "permissions:read"
    PERMISSIONS_MANAGE = "permissions:manage"
    PERMISSIONS_ASSIGN = "permissions:assign"

    CONTENT_CREATE = "content:create"
    CONTENT_READ = "content:read"
    CONTENT_UPDATE = "content:update"
    CONTENT_DELETE = "content:delete"
    CONTENT_PUBLISH = "content:publish"

    SYSTEM_READ = "system:read"
    SYSTEM_UPDATE = "system:update"
    SYSTEM_BACKUP = "system:backup"

    AUDIT_READ = "audit:read"

    @property
    def resource(self) -> str:
        return self.value.split(":", 1)[0]

    @property
    def action(self) -> str:
        return self.value.split(":", 1)[1]


PERMISSION_DESCRIPTIONS: dict[Perm, str] = {
    Perm.USERS_CREATE: "Create new users",
    Perm.USERS_READ: "View user details",
    Perm.USERS_UPDATE: "Update user information",
    Perm.USERS_DELETE: "Deactivate users",
    Perm.USERS_LIST: "List all users",
    Perm.ROLES_CREATE: "Create new roles",
    Perm.ROLES_READ: "View role details",
    Perm.ROLES_UPDATE: "Update role information",
    Perm.ROLES_DELETE: "Delete roles",
    Perm.ROLES_ASSIGN: "Assign roles to users",
    Perm.ROLES_MANAGE: "Create, update and delete roles",
    Perm.PERMISSIONS_READ: "View permissions and effective permission sets",
    Perm.PERMISSIONS_MANAGE: "Create, edit and delete permissions",
    Perm.PERMISSIONS_ASSIGN: "Attach permissions to roles and users",
    Perm.CONTENT_CREATE: "Create content",
    Perm.CONTENT_READ: "View content",
    Perm.CONTENT_UPDATE: "Update content",
    Perm.CONTENT_DELETE: "Delete content",
    Perm.CONTENT_PUBLISH: "Publish content",
    Perm.SYSTEM_READ: "View system settings",
    Perm.SYSTEM_UPDATE: "Update system settings",
    Perm.SYSTEM_BACKUP: "Create system backups",
    Perm.AUDIT_READ: "View the audit log",
}


@dataclass(frozen=True)
class RoleDefinition:
    name: str
    description: str
    permissions: tuple[Perm, ...]


DEFAULT_ROLES: tuple[RoleDefinition, ...] = (
    RoleDefinition(
        name=SystemRole.SUPER_ADMIN.value,
        description="Full system access",
        permissions=tuple(Perm),
    ),
    RoleDefinition(
        name=SystemRole.ADMIN.value,
        description="Administrative access",
        permissions=(
            Perm.USERS_CREATE,
            Perm.USERS_READ,
            Perm.USERS_UPDATE,
            Perm.USERS_DELETE,
            Perm.USERS_LIST,
            Perm.ROLES_READ,
            Perm.ROLES_ASSIGN,
            Perm.PERMISSIONS_READ,
            Perm.CONTENT_CREATE,
            Perm.CONTENT_READ,
            Perm.CONTENT_UPDATE,
            Perm.CONTENT_DELETE,
            Perm.CONTENT_PUBLISH,
            Perm.AUDIT_READ,
        ),
    ),
    RoleDefinition(
        name=SystemRole.MANAGER.value,
        description="Management access",
        permissions=(
            Perm.USERS_READ,
            Perm.USERS_UPDATE,
            Perm.USERS_LIST,
            Perm.CONTENT_CREATE,
            Perm.CONTENT_READ,
            Perm.CONTENT_UPDATE,
            Perm.CONTENT_PUBLISH,
        ),
    ),
    RoleDefinition(
        name=SystemRole.USER.value,
        description="Standard user access",
        permissions=(
            Perm.CONTENT_CREATE,
            Perm.CONTENT_READ,
            Perm.CONTENT_UPDATE,
        ),
    ),
    RoleDefinition(
        name=SystemRole.GUEST.value,
        description="Limited guest access",
        permissions=(Perm.CONTENT_READ,),
    ),
)

# Names handed to require_permission() at import time of the route modules.
_referenced: set[str] = set()


class CatalogError(RuntimeError):
    """The permission catalog is inconsistent."""


def to_perm(permission) -> Perm:
    """Coerce a name into the registry, raising CatalogError for unknown names."""
    if isinstance(permission, Perm):
        return permission
    try:
        return Perm(permission)
    except ValueError:
        raise CatalogError(f"Unknown permission: {permission!r}") from None


def register_reference(permission) -> Perm:
    perm = to_perm(permission)
    _referenced.add(perm.value)
    return perm


def catalog_names() -> frozenset[str]:
    return frozenset(p.value for p in Perm)


def validate_catalog(extra_references: Optional[Iterable[str]] = None) -> None:
    """Check every role bundle and route reference against the catalog.

    Raises:
        CatalogError: listing each offending name
    """
    names = catalog_names()
    problems: list[str] = []

    missing_descriptions = [p.value for p in Perm if p not in PERMISSION_DESCRIPTIONS]
    if missing_descriptions:
        problems.append(f"permissions without description: {sorted(missing_descriptions)}")

    for perm in Perm:
        if perm.value.count(":") != 1 or not perm.resource or not perm.action:
            problems.append(f"malformed permission name: {perm.value}")

    seen_roles: set[str] = set()
    for role in DEFAULT_ROLES:
        if role.name in seen_roles:
            problems.append(f"duplicate role definition: {role.name}")
        seen_roles.add(role.name)
        bundle = [getattr(p, "value", p) for p in role.permissions]
        unknown = [name for name in bundle if name not in names]
        if unknown:
            problems.append(f"role {role.name} references unknown permissions: {unknown}")

    references = set(_referenced)
    if extra_references:
        references.update(extra_references)
    unknown_refs = sorted(references - names)
    if unknown_refs:
        problems.append(f"routes reference unknown permissions: {unknown_refs}")

    if problems:
        raise CatalogError("; ".join(problems))
