"""Tests for the permission vocabulary and the built-in role bundles."""

import pytest

from core.constants import SystemRole
from core.permissions import (
    DEFAULT_ROLES,
    PERMISSION_DESCRIPTIONS,
    CatalogError,
    Perm,
    catalog_names,
    register_reference,
    to_perm,
    validate_catalog,
)


def _bundle(name: str) -> set[str]:
    role = next(r for r in DEFAULT_ROLES if r.name == name)
    return {p.value for p in role.permissions}


@pytest.mark.unit
class TestVocabulary:
    def test_catalog_has_every_resource(self):
        resources = {p.resource for p in Perm}
        assert resources == {"users", "roles", "permissions", "content", "system", "audit"}

    def test_names_split_into_resource_and_action(self):
        assert Perm.ROLES_ASSIGN.resource == "roles"
        assert Perm.ROLES_ASSIGN.action == "assign"

    def test_every_permission_is_described(self):
        assert set(PERMISSION_DESCRIPTIONS) == set(Perm)

    def test_to_perm_accepts_names_and_members(self):
        assert to_perm("audit:read") is Perm.AUDIT_READ
        assert to_perm(Perm.USERS_LIST) is Perm.USERS_LIST

    def test_unknown_name_is_rejected(self):
        with pytest.raises(CatalogError):
            to_perm("workflows:execute")

    def test_register_reference_rejects_unknown_names(self):
        with pytest.raises(CatalogError):
            register_reference("content:archive")


@pytest.mark.unit
class TestRoleBundles:
    def test_system_roles_are_defined_once(self):
        names = [r.name for r in DEFAULT_ROLES]
        assert sorted(names) == sorted(r.value for r in SystemRole)

    def test_super_admin_holds_everything(self):
        assert _bundle("super_admin") == set(catalog_names())

    def test_admin_cannot_manage_roles_or_catalog(self):
        admin = _bundle("admin")
        assert "roles:assign" in admin
        assert "audit:read" in admin
        assert "roles:manage" not in admin
        assert "permissions:manage" not in admin
        assert "permissions:assign" not in admin

    def test_guest_is_read_only(self):
        assert _bundle("guest") == {"content:read"}

    def test_user_bundle(self):
        assert _bundle("user") == {"content:create", "content:read", "content:update"}

    def test_validate_catalog_passes(self):
        validate_catalog()

    def test_validate_catalog_reports_unknown_route_references(self):
        with pytest.raises(CatalogError) as exc:
            validate_catalog(extra_references=["reports:export"])
        assert "reports:export" in str(exc.value)
