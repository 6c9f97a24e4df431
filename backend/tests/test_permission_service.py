"""Tests for the permission catalog service."""

import pytest

from core.exceptions import BadRequestError, ConflictError, NotFoundError
from services.override_service import OverrideService
from services.permission_service import PermissionService, split_permission_name


@pytest.mark.unit
class TestPermissionNames:
    def test_split(self):
        assert split_permission_name("reports:export") == ("reports", "export")

    @pytest.mark.parametrize("name", ["reports", "reports:", ":export", "a:b:c"])
    def test_malformed(self, name):
        with pytest.raises(BadRequestError):
            split_permission_name(name)


@pytest.mark.unit
class TestPermissionService:
    async def test_create_derives_parts(self, db_session):
        permission = await PermissionService(db_session).create(
            "reports:export", description="Export reports", conditions={"max_rows": 1000}
        )
        assert permission.resource == "reports"
        assert permission.action == "export"
        assert permission.conditions == {"max_rows": 1000}
        assert permission.created_at is not None

    async def test_create_rejects_mismatched_parts(self, db_session):
        with pytest.raises(BadRequestError):
            await PermissionService(db_session).create("reports:export", resource="billing")

    async def test_duplicate_name_conflicts(self, db_session, make_permission):
        await make_permission("reports:export")
        with pytest.raises(ConflictError):
            await PermissionService(db_session).create("reports:export")

    async def test_lookups(self, db_session, seeded):
        svc = PermissionService(db_session)
        found = await svc.find_by_resource_and_action("roles", "assign")
        assert found.name == "roles:assign"
        assert await svc.find_by_resource_and_action("roles", "fly") is None

        names = [p.name for p in await svc.list_by_resource("audit")]
        assert names == ["audit:read"]
        assert await svc.get_by_name("nope:nope") is None

    async def test_group_by_resource_keeps_order(self, db_session, seeded):
        svc = PermissionService(db_session)
        grouped = svc.group_by_resource(await svc.list_all())
        assert list(grouped) == sorted(grouped)
        assert [p.action for p in grouped["system"]] == sorted(p.action for p in grouped["system"])

    async def test_update_keeps_name(self, db_session, make_permission):
        permission = await make_permission("reports:export")
        updated = await PermissionService(db_session).update(permission.id, description="CSV export")
        assert updated.description == "CSV export"
        assert updated.name == "reports:export"

    async def test_delete_unreferenced(self, db_session, make_permission):
        permission = await make_permission("reports:export")
        svc = PermissionService(db_session)
        await svc.delete(permission.id)
        assert await svc.get_by_name("reports:export") is None
        with pytest.raises(NotFoundError):
            await svc.delete(permission.id)

    async def test_delete_blocked_by_user_override(self, db_session, make_permission, make_user):
        permission = await make_permission("reports:export")
        user = await make_user()
        await OverrideService(db_session).grant_user_permission(user.id, permission.id)

        with pytest.raises(ConflictError, match="referenced by 1"):
            await PermissionService(db_session).delete(permission.id)

    async def test_require_all_names_missing_ids(self, db_session, make_permission):
        permission = await make_permission("reports:export")
        with pytest.raises(NotFoundError, match="missing-id"):
            await PermissionService(db_session).require_all([permission.id, "missing-id"])
