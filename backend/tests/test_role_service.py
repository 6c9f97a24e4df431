"""Tests for role management rules."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from db.models.role import Role, RolePermission
from db.models.user_role import UserRole
from services.assignment_service import AssignmentService
from services.permission_service import PermissionService
from services.role_service import RoleService


async def perm_ids(db, *names):
    svc = PermissionService(db)
    return [(await svc.get_by_name(name)).id for name in names]


@pytest.mark.unit
class TestCreateRole:
    async def test_role_is_created_with_its_bundle(self, db_session, seeded):
        ids = await perm_ids(db_session, "content:read", "content:publish")
        role = await RoleService(db_session).create_role("editor", "Edits content", ids)

        assert role.is_system is False
        assert role.is_active is True
        assert sorted(p.name for p in role.permissions) == ["content:publish", "content:read"]

    async def test_duplicate_name_conflicts(self, db_session, seeded):
        with pytest.raises(ConflictError):
            await RoleService(db_session).create_role("admin")

    async def test_unknown_permission_leaves_nothing_behind(self, db_session, seeded):
        [read_id] = await perm_ids(db_session, "content:read")
        with pytest.raises(BadRequestError) as exc:
            await RoleService(db_session).create_role("broken", None, [read_id, str(uuid4())])
        assert "Failed to assign permissions to role" in exc.value.message

        role = (await db_session.execute(select(Role).where(Role.name == "broken"))).scalar_one_or_none()
        assert role is None

    async def test_duplicate_permission_ids_are_collapsed(self, db_session, seeded):
        [read_id] = await perm_ids(db_session, "content:read")
        role = await RoleService(db_session).create_role("reader", None, [read_id, read_id])
        assert len(role.permission_links) == 1


@pytest.mark.unit
class TestSystemRoles:
    """Built-in roles refuse every change, whoever asks."""

    @pytest.mark.parametrize("name", ["super_admin", "admin", "manager", "user", "guest"])
    async def test_update_is_forbidden(self, db_session, seeded, name):
        svc = RoleService(db_session)
        role = await svc.get_by_name(name)
        with pytest.raises(ForbiddenError):
            await svc.update_role(role.id, name="root")
        with pytest.raises(ForbiddenError):
            await svc.update_role(role.id, description="changed")

    @pytest.mark.parametrize("name", ["super_admin", "guest"])
    async def test_delete_is_forbidden(self, db_session, seeded, name):
        svc = RoleService(db_session)
        role = await svc.get_by_name(name)
        with pytest.raises(ForbiddenError):
            await svc.delete_role(role.id)
        assert await svc.get_by_name(name) is not None


@pytest.mark.unit
class TestUpdateRole:
    async def test_rename_and_deactivate(self, db_session, seeded):
        svc = RoleService(db_session)
        role = await svc.create_role("support")
        updated = await svc.update_role(role.id, name="helpdesk", is_active=False)
        assert updated.name == "helpdesk"
        assert updated.is_active is False

    async def test_rename_onto_existing_name_conflicts(self, db_session, seeded):
        svc = RoleService(db_session)
        role = await svc.create_role("support")
        with pytest.raises(ConflictError):
            await svc.update_role(role.id, name="manager")

    async def test_unknown_role(self, db_session, seeded):
        with pytest.raises(NotFoundError):
            await RoleService(db_session).update_role(str(uuid4()), name="x")


@pytest.mark.unit
class TestDeleteRole:
    async def test_active_assignment_blocks_deletion(self, db_session, seeded, make_user):
        svc = RoleService(db_session)
        role = await svc.create_role("contractor", None, await perm_ids(db_session, "content:read"))
        user = await make_user()
        assignments = AssignmentService(db_session)
        await assignments.assign_role_to_user(user.id, role.id)

        with pytest.raises(ConflictError) as exc:
            await svc.delete_role(role.id)
        assert "assigned to 1 user(s)" in exc.value.message
        assert await svc.get_by_name("contractor") is not None

        await assignments.remove_role_from_user(user.id, role.id)
        deleted = await svc.delete_role(role.id)
        assert deleted.name == "contractor"

        assert (await db_session.execute(
            select(Role).where(Role.name == "contractor")
        )).scalar_one_or_none() is None
        assert (await db_session.execute(
            select(UserRole).where(UserRole.role_id == role.id)
        )).scalars().all() == []
        assert (await db_session.execute(
            select(RolePermission).where(RolePermission.role_id == role.id)
        )).scalars().all() == []

    async def test_unknown_role(self, db_session, seeded):
        with pytest.raises(NotFoundError):
            await RoleService(db_session).delete_role(str(uuid4()))


@pytest.mark.unit
class TestBundle:
    async def test_assign_is_idempotent(self, db_session, seeded):
        svc = RoleService(db_session)
        role = await svc.create_role("auditor")
        [audit_id] = await perm_ids(db_session, "audit:read")

        assert await svc.assign_permissions(role.id, [audit_id]) == (1, "Assigned 1 permission(s) to role")
        assert await svc.assign_permissions(role.id, [audit_id]) == (0, "All permissions already assigned to role")

    async def test_assign_unknown_permission(self, db_session, seeded):
        svc = RoleService(db_session)
        role = await svc.create_role("auditor")
        with pytest.raises(NotFoundError):
            await svc.assign_permissions(role.id, [str(uuid4())])

    async def test_remove_ignores_unlinked_ids(self, db_session, seeded):
        svc = RoleService(db_session)
        read_id, audit_id = await perm_ids(db_session, "content:read", "audit:read")
        role = await svc.create_role("auditor", None, [read_id])

        count, message = await svc.remove_permissions(role.id, [read_id, audit_id])
        assert count == 1
        assert message == "Removed 1 permission(s) from role"
        assert (await svc.get(role.id)).permissions == []
