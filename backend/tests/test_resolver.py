"""Tests for effective permission resolution against the database."""

from datetime import timedelta

import pytest
import pytest_asyncio

from core.constants import PermissionSource
from services.assignment_service import AssignmentService
from services.override_service import OverrideService
from services.permission_service import PermissionService
from services.resolver import PermissionResolver
from services.role_service import RoleService


async def perm_ids(db, *names):
    svc = PermissionService(db)
    return [(await svc.get_by_name(name)).id for name in names]


@pytest.fixture
def clock(fixed_now):
    return lambda: fixed_now


@pytest.fixture
def resolver(db_session, clock):
    return PermissionResolver(db_session, clock=clock)


@pytest.fixture
def assignments(db_session, clock):
    return AssignmentService(db_session, clock=clock)


@pytest.fixture
def overrides(db_session, clock):
    return OverrideService(db_session, clock=clock)


@pytest_asyncio.fixture
async def team_lead(db_session, seeded):
    """Custom role holding exactly users:read and users:update."""
    ids = await perm_ids(db_session, "users:read", "users:update")
    return await RoleService(db_session).create_role("team_lead", "Team lead", ids)


@pytest.mark.unit
class TestResolve:
    async def test_user_without_roles_or_overrides_resolves_empty(self, resolver, make_user, seeded):
        user = await make_user()
        effective = await resolver.resolve(user.id)
        assert effective.granted_names == frozenset()
        assert effective.denied_names == frozenset()
        assert effective.summary["total"] == 0

    async def test_role_grants_exactly_its_bundle(self, resolver, assignments, make_user, team_lead):
        user = await make_user()
        await assignments.assign_role_to_user(user.id, team_lead.id)

        effective = await resolver.resolve(user.id)
        assert effective.granted_names == {"users:read", "users:update"}
        assert all(e.source is PermissionSource.ROLE for e in effective.granted)
        assert {e.role_name for e in effective.granted} == {"team_lead"}

    async def test_direct_deny_beats_role_grant(
        self, db_session, resolver, assignments, overrides, make_user, team_lead
    ):
        user = await make_user()
        await assignments.assign_role_to_user(user.id, team_lead.id)
        [update_id] = await perm_ids(db_session, "users:update")
        await overrides.grant_user_permission(user.id, update_id, granted=False, reason="probation")

        effective = await resolver.resolve(user.id)
        assert effective.granted_names == {"users:read"}
        assert effective.denied_names == {"users:update"}
        [denied] = effective.denied
        assert denied.source is PermissionSource.DIRECT
        assert denied.reason == "probation"

    async def test_direct_grant_without_role(self, db_session, resolver, overrides, make_user, seeded):
        user = await make_user()
        [backup_id] = await perm_ids(db_session, "system:backup")
        await overrides.grant_user_permission(user.id, backup_id, granted=True)

        effective = await resolver.resolve(user.id)
        assert effective.granted_names == {"system:backup"}

    async def test_expired_role_assignment_is_ignored(
        self, resolver, assignments, make_user, team_lead, fixed_now
    ):
        user = await make_user()
        await assignments.assign_role_to_user(
            user.id, team_lead.id, expires_at=fixed_now - timedelta(days=1)
        )
        effective = await resolver.resolve(user.id)
        assert effective.granted_names == frozenset()
        assert await resolver.role_names(user.id) == []

    async def test_expired_override_is_ignored(
        self, db_session, resolver, assignments, overrides, make_user, team_lead, fixed_now
    ):
        user = await make_user()
        await assignments.assign_role_to_user(user.id, team_lead.id)
        [update_id] = await perm_ids(db_session, "users:update")
        await overrides.grant_user_permission(
            user.id, update_id, granted=False, expires_at=fixed_now - timedelta(minutes=1)
        )
        effective = await resolver.resolve(user.id)
        assert effective.granted_names == {"users:read", "users:update"}
        assert effective.denied_names == frozenset()

    async def test_expiry_in_future_still_counts(
        self, resolver, assignments, make_user, team_lead, fixed_now
    ):
        user = await make_user()
        await assignments.assign_role_to_user(
            user.id, team_lead.id, expires_at=fixed_now + timedelta(hours=1)
        )
        assert (await resolver.resolve(user.id)).has("users:read")

    async def test_include_expired_is_for_inspection(
        self, resolver, assignments, make_user, team_lead, fixed_now
    ):
        user = await make_user()
        await assignments.assign_role_to_user(
            user.id, team_lead.id, expires_at=fixed_now - timedelta(days=1)
        )
        effective = await resolver.resolve(user.id, include_expired=True)
        assert effective.granted_names == {"users:read", "users:update"}

    async def test_revoked_assignment_is_ignored(self, resolver, assignments, make_user, team_lead):
        user = await make_user()
        await assignments.assign_role_to_user(user.id, team_lead.id)
        await assignments.remove_role_from_user(user.id, team_lead.id)
        assert (await resolver.resolve(user.id)).granted_names == frozenset()

    async def test_inactive_role_contributes_nothing(
        self, db_session, resolver, assignments, make_user, team_lead
    ):
        user = await make_user()
        await assignments.assign_role_to_user(user.id, team_lead.id)
        await RoleService(db_session).update_role(team_lead.id, is_active=False)

        assert (await resolver.resolve(user.id)).granted_names == frozenset()
        assert await resolver.role_names(user.id) == []

    async def test_permission_through_two_roles_listed_once(
        self, resolver, assignments, make_user, team_lead, seeded
    ):
        user = await make_user(roles=["manager"])
        await assignments.assign_role_to_user(user.id, team_lead.id)

        effective = await resolver.resolve(user.id)
        assert [e.name for e in effective.granted].count("users:read") == 1
        assert await resolver.role_names(user.id) == ["manager", "team_lead"]

    async def test_revoke_restores_role_status(
        self, db_session, resolver, assignments, overrides, make_user, team_lead
    ):
        """Removing an override is not the same as denying: roles decide again."""
        user = await make_user()
        await assignments.assign_role_to_user(user.id, team_lead.id)
        [update_id] = await perm_ids(db_session, "users:update")
        await overrides.grant_user_permission(user.id, update_id, granted=False)
        assert not (await resolver.resolve(user.id)).has("users:update")

        assert await overrides.revoke_user_permission(user.id, update_id) is True
        effective = await resolver.resolve(user.id)
        assert effective.has("users:update")
        assert effective.denied_names == frozenset()

    async def test_revoke_without_override_reports_nothing_removed(
        self, db_session, overrides, make_user, seeded
    ):
        user = await make_user()
        [read_id] = await perm_ids(db_session, "content:read")
        assert await overrides.revoke_user_permission(user.id, read_id) is False


@pytest.mark.unit
class TestHasPermission:
    """The single-permission check agrees with full resolution."""

    async def test_matches_resolve(
        self, db_session, resolver, assignments, overrides, make_user, team_lead, fixed_now
    ):
        user = await make_user(roles=["guest"])
        await assignments.assign_role_to_user(user.id, team_lead.id)
        update_id, backup_id, read_id = await perm_ids(
            db_session, "users:update", "system:backup", "content:read"
        )
        await overrides.grant_user_permission(user.id, update_id, granted=False)
        await overrides.grant_user_permission(user.id, backup_id, granted=True)
        await overrides.grant_user_permission(
            user.id, read_id, granted=False, expires_at=fixed_now - timedelta(days=2)
        )

        effective = await resolver.resolve(user.id)
        for name in ("users:read", "users:update", "system:backup", "content:read", "audit:read"):
            assert await resolver.has_permission(user.id, name) == effective.has(name), name

    async def test_unknown_permission_is_not_held(self, resolver, make_user, seeded):
        user = await make_user(roles=["super_admin"])
        assert await resolver.has_permission(user.id, "reports:export") is False
        assert await resolver.has_permission(user.id, "system:backup") is True
