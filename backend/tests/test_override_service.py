"""Tests for direct permission overrides."""

from datetime import timedelta
from uuid import uuid4

import pytest

from core.exceptions import NotFoundError
from core.utils import as_utc
from services.override_service import OverrideService, PermissionChange
from services.permission_service import PermissionService


async def perm_id(db, name):
    return (await PermissionService(db).get_by_name(name)).id


@pytest.mark.unit
class TestGrant:
    async def test_grant_is_an_upsert(self, db_session, seeded, make_user, fixed_now):
        user = await make_user()
        pid = await perm_id(db_session, "system:read")
        svc = OverrideService(db_session, clock=lambda: fixed_now)

        await svc.grant_user_permission(user.id, pid, granted=True, reason="on call")
        expiry = fixed_now + timedelta(days=1)
        override = await svc.grant_user_permission(
            user.id, pid, granted=False, expires_at=expiry, reason="rotated off", assigned_by="lead"
        )

        assert override.granted is False
        assert override.reason == "rotated off"
        assert override.assigned_by == "lead"
        assert as_utc(override.expires_at) == expiry
        assert len(await svc.list_overrides(user.id)) == 1

    async def test_unknown_user(self, db_session, seeded):
        pid = await perm_id(db_session, "system:read")
        with pytest.raises(NotFoundError):
            await OverrideService(db_session).grant_user_permission(str(uuid4()), pid)

    async def test_unknown_permission(self, db_session, seeded, make_user):
        user = await make_user()
        with pytest.raises(NotFoundError):
            await OverrideService(db_session).grant_user_permission(user.id, str(uuid4()))


@pytest.mark.unit
class TestBulk:
    async def test_failures_are_reported_per_item(self, db_session, seeded, make_user):
        user = await make_user()
        read_id = await perm_id(db_session, "system:read")
        backup_id = await perm_id(db_session, "system:backup")
        missing = str(uuid4())

        outcome = await OverrideService(db_session).bulk_update_user_permissions(
            user.id,
            [
                PermissionChange(read_id, granted=True),
                PermissionChange(missing, granted=True),
                PermissionChange(backup_id, granted=False, reason="no backups"),
            ],
        )

        assert outcome.summary == {"total": 3, "successful": 2, "failed": 1}
        failed = [r for r in outcome.results if not r.success]
        assert failed[0].permission_id == missing
        assert failed[0].error == "Permission not found"

        overrides = await OverrideService(db_session).list_overrides(user.id)
        assert {(o.permission_id, o.granted) for o in overrides} == {(read_id, True), (backup_id, False)}

    async def test_replace_all_clears_existing_overrides(self, db_session, seeded, make_user):
        user = await make_user()
        svc = OverrideService(db_session)
        read_id = await perm_id(db_session, "system:read")
        backup_id = await perm_id(db_session, "system:backup")
        await svc.grant_user_permission(user.id, read_id)

        outcome = await svc.bulk_update_user_permissions(
            user.id, [PermissionChange(backup_id)], replace_all=True
        )

        assert outcome.summary["successful"] == 1
        assert [o.permission_id for o in await svc.list_overrides(user.id)] == [backup_id]

    async def test_to_dict_shape(self, db_session, seeded, make_user):
        user = await make_user()
        read_id = await perm_id(db_session, "system:read")
        outcome = await OverrideService(db_session).bulk_update_user_permissions(
            user.id, [PermissionChange(read_id)]
        )
        assert outcome.to_dict() == {
            "results": [{"permission_id": read_id, "success": True, "error": None}],
            "summary": {"total": 1, "successful": 1, "failed": 0},
        }

    async def test_unknown_user_fails_whole_request(self, db_session, seeded):
        with pytest.raises(NotFoundError):
            await OverrideService(db_session).bulk_update_user_permissions(str(uuid4()), [])
