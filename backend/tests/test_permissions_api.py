"""Tests for the permission catalog, override and inspection endpoints."""

from uuid import uuid4

import pytest

from services.permission_service import PermissionService


@pytest.fixture
def root_headers(super_admin_user, headers_for):
    return headers_for(super_admin_user)


@pytest.mark.integration
class TestCatalogEndpoints:
    async def test_list_and_group(self, client, admin_user, auth_headers):
        resp = await client.get("/api/v1/permissions", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["total"] == 23

        resp = await client.get("/api/v1/permissions?resource=audit", headers=auth_headers)
        assert [p["name"] for p in resp.json()["permissions"]] == ["audit:read"]

        resp = await client.get("/api/v1/permissions?group_by_resource=true", headers=auth_headers)
        groups = {g["resource"]: len(g["permissions"]) for g in resp.json()["groups"]}
        assert groups["users"] == 5
        assert groups["roles"] == 6

    async def test_resources_and_actions(self, client, admin_user, auth_headers):
        resp = await client.get("/api/v1/permissions/resources", headers=auth_headers)
        assert resp.json()["resources"] == ["audit", "content", "permissions", "roles", "system", "users"]
        resp = await client.get("/api/v1/permissions/actions", headers=auth_headers)
        assert "publish" in resp.json()["actions"]

    async def test_create_and_delete(self, client, root_headers):
        resp = await client.post(
            "/api/v1/permissions",
            json={"name": "reports:export", "description": "Export reports"},
            headers=root_headers,
        )
        assert resp.status_code == 201
        created = resp.json()
        assert created["resource"] == "reports"
        assert created["action"] == "export"

        resp = await client.post("/api/v1/permissions", json={"name": "reports:export"}, headers=root_headers)
        assert resp.status_code == 409

        resp = await client.delete(f"/api/v1/permissions/{created['id']}", headers=root_headers)
        assert resp.status_code == 200

    async def test_malformed_name_is_400(self, client, root_headers):
        resp = await client.post("/api/v1/permissions", json={"name": "Reports Export"}, headers=root_headers)
        assert resp.status_code == 400

    async def test_referenced_permission_cannot_be_deleted(self, client, db_session, root_headers):
        permission = await PermissionService(db_session).get_by_name("content:read")
        resp = await client.delete(f"/api/v1/permissions/{permission.id}", headers=root_headers)
        assert resp.status_code == 409
        assert resp.json()["detail"].startswith("Cannot delete permission")

    async def test_update_description(self, client, db_session, root_headers):
        permission = await PermissionService(db_session).get_by_name("system:backup")
        resp = await client.patch(
            f"/api/v1/permissions/{permission.id}",
            json={"description": "Take nightly backups"},
            headers=root_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["description"] == "Take nightly backups"
        assert resp.json()["name"] == "system:backup"


@pytest.mark.integration
class TestOverrideEndpoints:
    async def test_grant_then_revoke(self, client, db_session, plain_user, root_headers, audit_rows):
        permission = await PermissionService(db_session).get_by_name("system:read")
        body = {"user_id": plain_user.id, "permission_id": permission.id}

        resp = await client.post(
            "/api/v1/permissions/users/grant",
            json={**body, "granted": True, "reason": "on call"},
            headers=root_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["reason"] == "on call"

        resp = await client.post("/api/v1/permissions/users/revoke", json=body, headers=root_headers)
        assert resp.json()["removed"] is True
        resp = await client.post("/api/v1/permissions/users/revoke", json=body, headers=root_headers)
        assert resp.json()["removed"] is False

        assert len(await audit_rows("permission_granted")) == 1
        assert len(await audit_rows("permission_revoked")) == 1

    async def test_grant_to_unknown_user_is_404(self, client, db_session, root_headers):
        permission = await PermissionService(db_session).get_by_name("system:read")
        resp = await client.post(
            "/api/v1/permissions/users/grant",
            json={"user_id": str(uuid4()), "permission_id": permission.id},
            headers=root_headers,
        )
        assert resp.status_code == 404

    async def test_bulk_reports_partial_failure(self, client, db_session, plain_user, root_headers, audit_rows):
        permission = await PermissionService(db_session).get_by_name("system:read")
        resp = await client.post(
            "/api/v1/permissions/users/bulk",
            json={
                "user_id": plain_user.id,
                "permissions": [
                    {"permission_id": permission.id},
                    {"permission_id": str(uuid4()), "granted": False},
                ],
            },
            headers=root_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["summary"] == {"total": 2, "successful": 1, "failed": 1}

        [entry] = await audit_rows("bulk_operation_performed")
        assert entry.details["summary"]["failed"] == 1

    async def test_admin_lacks_permissions_assign(self, client, db_session, admin_user, plain_user, auth_headers):
        permission = await PermissionService(db_session).get_by_name("system:read")
        resp = await client.post(
            "/api/v1/permissions/users/grant",
            json={"user_id": plain_user.id, "permission_id": permission.id},
            headers=auth_headers,
        )
        assert resp.status_code == 403


@pytest.mark.integration
class TestInspection:
    async def test_own_effective_permissions(self, client, plain_user, headers_for):
        resp = await client.get("/api/v1/permissions/users/effective", headers=headers_for(plain_user))
        assert resp.status_code == 200
        data = resp.json()
        assert data["user_id"] == plain_user.id
        assert [p["name"] for p in data["granted_permissions"]] == [
            "content:create", "content:read", "content:update",
        ]
        assert all(p["source"] == "role" for p in data["granted_permissions"])
        assert data["summary"]["from_roles"] == 3

    async def test_other_users_need_permission(self, client, plain_user, admin_user, headers_for):
        resp = await client.get(
            f"/api/v1/permissions/users/effective?user_id={admin_user.id}",
            headers=headers_for(plain_user),
        )
        assert resp.status_code == 403

    async def test_admin_inspects_others_with_deny(
        self, client, db_session, plain_user, admin_user, auth_headers
    ):
        from services.override_service import OverrideService

        permission = await PermissionService(db_session).get_by_name("content:update")
        await OverrideService(db_session).grant_user_permission(
            plain_user.id, permission.id, granted=False, reason="read-only week"
        )
        await db_session.commit()

        resp = await client.get(
            f"/api/v1/permissions/users/effective?user_id={plain_user.id}", headers=auth_headers
        )
        data = resp.json()
        assert [p["name"] for p in data["denied_permissions"]] == ["content:update"]
        assert data["denied_permissions"][0]["source"] == "direct"
        assert data["denied_permissions"][0]["reason"] == "read-only week"

        resp = await client.get(
            f"/api/v1/permissions/check?permission=content:update&user_id={plain_user.id}",
            headers=auth_headers,
        )
        assert resp.json()["has_permission"] is False

    async def test_unknown_user_is_404(self, client, admin_user, auth_headers):
        resp = await client.get(f"/api/v1/permissions/users/effective?user_id={uuid4()}", headers=auth_headers)
        assert resp.status_code == 404

    async def test_check_own_permission(self, client, plain_user, headers_for):
        resp = await client.get("/api/v1/permissions/check?permission=content:read", headers=headers_for(plain_user))
        assert resp.json() == {"user_id": plain_user.id, "permission": "content:read", "has_permission": True}
