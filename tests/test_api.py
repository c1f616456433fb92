"""
HTTP tests for the admin and permission query routes.
"""
import pytest

from tests.conftest import auth_headers


OWNER = auth_headers("user-owner")
M1 = auth_headers("user-m1")
M2 = auth_headers("user-m2")
ROOT = auth_headers("root", role="admin")


@pytest.fixture
async def approver(async_client, tenant):
    """billing_approver created and assigned to m1 over HTTP."""
    base = f"/organizations/org1/applications/{tenant.billing.id}"
    response = await async_client.post(f"{base}/roles", headers=OWNER, json={
        "key": "billing_approver",
        "name": "Billing Approver",
        "action_ids": [tenant.actions["invoices:read"], tenant.actions["invoices:approve"]],
    })
    assert response.status_code == 201, response.text
    role = response.json()
    response = await async_client.post(f"{base}/members/m1/roles", headers=OWNER, json={"role_id": role["id"]})
    assert response.json() == {"assigned_count": 1}
    return role


async def test_health(async_client):
    response = await async_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_missing_token_rejected(async_client, tenant):
    response = await async_client.get("/rbac/permissions", params={"member_id": "m1", "application_key": "billing"})
    assert response.status_code in (401, 403)


async def test_invalid_token_rejected(async_client, tenant):
    response = await async_client.get(
        "/rbac/permissions",
        params={"member_id": "m1", "application_key": "billing"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401


# ============================================================================
# Admin routes
# ============================================================================

async def test_owner_creates_application(async_client, tenant):
    response = await async_client.post(
        "/organizations/org1/applications", headers=OWNER, json={"key": "warehouse", "name": "Warehouse"}
    )
    assert response.status_code == 201
    assert response.json()["organization_id"] == "org1"


async def test_plain_member_cannot_administer(async_client, tenant):
    response = await async_client.post(
        "/organizations/org1/applications", headers=M1, json={"key": "warehouse", "name": "Warehouse"}
    )
    assert response.status_code == 403


async def test_owner_of_other_organization_cannot_administer(async_client, tenant):
    response = await async_client.get("/organizations/org2/applications", headers=OWNER)
    assert response.status_code == 403


async def test_platform_admin_administers_any_organization(async_client, tenant):
    response = await async_client.get("/organizations/org2/applications", headers=ROOT)
    assert response.status_code == 200
    assert response.json()["total"] == 1


async def test_invalid_key_is_request_validation_error(async_client, tenant):
    response = await async_client.post(
        "/organizations/org1/applications", headers=OWNER, json={"key": "Ware-House", "name": "Warehouse"}
    )
    assert response.status_code == 400
    assert "key" in response.json()


async def test_conflict_error_body(async_client, tenant):
    response = await async_client.post(
        "/organizations/org1/applications", headers=OWNER, json={"key": "billing", "name": "Billing 2"}
    )
    assert response.status_code == 409
    assert response.json()["error"] == "conflict"
    assert response.json()["field"] == "key"


async def test_cross_application_grant_is_reference_error(async_client, tenant):
    response = await async_client.post(
        f"/organizations/org1/applications/{tenant.billing.id}/roles",
        headers=OWNER,
        json={"key": "mixed", "name": "Mixed", "action_ids": [tenant.contacts_read.id]},
    )
    assert response.status_code == 422
    assert response.json()["error"] == "reference_error"


async def test_reserved_role_name_rejected(async_client, tenant):
    response = await async_client.post(
        f"/organizations/org1/applications/{tenant.billing.id}/roles",
        headers=OWNER,
        json={"key": "owner", "name": "Owner"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


async def test_organization_roles_listing(async_client, tenant):
    response = await async_client.post(
        "/organizations/org1/roles", headers=OWNER,
        json={"key": "recruiter", "name": "Recruiter", "permissions": {"invitation": ["create"]}},
    )
    assert response.status_code == 201

    response = await async_client.get("/organizations/org1/roles", headers=OWNER)
    body = response.json()
    assert body["total"] == 4
    assert [role["key"] for role in body["items"]][:3] == ["owner", "admin", "member"]

    response = await async_client.delete("/organizations/org1/roles/owner", headers=OWNER)
    assert response.status_code == 400


async def test_member_role_routes(async_client, tenant, approver):
    base = f"/organizations/org1/applications/{tenant.billing.id}/members/m1/roles"

    response = await async_client.get(base, headers=OWNER)
    assert [role["role_key"] for role in response.json()["roles"]] == ["billing_approver"]

    response = await async_client.post(base, headers=OWNER, json={"role_ids": [approver["id"]]})
    assert response.json() == {"assigned_count": 0}

    response = await async_client.delete(base, headers=OWNER, params={"role_id": approver["id"]})
    assert response.status_code == 204
    response = await async_client.get(base, headers=OWNER)
    assert response.json()["roles"] == []


async def test_assignment_requires_a_role(async_client, tenant):
    response = await async_client.post(
        f"/organizations/org1/applications/{tenant.billing.id}/members/m1/roles", headers=OWNER, json={}
    )
    assert response.status_code == 400


async def test_replace_role_actions(async_client, tenant, approver):
    response = await async_client.put(
        f"/organizations/org1/applications/{tenant.billing.id}/roles/{approver['id']}/actions",
        headers=OWNER,
        json={"action_ids": [tenant.actions["payments:refund"]]},
    )
    assert response.status_code == 200
    assert [grant["permission"] for grant in response.json()] == ["billing:payments:refund"]


# ============================================================================
# Organizations and members
# ============================================================================

async def test_register_organization_requires_platform_admin(async_client, tenant):
    response = await async_client.post("/organizations/", headers=OWNER, json={"name": "Org Three"})
    assert response.status_code == 403

    response = await async_client.post("/organizations/", headers=ROOT, json={"id": "org3", "name": "Org Three"})
    assert response.status_code == 201
    assert response.json()["id"] == "org3"


async def test_member_sync_accepts_both_shapes(async_client, tenant):
    response = await async_client.post(
        "/organizations/org1/members/sync", headers=OWNER, json=[{"id": "m9", "user_id": "user-m9"}]
    )
    assert response.json() == {"organization_id": "org1", "created": 1, "updated": 0}

    response = await async_client.post(
        "/organizations/org1/members/sync", headers=OWNER,
        json={"members": [{"id": "m9", "user_id": "user-m9", "role": "admin"}]},
    )
    assert response.json() == {"organization_id": "org1", "created": 0, "updated": 1}

    response = await async_client.post("/organizations/org1/members/sync", headers=OWNER, json={"people": []})
    assert response.status_code == 400
    assert response.json()["field"] == "members"


async def test_member_sync_with_repeated_id(async_client, tenant):
    response = await async_client.post(
        "/organizations/org1/members/sync", headers=OWNER,
        json=[{"id": "m9", "user_id": "user-m9"}, {"id": "m9", "user_id": "user-m9", "role": "admin"}],
    )
    assert response.status_code == 200
    assert response.json() == {"organization_id": "org1", "created": 1, "updated": 0}

    response = await async_client.get("/organizations/org1/members", headers=OWNER)
    assert {member["id"]: member["role"] for member in response.json()}["m9"] == "admin"


async def test_unknown_organization(async_client, tenant):
    response = await async_client.get("/organizations/nowhere/applications", headers=ROOT)
    assert response.status_code == 404


# ============================================================================
# Permission queries
# ============================================================================

async def test_member_reads_own_permissions(async_client, tenant, approver):
    response = await async_client.get(
        "/rbac/permissions", headers=M1, params={"member_id": "m1", "application_key": "billing"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["reason"] is None
    assert sorted((p["resource_key"], p["action_key"]) for p in body["permissions"]) == [
        ("invoices", "approve"), ("invoices", "read")
    ]


async def test_member_cannot_read_other_member(async_client, tenant, approver):
    response = await async_client.get(
        "/rbac/permissions", headers=M2, params={"member_id": "m1", "application_key": "billing"}
    )
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"


async def test_platform_admin_reads_any_member(async_client, tenant):
    response = await async_client.get(
        "/rbac/permissions", headers=ROOT, params={"member_id": "m1", "application_id": tenant.billing.id}
    )
    assert response.json()["reason"] == "PLATFORM_ADMIN"


async def test_application_reference_required(async_client, tenant):
    response = await async_client.get("/rbac/permissions", headers=M1, params={"member_id": "m1"})
    assert response.status_code == 404


async def test_check_route(async_client, tenant, approver):
    params = {"member_id": "m1", "application_key": "billing", "resource_key": "invoices", "action_key": "approve"}
    first = await async_client.get("/rbac/permissions/check", headers=M1, params=params)
    second = await async_client.get("/rbac/permissions/check", headers=M1, params=params)

    assert first.json()["has_permission"] is True
    assert first.json()["cached"] is False
    assert second.json()["cached"] is True


async def test_unassignment_visible_immediately(async_client, tenant, approver):
    params = {"member_id": "m1", "application_key": "billing"}
    await async_client.get("/rbac/permissions", headers=M1, params=params)

    await async_client.delete(
        f"/organizations/org1/applications/{tenant.billing.id}/members/m1/roles",
        headers=OWNER, params={"role_id": approver["id"]},
    )

    response = await async_client.get("/rbac/permissions", headers=M1, params=params)
    assert response.json()["permissions"] == []
