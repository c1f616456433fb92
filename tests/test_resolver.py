"""
Tests for three-tier permission resolution and single permission checks.
"""
import pytest

from tenant_rbac.core.errors import ForbiddenError, NotFoundError
from tenant_rbac.features.permissions.resolver import (
    APPLICATION_NOT_FOUND,
    ORGANIZATION_PERMISSION,
    ORGANIZATION_ROLE_INHERIT,
    PLATFORM_ADMIN,
)
from tenant_rbac.features.organizations.membership import MembershipResolver, normalize_member_payload
from tenant_rbac.features.roles.service import RoleManager, RoleScope
from tests.conftest import caller_for


M1 = caller_for("user-m1")


@pytest.fixture
def manager(db, cache, check_cache):
    return RoleManager(db, caches=(cache, check_cache))


@pytest.fixture
async def approver(manager, tenant):
    """billing_approver (invoices:read, invoices:approve) assigned to m1."""
    scope = RoleScope("org1", tenant.billing.id)
    role = await manager.create_role(
        scope,
        key="billing_approver",
        name="Billing Approver",
        action_ids=[tenant.actions["invoices:read"], tenant.actions["invoices:approve"]],
    )
    await manager.assign_roles_to_member(scope, "m1", [role.id])
    return role


def pairs(result):
    return sorted((p.resource_key, p.action_key) for p in result.permissions)


# ============================================================================
# Tier 1 and 2
# ============================================================================

async def test_platform_admin_gets_wildcard_without_member_lookup(resolver, platform_admin, store):
    result = await resolver.resolve_permissions(platform_admin, "no-such-member", application_key="billing")

    assert result.reason == PLATFORM_ADMIN
    assert result.roles[0].role_key == "platform-admin"
    assert pairs(result) == [("*", "*")]
    assert store.calls == []


async def test_platform_admin_precedes_org_role(resolver, platform_admin, tenant):
    result = await resolver.resolve_permissions(platform_admin, "owner1", application_id=tenant.billing.id)
    assert result.reason == PLATFORM_ADMIN


@pytest.mark.parametrize("member_id,user_id,role", [("owner1", "user-owner", "owner"), ("admin1", "user-admin", "admin")])
async def test_organization_admin_inherits_wildcard(resolver, tenant, store, member_id, user_id, role):
    result = await resolver.resolve_permissions(caller_for(user_id), member_id, application_key="billing")

    assert result.reason == ORGANIZATION_ROLE_INHERIT
    assert result.roles[0].role_key == role
    assert pairs(result) == [("*", "*")]
    assert store.calls == []


# ============================================================================
# Tier 3
# ============================================================================

async def test_explicit_grants(resolver, tenant, approver):
    result = await resolver.resolve_permissions(M1, "m1", application_key="billing")

    assert result.reason is None
    assert result.application_id == tenant.billing.id
    assert [role.role_key for role in result.roles] == ["billing_approver"]
    assert pairs(result) == [("invoices", "approve"), ("invoices", "read")]
    assert {p.role_name for p in result.permissions} == {"Billing Approver"}


async def test_member_without_roles_gets_empty_set(resolver, tenant):
    result = await resolver.resolve_permissions(caller_for("user-m2"), "m2", application_id=tenant.billing.id)

    assert result.roles == []
    assert result.permissions == []
    assert result.reason is None


async def test_overlapping_roles_are_deduplicated(resolver, manager, tenant, approver):
    scope = RoleScope("org1", tenant.billing.id)
    reader = await manager.create_role(
        scope, key="invoice_reader", name="Invoice Reader",
        action_ids=[tenant.actions["invoices:read"], tenant.actions["payments:read"]],
    )
    await manager.assign_roles_to_member(scope, "m1", [reader.id])

    result = await resolver.resolve_permissions(M1, "m1", application_key="billing")

    assert len(result.roles) == 2
    assert pairs(result) == [("invoices", "approve"), ("invoices", "read"), ("payments", "read")]


async def test_inactive_roles_are_ignored(resolver, manager, tenant, approver):
    await manager.update_role(RoleScope("org1", tenant.billing.id), approver.id, {"is_active": False})

    result = await resolver.resolve_permissions(M1, "m1", application_key="billing")
    assert result.permissions == []


async def test_roles_of_other_applications_do_not_leak(resolver, manager, tenant, approver):
    result = await resolver.resolve_permissions(M1, "m1", application_key="crm")
    assert result.permissions == []


# ============================================================================
# Errors and missing applications
# ============================================================================

async def test_missing_application_reference(resolver):
    with pytest.raises(NotFoundError):
        await resolver.resolve_permissions(M1, "m1")


async def test_unknown_member(resolver, tenant):
    with pytest.raises(NotFoundError):
        await resolver.resolve_permissions(M1, "ghost", application_key="billing")


async def test_querying_another_member_is_forbidden(resolver, tenant, approver):
    with pytest.raises(ForbiddenError):
        await resolver.resolve_permissions(caller_for("user-m2"), "m1", application_key="billing")


async def test_unknown_application_returns_empty_result(resolver, tenant):
    result = await resolver.resolve_permissions(M1, "m1", application_key="warehouse")

    assert result.reason == APPLICATION_NOT_FOUND
    assert result.permissions == []


async def test_application_of_other_organization_not_found(resolver, tenant):
    result = await resolver.resolve_permissions(M1, "m1", application_id=tenant.other_billing.id)
    assert result.reason == APPLICATION_NOT_FOUND


# ============================================================================
# Caching
# ============================================================================

async def test_second_call_by_id_does_not_touch_store(resolver, tenant, approver, store):
    first = await resolver.resolve_permissions(M1, "m1", application_id=tenant.billing.id)
    calls = len(store.calls)

    second = await resolver.resolve_permissions(M1, "m1", application_id=tenant.billing.id)

    assert len(store.calls) == calls
    assert second == first


async def test_second_call_by_key_only_looks_up_application(resolver, tenant, approver, store):
    await resolver.resolve_permissions(M1, "m1", application_key="billing")
    store.calls.clear()

    await resolver.resolve_permissions(M1, "m1", application_key="billing")

    assert store.calls == ["find_application"]


async def test_cached_result_is_not_shared(resolver, tenant, approver):
    first = await resolver.resolve_permissions(M1, "m1", application_id=tenant.billing.id)
    first.permissions.clear()

    second = await resolver.resolve_permissions(M1, "m1", application_id=tenant.billing.id)
    assert len(second.permissions) == 2


async def test_cache_expires_after_ttl(resolver, tenant, approver, store, clock):
    await resolver.resolve_permissions(M1, "m1", application_id=tenant.billing.id)
    clock.advance(61)
    store.calls.clear()

    await resolver.resolve_permissions(M1, "m1", application_id=tenant.billing.id)
    assert "get_role_grants" in store.calls


async def test_admin_tiers_are_never_cached(resolver, tenant, cache, platform_admin):
    await resolver.resolve_permissions(platform_admin, "m1", application_id=tenant.billing.id)
    await resolver.resolve_permissions(caller_for("user-owner"), "owner1", application_id=tenant.billing.id)
    assert len(cache) == 0


async def test_assignment_change_visible_without_waiting_for_ttl(resolver, manager, tenant, approver):
    scope = RoleScope("org1", tenant.billing.id)
    before = await resolver.resolve_permissions(M1, "m1", application_id=tenant.billing.id)
    refunder = await manager.create_role(
        scope, key="refunder", name="Refunder", action_ids=[tenant.actions["payments:refund"]]
    )
    await manager.assign_roles_to_member(scope, "m1", [refunder.id])

    after = await resolver.resolve_permissions(M1, "m1", application_id=tenant.billing.id)

    assert ("payments", "refund") not in pairs(before)
    assert ("payments", "refund") in pairs(after)


async def test_revocation_visible_for_member_id_with_colon(db, resolver, manager, tenant):
    member_id = "org1:m9"
    billing_id = tenant.billing.id
    await MembershipResolver(db).sync_members(
        "org1", normalize_member_payload([{"id": member_id, "user_id": "user-m9"}])
    )
    scope = RoleScope("org1", billing_id)
    role = await manager.create_role(
        scope, key="billing_approver", name="Billing Approver", action_ids=[tenant.actions["invoices:approve"]]
    )
    await manager.assign_roles_to_member(scope, member_id, [role.id])
    caller = caller_for("user-m9")

    granted = await resolver.resolve_permissions(caller, member_id, application_id=billing_id)
    assert pairs(granted) == [("invoices", "approve")]
    assert (await resolver.check_permission(caller, member_id, "billing", "invoices", "approve")).has_permission

    await manager.unassign_role_from_member(scope, member_id, role.id)

    revoked = await resolver.resolve_permissions(caller, member_id, application_id=billing_id)
    assert revoked.permissions == []
    assert not (await resolver.check_permission(caller, member_id, "billing", "invoices", "approve")).has_permission


# ============================================================================
# Single permission checks
# ============================================================================

async def test_check_explicit_grant(resolver, tenant, approver):
    allowed = await resolver.check_permission(M1, "m1", "billing", "invoices", "approve")
    denied = await resolver.check_permission(M1, "m1", "billing", "payments", "refund")

    assert allowed.has_permission is True
    assert allowed.reason is None
    assert denied.has_permission is False


async def test_check_is_cached(resolver, tenant, approver, store):
    await resolver.check_permission(M1, "m1", "billing", "invoices", "approve")
    store.calls.clear()

    result = await resolver.check_permission(M1, "m1", "billing", "invoices", "approve")

    assert result.cached is True
    assert result.has_permission is True
    assert "has_grant" not in store.calls


async def test_check_denial_is_cached(resolver, tenant, approver):
    await resolver.check_permission(M1, "m1", "billing", "payments", "refund")
    result = await resolver.check_permission(M1, "m1", "billing", "payments", "refund")

    assert result.cached is True
    assert result.has_permission is False


async def test_check_admin_tiers(resolver, tenant, platform_admin):
    assert (await resolver.check_permission(platform_admin, "m1", "billing", "x", "y")).reason == PLATFORM_ADMIN
    owner = await resolver.check_permission(caller_for("user-owner"), "owner1", "billing", "x", "y")
    assert owner.has_permission is True
    assert owner.reason == ORGANIZATION_ROLE_INHERIT


async def test_check_organization_statement_uses_built_in_role(resolver, tenant):
    read = await resolver.check_permission(M1, "m1", "billing", "ac", "read")
    invite = await resolver.check_permission(M1, "m1", "billing", "invitation", "create")

    assert read.has_permission is True
    assert read.reason == ORGANIZATION_PERMISSION
    assert invite.has_permission is False


async def test_check_organization_statement_uses_custom_role(resolver, manager, tenant, db):

    await manager.create_role(
        RoleScope("org1"), key="recruiter", name="Recruiter", permissions={"invitation": ["create"]}
    )
    await MembershipResolver(db).sync_members(
        "org1", normalize_member_payload([{"id": "m2", "user_id": "user-m2", "role": "recruiter"}])
    )

    result = await resolver.check_permission(caller_for("user-m2"), "m2", "billing", "invitation", "create")
    assert result.has_permission is True


async def test_check_unknown_application(resolver, tenant):
    result = await resolver.check_permission(M1, "m1", "warehouse", "invoices", "read")
    assert result.has_permission is False
    assert result.reason == APPLICATION_NOT_FOUND


async def test_check_other_member_forbidden(resolver, tenant):
    with pytest.raises(ForbiddenError):
        await resolver.check_permission(caller_for("user-m2"), "m1", "billing", "invoices", "read")


# ============================================================================
# End to end
# ============================================================================

async def test_billing_approver_scenario(db, resolver, manager):
    from tenant_rbac.features.applications.service import ApplicationCatalog
    from tenant_rbac.features.organizations.models import Organization

    db.add(Organization(id="acme", name="Acme"))
    await db.commit()
    await MembershipResolver(db).sync_members(
        "acme", normalize_member_payload({"members": [{"id": "a1", "user_id": "user-a1"}]})
    )
    catalog = ApplicationCatalog(db)
    billing = await catalog.create_application("acme", key="billing", name="Billing")
    invoices = await catalog.create_resource("acme", billing.id, key="invoices", name="Invoices")
    approve = await catalog.create_action("acme", billing.id, invoices.id, key="approve", name="Approve")
    scope = RoleScope("acme", billing.id)
    role = await manager.create_role(scope, key="billing_approver", name="Billing Approver", action_ids=[approve.id])

    caller = caller_for("user-a1")
    assert (await manager.assign_roles_to_member(scope, "a1", [role.id])).assigned_count == 1
    assert (await manager.assign_roles_to_member(scope, "a1", [role.id])).assigned_count == 0

    granted = await resolver.resolve_permissions(caller, "a1", application_key="billing")
    assert [(p.role_key, p.resource_key, p.action_key) for p in granted.permissions] == [
        ("billing_approver", "invoices", "approve")
    ]
    assert (await resolver.check_permission(caller, "a1", "billing", "invoices", "approve")).has_permission

    await manager.unassign_role_from_member(scope, "a1", role.id)

    revoked = await resolver.resolve_permissions(caller, "a1", application_key="billing")
    assert revoked.permissions == []
    assert not (await resolver.check_permission(caller, "a1", "billing", "invoices", "approve")).has_permission
