"""
Pytest configuration and fixtures for testing.

This module provides:
- In-memory SQLite engine and sessions with foreign keys enforced
- A seeded two-organization tenant layout
- Permission caches driven by a controllable clock
- Async HTTP client wired to the test database
"""

import os
from types import SimpleNamespace

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["PLATFORM_ADMIN_ROLE"] = "admin"

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tenant_rbac.core.database.engine import enable_sqlite_foreign_keys, get_db, init_db
from tenant_rbac.features.applications.service import ApplicationCatalog
from tenant_rbac.features.identity.auth import Caller, issue_token
from tenant_rbac.features.organizations.membership import MembershipResolver, normalize_member_payload
from tenant_rbac.features.organizations.models import Organization
from tenant_rbac.features.permissions.cache import PermissionCache
from tenant_rbac.features.permissions.resolver import PermissionResolver
from tenant_rbac.features.permissions.store import PermissionStore


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(test_engine)
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Same session settings as the application's own session factory."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# =============================================================================
# CACHE FIXTURES
# =============================================================================


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> PermissionCache:
    return PermissionCache(ttl_seconds=60, max_entries=500, clock=clock)


@pytest.fixture
def check_cache(clock) -> PermissionCache:
    return PermissionCache(ttl_seconds=60, max_entries=1000, clock=clock)


class CountingStore(PermissionStore):
    """PermissionStore that records every read it serves."""

    def __init__(self, db):
        super().__init__(db)
        self.calls = []

    async def find_application(self, *args, **kwargs):
        self.calls.append("find_application")
        return await super().find_application(*args, **kwargs)

    async def get_roles(self, *args, **kwargs):
        self.calls.append("get_roles")
        return await super().get_roles(*args, **kwargs)

    async def get_role_grants(self, *args, **kwargs):
        self.calls.append("get_role_grants")
        return await super().get_role_grants(*args, **kwargs)

    async def has_grant(self, *args, **kwargs):
        self.calls.append("has_grant")
        return await super().has_grant(*args, **kwargs)


@pytest.fixture
def store(db) -> CountingStore:
    return CountingStore(db)


@pytest.fixture
def resolver(db, store, cache, check_cache) -> PermissionResolver:
    return PermissionResolver(store, MembershipResolver(db), cache, check_cache)


# =============================================================================
# TENANT FIXTURES
# =============================================================================


ORG1_MEMBERS = [
    {"id": "owner1", "user_id": "user-owner", "role": "owner"},
    {"id": "admin1", "user_id": "user-admin", "role": "admin"},
    {"id": "m1", "user_id": "user-m1", "role": "member"},
    {"id": "m2", "user_id": "user-m2", "role": "member"},
]

ORG2_MEMBERS = [
    {"id": "x1", "user_id": "user-x1", "role": "member"},
]


@pytest.fixture
async def tenant(db) -> SimpleNamespace:
    """
    Two organizations:

    org1: members owner1/admin1/m1/m2; applications
          billing (invoices: read, approve; payments: read, refund) and
          crm (contacts: read)
    org2: member x1; application billing (invoices: read)
    """
    db.add_all([
        Organization(id="org1", name="Organization One", slug="org1"),
        Organization(id="org2", name="Organization Two", slug="org2"),
    ])
    await db.commit()
    membership = MembershipResolver(db)
    await membership.sync_members("org1", normalize_member_payload(ORG1_MEMBERS))
    await membership.sync_members("org2", normalize_member_payload({"members": ORG2_MEMBERS}))

    catalog = ApplicationCatalog(db)
    billing = await catalog.create_application("org1", key="billing", name="Billing")
    invoices = await catalog.create_resource("org1", billing.id, key="invoices", name="Invoices")
    payments = await catalog.create_resource("org1", billing.id, key="payments", name="Payments")
    actions = {}
    for resource in (invoices, payments):
        keys = ("read", "approve") if resource is invoices else ("read", "refund")
        for key in keys:
            action = await catalog.create_action("org1", billing.id, resource.id, key=key, name=key.title())
            actions[f"{resource.key}:{key}"] = action.id

    crm = await catalog.create_application("org1", key="crm", name="CRM")
    contacts = await catalog.create_resource("org1", crm.id, key="contacts", name="Contacts")
    contacts_read = await catalog.create_action("org1", crm.id, contacts.id, key="read", name="Read")

    other_billing = await catalog.create_application("org2", key="billing", name="Billing")
    other_invoices = await catalog.create_resource("org2", other_billing.id, key="invoices", name="Invoices")
    other_read = await catalog.create_action("org2", other_billing.id, other_invoices.id, key="read", name="Read")

    return SimpleNamespace(
        billing=billing,
        invoices=invoices,
        payments=payments,
        actions=actions,
        crm=crm,
        contacts=contacts,
        contacts_read=contacts_read,
        other_billing=other_billing,
        other_invoices=other_invoices,
        other_read=other_read,
    )


# =============================================================================
# CALLER FIXTURES
# =============================================================================


@pytest.fixture
def platform_admin() -> Caller:
    return Caller(user_id="root", global_role="admin")


def caller_for(user_id: str) -> Caller:
    return Caller(user_id=user_id)


def auth_headers(user_id: str, role: str | None = None) -> dict:
    return {"Authorization": f"Bearer {issue_token(user_id, role=role)}"}


# =============================================================================
# TEST CLIENT FIXTURES
# =============================================================================


@pytest.fixture
async def async_client(session_factory, cache, check_cache):
    """Async client for the FastAPI app, backed by the test database."""
    from tenant_rbac.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.permission_cache = cache
    app.state.permission_check_cache = check_cache
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
