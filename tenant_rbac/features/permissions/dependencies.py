"""
Permission dependencies.

The permission caches and the audit sink are created once at startup and
kept on ``app.state``; these dependencies hand them to per-request services.
"""
from typing import Annotated, Optional
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_rbac.core.database.engine import get_db
from tenant_rbac.features.audit.sink import AuditSink
from tenant_rbac.features.organizations.dependencies import get_membership_resolver
from tenant_rbac.features.organizations.membership import MembershipResolver
from tenant_rbac.features.permissions.cache import PermissionCache
from tenant_rbac.features.permissions.resolver import PermissionResolver
from tenant_rbac.features.permissions.store import PermissionStore


def get_permission_cache(request: Request) -> PermissionCache:
    return request.app.state.permission_cache


def get_permission_check_cache(request: Request) -> PermissionCache:
    return request.app.state.permission_check_cache


def get_permission_caches(
    cache: Annotated[PermissionCache, Depends(get_permission_cache)],
    check_cache: Annotated[PermissionCache, Depends(get_permission_check_cache)],
) -> tuple[PermissionCache, PermissionCache]:
    """Every cache a mutation must invalidate."""
    return cache, check_cache


def get_audit_sink(request: Request) -> Optional[AuditSink]:
    return getattr(request.app.state, "audit_sink", None)


async def get_permission_resolver(
    db: Annotated[AsyncSession, Depends(get_db)],
    membership: Annotated[MembershipResolver, Depends(get_membership_resolver)],
    cache: Annotated[PermissionCache, Depends(get_permission_cache)],
    check_cache: Annotated[PermissionCache, Depends(get_permission_check_cache)],
) -> PermissionResolver:
    return PermissionResolver(PermissionStore(db), membership, cache, check_cache)
