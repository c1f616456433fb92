"""
Application catalogue dependency injection functions.
"""
from typing import Annotated, Optional
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_rbac.core.database.engine import get_db
from tenant_rbac.features.applications.service import ApplicationCatalog
from tenant_rbac.features.audit.sink import AuditSink
from tenant_rbac.features.identity.auth import Caller
from tenant_rbac.features.organizations.dependencies import require_organization_admin
from tenant_rbac.features.permissions.cache import PermissionCache
from tenant_rbac.features.permissions.dependencies import get_audit_sink, get_permission_caches


async def get_application_catalog(
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_organization_admin)],
    caches: Annotated[tuple[PermissionCache, ...], Depends(get_permission_caches)],
    audit: Annotated[Optional[AuditSink], Depends(get_audit_sink)],
) -> ApplicationCatalog:
    """Catalogue service for an organization the caller administers."""
    return ApplicationCatalog(db, caches=caches, audit=audit, actor_id=caller.user_id)
