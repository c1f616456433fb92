"""
Organization-related dependency injection functions.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_rbac.core.database.engine import get_db
from tenant_rbac.features.identity.auth import Caller
from tenant_rbac.features.identity.dependencies import get_current_caller
from tenant_rbac.features.organizations.membership import MembershipResolver
from tenant_rbac.features.organizations.models import Organization


async def get_membership_resolver(
    db: Annotated[AsyncSession, Depends(get_db)]
) -> MembershipResolver:
    return MembershipResolver(db)


async def get_organization_by_id(
    organization_id: str,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Organization:
    """
    Get organization by ID or raise 404.
    
    Raises:
        HTTPException: 404 if organization not found
    """
    organization = await db.get(Organization, organization_id)
    if organization is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Organization not found"
        )
    return organization


async def require_organization_admin(
    organization: Annotated[Organization, Depends(get_organization_by_id)],
    caller: Annotated[Caller, Depends(get_current_caller)],
    membership: Annotated[MembershipResolver, Depends(get_membership_resolver)],
) -> Caller:
    """
    Allow platform admins and owners/admins of the organization in the path.
    
    Raises:
        HTTPException: 403 for everyone else
    """
    if caller.is_platform_admin:
        return caller
    
    record = await membership.get_membership(caller.user_id, organization.id)
    if record is None or not record.is_organization_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organization owner or admin privileges required"
        )
    return caller
