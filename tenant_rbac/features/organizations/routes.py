"""
Organization feature routes.

Organizations and their members are owned by the organization service; it
registers organizations here and pushes member listings through the sync
endpoint so that permission resolution can look members up locally.
"""
from typing import Annotated, Any
from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_rbac.core.database.engine import get_db
from tenant_rbac.features.identity.auth import Caller
from tenant_rbac.features.identity.dependencies import get_current_platform_admin
from tenant_rbac.features.organizations.dependencies import (
    get_membership_resolver,
    get_organization_by_id,
    require_organization_admin,
)
from tenant_rbac.features.organizations.membership import MembershipResolver, normalize_member_payload
from tenant_rbac.features.organizations.models import Organization, Member
from tenant_rbac.features.organizations.schemas import (
    OrganizationCreate,
    OrganizationResponse,
    MemberResponse,
    MemberSyncResponse,
)
from tenant_rbac.features.permissions.cache import PermissionCache, invalidate_caches
from tenant_rbac.features.permissions.dependencies import get_permission_caches
from tenant_rbac.utils import get_logger


log = get_logger(__name__)

router = APIRouter(tags=["organizations"])


@router.post("/", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    org_data: OrganizationCreate,
    admin: Annotated[Caller, Depends(get_current_platform_admin)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Register an organization (platform admin only)."""
    if org_data.id and await db.get(Organization, org_data.id) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Organization already exists"
        )
    if org_data.slug:
        result = await db.execute(select(Organization.id).where(Organization.slug == org_data.slug))
        if result.first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Organization with this slug already exists"
            )
    
    organization = Organization(**org_data.model_dump(exclude_none=True))
    db.add(organization)
    await db.commit()
    await db.refresh(organization)
    log.info(f"Organization {organization.id} registered by {admin.user_id}")
    return organization


@router.get("/{organization_id}", response_model=OrganizationResponse)
async def get_organization(
    organization: Annotated[Organization, Depends(get_organization_by_id)],
    _caller: Annotated[Caller, Depends(require_organization_admin)],
):
    return organization


@router.get("/{organization_id}/members", response_model=list[MemberResponse])
async def list_members(
    organization: Annotated[Organization, Depends(get_organization_by_id)],
    _caller: Annotated[Caller, Depends(require_organization_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: int = 0,
    limit: int = 100
):
    result = await db.execute(
        select(Member)
        .where(Member.organization_id == organization.id)
        .order_by(Member.joined_at, Member.id)
        .offset(skip)
        .limit(limit)
    )
    return result.scalars().all()


@router.post("/{organization_id}/members/sync", response_model=MemberSyncResponse)
async def sync_members(
    organization: Annotated[Organization, Depends(get_organization_by_id)],
    _caller: Annotated[Caller, Depends(require_organization_admin)],
    membership: Annotated[MembershipResolver, Depends(get_membership_resolver)],
    caches: Annotated[tuple[PermissionCache, ...], Depends(get_permission_caches)],
    payload: Annotated[Any, Body()],
):
    """
    Upsert the organization's members.
    
    Accepts either a bare list of members or {"members": [...]}.
    """
    members = normalize_member_payload(payload)
    created, updated = await membership.sync_members(organization.id, members)
    for item in members:
        invalidate_caches(caches, member_id=item.id)
    return MemberSyncResponse(organization_id=organization.id, created=created, updated=updated)
