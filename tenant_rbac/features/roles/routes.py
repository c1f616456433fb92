"""
Role routes.

Mounted under /organizations:
- /{organization_id}/roles: built-in and custom organization roles
- /{organization_id}/applications/{application_id}/roles: application roles
- /{organization_id}/applications/{application_id}/members/{member_id}/roles:
  member role assignments
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query, status

from tenant_rbac.features.applications.schemas import ApplicationActionResponse
from tenant_rbac.features.roles.dependencies import get_role_manager
from tenant_rbac.features.roles.schemas import (
    RoleCreate,
    RoleUpdate,
    RoleActionsReplace,
    ApplicationRoleDetail,
    OrganizationRoleResponse,
    RoleListResponse,
    OrganizationRoleListResponse,
    AssignRolesToMember,
    AssignmentResult,
    MemberRolesResponse,
)
from tenant_rbac.features.roles.service import RoleManager, RoleScope


router = APIRouter(tags=["roles"])

Manager = Annotated[RoleManager, Depends(get_role_manager)]


# ============================================================================
# Organization Roles
# ============================================================================

@router.get("/{organization_id}/roles", response_model=OrganizationRoleListResponse)
async def list_organization_roles(
    organization_id: str,
    manager: Manager,
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
):
    """List built-in roles followed by the organization's custom roles."""
    items, total = await manager.list_roles(
        RoleScope(organization_id), skip=skip, limit=limit, search=search, is_active=is_active
    )
    return OrganizationRoleListResponse(items=items, total=total)


@router.post("/{organization_id}/roles", response_model=OrganizationRoleResponse, status_code=status.HTTP_201_CREATED)
async def create_organization_role(organization_id: str, data: RoleCreate, manager: Manager):
    return await manager.create_role(RoleScope(organization_id), **data.model_dump())


@router.get("/{organization_id}/roles/{role_id}", response_model=OrganizationRoleResponse)
async def get_organization_role(organization_id: str, role_id: str, manager: Manager):
    return await manager.get_role(RoleScope(organization_id), role_id)


@router.patch("/{organization_id}/roles/{role_id}", response_model=OrganizationRoleResponse)
async def update_organization_role(organization_id: str, role_id: str, data: RoleUpdate, manager: Manager):
    """Update a custom organization role. Built-in roles cannot be modified."""
    return await manager.update_role(RoleScope(organization_id), role_id, data.model_dump(exclude_unset=True))


@router.delete("/{organization_id}/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization_role(organization_id: str, role_id: str, manager: Manager):
    await manager.delete_role(RoleScope(organization_id), role_id)


# ============================================================================
# Application Roles
# ============================================================================

@router.get("/{organization_id}/applications/{application_id}/roles", response_model=RoleListResponse)
async def list_application_roles(
    organization_id: str,
    application_id: str,
    manager: Manager,
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
):
    items, total = await manager.list_roles(
        RoleScope(organization_id, application_id), skip=skip, limit=limit, search=search, is_active=is_active
    )
    return RoleListResponse(items=items, total=total)


@router.post(
    "/{organization_id}/applications/{application_id}/roles",
    response_model=ApplicationRoleDetail,
    status_code=status.HTTP_201_CREATED,
)
async def create_application_role(organization_id: str, application_id: str, data: RoleCreate, manager: Manager):
    """Create an application role, optionally granting actions of that application."""
    return await manager.create_role(RoleScope(organization_id, application_id), **data.model_dump())


@router.get("/{organization_id}/applications/{application_id}/roles/{role_id}", response_model=ApplicationRoleDetail)
async def get_application_role(organization_id: str, application_id: str, role_id: str, manager: Manager):
    return await manager.get_role(RoleScope(organization_id, application_id), role_id)


@router.patch("/{organization_id}/applications/{application_id}/roles/{role_id}", response_model=ApplicationRoleDetail)
async def update_application_role(
    organization_id: str, application_id: str, role_id: str, data: RoleUpdate, manager: Manager
):
    return await manager.update_role(
        RoleScope(organization_id, application_id), role_id, data.model_dump(exclude_unset=True)
    )


@router.delete(
    "/{organization_id}/applications/{application_id}/roles/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_application_role(organization_id: str, application_id: str, role_id: str, manager: Manager):
    """Delete a role with its grants and member assignments."""
    await manager.delete_role(RoleScope(organization_id, application_id), role_id)


@router.get(
    "/{organization_id}/applications/{application_id}/roles/{role_id}/actions",
    response_model=list[ApplicationActionResponse],
)
async def get_application_role_actions(organization_id: str, application_id: str, role_id: str, manager: Manager):
    return await manager.get_role_actions(RoleScope(organization_id, application_id), role_id)


@router.put(
    "/{organization_id}/applications/{application_id}/roles/{role_id}/actions",
    response_model=list[ApplicationActionResponse],
)
async def replace_application_role_actions(
    organization_id: str, application_id: str, role_id: str, data: RoleActionsReplace, manager: Manager
):
    """Replace every action granted by the role."""
    return await manager.replace_role_actions(RoleScope(organization_id, application_id), role_id, data.action_ids)


# ============================================================================
# Member Role Assignments
# ============================================================================

@router.get(
    "/{organization_id}/applications/{application_id}/members/{member_id}/roles",
    response_model=MemberRolesResponse,
)
async def list_member_roles(organization_id: str, application_id: str, member_id: str, manager: Manager):
    roles = await manager.list_member_roles(RoleScope(organization_id, application_id), member_id)
    return MemberRolesResponse(member_id=member_id, application_id=application_id, roles=roles)


@router.post(
    "/{organization_id}/applications/{application_id}/members/{member_id}/roles",
    response_model=AssignmentResult,
)
async def assign_member_roles(
    organization_id: str, application_id: str, member_id: str, data: AssignRolesToMember, manager: Manager
):
    """Assign roles to a member. Roles the member already holds are skipped."""
    return await manager.assign_roles_to_member(RoleScope(organization_id, application_id), member_id, data.ids())


@router.delete(
    "/{organization_id}/applications/{application_id}/members/{member_id}/roles",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def unassign_member_role(
    organization_id: str,
    application_id: str,
    member_id: str,
    manager: Manager,
    role_id: str = Query(..., min_length=1),
):
    await manager.unassign_role_from_member(RoleScope(organization_id, application_id), member_id, role_id)
