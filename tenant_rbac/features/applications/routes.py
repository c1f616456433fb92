"""
Application catalogue routes.

Mounted under /organizations; every route is restricted to platform admins
and owners/admins of the organization in the path.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, status

from tenant_rbac.features.applications.dependencies import get_application_catalog
from tenant_rbac.features.applications.schemas import (
    ApplicationCreate,
    ApplicationUpdate,
    ApplicationResponse,
    ApplicationListResponse,
    ResourceCreate,
    ResourceUpdate,
    ResourceResponse,
    ActionCreate,
    ActionUpdate,
    ActionResponse,
    ApplicationActionResponse,
)
from tenant_rbac.features.applications.service import ApplicationCatalog


router = APIRouter(tags=["applications"])

Catalog = Annotated[ApplicationCatalog, Depends(get_application_catalog)]


# ============================================================================
# Applications
# ============================================================================

@router.post("/{organization_id}/applications", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
async def create_application(organization_id: str, data: ApplicationCreate, catalog: Catalog):
    """Register an application in the organization."""
    return await catalog.create_application(organization_id, **data.model_dump())


@router.get("/{organization_id}/applications", response_model=ApplicationListResponse)
async def list_applications(
    organization_id: str,
    catalog: Catalog,
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None,
):
    items, total = await catalog.list_applications(organization_id, skip=skip, limit=limit, search=search)
    return ApplicationListResponse(items=items, total=total)


@router.get("/{organization_id}/applications/{application_id}", response_model=ApplicationResponse)
async def get_application(organization_id: str, application_id: str, catalog: Catalog):
    return await catalog.get_application(organization_id, application_id)


@router.patch("/{organization_id}/applications/{application_id}", response_model=ApplicationResponse)
async def update_application(organization_id: str, application_id: str, data: ApplicationUpdate, catalog: Catalog):
    """Update application information. The key is immutable."""
    return await catalog.update_application(organization_id, application_id, data.model_dump(exclude_unset=True))


@router.delete("/{organization_id}/applications/{application_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_application(organization_id: str, application_id: str, catalog: Catalog):
    """Delete an application with its resources, actions and roles."""
    await catalog.delete_application(organization_id, application_id)


@router.get("/{organization_id}/applications/{application_id}/actions", response_model=list[ApplicationActionResponse])
async def list_application_actions(organization_id: str, application_id: str, catalog: Catalog):
    """Every action of the application, for role editors."""
    return await catalog.list_application_actions(organization_id, application_id)


# ============================================================================
# Resources
# ============================================================================

@router.post(
    "/{organization_id}/applications/{application_id}/resources",
    response_model=ResourceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_resource(organization_id: str, application_id: str, data: ResourceCreate, catalog: Catalog):
    return await catalog.create_resource(organization_id, application_id, **data.model_dump())


@router.get("/{organization_id}/applications/{application_id}/resources", response_model=list[ResourceResponse])
async def list_resources(organization_id: str, application_id: str, catalog: Catalog):
    return await catalog.list_resources(organization_id, application_id)


@router.patch(
    "/{organization_id}/applications/{application_id}/resources/{resource_id}",
    response_model=ResourceResponse,
)
async def update_resource(
    organization_id: str, application_id: str, resource_id: str, data: ResourceUpdate, catalog: Catalog
):
    return await catalog.update_resource(
        organization_id, application_id, resource_id, data.model_dump(exclude_unset=True)
    )


@router.delete(
    "/{organization_id}/applications/{application_id}/resources/{resource_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_resource(organization_id: str, application_id: str, resource_id: str, catalog: Catalog):
    await catalog.delete_resource(organization_id, application_id, resource_id)


# ============================================================================
# Actions
# ============================================================================

@router.post(
    "/{organization_id}/applications/{application_id}/resources/{resource_id}/actions",
    response_model=ActionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_action(
    organization_id: str, application_id: str, resource_id: str, data: ActionCreate, catalog: Catalog
):
    return await catalog.create_action(organization_id, application_id, resource_id, **data.model_dump())


@router.get(
    "/{organization_id}/applications/{application_id}/resources/{resource_id}/actions",
    response_model=list[ActionResponse],
)
async def list_actions(organization_id: str, application_id: str, resource_id: str, catalog: Catalog):
    return await catalog.list_actions(organization_id, application_id, resource_id)


@router.patch(
    "/{organization_id}/applications/{application_id}/resources/{resource_id}/actions/{action_id}",
    response_model=ActionResponse,
)
async def update_action(
    organization_id: str,
    application_id: str,
    resource_id: str,
    action_id: str,
    data: ActionUpdate,
    catalog: Catalog,
):
    return await catalog.update_action(
        organization_id, application_id, resource_id, action_id, data.model_dump(exclude_unset=True)
    )


@router.delete(
    "/{organization_id}/applications/{application_id}/resources/{resource_id}/actions/{action_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_action(
    organization_id: str, application_id: str, resource_id: str, action_id: str, catalog: Catalog
):
    await catalog.delete_action(organization_id, application_id, resource_id, action_id)
