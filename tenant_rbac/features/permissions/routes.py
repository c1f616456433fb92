"""
Permission query routes.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query

from tenant_rbac.features.identity.auth import Caller
from tenant_rbac.features.identity.dependencies import get_current_caller
from tenant_rbac.features.permissions.dependencies import get_permission_resolver
from tenant_rbac.features.permissions.resolver import PermissionResolver
from tenant_rbac.features.permissions.schemas import PermissionCheckResponse, ResolvedPermissions


router = APIRouter(tags=["rbac"])


@router.get("/permissions", response_model=ResolvedPermissions)
async def get_member_permissions(
    caller: Annotated[Caller, Depends(get_current_caller)],
    resolver: Annotated[PermissionResolver, Depends(get_permission_resolver)],
    member_id: str = Query(..., min_length=1),
    application_key: Optional[str] = Query(None, min_length=1),
    application_id: Optional[str] = Query(None, min_length=1),
):
    """
    Effective permissions of a member in one application.
    
    Members may query themselves; platform admins may query anyone.
    """
    return await resolver.resolve_permissions(
        caller, member_id, application_id=application_id, application_key=application_key
    )


@router.get("/permissions/check", response_model=PermissionCheckResponse)
async def check_member_permission(
    caller: Annotated[Caller, Depends(get_current_caller)],
    resolver: Annotated[PermissionResolver, Depends(get_permission_resolver)],
    member_id: str = Query(..., min_length=1),
    application_key: str = Query(..., min_length=1),
    resource_key: str = Query(..., min_length=1),
    action_key: str = Query(..., min_length=1),
):
    """Decide a single application:resource:action permission."""
    return await resolver.check_permission(caller, member_id, application_key, resource_key, action_key)
