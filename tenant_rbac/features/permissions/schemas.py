"""
Pydantic schemas for permission resolution and checks.
"""
from typing import List, Optional
from pydantic import BaseModel, Field


class RoleRef(BaseModel):
    """Role through which permissions were resolved."""
    role_id: Optional[str] = None
    role_key: str
    role_name: str


class ResolvedPermission(BaseModel):
    role_key: str
    role_name: str
    resource_key: str
    resource_name: str
    action_key: str
    action_name: str


class ResolvedPermissions(BaseModel):
    """Effective permissions of a member inside an application."""
    member_id: str
    application_id: Optional[str] = None
    roles: List[RoleRef] = Field(default_factory=list)
    permissions: List[ResolvedPermission] = Field(default_factory=list)
    reason: Optional[str] = None


class PermissionCheckResponse(BaseModel):
    """Answer to "may this member perform action X on resource Y"."""
    has_permission: bool
    member_id: str
    application_key: str
    resource_key: str
    action_key: str
    reason: Optional[str] = None
    cached: bool = False
