"""
Pydantic schemas for roles and member role assignments.
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from tenant_rbac.core.keys import is_valid_key, KEY_FORMAT_HINT
from tenant_rbac.features.applications.schemas import ApplicationActionResponse


# ============================================================================
# Role Schemas
# ============================================================================

class RoleCreate(BaseModel):
    """Schema for creating an application or organization role."""
    key: str = Field(..., min_length=1, max_length=50, description="Role key, e.g. 'order_reviewer'")
    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    description: Optional[str] = Field(None, max_length=1000)
    is_active: bool = True
    action_ids: List[str] = Field(default_factory=list, description="Actions granted (application roles)")
    permissions: Optional[Dict[str, List[str]]] = Field(None, description="Statement map (organization roles)")

    @field_validator('key')
    @classmethod
    def key_format(cls, v: str) -> str:
        """Validate role key format."""
        if not is_valid_key(v):
            raise ValueError(KEY_FORMAT_HINT)
        return v

    @field_validator('name')
    @classmethod
    def name_stripped(cls, v: str) -> str:
        return v.strip()


class RoleUpdate(BaseModel):
    """Schema for updating a role; unset fields are left alone."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    is_active: Optional[bool] = None
    action_ids: Optional[List[str]] = None
    permissions: Optional[Dict[str, List[str]]] = None


class RoleActionsReplace(BaseModel):
    action_ids: List[str] = Field(..., description="Complete set of granted action IDs")


class ApplicationRoleResponse(BaseModel):
    """Application role with its denormalized grant count."""
    id: str
    application_id: str
    key: str
    name: str
    description: Optional[str] = None
    is_active: bool
    action_count: int = 0
    permissions: List[str] = Field(default_factory=list, description="app:resource:action strings")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ApplicationRoleDetail(ApplicationRoleResponse):
    actions: List[ApplicationActionResponse] = Field(default_factory=list)


class OrganizationRoleResponse(BaseModel):
    """Built-in or custom organization role."""
    id: str
    organization_id: Optional[str] = None
    key: str
    name: str
    description: Optional[str] = None
    is_active: bool = True
    is_built_in: bool = False
    permissions: Dict[str, List[str]] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RoleListResponse(BaseModel):
    items: List[ApplicationRoleResponse]
    total: int


class OrganizationRoleListResponse(BaseModel):
    items: List[OrganizationRoleResponse]
    total: int


# ============================================================================
# Assignment Schemas
# ============================================================================

class AssignRolesToMember(BaseModel):
    """Assign one role (role_id) or several (role_ids) to a member."""
    role_id: Optional[str] = Field(None, min_length=1, max_length=100)
    role_ids: Optional[List[str]] = None

    @model_validator(mode="after")
    def require_roles(self):
        if not self.role_ids and not self.role_id:
            raise ValueError("role_id or role_ids is required")
        return self

    def ids(self) -> List[str]:
        return self.role_ids or [self.role_id]


class AssignmentResult(BaseModel):
    assigned_count: int


class MemberRoleResponse(BaseModel):
    role_id: str
    role_key: str
    role_name: str
    assigned_at: Optional[datetime] = None


class MemberRolesResponse(BaseModel):
    member_id: str
    application_id: str
    roles: List[MemberRoleResponse]
