"""
Pydantic schemas for the application catalogue.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from tenant_rbac.core.keys import is_valid_key, KEY_FORMAT_HINT


def _check_key(v: str) -> str:
    if not is_valid_key(v):
        raise ValueError(KEY_FORMAT_HINT)
    return v


# ============================================================================
# Application Schemas
# ============================================================================

class ApplicationCreate(BaseModel):
    key: str = Field(..., min_length=1, max_length=50, description="Application key, e.g. 'billing'")
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    is_active: bool = True

    @field_validator('key')
    @classmethod
    def key_format(cls, v: str) -> str:
        """Validate key format."""
        return _check_key(v)


class ApplicationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    is_active: Optional[bool] = None


class ApplicationResponse(BaseModel):
    id: str
    organization_id: str
    key: str
    name: str
    description: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ApplicationListResponse(BaseModel):
    items: list[ApplicationResponse]
    total: int


# ============================================================================
# Resource Schemas
# ============================================================================

class ResourceCreate(BaseModel):
    key: str = Field(..., min_length=1, max_length=50, description="Resource key, e.g. 'invoices'")
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)

    @field_validator('key')
    @classmethod
    def key_format(cls, v: str) -> str:
        """Validate key format."""
        return _check_key(v)


class ResourceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)


class ResourceResponse(BaseModel):
    id: str
    application_id: str
    key: str
    name: str
    description: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Action Schemas
# ============================================================================

class ActionCreate(BaseModel):
    key: str = Field(..., min_length=1, max_length=50, description="Action key, e.g. 'approve'")
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)

    @field_validator('key')
    @classmethod
    def key_format(cls, v: str) -> str:
        """Validate key format."""
        return _check_key(v)


class ActionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)


class ActionResponse(BaseModel):
    id: str
    resource_id: str
    key: str
    name: str
    description: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ApplicationActionResponse(BaseModel):
    """Action of an application with its resource and permission string."""
    action_id: str
    action_key: str
    action_name: str
    resource_id: str
    resource_key: str
    resource_name: str
    permission: str
