"""
Pydantic schemas for organization membership.
"""
from datetime import datetime
from pydantic import BaseModel, Field


class MemberSyncItem(BaseModel):
    """One member record pushed by the organization service."""
    id: str = Field(..., min_length=1, max_length=64, description="Member ID")
    user_id: str = Field(..., min_length=1, max_length=64, description="User ID")
    role: str = Field(default="member", min_length=1, max_length=100, description="Organization role")
    joined_at: datetime | None = None


class MemberSyncEnvelope(BaseModel):
    """Object form of a member listing: {"members": [...]}."""
    members: list[MemberSyncItem] = Field(default_factory=list)


class MemberSyncResponse(BaseModel):
    organization_id: str
    created: int
    updated: int


class MemberResponse(BaseModel):
    """Schema for member responses."""
    id: str
    organization_id: str
    user_id: str
    role: str
    joined_at: datetime
    
    model_config = {"from_attributes": True}


class OrganizationCreate(BaseModel):
    """Organization registered by the organization service; its ID may be supplied."""
    id: str | None = Field(None, min_length=1, max_length=26)
    name: str = Field(..., min_length=1, max_length=255)
    slug: str | None = Field(None, min_length=1, max_length=255)


class OrganizationResponse(BaseModel):
    id: str
    name: str
    slug: str | None = None
    created_at: datetime
    
    model_config = {"from_attributes": True}
