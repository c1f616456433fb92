"""
Organization and member models.

A member is one user's membership in one organization and carries the
organization-level role (owner, admin, member, or a custom organization role).
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, DateTime, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum

from tenant_rbac.core.database.base import Base, TimestampMixin, generate_ulid


class OrganizationMemberRole(str, enum.Enum):
    """Built-in organization roles."""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


# Roles that inherit full access to every application of their organization
ORGANIZATION_ADMIN_ROLES = frozenset({OrganizationMemberRole.OWNER.value, OrganizationMemberRole.ADMIN.value})


class Organization(Base, TimestampMixin):
    """Tenant boundary for applications, roles and members."""
    __tablename__ = "organizations"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True, index=True)
    
    members: Mapped[list["Member"]] = relationship(
        "Member",
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    
    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name!r})>"


class Member(Base, TimestampMixin):
    """
    A user's membership in an organization.
    
    One row per (organization, user) pair.
    """
    __tablename__ = "members"
    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_members_organization_user"),
    )
    
    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    # User ids come from the authentication service
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(100), nullable=False, default=OrganizationMemberRole.MEMBER.value)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    
    organization: Mapped["Organization"] = relationship("Organization", back_populates="members")
    
    def __repr__(self) -> str:
        return f"<Member(id={self.id}, user_id={self.user_id}, org_id={self.organization_id}, role={self.role})>"
