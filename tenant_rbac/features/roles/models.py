"""
Role models and association tables.

- ApplicationRole: scoped to one application, bundles action grants.
- OrganizationRole: custom organization-wide role carrying a permission map
  over the organization statement catalogue.
- application_role_actions: role-action grants.
- member_application_roles: application roles held by members.
"""
from typing import Any, Dict
from sqlalchemy import String, Text, Boolean, ForeignKey, Table, Column, JSON, DateTime, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from tenant_rbac.core.database.base import Base, TimestampMixin, generate_ulid


# ============================================================================
# Association Tables
# ============================================================================

# Role-Action grants; the action must belong to the role's application
application_role_actions = Table(
    "application_role_actions",
    Base.metadata,
    Column("role_id", String(26), ForeignKey("application_roles.id", ondelete="CASCADE"), primary_key=True),
    Column("action_id", String(26), ForeignKey("actions.id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

# Member-Role assignments; one row per (member, role) pair
member_application_roles = Table(
    "member_application_roles",
    Base.metadata,
    Column("member_id", String(64), ForeignKey("members.id", ondelete="CASCADE"), primary_key=True),
    Column("application_role_id", String(26), ForeignKey("application_roles.id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)


# ============================================================================
# Core Models
# ============================================================================

class ApplicationRole(Base, TimestampMixin):
    """
    Role scoped to a single application.
    
    Examples: order_reviewer, billing_approver
    """
    __tablename__ = "application_roles"
    __table_args__ = (
        UniqueConstraint("application_id", "key", name="uq_application_roles_application_key"),
    )
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    application_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    key: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    def __repr__(self) -> str:
        return f"<ApplicationRole(id={self.id}, key={self.key!r}, app_id={self.application_id})>"


class OrganizationRole(Base, TimestampMixin):
    """
    Custom organization-level role.
    
    ``permissions`` maps organization statements to allowed actions,
    e.g. {"member": ["create"], "invitation": ["create", "cancel"]}.
    """
    __tablename__ = "organization_roles"
    __table_args__ = (
        UniqueConstraint("organization_id", "key", name="uq_organization_roles_organization_key"),
    )
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    key: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    permissions: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    
    def __repr__(self) -> str:
        return f"<OrganizationRole(id={self.id}, key={self.key!r}, org_id={self.organization_id})>"
