"""
Application, Resource and Action models.

An application belongs to one organization and exposes a fixed catalogue of
resources (protected nouns) and actions (protected verbs). Deleting an
application removes its resources, actions and roles; deleting a resource
removes its actions.
"""
from sqlalchemy import String, Text, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tenant_rbac.core.database.base import Base, TimestampMixin, generate_ulid


class Application(Base, TimestampMixin):
    """Tenant-owned integration with its own resource/action catalogue."""
    __tablename__ = "applications"
    __table_args__ = (
        UniqueConstraint("organization_id", "key", name="uq_applications_organization_key"),
        UniqueConstraint("organization_id", "name", name="uq_applications_organization_name"),
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
    
    resources: Mapped[list["Resource"]] = relationship(
        "Resource",
        back_populates="application",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    
    def __repr__(self) -> str:
        return f"<Application(id={self.id}, key={self.key!r}, org_id={self.organization_id})>"


class Resource(Base, TimestampMixin):
    """Protected noun within an application, e.g. ``orders``."""
    __tablename__ = "resources"
    __table_args__ = (
        UniqueConstraint("application_id", "key", name="uq_resources_application_key"),
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
    
    application: Mapped["Application"] = relationship("Application", back_populates="resources")
    actions: Mapped[list["Action"]] = relationship(
        "Action",
        back_populates="resource",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    
    def __repr__(self) -> str:
        return f"<Resource(id={self.id}, key={self.key!r}, app_id={self.application_id})>"


class Action(Base, TimestampMixin):
    """Protected verb on a resource, e.g. ``create``."""
    __tablename__ = "actions"
    __table_args__ = (
        UniqueConstraint("resource_id", "key", name="uq_actions_resource_key"),
    )
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    resource_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("resources.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    key: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    
    resource: Mapped["Resource"] = relationship("Resource", back_populates="actions")
    
    def __repr__(self) -> str:
        return f"<Action(id={self.id}, key={self.key!r}, resource_id={self.resource_id})>"
