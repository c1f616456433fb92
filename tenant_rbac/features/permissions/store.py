"""
Read path of the entity store used by permission resolution.

Every method is a single query; the resolver never issues one query per role.
"""
from typing import List, NamedTuple, Optional, Sequence

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_rbac.features.applications.models import Application, Resource, Action
from tenant_rbac.features.roles.models import ApplicationRole, OrganizationRole, application_role_actions


class GrantRow(NamedTuple):
    role_id: str
    resource_key: str
    resource_name: str
    action_key: str
    action_name: str


class PermissionStore:
    """SQLAlchemy-backed reads for the resolver."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_application(
        self,
        organization_id: str,
        application_id: Optional[str] = None,
        application_key: Optional[str] = None,
    ) -> Optional[Application]:
        """Application by id (preferred) or key, restricted to one organization."""
        stmt = select(Application).where(Application.organization_id == organization_id)
        if application_id:
            stmt = stmt.where(Application.id == application_id)
        elif application_key:
            stmt = stmt.where(Application.key == application_key)
        else:
            return None
        result = await self.db.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def get_roles(self, role_ids: Sequence[str], application_id: str) -> List[ApplicationRole]:
        """Active roles of ``application_id`` among ``role_ids``, oldest first."""
        if not role_ids:
            return []
        stmt = (
            select(ApplicationRole)
            .where(
                and_(
                    ApplicationRole.id.in_(list(role_ids)),
                    ApplicationRole.application_id == application_id,
                    ApplicationRole.is_active.is_(True),
                )
            )
            .order_by(ApplicationRole.created_at, ApplicationRole.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_role_grants(self, role_ids: Sequence[str]) -> List[GrantRow]:
        """All action grants of the given roles joined to their resources, in one read."""
        if not role_ids:
            return []
        stmt = (
            select(
                application_role_actions.c.role_id,
                Resource.key,
                Resource.name,
                Action.key,
                Action.name,
            )
            .join(Action, application_role_actions.c.action_id == Action.id)
            .join(Resource, Action.resource_id == Resource.id)
            .where(application_role_actions.c.role_id.in_(list(role_ids)))
            .order_by(Resource.key, Action.key)
        )
        result = await self.db.execute(stmt)
        return [GrantRow(*row) for row in result.all()]

    async def has_grant(
        self,
        role_ids: Sequence[str],
        application_id: str,
        resource_key: str,
        action_key: str,
    ) -> bool:
        """True if any active role in ``role_ids`` grants ``resource_key:action_key``."""
        if not role_ids:
            return False
        stmt = (
            select(application_role_actions.c.role_id)
            .join(ApplicationRole, application_role_actions.c.role_id == ApplicationRole.id)
            .join(Action, application_role_actions.c.action_id == Action.id)
            .join(Resource, Action.resource_id == Resource.id)
            .where(
                and_(
                    application_role_actions.c.role_id.in_(list(role_ids)),
                    ApplicationRole.is_active.is_(True),
                    Resource.application_id == application_id,
                    Resource.key == resource_key,
                    Action.key == action_key,
                )
            )
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def get_organization_role(self, organization_id: str, key: str) -> Optional[OrganizationRole]:
        result = await self.db.execute(
            select(OrganizationRole).where(
                and_(
                    OrganizationRole.organization_id == organization_id,
                    OrganizationRole.key == key,
                    OrganizationRole.is_active.is_(True),
                )
            )
        )
        return result.scalar_one_or_none()
