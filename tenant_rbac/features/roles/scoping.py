"""
Tenant scoping checks.

Every mutation path asks this module whether an entity belongs where the
caller says it does. Missing entities raise NotFoundError; entities that
exist under a different parent raise ScopeReferenceError.
"""
from typing import Iterable, List, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_rbac.core.errors import NotFoundError, ScopeReferenceError
from tenant_rbac.features.applications.models import Application, Resource, Action
from tenant_rbac.features.organizations.models import Member, Organization
from tenant_rbac.features.roles.models import ApplicationRole, OrganizationRole


def ensure_in_scope(entity, attribute: str, expected: str, label: str, parent_label: str) -> None:
    """Raise ScopeReferenceError if ``entity.<attribute>`` is not ``expected``."""
    actual = getattr(entity, attribute)
    if actual != expected:
        raise ScopeReferenceError(
            f"{label} {entity.id} does not belong to {parent_label} {expected}",
            field=f"{label.lower().replace(' ', '_')}_id",
        )


class ScopeValidator:
    """Scoping checks bound to one database session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get(self, model, entity_id: str, label: str):
        entity = await self.db.get(model, entity_id)
        if entity is None:
            raise NotFoundError(f"{label} not found")
        return entity

    async def organization(self, organization_id: str) -> Organization:
        return await self._get(Organization, organization_id, "Organization")

    async def application(self, organization_id: str, application_id: str) -> Application:
        application = await self._get(Application, application_id, "Application")
        ensure_in_scope(application, "organization_id", organization_id, "Application", "organization")
        return application

    async def resource(self, application_id: str, resource_id: str) -> Resource:
        resource = await self._get(Resource, resource_id, "Resource")
        ensure_in_scope(resource, "application_id", application_id, "Resource", "application")
        return resource

    async def action(self, resource_id: str, action_id: str) -> Action:
        action = await self._get(Action, action_id, "Action")
        ensure_in_scope(action, "resource_id", resource_id, "Action", "resource")
        return action

    async def member(self, organization_id: str, member_id: str) -> Member:
        member = await self.db.get(Member, member_id)
        if member is None or member.organization_id != organization_id:
            raise NotFoundError("Member not found in this organization")
        return member

    async def organization_role(self, organization_id: str, role_id: str) -> OrganizationRole:
        role = await self.db.get(OrganizationRole, role_id)
        if role is None or role.organization_id != organization_id:
            raise NotFoundError("Role not found in this organization")
        return role

    async def actions_in_application(self, application_id: str, action_ids: Iterable[str]) -> List[str]:
        """
        Check that every action belongs to a resource of ``application_id``.
        
        Returns:
            The distinct action ids, in first-seen order
        
        Raises:
            ScopeReferenceError: any action is unknown or belongs to another application
        """
        distinct_ids = list(dict.fromkeys(action_ids))
        if not distinct_ids:
            return []
        stmt = (
            select(Action.id)
            .join(Resource, Action.resource_id == Resource.id)
            .where(Action.id.in_(distinct_ids), Resource.application_id == application_id)
        )
        result = await self.db.execute(stmt)
        found = set(result.scalars().all())
        missing = [action_id for action_id in distinct_ids if action_id not in found]
        if missing:
            raise ScopeReferenceError(
                f"Actions {missing} do not belong to application {application_id}",
                field="action_ids",
            )
        return distinct_ids

    async def roles_in_application(self, application_id: str, role_ids: Sequence[str]) -> List[ApplicationRole]:
        """
        Load roles and check each belongs to ``application_id``.
        
        Raises:
            ScopeReferenceError: a role is unknown or belongs to another application
        """
        distinct_ids = list(dict.fromkeys(role_ids))
        result = await self.db.execute(select(ApplicationRole).where(ApplicationRole.id.in_(distinct_ids)))
        roles = {role.id: role for role in result.scalars().all()}
        ordered = []
        for role_id in distinct_ids:
            role = roles.get(role_id)
            if role is None or role.application_id != application_id:
                raise ScopeReferenceError(
                    f"Role {role_id} not found for application {application_id}",
                    field="role_ids",
                )
            ordered.append(role)
        return ordered
