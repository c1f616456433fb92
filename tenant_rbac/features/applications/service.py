"""
Application catalogue service.

Creates, updates and deletes applications, resources and actions. Keys are
validated and kept unique within their parent; deletes cascade through the
database foreign keys and drop cached permissions of the application.
"""
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_rbac.core.database.engine import is_unique_violation
from tenant_rbac.core.errors import ConflictError, ValidationError
from tenant_rbac.core.keys import validate_key, permission_string
from tenant_rbac.features.applications.models import Application, Resource, Action
from tenant_rbac.features.applications.schemas import ApplicationActionResponse
from tenant_rbac.features.audit.sink import AuditSink, notify_change
from tenant_rbac.features.permissions.cache import PermissionCache, invalidate_caches
from tenant_rbac.features.roles.scoping import ScopeValidator
from tenant_rbac.utils import get_logger


log = get_logger(__name__)

APPLICATION_FIELDS = ("name", "description", "is_active")
RESOURCE_FIELDS = ("name", "description")
ACTION_FIELDS = ("name", "description")


class ApplicationCatalog:
    """Mutations and reads of the application/resource/action graph."""

    def __init__(
        self,
        db: AsyncSession,
        caches: Sequence[PermissionCache] = (),
        audit: Optional[AuditSink] = None,
        actor_id: Optional[str] = None,
    ):
        self.db = db
        self.scope = ScopeValidator(db)
        self.caches = caches
        self.audit = audit
        self.actor_id = actor_id

    async def _exists(self, stmt) -> bool:
        result = await self.db.execute(stmt.limit(1))
        return result.first() is not None

    async def _commit(self, conflict_message: str) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if not is_unique_violation(e):
                raise
            raise ConflictError(conflict_message)

    async def _changed(self, action: str, target_type: str, target_id: str, metadata: Dict[str, Any]) -> None:
        await notify_change(self.audit, self.actor_id, action, target_type, target_id, metadata)

    def _apply_patch(self, entity, patch: Dict[str, Any], allowed: Sequence[str]) -> List[str]:
        changed = []
        for field, value in patch.items():
            if field not in allowed:
                raise ValidationError(f"Field '{field}' cannot be updated", field=field)
            if value is None and field != "description":
                raise ValidationError(f"Field '{field}' cannot be null", field=field)
            setattr(entity, field, value)
            changed.append(field)
        if not changed:
            raise ValidationError("No update data provided")
        return changed

    # ========================================================================
    # Applications
    # ========================================================================

    async def create_application(
        self,
        organization_id: str,
        key: str,
        name: str,
        description: Optional[str] = None,
        is_active: bool = True,
    ) -> Application:
        validate_key(key)
        await self.scope.organization(organization_id)
        if await self._exists(select(Application.id).where(
            and_(Application.organization_id == organization_id, Application.key == key)
        )):
            raise ConflictError("Application with this key already exists in this organization", field="key")
        if await self._exists(select(Application.id).where(
            and_(Application.organization_id == organization_id, Application.name == name)
        )):
            raise ConflictError("Application with this name already exists in this organization", field="name")
        
        application = Application(
            organization_id=organization_id, key=key, name=name, description=description, is_active=is_active
        )
        self.db.add(application)
        await self._commit("Application with this key already exists in this organization")
        await self.db.refresh(application)
        log.info(f"Created application {application.key} ({application.id}) in org {organization_id}")
        
        await self._changed("application.create", "application", application.id, {
            "organization_id": organization_id, "key": key, "name": name,
        })
        return application

    async def list_applications(
        self,
        organization_id: str,
        skip: int = 0,
        limit: int = 100,
        search: Optional[str] = None,
    ) -> tuple[List[Application], int]:
        stmt = select(Application).where(Application.organization_id == organization_id)
        if search:
            stmt = stmt.where(Application.name.ilike(f"%{search}%"))
        total = (await self.db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
        result = await self.db.execute(stmt.order_by(Application.created_at.desc()).offset(skip).limit(limit))
        return list(result.scalars().all()), total

    async def get_application(self, organization_id: str, application_id: str) -> Application:
        return await self.scope.application(organization_id, application_id)

    async def update_application(self, organization_id: str, application_id: str, patch: Dict[str, Any]) -> Application:
        application = await self.scope.application(organization_id, application_id)
        name = patch.get("name")
        if name and name != application.name and await self._exists(select(Application.id).where(
            and_(Application.organization_id == organization_id, Application.name == name)
        )):
            raise ConflictError("Application with this name already exists in this organization", field="name")
        fields = self._apply_patch(application, patch, APPLICATION_FIELDS)
        await self._commit("Application with this name already exists in this organization")
        await self.db.refresh(application)
        invalidate_caches(self.caches, application_id=application_id)
        
        await self._changed("application.update", "application", application_id, {
            "organization_id": organization_id, "fields": fields,
        })
        return application

    async def delete_application(self, organization_id: str, application_id: str) -> None:
        """Delete an application with its resources, actions, roles, grants and assignments."""
        application = await self.scope.application(organization_id, application_id)
        key = application.key
        await self.db.delete(application)
        await self.db.commit()
        invalidate_caches(self.caches, application_id=application_id)
        log.info(f"Deleted application {key} ({application_id}) from org {organization_id}")
        
        await self._changed("application.delete", "application", application_id, {
            "organization_id": organization_id, "key": key,
        })

    # ========================================================================
    # Resources
    # ========================================================================

    async def create_resource(
        self,
        organization_id: str,
        application_id: str,
        key: str,
        name: str,
        description: Optional[str] = None,
    ) -> Resource:
        await self.scope.application(organization_id, application_id)
        validate_key(key)
        if await self._exists(select(Resource.id).where(
            and_(Resource.application_id == application_id, Resource.key == key)
        )):
            raise ConflictError("Resource with this key already exists in this application", field="key")
        
        resource = Resource(application_id=application_id, key=key, name=name, description=description)
        self.db.add(resource)
        await self._commit("Resource with this key already exists in this application")
        await self.db.refresh(resource)
        
        await self._changed("resource.create", "resource", resource.id, {
            "organization_id": organization_id, "application_id": application_id, "key": key,
        })
        return resource

    async def list_resources(self, organization_id: str, application_id: str) -> List[Resource]:
        await self.scope.application(organization_id, application_id)
        result = await self.db.execute(
            select(Resource).where(Resource.application_id == application_id).order_by(Resource.key)
        )
        return list(result.scalars().all())

    async def update_resource(
        self, organization_id: str, application_id: str, resource_id: str, patch: Dict[str, Any]
    ) -> Resource:
        await self.scope.application(organization_id, application_id)
        resource = await self.scope.resource(application_id, resource_id)
        fields = self._apply_patch(resource, patch, RESOURCE_FIELDS)
        await self.db.commit()
        await self.db.refresh(resource)
        invalidate_caches(self.caches, application_id=application_id)
        
        await self._changed("resource.update", "resource", resource_id, {
            "application_id": application_id, "fields": fields,
        })
        return resource

    async def delete_resource(self, organization_id: str, application_id: str, resource_id: str) -> None:
        """Delete a resource with its actions and the grants on them."""
        await self.scope.application(organization_id, application_id)
        resource = await self.scope.resource(application_id, resource_id)
        await self.db.delete(resource)
        await self.db.commit()
        invalidate_caches(self.caches, application_id=application_id)
        
        await self._changed("resource.delete", "resource", resource_id, {
            "organization_id": organization_id, "application_id": application_id,
        })

    # ========================================================================
    # Actions
    # ========================================================================

    async def create_action(
        self,
        organization_id: str,
        application_id: str,
        resource_id: str,
        key: str,
        name: str,
        description: Optional[str] = None,
    ) -> Action:
        await self.scope.application(organization_id, application_id)
        await self.scope.resource(application_id, resource_id)
        validate_key(key)
        if await self._exists(select(Action.id).where(
            and_(Action.resource_id == resource_id, Action.key == key)
        )):
            raise ConflictError("Action with this key already exists for this resource", field="key")
        
        action = Action(resource_id=resource_id, key=key, name=name, description=description)
        self.db.add(action)
        await self._commit("Action with this key already exists for this resource")
        await self.db.refresh(action)
        
        await self._changed("action.create", "action", action.id, {
            "application_id": application_id, "resource_id": resource_id, "key": key,
        })
        return action

    async def list_actions(self, organization_id: str, application_id: str, resource_id: str) -> List[Action]:
        await self.scope.application(organization_id, application_id)
        await self.scope.resource(application_id, resource_id)
        result = await self.db.execute(
            select(Action).where(Action.resource_id == resource_id).order_by(Action.key)
        )
        return list(result.scalars().all())

    async def update_action(
        self,
        organization_id: str,
        application_id: str,
        resource_id: str,
        action_id: str,
        patch: Dict[str, Any],
    ) -> Action:
        await self.scope.application(organization_id, application_id)
        await self.scope.resource(application_id, resource_id)
        action = await self.scope.action(resource_id, action_id)
        fields = self._apply_patch(action, patch, ACTION_FIELDS)
        await self.db.commit()
        await self.db.refresh(action)
        invalidate_caches(self.caches, application_id=application_id)
        
        await self._changed("action.update", "action", action_id, {
            "application_id": application_id, "fields": fields,
        })
        return action

    async def delete_action(
        self, organization_id: str, application_id: str, resource_id: str, action_id: str
    ) -> None:
        await self.scope.application(organization_id, application_id)
        await self.scope.resource(application_id, resource_id)
        action = await self.scope.action(resource_id, action_id)
        await self.db.delete(action)
        await self.db.commit()
        invalidate_caches(self.caches, application_id=application_id)
        
        await self._changed("action.delete", "action", action_id, {
            "application_id": application_id, "resource_id": resource_id,
        })

    async def list_application_actions(
        self, organization_id: str, application_id: str
    ) -> List[ApplicationActionResponse]:
        """Every action of the application with its fully-qualified permission string."""
        application = await self.scope.application(organization_id, application_id)
        stmt = (
            select(Action.id, Action.key, Action.name, Resource.id, Resource.key, Resource.name)
            .join(Resource, Action.resource_id == Resource.id)
            .where(Resource.application_id == application_id)
            .order_by(Resource.key, Action.key)
        )
        result = await self.db.execute(stmt)
        return [
            ApplicationActionResponse(
                action_id=action_id,
                action_key=action_key,
                action_name=action_name,
                resource_id=resource_id,
                resource_key=resource_key,
                resource_name=resource_name,
                permission=permission_string(application.key, resource_key, action_key),
            )
            for action_id, action_key, action_name, resource_id, resource_key, resource_name in result.all()
        ]
