"""
Role-action assignment manager.

Validates and mutates application roles, their action grants, custom
organization roles, and member role assignments. Every mutation is committed
first, then cached permissions of the affected application or member are
dropped and the audit sink is notified.
"""
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence

from sqlalchemy import select, delete, insert, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_rbac.core.database.engine import is_unique_violation
from tenant_rbac.core.errors import ConflictError, NotFoundError, ValidationError
from tenant_rbac.core.keys import validate_key, permission_string
from tenant_rbac.features.applications.models import Application, Resource, Action
from tenant_rbac.features.applications.schemas import ApplicationActionResponse
from tenant_rbac.features.audit.sink import AuditSink, notify_change
from tenant_rbac.features.permissions.cache import PermissionCache, invalidate_caches
from tenant_rbac.features.roles.builtin import (
    BUILT_IN_ORGANIZATION_ROLES,
    RESERVED_ROLE_NAMES,
    ensure_not_reserved,
    validate_permission_map,
)
from tenant_rbac.features.roles.models import (
    ApplicationRole,
    OrganizationRole,
    application_role_actions,
    member_application_roles,
)
from tenant_rbac.features.roles.schemas import (
    ApplicationRoleDetail,
    ApplicationRoleResponse,
    AssignmentResult,
    MemberRoleResponse,
    OrganizationRoleResponse,
)
from tenant_rbac.features.roles.scoping import ScopeValidator
from tenant_rbac.utils import get_logger


log = get_logger(__name__)

APPLICATION_ROLE_FIELDS = ("name", "description", "is_active", "action_ids")
ORGANIZATION_ROLE_FIELDS = ("name", "description", "is_active", "permissions")


class RoleScope(NamedTuple):
    """Where a role lives: an organization, optionally narrowed to one application."""
    organization_id: str
    application_id: Optional[str] = None

    @property
    def is_application(self) -> bool:
        return self.application_id is not None


def built_in_organization_roles() -> List[OrganizationRoleResponse]:
    return [
        OrganizationRoleResponse(
            id=role["id"],
            key=role["role"],
            name=role["role"],
            description=role["description"],
            is_built_in=True,
            permissions=role["permissions"],
        )
        for role in BUILT_IN_ORGANIZATION_ROLES
    ]


class RoleManager:
    """Role definitions, grants and member assignments for one session."""

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

    async def _changed(self, action: str, target_type: str, target_id: str, metadata: Dict[str, Any]) -> None:
        await notify_change(self.audit, self.actor_id, action, target_type, target_id, metadata)

    # ========================================================================
    # Read helpers
    # ========================================================================

    async def _load_application_role(self, scope: RoleScope, role_id: str) -> ApplicationRole:
        """Role of the scoped application; anything outside the tenant is reported missing."""
        result = await self.db.execute(
            select(ApplicationRole)
            .join(Application, ApplicationRole.application_id == Application.id)
            .where(
                and_(
                    ApplicationRole.id == role_id,
                    ApplicationRole.application_id == scope.application_id,
                    Application.organization_id == scope.organization_id,
                )
            )
        )
        role = result.scalar_one_or_none()
        if role is None:
            raise NotFoundError("Role not found", field="role_id")
        return role

    async def _load_organization_role(self, scope: RoleScope, role_id: str) -> OrganizationRole:
        if role_id in RESERVED_ROLE_NAMES:
            raise ValidationError("Built-in roles cannot be modified", field="role_id")
        return await self.scope.organization_role(scope.organization_id, role_id)

    async def _role_grants(self, role_ids: Iterable[str]) -> Dict[str, List[ApplicationActionResponse]]:
        """Grants of several roles in one read, grouped by role id."""
        role_ids = list(role_ids)
        grouped: Dict[str, List[ApplicationActionResponse]] = {role_id: [] for role_id in role_ids}
        if not role_ids:
            return grouped
        stmt = (
            select(
                application_role_actions.c.role_id,
                Action.id, Action.key, Action.name,
                Resource.id, Resource.key, Resource.name,
                Application.key,
            )
            .join(Action, application_role_actions.c.action_id == Action.id)
            .join(Resource, Action.resource_id == Resource.id)
            .join(Application, Resource.application_id == Application.id)
            .where(application_role_actions.c.role_id.in_(role_ids))
            .order_by(Resource.key, Action.key)
        )
        result = await self.db.execute(stmt)
        for role_id, action_id, action_key, action_name, resource_id, resource_key, resource_name, app_key in result.all():
            grouped[role_id].append(ApplicationActionResponse(
                action_id=action_id,
                action_key=action_key,
                action_name=action_name,
                resource_id=resource_id,
                resource_key=resource_key,
                resource_name=resource_name,
                permission=permission_string(app_key, resource_key, action_key),
            ))
        return grouped

    def _application_role_view(self, role: ApplicationRole, grants: List[ApplicationActionResponse]) -> ApplicationRoleDetail:
        return ApplicationRoleDetail(
            id=role.id,
            application_id=role.application_id,
            key=role.key,
            name=role.name,
            description=role.description,
            is_active=role.is_active,
            action_count=len(grants),
            permissions=[grant.permission for grant in grants],
            actions=grants,
            created_at=role.created_at,
            updated_at=role.updated_at,
        )

    async def get_role(self, scope: RoleScope, role_id: str):
        if scope.is_application:
            await self.scope.application(scope.organization_id, scope.application_id)
            role = await self._load_application_role(scope, role_id)
            grants = await self._role_grants([role.id])
            return self._application_role_view(role, grants[role.id])
        for built_in in built_in_organization_roles():
            if built_in.id == role_id:
                return built_in
        role = await self._load_organization_role(scope, role_id)
        return OrganizationRoleResponse.model_validate(role)

    async def get_role_actions(self, scope: RoleScope, role_id: str) -> List[ApplicationActionResponse]:
        await self.scope.application(scope.organization_id, scope.application_id)
        role = await self._load_application_role(scope, role_id)
        return (await self._role_grants([role.id]))[role.id]

    async def list_roles(
        self,
        scope: RoleScope,
        skip: int = 0,
        limit: int = 100,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> tuple[list, int]:
        """
        Roles of a scope.
        
        Application scope: application roles with action counts.
        Organization scope: built-in roles first, then custom roles.
        """
        if not scope.is_application:
            stmt = select(OrganizationRole).where(OrganizationRole.organization_id == scope.organization_id)
            if search:
                stmt = stmt.where(OrganizationRole.name.ilike(f"%{search}%"))
            if is_active is not None:
                stmt = stmt.where(OrganizationRole.is_active.is_(is_active))
            result = await self.db.execute(stmt.order_by(OrganizationRole.created_at.desc()))
            custom = [OrganizationRoleResponse.model_validate(role) for role in result.scalars().all()]
            roles = built_in_organization_roles() + custom
            return roles[skip:skip + limit], len(roles)
        
        await self.scope.application(scope.organization_id, scope.application_id)
        stmt = select(ApplicationRole).where(ApplicationRole.application_id == scope.application_id)
        if search:
            stmt = stmt.where(ApplicationRole.name.ilike(f"%{search}%"))
        if is_active is not None:
            stmt = stmt.where(ApplicationRole.is_active.is_(is_active))
        total = (await self.db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
        result = await self.db.execute(
            stmt.order_by(ApplicationRole.created_at.desc(), ApplicationRole.id).offset(skip).limit(limit)
        )
        roles = list(result.scalars().all())
        grants = await self._role_grants(role.id for role in roles)
        items = [
            ApplicationRoleResponse(**self._application_role_view(role, grants[role.id]).model_dump(exclude={"actions"}))
            for role in roles
        ]
        return items, total

    # ========================================================================
    # Role mutations
    # ========================================================================

    async def create_role(
        self,
        scope: RoleScope,
        key: str,
        name: str,
        description: Optional[str] = None,
        action_ids: Sequence[str] = (),
        is_active: bool = True,
        permissions: Optional[Dict[str, List[str]]] = None,
    ):
        """
        Create an application role (with grants) or a custom organization role.
        
        Raises:
            ValidationError: malformed key, reserved name, or grants on an organization role
            ConflictError: key already used in this scope
            ScopeReferenceError: an action belongs to another application
        """
        validate_key(key)
        ensure_not_reserved(key, "key")
        ensure_not_reserved(name, "name")
        
        if not scope.is_application:
            return await self._create_organization_role(scope, key, name, description, action_ids, is_active, permissions)
        
        if permissions:
            raise ValidationError("Application roles carry action grants, not a permission map", field="permissions")
        await self.scope.application(scope.organization_id, scope.application_id)
        existing = await self.db.execute(
            select(ApplicationRole.id).where(
                and_(ApplicationRole.application_id == scope.application_id, ApplicationRole.key == key)
            ).limit(1)
        )
        if existing.first():
            raise ConflictError("Role with this key already exists for this application", field="key")
        distinct_action_ids = await self.scope.actions_in_application(scope.application_id, action_ids)
        
        role = ApplicationRole(
            application_id=scope.application_id,
            key=key,
            name=name,
            description=description,
            is_active=is_active,
        )
        self.db.add(role)
        try:
            await self.db.flush()
            if distinct_action_ids:
                await self.db.execute(
                    insert(application_role_actions),
                    [{"role_id": role.id, "action_id": action_id} for action_id in distinct_action_ids],
                )
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if not is_unique_violation(e):
                raise
            raise ConflictError("Role with this key already exists for this application", field="key")
        await self.db.refresh(role)
        log.info(f"Created role {key} ({role.id}) in app {scope.application_id} with {len(distinct_action_ids)} actions")
        
        await self._changed("role.create", "role", role.id, {
            "organization_id": scope.organization_id,
            "application_id": scope.application_id,
            "key": key,
            "name": name,
            "action_ids": distinct_action_ids,
        })
        grants = await self._role_grants([role.id])
        return self._application_role_view(role, grants[role.id])

    async def _create_organization_role(
        self,
        scope: RoleScope,
        key: str,
        name: str,
        description: Optional[str],
        action_ids: Sequence[str],
        is_active: bool,
        permissions: Optional[Dict[str, List[str]]],
    ) -> OrganizationRoleResponse:
        if action_ids:
            raise ValidationError("Organization roles carry a permission map, not action grants", field="action_ids")
        normalized = validate_permission_map(permissions)
        await self.scope.organization(scope.organization_id)
        existing = await self.db.execute(
            select(OrganizationRole.id).where(
                and_(OrganizationRole.organization_id == scope.organization_id, OrganizationRole.key == key)
            ).limit(1)
        )
        if existing.first():
            raise ConflictError("Role already exists in this organization", field="key")
        
        role = OrganizationRole(
            organization_id=scope.organization_id,
            key=key,
            name=name,
            description=description,
            is_active=is_active,
            permissions=normalized,
        )
        self.db.add(role)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if not is_unique_violation(e):
                raise
            raise ConflictError("Role already exists in this organization", field="key")
        await self.db.refresh(role)
        log.info(f"Created organization role {key} ({role.id}) in org {scope.organization_id}")
        
        await self._changed("role.create", "organization_role", role.id, {
            "organization_id": scope.organization_id, "key": key, "name": name,
        })
        return OrganizationRoleResponse.model_validate(role)

    async def update_role(self, scope: RoleScope, role_id: str, patch: Dict[str, Any]):
        """
        Patch a role. ``action_ids`` (application roles) replaces the grant set;
        ``permissions`` (organization roles) replaces the statement map.
        
        Raises:
            ValidationError: empty patch, unknown field, or reserved name
            NotFoundError: role outside the scope
        """
        allowed = APPLICATION_ROLE_FIELDS if scope.is_application else ORGANIZATION_ROLE_FIELDS
        unknown = [field for field in patch if field not in allowed]
        if unknown:
            raise ValidationError(f"Field '{unknown[0]}' cannot be updated", field=unknown[0])
        if not patch:
            raise ValidationError("No update data provided")
        nulls = [field for field, value in patch.items() if value is None and field != "description"]
        if nulls:
            raise ValidationError(f"Field '{nulls[0]}' cannot be null", field=nulls[0])
        if "name" in patch:
            ensure_not_reserved(patch["name"], "name")
        
        if not scope.is_application:
            role = await self._load_organization_role(scope, role_id)
            for field, value in patch.items():
                if field == "permissions":
                    value = validate_permission_map(value)
                setattr(role, field, value)
            await self.db.commit()
            await self.db.refresh(role)
            await self._changed("role.update", "organization_role", role_id, {
                "organization_id": scope.organization_id, "fields": sorted(patch),
            })
            return OrganizationRoleResponse.model_validate(role)
        
        await self.scope.application(scope.organization_id, scope.application_id)
        role = await self._load_application_role(scope, role_id)
        action_ids = patch.get("action_ids")
        distinct_action_ids = None
        if action_ids is not None:
            distinct_action_ids = await self.scope.actions_in_application(scope.application_id, action_ids)
            await self._replace_grants(role.id, distinct_action_ids)
        for field, value in patch.items():
            if field != "action_ids":
                setattr(role, field, value)
        await self.db.commit()
        await self.db.refresh(role)
        invalidate_caches(self.caches, application_id=scope.application_id)
        
        metadata = {
            "organization_id": scope.organization_id,
            "application_id": scope.application_id,
            "fields": sorted(patch),
        }
        if distinct_action_ids is not None:
            metadata["action_ids"] = distinct_action_ids
        await self._changed("role.update", "role", role_id, metadata)
        grants = await self._role_grants([role.id])
        return self._application_role_view(role, grants[role.id])

    async def _replace_grants(self, role_id: str, action_ids: List[str]) -> None:
        await self.db.execute(delete(application_role_actions).where(application_role_actions.c.role_id == role_id))
        if action_ids:
            await self.db.execute(
                insert(application_role_actions),
                [{"role_id": role_id, "action_id": action_id} for action_id in action_ids],
            )

    async def replace_role_actions(
        self, scope: RoleScope, role_id: str, action_ids: Sequence[str]
    ) -> List[ApplicationActionResponse]:
        """Replace every grant of an application role."""
        await self.scope.application(scope.organization_id, scope.application_id)
        role = await self._load_application_role(scope, role_id)
        distinct_action_ids = await self.scope.actions_in_application(scope.application_id, action_ids)
        await self._replace_grants(role.id, distinct_action_ids)
        await self.db.commit()
        invalidate_caches(self.caches, application_id=scope.application_id)
        
        await self._changed("role.actions.replace", "role", role_id, {
            "organization_id": scope.organization_id,
            "application_id": scope.application_id,
            "action_count": len(distinct_action_ids),
            "action_ids": distinct_action_ids,
        })
        return (await self._role_grants([role.id]))[role.id]

    async def delete_role(self, scope: RoleScope, role_id: str) -> None:
        """
        Delete a role with its grants and member assignments.
        
        Raises:
            NotFoundError: role does not exist within the caller's tenant
        """
        if not scope.is_application:
            role = await self._load_organization_role(scope, role_id)
            await self.db.delete(role)
            await self.db.commit()
            await self._changed("role.delete", "organization_role", role_id, {
                "organization_id": scope.organization_id,
            })
            return
        
        role = await self._load_application_role(scope, role_id)
        await self.db.execute(delete(application_role_actions).where(application_role_actions.c.role_id == role.id))
        await self.db.execute(
            delete(member_application_roles).where(member_application_roles.c.application_role_id == role.id)
        )
        await self.db.delete(role)
        await self.db.commit()
        invalidate_caches(self.caches, application_id=scope.application_id)
        log.info(f"Deleted role {role_id} from app {scope.application_id}")
        
        await self._changed("role.delete", "role", role_id, {
            "organization_id": scope.organization_id,
            "application_id": scope.application_id,
        })

    # ========================================================================
    # Member assignments
    # ========================================================================

    async def assign_roles_to_member(
        self, scope: RoleScope, member_id: str, role_ids: Sequence[str]
    ) -> AssignmentResult:
        """
        Assign application roles to a member; already-held roles are skipped.
        
        Raises:
            NotFoundError: member not in the organization
            ScopeReferenceError: a role does not belong to the application
        """
        if not role_ids:
            raise ValidationError("role_id or role_ids is required", field="role_ids")
        await self.scope.application(scope.organization_id, scope.application_id)
        await self.scope.member(scope.organization_id, member_id)
        roles = await self.scope.roles_in_application(scope.application_id, role_ids)
        requested_ids = [role.id for role in roles]

        new_ids = await self._unheld_role_ids(member_id, requested_ids)
        try:
            await self._insert_assignments(member_id, new_ids)
        except IntegrityError as e:
            # A concurrent request assigned some of these roles first
            await self.db.rollback()
            if not is_unique_violation(e):
                raise
            log.info(f"Concurrent assignment for member {member_id}, re-reading held roles")
            new_ids = await self._unheld_role_ids(member_id, requested_ids)
            await self._insert_assignments(member_id, new_ids)
        invalidate_caches(self.caches, member_id=member_id, application_id=scope.application_id)

        await self._changed("member.roles.assign", "member", member_id, {
            "organization_id": scope.organization_id,
            "application_id": scope.application_id,
            "role_ids": requested_ids,
            "assigned_count": len(new_ids),
        })
        return AssignmentResult(assigned_count=len(new_ids))

    async def _unheld_role_ids(self, member_id: str, role_ids: List[str]) -> List[str]:
        result = await self.db.execute(
            select(member_application_roles.c.application_role_id).where(
                and_(
                    member_application_roles.c.member_id == member_id,
                    member_application_roles.c.application_role_id.in_(role_ids),
                )
            )
        )
        held = set(result.scalars().all())
        return [role_id for role_id in role_ids if role_id not in held]

    async def _insert_assignments(self, member_id: str, role_ids: List[str]) -> None:
        if role_ids:
            await self.db.execute(
                insert(member_application_roles),
                [{"member_id": member_id, "application_role_id": role_id} for role_id in role_ids],
            )
        await self.db.commit()

    async def unassign_role_from_member(self, scope: RoleScope, member_id: str, role_id: str) -> bool:
        """
        Remove one role from a member. Removing a role that is not held is a no-op.
        
        Returns:
            True if an assignment row was deleted
        """
        await self.scope.application(scope.organization_id, scope.application_id)
        await self.scope.member(scope.organization_id, member_id)
        result = await self.db.execute(
            delete(member_application_roles).where(
                and_(
                    member_application_roles.c.member_id == member_id,
                    member_application_roles.c.application_role_id == role_id,
                    member_application_roles.c.application_role_id.in_(
                        select(ApplicationRole.id).where(ApplicationRole.application_id == scope.application_id)
                    ),
                )
            )
        )
        await self.db.commit()
        removed = (result.rowcount or 0) > 0
        invalidate_caches(self.caches, member_id=member_id, application_id=scope.application_id)
        
        await self._changed("member.roles.unassign", "member", member_id, {
            "organization_id": scope.organization_id,
            "application_id": scope.application_id,
            "role_id": role_id,
            "removed": removed,
        })
        return removed

    async def list_member_roles(self, scope: RoleScope, member_id: str) -> List[MemberRoleResponse]:
        await self.scope.application(scope.organization_id, scope.application_id)
        await self.scope.member(scope.organization_id, member_id)
        stmt = (
            select(
                ApplicationRole.id,
                ApplicationRole.key,
                ApplicationRole.name,
                member_application_roles.c.created_at,
            )
            .join(ApplicationRole, member_application_roles.c.application_role_id == ApplicationRole.id)
            .where(
                and_(
                    member_application_roles.c.member_id == member_id,
                    ApplicationRole.application_id == scope.application_id,
                )
            )
            .order_by(ApplicationRole.key)
        )
        result = await self.db.execute(stmt)
        return [
            MemberRoleResponse(role_id=role_id, role_key=key, role_name=name, assigned_at=assigned_at)
            for role_id, key, name, assigned_at in result.all()
        ]
