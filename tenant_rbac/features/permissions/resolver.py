"""
Permission resolution engine.

Tiers are evaluated in order and the first match wins:

1. Platform admin caller   -> wildcard, reason PLATFORM_ADMIN
2. Org owner/admin member  -> wildcard, reason ORGANIZATION_ROLE_INHERIT
3. Explicit role grants    -> deduplicated resource/action pairs (cached)

Only tier-3 results are cached; the first two tiers are recomputed on every
call so a demoted admin never keeps a cached wildcard.
"""
from typing import Dict, Optional

from tenant_rbac.core.errors import ForbiddenError, NotFoundError
from tenant_rbac.features.identity.auth import Caller
from tenant_rbac.features.organizations.membership import MemberRecord, MembershipResolver
from tenant_rbac.features.permissions.cache import PermissionCache
from tenant_rbac.features.permissions.schemas import (
    PermissionCheckResponse,
    ResolvedPermission,
    ResolvedPermissions,
    RoleRef,
)
from tenant_rbac.features.permissions.store import PermissionStore
from tenant_rbac.features.roles.builtin import get_built_in_role, is_organization_statement, statement_allows
from tenant_rbac.utils import get_logger


log = get_logger(__name__)

PLATFORM_ADMIN = "PLATFORM_ADMIN"
ORGANIZATION_ROLE_INHERIT = "ORGANIZATION_ROLE_INHERIT"
ORGANIZATION_PERMISSION = "ORGANIZATION_PERMISSION"
APPLICATION_NOT_FOUND = "APPLICATION_NOT_FOUND"

PLATFORM_ADMIN_ROLE_KEY = "platform-admin"
PLATFORM_ADMIN_ROLE_NAME = "Platform Admin"
WILDCARD = "*"


def wildcard_permissions(
    member_id: str,
    application_id: Optional[str],
    role_key: str,
    role_name: str,
    reason: str,
) -> ResolvedPermissions:
    """Single synthetic ``*:*`` permission granted through ``role_key``."""
    return ResolvedPermissions(
        member_id=member_id,
        application_id=application_id,
        roles=[RoleRef(role_key=role_key, role_name=role_name)],
        permissions=[
            ResolvedPermission(
                role_key=role_key,
                role_name=role_name,
                resource_key=WILDCARD,
                resource_name="all-resources",
                action_key=WILDCARD,
                action_name="all-actions",
            )
        ],
        reason=reason,
    )


class PermissionResolver:
    """
    Computes effective permissions for (member, application).
    
    The caches are process-wide objects created at startup and passed in;
    the store and membership resolver are bound to the current session.
    """

    def __init__(
        self,
        store: PermissionStore,
        membership: MembershipResolver,
        cache: PermissionCache,
        check_cache: Optional[PermissionCache] = None,
    ):
        self.store = store
        self.membership = membership
        self.cache = cache
        self.check_cache = check_cache

    async def _authorized_member(self, caller: Caller, member_id: str) -> MemberRecord:
        """
        Look up the target member and make sure the caller may ask about it.
        
        Raises:
            NotFoundError: member does not exist
            ForbiddenError: caller is neither platform admin nor that member
        """
        member = await self.membership.get_member(member_id)
        if member is None:
            raise NotFoundError("Member not found", field="member_id")
        if not caller.is_platform_admin and member.user_id != caller.user_id:
            log.info(f"User {caller.user_id} denied permission query for member {member_id}")
            raise ForbiddenError("Cannot query other members' permissions")
        return member

    def _cached(self, member_id: str, application_id: str) -> Optional[ResolvedPermissions]:
        cached = self.cache.get(PermissionCache.key(member_id, application_id))
        if cached is None:
            return None
        log.debug(f"Permission cache hit for member {member_id} in app {application_id}")
        return cached.model_copy(deep=True)

    async def resolve_permissions(
        self,
        caller: Caller,
        member_id: str,
        application_id: Optional[str] = None,
        application_key: Optional[str] = None,
    ) -> ResolvedPermissions:
        """
        Effective permission set of ``member_id`` in an application.
        
        Args:
            caller: Authenticated caller
            member_id: Target member
            application_id: Application ID (takes precedence over the key)
            application_key: Application key within the member's organization
        
        Returns:
            ResolvedPermissions; ``reason`` is None on the explicit-grant path
        
        Raises:
            NotFoundError: no application reference, or unknown member
            ForbiddenError: caller may not query this member
        """
        if not application_id and not application_key:
            raise NotFoundError("application_key or application_id is required", field="application")
        
        if caller.is_platform_admin:
            return wildcard_permissions(
                member_id, application_id, PLATFORM_ADMIN_ROLE_KEY, PLATFORM_ADMIN_ROLE_NAME, PLATFORM_ADMIN
            )
        
        member = await self._authorized_member(caller, member_id)
        
        if member.is_organization_admin:
            return wildcard_permissions(
                member_id, application_id, member.organization_role, member.organization_role,
                ORGANIZATION_ROLE_INHERIT,
            )
        
        if application_id:
            cached = self._cached(member_id, application_id)
            if cached is not None:
                return cached
        
        application = await self.store.find_application(
            member.organization_id, application_id=application_id, application_key=application_key
        )
        if application is None:
            log.debug(f"Application {application_id or application_key} not found for member {member_id}")
            return ResolvedPermissions(
                member_id=member_id,
                application_id=application_id,
                reason=APPLICATION_NOT_FOUND,
            )
        
        if not application_id:
            cached = self._cached(member_id, application.id)
            if cached is not None:
                return cached
        
        result = await self._resolve_explicit_grants(member, application.id)
        self.cache.set(
            PermissionCache.key(member_id, application.id), result,
            member_id=member_id, application_id=application.id,
        )
        return result.model_copy(deep=True)

    async def _resolve_explicit_grants(self, member: MemberRecord, application_id: str) -> ResolvedPermissions:
        role_ids = await self.membership.get_application_role_ids(member.member_id, application_id)
        roles = await self.store.get_roles(sorted(role_ids), application_id) if role_ids else []
        if not roles:
            return ResolvedPermissions(member_id=member.member_id, application_id=application_id)
        
        role_map = {role.id: role for role in roles}
        grants = await self.store.get_role_grants(list(role_map))
        
        # One entry per resource:action; the first role seen wins
        unique: Dict[str, ResolvedPermission] = {}
        for grant in grants:
            role = role_map[grant.role_id]
            unique.setdefault(
                f"{grant.resource_key}:{grant.action_key}",
                ResolvedPermission(
                    role_key=role.key,
                    role_name=role.name,
                    resource_key=grant.resource_key,
                    resource_name=grant.resource_name,
                    action_key=grant.action_key,
                    action_name=grant.action_name,
                ),
            )
        
        log.debug(
            f"Resolved {len(unique)} permissions for member {member.member_id} "
            f"in app {application_id} via {len(roles)} roles"
        )
        return ResolvedPermissions(
            member_id=member.member_id,
            application_id=application_id,
            roles=[RoleRef(role_id=role.id, role_key=role.key, role_name=role.name) for role in roles],
            permissions=list(unique.values()),
        )

    async def check_permission(
        self,
        caller: Caller,
        member_id: str,
        application_key: str,
        resource_key: str,
        action_key: str,
    ) -> PermissionCheckResponse:
        """
        Decide a single ``application:resource:action`` permission.
        
        Organization statements (member, invitation, team, ...) are answered
        from the member's organization role; everything else from explicit
        application role grants.
        """
        def answer(has_permission: bool, reason: Optional[str] = None, cached: bool = False):
            return PermissionCheckResponse(
                has_permission=has_permission,
                member_id=member_id,
                application_key=application_key,
                resource_key=resource_key,
                action_key=action_key,
                reason=reason,
                cached=cached,
            )
        
        if caller.is_platform_admin:
            return answer(True, PLATFORM_ADMIN)
        
        member = await self._authorized_member(caller, member_id)
        
        if member.is_organization_admin:
            return answer(True, ORGANIZATION_ROLE_INHERIT)
        
        if is_organization_statement(resource_key):
            permissions = await self._organization_role_permissions(member)
            return answer(statement_allows(permissions, resource_key, action_key), ORGANIZATION_PERMISSION)
        
        application = await self.store.find_application(member.organization_id, application_key=application_key)
        if application is None:
            return answer(False, APPLICATION_NOT_FOUND)
        
        key = PermissionCache.key(member_id, application.id, resource_key, action_key)
        if self.check_cache is not None:
            cached = self.check_cache.get(key)
            if cached is not None:
                return answer(cached, cached=True)
        
        role_ids = await self.membership.get_application_role_ids(member_id, application.id)
        granted = await self.store.has_grant(sorted(role_ids), application.id, resource_key, action_key)
        
        if self.check_cache is not None:
            self.check_cache.set(key, granted, member_id=member_id, application_id=application.id)
        log.debug(f"Member {member_id} {'granted' if granted else 'denied'} {application_key}:{resource_key}:{action_key}")
        return answer(granted)

    async def _organization_role_permissions(self, member: MemberRecord) -> dict:
        built_in = get_built_in_role(member.organization_role)
        if built_in is not None:
            return built_in["permissions"]
        custom = await self.store.get_organization_role(member.organization_id, member.organization_role)
        return dict(custom.permissions) if custom is not None else {}
