"""
Built-in organization roles.

These roles are never persisted, never mutable and never deletable. Their
names are reserved: custom roles may not be created or renamed to collide
with them (case-insensitive).
"""
from typing import Dict, List, Optional

from tenant_rbac.core.errors import ValidationError


# Organization statement catalogue: resource -> allowed actions
ORGANIZATION_STATEMENTS: Dict[str, tuple[str, ...]] = {
    "organization": ("update", "delete"),
    "member": ("create", "update", "delete"),
    "invitation": ("create", "cancel"),
    "team": ("create", "update", "delete"),
    "ac": ("create", "read", "update", "delete"),
}


BUILT_IN_ORGANIZATION_ROLES: List[dict] = [
    {
        "id": "owner",
        "role": "owner",
        "description": "Full access to all organization resources",
        "permissions": {resource: list(actions) for resource, actions in ORGANIZATION_STATEMENTS.items()},
        "is_built_in": True,
    },
    {
        "id": "admin",
        "role": "admin",
        "description": "Administrative access with most permissions",
        "permissions": {
            "organization": ["update"],
            "member": ["create", "update", "delete"],
            "invitation": ["create", "cancel"],
            "team": ["create", "update", "delete"],
            "ac": ["create", "read", "update", "delete"],
        },
        "is_built_in": True,
    },
    {
        "id": "member",
        "role": "member",
        "description": "Basic member with limited permissions",
        "permissions": {
            "organization": [],
            "member": [],
            "invitation": [],
            "team": [],
            "ac": ["read"],
        },
        "is_built_in": True,
    },
]

RESERVED_ROLE_NAMES = frozenset(role["role"] for role in BUILT_IN_ORGANIZATION_ROLES)


def is_reserved_role_name(name: Optional[str]) -> bool:
    return bool(name) and name.strip().lower() in RESERVED_ROLE_NAMES


def ensure_not_reserved(value: Optional[str], field: str) -> None:
    """Raise ValidationError when ``value`` collides with a built-in role."""
    if is_reserved_role_name(value):
        raise ValidationError(f"'{value}' is a reserved built-in role name", field=field)


def get_built_in_role(name: str) -> Optional[dict]:
    for role in BUILT_IN_ORGANIZATION_ROLES:
        if role["role"] == name:
            return role
    return None


def is_organization_statement(resource: str) -> bool:
    return resource in ORGANIZATION_STATEMENTS


def validate_permission_map(permissions: Optional[Dict[str, List[str]]]) -> Dict[str, List[str]]:
    """
    Check a custom role permission map against the statement catalogue.
    
    Returns a normalized copy with duplicate actions removed.
    
    Raises:
        ValidationError: unknown statement or action
    """
    normalized: Dict[str, List[str]] = {}
    for resource, actions in (permissions or {}).items():
        allowed = ORGANIZATION_STATEMENTS.get(resource)
        if allowed is None:
            raise ValidationError(f"Unknown organization resource '{resource}'", field="permissions")
        unknown = [action for action in actions if action not in allowed]
        if unknown:
            raise ValidationError(
                f"Unknown actions {unknown} for organization resource '{resource}'",
                field="permissions",
            )
        normalized[resource] = list(dict.fromkeys(actions))
    return normalized


def statement_allows(permissions: Dict[str, List[str]], resource: str, action: str) -> bool:
    return action in permissions.get(resource, [])
