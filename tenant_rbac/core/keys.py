"""
Key format rules shared by applications, resources, actions and roles.
"""
import re

from tenant_rbac.core.errors import ValidationError

KEY_PATTERN = re.compile(r"^[a-z0-9]+(_[a-z0-9]+)*$")
KEY_FORMAT_HINT = "Key must be lowercase letters/numbers with underscores (e.g., order_reviewer)"


def is_valid_key(key: str) -> bool:
    return bool(KEY_PATTERN.fullmatch(key or ""))


def validate_key(key: str, field: str = "key") -> str:
    """Return the key unchanged or raise ValidationError naming the field."""
    if not is_valid_key(key):
        raise ValidationError(KEY_FORMAT_HINT, field=field)
    return key


def permission_string(application_key: str, resource_key: str, action_key: str) -> str:
    """Fully-qualified permission string, e.g. ``billing:invoices:approve``."""
    return f"{application_key}:{resource_key}:{action_key}"
