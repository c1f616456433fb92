"""
Typed errors raised by the RBAC services.

Every error is terminal for the operation that raised it; nothing in this
package retries. Routes let them propagate and the handler registered in
``tenant_rbac.main`` turns them into JSON responses.
"""
from typing import Optional


class RBACError(Exception):
    """Base class for every domain error."""
    status_code: int = 400
    kind: str = "rbac_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        body = {"error": self.kind, "detail": self.message}
        if self.field:
            body["field"] = self.field
        return body


class ValidationError(RBACError):
    """Malformed key or name, or a reserved built-in name."""
    status_code = 400
    kind = "validation_error"


class ConflictError(RBACError):
    """Duplicate key within its scope."""
    status_code = 409
    kind = "conflict"


class ScopeReferenceError(RBACError):
    """A grant or assignment points at an entity outside the expected scope."""
    status_code = 422
    kind = "reference_error"


class NotFoundError(RBACError):
    status_code = 404
    kind = "not_found"


class ForbiddenError(RBACError):
    status_code = 403
    kind = "forbidden"
