"""
FastAPI dependencies for caller identity.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from tenant_rbac.features.identity.auth import Caller, verify_jwt_token, caller_from_payload


security = HTTPBearer()


async def get_current_caller(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Caller:
    """
    Get the authenticated caller from the bearer token.
    
    Usage:
        @router.get("/me")
        async def get_me(caller: Caller = Depends(get_current_caller)):
            return caller
    """
    payload = verify_jwt_token(credentials.credentials)
    return caller_from_payload(payload)


async def get_current_platform_admin(
    caller: Annotated[Caller, Depends(get_current_caller)]
) -> Caller:
    """Require platform admin privileges."""
    if not caller.is_platform_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return caller


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
