"""
Bearer token verification.

Tokens are issued by the session service; this module only decodes them into
a Caller (user id + global role).
"""
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import HTTPException, status

from tenant_rbac.core import config


@dataclass(frozen=True)
class Caller:
    """Authenticated caller identity."""
    user_id: str
    global_role: Optional[str] = None

    @property
    def is_platform_admin(self) -> bool:
        return self.global_role == config.PLATFORM_ADMIN_ROLE


def verify_jwt_token(token: str) -> dict:
    """
    Verify a session JWT and return its payload.
    
    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def caller_from_payload(payload: dict) -> Caller:
    user_id = payload.get("sub") or payload.get("userId")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return Caller(user_id=str(user_id), global_role=payload.get("role"))


def issue_token(user_id: str, role: Optional[str] = None, **claims) -> str:
    """Sign a session-style token; used by scripts and tests."""
    payload = {"sub": user_id, **claims}
    if role:
        payload["role"] = role
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
