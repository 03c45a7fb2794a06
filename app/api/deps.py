"""
FastAPI Dependencies

Provides dependency injection for database sessions, authentication,
and authorization.

SECURITY NOTES:
- JWT payloads are never logged
- Tokens are issued by the auth service; this API only verifies them
- The caller is built from token claims (sub, tid, role) without a DB lookup
"""

from typing import Annotated
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from jose import JWTError, jwt
from datetime import timedelta
import logging

from app.database import get_db
from app.config import settings
from app.exceptions import UnauthorizedError
from app.security.rbac import Caller, Permission, Role, ensure_permission
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


# HTTP Bearer for JWT
security = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token (same contract as the auth service)."""
    to_encode = data.copy()
    if expires_delta:
        expire = utcnow() + expires_delta
    else:
        expire = utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


async def get_current_caller(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> Caller:
    """
    Build the caller from the bearer token.

    SECURITY:
    - JWT payloads are NOT logged to prevent credential leakage
    - Public quote-link tokens are rejected here (they carry no role)
    """
    if not credentials:
        raise UnauthorizedError()

    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        sub = payload.get("sub")
        tenant_id = payload.get("tid")
        role = payload.get("role")
        if not sub or not tenant_id or not role:
            raise UnauthorizedError("Could not validate credentials")
        caller = Caller(user_id=str(sub), tenant_id=str(tenant_id), role=Role(role))
    except JWTError:
        logger.warning("JWT validation failed", extra={"auth_method": "bearer"})
        raise UnauthorizedError("Could not validate credentials")
    except ValueError:
        logger.warning("Invalid token role", extra={"auth_method": "bearer"})
        raise UnauthorizedError("Could not validate credentials")

    logger.debug("Caller authenticated", extra={"user_id": caller.user_id, "tenant_id": caller.tenant_id})
    return caller


def require_permission(permission: Permission):
    """
    Dependency factory for requiring a specific permission.

    Usage:
        @router.post("/quotes/{quote_id}/send")
        async def send(caller: Annotated[Caller, Depends(require_permission(Permission.SEND_QUOTE))]):
            ...
    """
    async def checker(caller: Annotated[Caller, Depends(get_current_caller)]) -> Caller:
        ensure_permission(caller, permission)
        return caller
    return checker


# Type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentCaller = Annotated[Caller, Depends(get_current_caller)]
