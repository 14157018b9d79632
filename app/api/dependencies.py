from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.auth.jwt_handler import decode_access_token
from app.auth.permissions import PermissionChecker
import logging

security = HTTPBearer()
logger = logging.getLogger(__name__)


@dataclass
class CurrentUser:
    """Identity resolved from the bearer token issued by the auth provider"""
    id: int
    role: str
    department: Optional[str] = None


def _unauthorized(detail: str = "Invalid authentication credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """Resolve the caller from the bearer token; no user table is consulted"""
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _unauthorized()

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        logger.warning(f"Rejected token with non numeric subject: {payload.get('sub')!r}")
        raise _unauthorized()

    user = CurrentUser(id=user_id, role=payload["role"], department=payload.get("department"))
    request.state.current_user = user
    return user


def require_permission(resource: str, action: str):
    """
    Dependency that resolves the caller and checks `resource:action` for its role

    Examples:
        require_permission("template", "create")
        require_permission("kpi", "delete")
    """
    async def permission_dependency(
        current_user: CurrentUser = Depends(get_current_user)
    ) -> CurrentUser:
        PermissionChecker(current_user.role).require(resource, action)
        return current_user

    return permission_dependency
