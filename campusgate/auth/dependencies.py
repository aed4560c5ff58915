"""
CampusGate - Security Dependencies

FastAPI dependencies for authentication and authorization inside route
handlers.

Usage:
    @router.get("/me")
    async def me(user: AuthenticatedUser = Depends(get_current_user)):
        ...

    @router.get("/audit-logs")
    @require_role(Role.SBTE_ADMIN, Role.EDUCATION_DEPARTMENT)
    async def audit_logs(user: AuthenticatedUser = Depends(get_current_user)):
        ...

Security:
- Requests that passed the gate reuse the identity it already validated
- Routes the gate lets through unauthenticated (/api/auth/...) validate
  token and session here, with the same rules
"""

from functools import wraps
from typing import Optional

from fastapi import HTTPException, Request, status
from sqlmodel import Session as DBSession

from campusgate.auth.models import Role
from campusgate.gateway.identity import (
    AuthenticatedUser,
    authenticate_request,
    get_session_manager,
)


def get_db(request: Request) -> DBSession:
    """Database session from app state. Callers close it."""
    return request.app.state.db_session_factory()


async def get_current_user(request: Request) -> AuthenticatedUser:
    """
    Validate request authentication and return current user.

    Raises:
        HTTPException 401: Missing/invalid token, or session not live. The
            detail carries the session rejection reason.
    """
    identity: Optional[AuthenticatedUser] = getattr(request.state, "identity", None)
    if identity is not None:
        return identity

    result = await authenticate_request(request)
    if not result.authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=result.rejection.value if result.rejection else "not logged in",
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.identity = result.user
    return result.user


def require_role(*roles: Role):
    """
    Decorator requiring one of the given roles.

    Usage:
        @require_role(Role.SBTE_ADMIN)
        async def admin_only(user: AuthenticatedUser = Depends(get_current_user)):
            ...
    """
    allowed = {r.value for r in roles}

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            # Extract user from kwargs (injected by Depends)
            user: Optional[AuthenticatedUser] = kwargs.get("user")

            if user is None:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Authentication required",
                )

            if user.role not in allowed:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Requires one of: {sorted(allowed)}",
                )

            return await func(*args, **kwargs)
        return wrapper
    return decorator
