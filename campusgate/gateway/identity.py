"""
CampusGate - Request Identity

Resolves who is making a request:
1. Extract the identity token (Authorization: Bearer, else session cookie)
2. Verify signature and expiry
3. Validate the bound server-side session (token, expiry, inactivity,
   IP/user-agent fingerprint) through the SessionManager

Any failure along the way means "anonymous". Callers decide whether that
is a 401, a login redirect, or fine.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel
from starlette.requests import Request

from campusgate.auth.sessions import SessionManager, SessionRejection
from campusgate.auth.tokens import InvalidTokenError, verify_access_token
from campusgate.config import settings
from campusgate.logging import get_logger


logger = get_logger(__name__)

USER_AGENT_MAX_LENGTH = 512


class AuthenticatedUser(BaseModel):
    """
    A request whose token and session both checked out.

    Available as request.state.identity after the gate, or in route
    handlers via Depends(get_current_user).
    """
    user_id: str
    role: str
    session_token: str
    token_id: str  # jti for audit correlation


@dataclass(frozen=True)
class IdentityResult:
    user: Optional[AuthenticatedUser] = None
    rejection: Optional[SessionRejection] = None

    @property
    def authenticated(self) -> bool:
        return self.user is not None


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent", "unknown")[:USER_AGENT_MAX_LENGTH]


def extract_identity_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization")
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    return request.cookies.get(settings.session_cookie) or None


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


async def authenticate_request(request: Request) -> IdentityResult:
    """
    Resolve and validate the caller. Never raises; errors reject.
    """
    token = extract_identity_token(request)
    if not token:
        return IdentityResult(rejection=SessionRejection.NOT_LOGGED_IN)

    try:
        claims = verify_access_token(token)
    except InvalidTokenError as e:
        logger.info("identity_token_rejected", error=str(e))
        return IdentityResult(rejection=SessionRejection.INVALID_TOKEN)

    try:
        manager = get_session_manager(request)
        result = await manager.validate_session(
            claims.sub,
            claims.sid,
            get_client_ip(request),
            get_user_agent(request),
        )
    except Exception as e:
        logger.error("identity_resolution_failed", user_id=claims.sub, error=str(e))
        return IdentityResult(rejection=SessionRejection.VALIDATION_ERROR)

    if not result.valid:
        logger.info("session_rejected", user_id=claims.sub, reason=result.reason.value)
        return IdentityResult(rejection=result.reason)

    return IdentityResult(
        user=AuthenticatedUser(
            user_id=claims.sub,
            role=claims.role,
            session_token=claims.sid,
            token_id=claims.jti,
        )
    )
