"""
CampusGate - Tokens

Two kinds of token are issued at login:

- Session token: opaque 64-character secret stored server-side in
  user_sessions. It is the thing that gets superseded, expired or revoked.
- Identity token: signed JWT carried by the browser (cookie or Bearer
  header) with the claims the request gate needs:
    sub  - user id
    role - portal role for route authorization
    sid  - session token, checked against the store on every request
    jti  - unique token id for audit correlation

Security:
- Signature and expiry are verified on every request
- A valid signature alone is never enough; the sid must still be live
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
import secrets

from jose import jwt, JWTError
from pydantic import BaseModel, Field

from campusgate.config import settings


# 48 random bytes -> 64 URL-safe characters
SESSION_TOKEN_BYTES = 48


class InvalidTokenError(Exception):
    """Raised when an identity token fails verification."""
    pass


class TokenPayload(BaseModel):
    """Decoded identity token claims."""
    sub: str = Field(..., description="User ID")
    role: str = Field(..., description="Portal role")
    sid: str = Field(..., description="Server-side session token")
    jti: str = Field(..., description="Token ID for audit")
    exp: datetime
    iat: datetime


def generate_session_token() -> str:
    """Cryptographically random, URL-safe, 64 characters."""
    return secrets.token_urlsafe(SESSION_TOKEN_BYTES)


def create_access_token(
    user_id: str,
    role: str,
    session_token: str,
    expires_delta: Optional[timedelta] = None,
) -> tuple[str, str]:
    """
    Create a signed identity token bound to a server-side session.

    Returns:
        Tuple of (encoded JWT, token ID)

    Example:
        >>> token, jti = create_access_token(user.id, "STUDENT", info.session_token)
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    token_id = secrets.token_hex(16)

    payload = {
        "sub": user_id,
        "role": role,
        "sid": session_token,
        "jti": token_id,
        "exp": expire,
        "iat": now,
    }

    encoded = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return encoded, token_id


def verify_access_token(token: str) -> TokenPayload:
    """
    Verify signature and expiry, then decode the claims.

    Raises:
        InvalidTokenError: If token is invalid, expired, or missing claims
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        return TokenPayload(**payload)
    except JWTError as e:
        raise InvalidTokenError(f"Token validation failed: {e}")
    except ValueError as e:
        # pydantic ValidationError: signature fine but claims incomplete
        raise InvalidTokenError(f"Token claims invalid: {e}")


def get_token_expiry_seconds() -> int:
    return settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
