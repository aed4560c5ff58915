"""
CampusGate - Password Hashing

bcrypt hashing for credential verification at login. The work factor comes
from settings.BCRYPT_ROUNDS so tests can run with a cheap factor.

Security:
- Plaintext passwords are never logged or stored
- Hashes below the configured work factor are upgraded on next login
"""

import bcrypt

from campusgate.config import settings


def hash_password(password: str, rounds: int = None) -> str:
    """
    Hash a password with a fresh salt.

    Example:
        >>> hash_password("Portal@2024").startswith("$2b$")
        True
    """
    salt = bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Constant-time check; malformed hashes simply fail."""
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8"),
        )
    except (ValueError, TypeError):
        return False


def needs_rehash(hashed_password: str, rounds: int = None) -> bool:
    """
    True if the stored hash uses fewer rounds than configured.

    bcrypt hashes look like $2b$12$<salt+digest>; the second field is the cost.
    """
    target = rounds or settings.BCRYPT_ROUNDS
    try:
        cost = int(hashed_password.split("$")[2])
    except (ValueError, IndexError, AttributeError):
        return True
    return cost < target
