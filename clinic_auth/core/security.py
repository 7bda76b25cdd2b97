"""
Core security utilities for password handling and token digests.
"""
from datetime import datetime, timezone
from functools import lru_cache
import hashlib
import logging
import secrets

from passlib.context import CryptContext

from ..config import settings

# Set up logging
logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password

    Returns:
        str: Hashed password
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against a hash.

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password to compare against

    Returns:
        bool: True if password matches hash
    """
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Malformed or unknown hash format
        logger.warning("Password verification against an unrecognised hash")
        return False


@lru_cache(maxsize=1)
def dummy_password_hash() -> str:
    """
    A real bcrypt hash of a random secret, with the configured cost factor.

    Verifying against it costs the same as verifying a real user's password.
    """
    return pwd_context.hash(secrets.token_urlsafe(16))


def generate_secure_reset_token() -> str:
    """
    Generate a secure token for password reset.

    Returns:
        str: Secure random token
    """
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """
    Hash a token for secure storage.

    Args:
        token: Token to hash

    Returns:
        str: Hex SHA-256 digest
    """
    return hashlib.sha256(token.encode()).hexdigest()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
