"""
Token codec - signs and verifies the JWTs handed to clients.

Access, refresh and email verification tokens all carry type, iat, exp,
iss, aud and a random jti. Verification here is purely cryptographic; whether
a token is still honoured is decided by the session registry.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from ..config import settings
from ..core.security import utcnow
from .models import TokenType, User

EMAIL_VERIFICATION_TTL = timedelta(hours=24)


class TokenExpiredError(Exception):
    """The signature is valid but the exp claim has passed."""


class InvalidTokenError(Exception):
    """Malformed token, bad signature, wrong audience/issuer or wrong type."""


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    access_ttl: timedelta
    refresh_ttl: timedelta


def _token_value(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


def issue_token(
    claims: Dict[str, Any],
    secret: str,
    ttl: timedelta,
    token_type: TokenType,
    issued_at: Optional[datetime] = None,
) -> str:
    """
    Sign a token carrying the given claims.

    Args:
        claims: Application claims (user_id, email, ...)
        secret: HMAC signing key
        ttl: Lifetime of the token
        token_type: Value stamped in the "type" claim
        issued_at: Issue instant, defaults to now

    Returns:
        str: Encoded JWT
    """
    now = issued_at or utcnow()
    to_encode = {key: _token_value(value) for key, value in claims.items()}
    to_encode.update({
        "type": _token_value(token_type),
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "jti": uuid.uuid4().hex,
    })
    return jwt.encode(to_encode, secret, algorithm=settings.jwt_algorithm)


def verify_token(
    token: str,
    secret: str,
    expected_type: Optional[TokenType] = None,
    verify_exp: bool = True,
) -> Dict[str, Any]:
    """
    Verify a token's signature, registered claims and type.

    Args:
        token: Encoded JWT
        secret: HMAC signing key
        expected_type: Required value of the "type" claim, if any
        verify_exp: Set to False to accept expired but otherwise valid tokens

    Returns:
        dict: Decoded claims

    Raises:
        TokenExpiredError: The token expired
        InvalidTokenError: The token is not valid for any other reason
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"verify_exp": verify_exp},
        )
    except ExpiredSignatureError as exc:
        raise TokenExpiredError("Token has expired") from exc
    except JWTError as exc:
        raise InvalidTokenError(str(exc)) from exc

    if expected_type is not None and payload.get("type") != _token_value(expected_type):
        raise InvalidTokenError(
            f"Expected a {_token_value(expected_type)} token, got {payload.get('type')!r}"
        )
    return payload


def build_access_claims(user: User, profile: Optional[Any] = None) -> Dict[str, Any]:
    """Claims carried by an access token for the given user and profile row."""
    return {
        "user_id": user.id,
        "email": user.email,
        "username": user.username,
        "role": user.role,
        "status": user.status,
        "profile_id": profile.id if profile is not None else None,
        "first_name": profile.first_name if profile is not None else None,
        "last_name": profile.last_name if profile is not None else None,
    }


def issue_token_pair(user: User, profile: Optional[Any] = None, remember_me: bool = False) -> TokenPair:
    """
    Issue a fresh access/refresh pair for a user.

    Remember-me only stretches the refresh token; access tokens stay short.
    """
    now = utcnow().replace(microsecond=0)
    access_ttl = settings.access_token_ttl
    refresh_ttl = settings.remember_me_refresh_ttl if remember_me else settings.refresh_token_ttl

    access_token = issue_token(
        build_access_claims(user, profile),
        settings.jwt_secret,
        access_ttl,
        TokenType.ACCESS,
        issued_at=now,
    )
    refresh_token = issue_token(
        {"user_id": user.id, "email": user.email},
        settings.refresh_secret,
        refresh_ttl,
        TokenType.REFRESH,
        issued_at=now,
    )
    return TokenPair(
        access_token=access_token,
        refresh_token=refresh_token,
        access_expires_at=now + access_ttl,
        refresh_expires_at=now + refresh_ttl,
        access_ttl=access_ttl,
        refresh_ttl=refresh_ttl,
    )


def issue_email_verification_token(user: User) -> str:
    return issue_token(
        {"user_id": user.id, "email": user.email},
        settings.jwt_secret,
        EMAIL_VERIFICATION_TTL,
        TokenType.EMAIL_VERIFICATION,
    )
