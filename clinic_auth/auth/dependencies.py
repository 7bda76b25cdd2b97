"""
FastAPI dependencies for authentication and authorization.

A request is authenticated only when its access token verifies AND the
session registry still holds an active row for it AND its user is active.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..exceptions import AppException
from .credential_store import CredentialStore
from .exceptions import (
    InvalidTokenException,
    MissingTokenException,
    RoleNotAllowedException,
    TokenExpiredException,
    TokenRevokedException,
    UserInactiveException,
)
from .models import TokenType, UserRole
from .schemas import AuthenticatedIdentity
from .session_registry import SessionRegistry
from .tokens import InvalidTokenError, TokenExpiredError, verify_token

logger = logging.getLogger(__name__)

# Bearer scheme for the OpenAPI docs; missing headers fall through to the cookie
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class LogoutContext:
    """Whatever could be learned about the caller without failing."""
    user_id: Optional[int] = None
    token: Optional[str] = None


def extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials] = None) -> Optional[str]:
    """
    Return the access token from the Authorization header, else from the cookie.
    """
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.access_cookie_name) or None


def resolve_identity(db: Session, token: str) -> AuthenticatedIdentity:
    """
    Turn an access token into the caller's identity.

    Raises:
        TokenExpiredException: The token's exp has passed
        InvalidTokenException: Bad signature, claims or type
        TokenRevokedException: No active registry row for the token
        UserInactiveException: The user is gone or not active
    """
    try:
        claims = verify_token(token, settings.jwt_secret, expected_type=TokenType.ACCESS)
    except TokenExpiredError as exc:
        raise TokenExpiredException() from exc
    except InvalidTokenError as exc:
        logger.debug(f"Access token rejected: {exc}")
        raise InvalidTokenException() from exc

    user_id = claims.get("user_id")
    if not isinstance(user_id, int):
        raise InvalidTokenException("Invalid token payload")

    if SessionRegistry(db).find_active(token, TokenType.ACCESS) is None:
        raise TokenRevokedException()

    store = CredentialStore(db)
    user = store.find_by_id(user_id)
    if not user or not user.is_active:
        raise UserInactiveException()

    profile = store.get_profile(user)
    return AuthenticatedIdentity(
        id=user.id,
        email=user.email,
        username=user.username,
        role=user.role,
        status=user.status,
        profile_id=profile.id if profile else None,
        first_name=profile.first_name if profile else None,
        last_name=profile.last_name if profile else None,
        token=token,
    )


def get_current_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> AuthenticatedIdentity:
    """
    Get the authenticated caller, or fail with a 401.

    The identity is also attached to request.state.identity.
    """
    token = extract_token(request, credentials)
    if not token:
        raise MissingTokenException()
    identity = resolve_identity(db, token)
    request.state.identity = identity
    return identity


def get_optional_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[AuthenticatedIdentity]:
    """
    Like get_current_identity, but anonymous or unusable tokens yield None.

    Only authentication failures are swallowed; database errors still surface.
    """
    token = extract_token(request, credentials)
    if not token:
        return None
    try:
        identity = resolve_identity(db, token)
    except AppException as exc:
        logger.debug(f"Optional auth ignored token: {exc.message}")
        return None
    request.state.identity = identity
    return identity


def get_logout_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> LogoutContext:
    """
    Identify the caller for logout without ever failing.

    Expired tokens are accepted so a client can always sign out; tokens with
    a bad signature are ignored.
    """
    token = extract_token(request, credentials)
    if not token:
        return LogoutContext()
    try:
        claims = verify_token(token, settings.jwt_secret, expected_type=TokenType.ACCESS, verify_exp=False)
    except (TokenExpiredError, InvalidTokenError) as exc:
        logger.debug(f"Logout with unusable token: {exc}")
        return LogoutContext()
    user_id = claims.get("user_id")
    return LogoutContext(user_id=user_id if isinstance(user_id, int) else None, token=token)


def _normalize_role(role) -> str:
    return str(getattr(role, "value", role)).strip().lower()


def authorize(*roles):
    """
    Dependency factory to require one of the given roles.

    Roles may be UserRole members or strings; comparison ignores case and
    surrounding whitespace.

    Usage:
        @router.get("/reports", dependencies=[Depends(authorize(UserRole.DOCTOR, UserRole.ADMIN))])
    """
    if not roles:
        raise ValueError("authorize() needs at least one role")
    allowed = [_normalize_role(role) for role in roles]

    def role_checker(identity: AuthenticatedIdentity = Depends(get_current_identity)) -> AuthenticatedIdentity:
        if _normalize_role(identity.role) not in allowed:
            logger.warning(
                f"Role check failed for user {identity.id}: required {allowed}, has {identity.role.value}"
            )
            raise RoleNotAllowedException(allowed, identity.role)
        return identity

    return role_checker


# Convenience dependencies for specific roles
require_admin = authorize(UserRole.ADMIN)
require_staff_or_admin = authorize(UserRole.STAFF, UserRole.ADMIN)
require_any_staff = authorize(UserRole.DOCTOR, UserRole.STAFF, UserRole.ADMIN)
