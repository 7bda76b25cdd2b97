"""
Authentication service - the login lifecycle.

Functions take the request's database session, use the credential store,
session registry and token codec, and own the transaction: each public
function either commits its whole unit of work or rolls it back.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from ..config import settings
from ..core.audit_service import record_audit_event
from ..core.security import hash_password, verify_password
from .credential_store import CredentialStore
from .exceptions import (
    InvalidCredentialsException,
    InvalidRefreshTokenException,
    InvalidResetTokenException,
    InvalidTokenException,
    TokenExpiredException,
    UserNotFoundException,
    ValidationException,
)
from .models import AccountStatus, TokenType, User
from .reset_store import ResetTokenStore
from .schemas import AuthenticatedIdentity, ProfileUpdateRequest, RegisterRequest
from .session_registry import SessionRegistry
from .tokens import (
    InvalidTokenError,
    TokenExpiredError,
    TokenPair,
    issue_email_verification_token,
    issue_token_pair,
    verify_token,
)

# Set up logging
logger = logging.getLogger(__name__)

GENERIC_RESET_MESSAGE = "If an account with that email exists, a password reset link has been sent."


@dataclass
class ClientInfo:
    """Where a request came from; stored alongside issued tokens."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request: Optional[Request]) -> "ClientInfo":
        if request is None:
            return cls()
        return cls(
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )


@contextmanager
def _transaction(db: Session):
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


def _record_pair(registry: SessionRegistry, user: User, pair: TokenPair, client: ClientInfo) -> None:
    registry.record(
        user.id, pair.access_token, TokenType.ACCESS, pair.access_expires_at,
        user_agent=client.user_agent, ip_address=client.ip_address,
    )
    registry.record(
        user.id, pair.refresh_token, TokenType.REFRESH, pair.refresh_expires_at,
        user_agent=client.user_agent, ip_address=client.ip_address,
    )


def register_user(db: Session, payload: RegisterRequest, client: Optional[ClientInfo] = None) -> Dict[str, Any]:
    """
    Register a new patient, doctor or staff account and sign it in.

    The user, its profile and both registry rows are written in one
    transaction.

    Args:
        db: Database session
        payload: Validated registration data
        client: Request origin, stored with the issued tokens

    Returns:
        Dict with the user, profile and token pair

    Raises:
        DuplicateEmailException: If the email is already registered
    """
    client = client or ClientInfo()
    store = CredentialStore(db)
    registry = SessionRegistry(db)

    logger.info(f"Registration attempt for email: {payload.email} (role: {payload.role.value})")

    with _transaction(db):
        user = store.create_user(
            email=payload.email,
            password=payload.password,
            role=payload.role,
            phone_number=payload.phone_number,
        )
        profile = store.create_profile(
            user,
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone_number,
            specialization=payload.specialization,
            license_number=payload.license_number,
            date_of_birth=payload.date_of_birth,
            gender=payload.gender,
        )
        pair = issue_token_pair(user, profile)
        _record_pair(registry, user, pair, client)
        record_audit_event(
            db,
            action="USER_REGISTRATION_SUCCESS",
            user_id=user.id,
            ip_address=client.ip_address,
            details={"email": user.email, "role": user.role.value},
        )

    verification_token = issue_email_verification_token(user)
    logger.info(f"User registered: {user.id} ({user.email})")
    logger.debug(f"Email verification link for user {user.id}: "
                 f"{settings.frontend_url}/verify-email?token={verification_token}")

    return {"user": user, "profile": profile, "tokens": pair, "verification_token": verification_token}


def login_user(
    db: Session,
    email: str,
    password: str,
    remember_me: bool = False,
    client: Optional[ClientInfo] = None,
) -> Dict[str, Any]:
    """
    Authenticate a user and issue a token pair.

    Unknown email, wrong password and a non-active account all fail with the
    same InvalidCredentialsException, and all of them pay for a bcrypt check.

    Args:
        db: Database session
        email: User's email address
        password: User's password
        remember_me: Issue a longer-lived refresh token
        client: Request origin, stored with the issued tokens

    Returns:
        Dict with the user, profile and token pair

    Raises:
        InvalidCredentialsException: If the credentials are not accepted
    """
    client = client or ClientInfo()
    store = CredentialStore(db)
    registry = SessionRegistry(db)

    user = store.find_by_email(email)
    password_ok = store.verify_password_constant_time(password, user)

    if not password_ok or not user.is_active:
        reason = "unknown_email" if user is None else ("bad_password" if not password_ok else "inactive")
        logger.warning(f"Login failed for {email}: {reason}")
        with _transaction(db):
            record_audit_event(
                db,
                action="USER_LOGIN_FAILED",
                user_id=user.id if user else None,
                ip_address=client.ip_address,
                details={"email": email, "reason": reason},
            )
        raise InvalidCredentialsException()

    with _transaction(db):
        registry.purge_expired(user.id)
        profile = store.get_profile(user)
        pair = issue_token_pair(user, profile, remember_me=remember_me)
        _record_pair(registry, user, pair, client)
        store.touch_last_login(user)
        record_audit_event(
            db,
            action="USER_LOGIN_SUCCESS",
            user_id=user.id,
            ip_address=client.ip_address,
            details={"remember_me": remember_me},
        )

    logger.info(f"Login successful: User {user.id} ({user.email})")
    return {"user": user, "profile": profile, "tokens": pair}


def refresh_tokens(db: Session, refresh_token: Optional[str], client: Optional[ClientInfo] = None) -> Dict[str, Any]:
    """
    Rotate a refresh token: the presented one is consumed, a new pair is issued.

    The conditional delete and the new inserts share one transaction, so a
    token can be rotated at most once and a failed rotation leaves the old
    token in place.

    Raises:
        InvalidRefreshTokenException: Missing, invalid, expired, revoked or
            already-used token, or the owner is no longer active
    """
    client = client or ClientInfo()
    if not refresh_token:
        raise InvalidRefreshTokenException("Refresh token required")

    try:
        claims = verify_token(refresh_token, settings.refresh_secret, expected_type=TokenType.REFRESH)
    except (TokenExpiredError, InvalidTokenError) as exc:
        logger.warning(f"Refresh rejected: {exc}")
        raise InvalidRefreshTokenException() from exc

    store = CredentialStore(db)
    registry = SessionRegistry(db)

    with _transaction(db):
        if not registry.consume(refresh_token, TokenType.REFRESH):
            logger.warning(f"Refresh rejected: token for user {claims.get('user_id')} is not active")
            raise InvalidRefreshTokenException()

        user = store.find_by_id(claims.get("user_id"))
        if not user or not user.is_active:
            logger.warning(f"Refresh rejected: user {claims.get('user_id')} missing or inactive")
            raise InvalidRefreshTokenException()

        profile = store.get_profile(user)
        pair = issue_token_pair(user, profile)
        _record_pair(registry, user, pair, client)
        record_audit_event(db, action="TOKEN_REFRESHED", user_id=user.id, ip_address=client.ip_address)

    logger.info(f"Tokens refreshed for user {user.id}")
    return {"user": user, "profile": profile, "tokens": pair}


def logout_user(
    db: Session,
    user_id: Optional[int],
    token: Optional[str],
    refresh_token: Optional[str] = None,
) -> int:
    """
    Revoke the presented access token and, if given, the refresh token.

    Missing rows are not an error.

    Returns:
        int: Number of registry rows removed
    """
    registry = SessionRegistry(db)
    removed = 0
    with _transaction(db):
        if token:
            removed += registry.revoke(token, user_id=user_id)
        if refresh_token:
            removed += registry.revoke(refresh_token, user_id=user_id)
        if user_id is not None:
            record_audit_event(db, action="USER_LOGOUT", user_id=user_id, details={"revoked": removed})

    logger.info(f"Logout for user {user_id}: {removed} token(s) revoked")
    return removed


def logout_from_all_devices(db: Session, user_id: int) -> int:
    registry = SessionRegistry(db)
    with _transaction(db):
        removed = registry.revoke_all_for_user(user_id)
        record_audit_event(db, action="USER_LOGOUT_ALL_DEVICES", user_id=user_id, details={"revoked": removed})
    return removed


def verify_email(db: Session, token: str) -> User:
    """
    Mark a user's email as verified using a signed verification token.

    Raises:
        TokenExpiredException / InvalidTokenException: If the token is not usable
        UserNotFoundException: If the user no longer exists
    """
    try:
        claims = verify_token(token, settings.jwt_secret, expected_type=TokenType.EMAIL_VERIFICATION)
    except TokenExpiredError as exc:
        raise TokenExpiredException("Verification token has expired") from exc
    except InvalidTokenError as exc:
        raise InvalidTokenException("Invalid verification token") from exc

    store = CredentialStore(db)
    with _transaction(db):
        user = store.find_by_id(claims.get("user_id"))
        if not user or user.email != claims.get("email"):
            raise UserNotFoundException()
        if not user.is_verified:
            store.mark_verified(user.id)
            record_audit_event(db, action="EMAIL_VERIFICATION_SUCCESS", user_id=user.id)
    logger.info(f"Email verified for user {user.id}")
    return user


def verify_user_account(db: Session, user_id: int, verified_by: Optional[int] = None) -> User:
    """
    Administrative verification: marks the account verified.

    The account status is left alone; reactivation goes through
    update_user_status, which only admins may call.
    """
    store = CredentialStore(db)
    with _transaction(db):
        user = store.mark_verified(user_id)
        record_audit_event(
            db,
            action="USER_ACCOUNT_VERIFIED",
            user_id=verified_by,
            details={"target_user_id": user_id},
        )
    logger.info(f"User {user_id} verified by {verified_by}")
    return user


def get_user_profile(db: Session, user_id: int) -> Dict[str, Any]:
    store = CredentialStore(db)
    user = store.get_or_404(user_id)
    return {"user": user, "profile": store.get_profile(user)}


def update_user_profile(db: Session, identity: AuthenticatedIdentity, payload: ProfileUpdateRequest) -> Dict[str, Any]:
    """
    Let the caller edit their own phone number and profile details.

    Only the fields present in the request are written. Email, role and
    status are not part of ProfileUpdateRequest.

    Returns:
        Dict with the user and the updated profile

    Raises:
        ValidationException: If a field does not apply to the caller's profile
    """
    store = CredentialStore(db)
    changes = payload.model_dump(exclude_unset=True)

    with _transaction(db):
        user = store.get_or_404(identity.id)
        profile = store.update_profile(user, changes)
        record_audit_event(
            db,
            action="USER_PROFILE_UPDATED",
            user_id=user.id,
            details={"fields": sorted(changes)},
        )

    logger.info(f"Profile updated for user {user.id}: {sorted(changes)}")
    return {"user": user, "profile": profile}


def forgot_password(db: Session, email: str, client: Optional[ClientInfo] = None) -> Optional[str]:
    """
    Start a password reset.

    Callers always answer with GENERIC_RESET_MESSAGE, whatever this returns.

    Returns:
        The raw reset token for an active user, None otherwise
    """
    client = client or ClientInfo()
    store = CredentialStore(db)
    resets = ResetTokenStore(db)

    user = store.find_by_email(email)
    if not user or not user.is_active:
        logger.warning(f"Password reset requested for unknown or inactive email: {email}")
        return None

    with _transaction(db):
        resets.purge_expired()
        token, _ = resets.create(user.id, ttl=timedelta(minutes=settings.password_reset_expire_minutes))
        record_audit_event(db, action="FORGOT_PASSWORD_REQUESTED", user_id=user.id, ip_address=client.ip_address)

    logger.info(f"Password reset token issued for user {user.id}")
    logger.debug(f"Password reset link for user {user.id}: {settings.frontend_url}/reset-password?token={token}")
    return token


def verify_reset_token(db: Session, token: str) -> Dict[str, Any]:
    """
    Check a reset token without using it.

    Returns:
        Dict with the account email and profile names

    Raises:
        InvalidResetTokenException: If the token is unknown, used or expired
    """
    store = CredentialStore(db)
    found = ResetTokenStore(db).find_valid(token)
    if not found:
        raise InvalidResetTokenException()
    _, user = found
    profile = store.get_profile(user)
    return {
        "email": user.email,
        "first_name": profile.first_name if profile else None,
        "last_name": profile.last_name if profile else None,
    }


def reset_password(db: Session, token: str, new_password: str, client: Optional[ClientInfo] = None) -> User:
    """
    Set a new password with a one-time reset token.

    In one transaction the token is consumed, the hash replaced, every other
    reset token of the user deleted and every session revoked.

    Raises:
        InvalidResetTokenException: If the token is unknown, used or expired
    """
    client = client or ClientInfo()
    store = CredentialStore(db)
    resets = ResetTokenStore(db)
    registry = SessionRegistry(db)

    with _transaction(db):
        found = resets.find_valid(token)
        if not found or not resets.consume(token):
            logger.warning("Password reset failed: invalid or expired token")
            raise InvalidResetTokenException()
        _, user = found
        store.update_password_hash(user.id, hash_password(new_password))
        resets.delete_for_user(user.id)
        revoked = registry.revoke_all_for_user(user.id)
        record_audit_event(
            db,
            action="PASSWORD_RESET_SUCCESS",
            user_id=user.id,
            ip_address=client.ip_address,
            details={"sessions_revoked": revoked},
        )

    logger.info(f"Password reset completed for user {user.id}")
    return user


def change_password(db: Session, identity: AuthenticatedIdentity, current_password: str, new_password: str) -> int:
    """
    Change the caller's password and sign them out everywhere.

    Returns:
        int: Number of sessions revoked

    Raises:
        ValidationException: If the current password is wrong
    """
    store = CredentialStore(db)
    registry = SessionRegistry(db)

    with _transaction(db):
        user = store.get_or_404(identity.id)
        if not verify_password(current_password, user.password_hash):
            logger.warning(f"Password change failed for user {user.id}: wrong current password")
            raise ValidationException("Current password is incorrect")
        store.update_password_hash(user.id, hash_password(new_password))
        revoked = registry.revoke_all_for_user(user.id)
        record_audit_event(db, action="PASSWORD_CHANGED", user_id=user.id, details={"sessions_revoked": revoked})

    logger.info(f"Password changed for user {user.id}")
    return revoked


def update_user_status(
    db: Session,
    user_id: int,
    status: AccountStatus,
    changed_by: Optional[int] = None,
) -> User:
    """
    Flip an account's status. Leaving ACTIVE revokes every session.
    """
    store = CredentialStore(db)
    registry = SessionRegistry(db)

    with _transaction(db):
        user = store.get_or_404(user_id)
        old_status = user.status
        store.set_status(user_id, status)
        revoked = 0
        if status != AccountStatus.ACTIVE:
            revoked = registry.revoke_all_for_user(user_id)
        record_audit_event(
            db,
            action="USER_STATUS_CHANGED",
            user_id=changed_by,
            details={
                "target_user_id": user_id,
                "old_status": old_status.value,
                "new_status": status.value,
                "sessions_revoked": revoked,
            },
        )

    logger.info(f"User {user_id} status changed from {old_status.value} to {status.value}")
    return user


def cleanup_expired_tokens(db: Session) -> int:
    """Purge expired session and reset rows for every user."""
    with _transaction(db):
        removed = SessionRegistry(db).purge_expired()
        removed += ResetTokenStore(db).purge_expired()
    if removed:
        logger.info(f"Cleaned up {removed} expired token(s)")
    return removed
