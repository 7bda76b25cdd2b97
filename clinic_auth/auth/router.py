"""
Authentication API endpoints.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..config import settings
from ..core.rate_limit import limiter
from ..core.responses import api_response, clear_auth_cookies, set_auth_cookies
from ..database import get_db
from . import service
from .dependencies import (
    LogoutContext,
    bearer_scheme,
    get_current_identity,
    get_logout_context,
    get_optional_identity,
)
from .schemas import (
    AuthenticatedIdentity,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    ProfileResponse,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenPairResponse,
    UserResponse,
    VerifyEmailRequest,
)

# Set up logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _session_data(result: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize a service result holding user, profile and tokens."""
    tokens = result["tokens"]
    profile = result.get("profile")
    data = {
        "user": UserResponse.model_validate(result["user"]),
        "profile": ProfileResponse.model_validate(profile) if profile is not None else None,
    }
    data.update(TokenPairResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=int(tokens.access_ttl.total_seconds()),
        refresh_expires_in=int(tokens.refresh_ttl.total_seconds()),
    ).model_dump())
    return data


@router.post("/register", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.register_rate_limit)
def register(request: Request, payload: RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a patient, doctor or staff account.

    The new account is signed in straight away: the token pair is returned in
    the body and set as cookies.
    """
    result = service.register_user(db, payload, service.ClientInfo.from_request(request))
    response = api_response("User registered successfully", _session_data(result), status.HTTP_201_CREATED)
    set_auth_cookies(response, result["tokens"])
    return response


@router.post("/login")
@limiter.limit(settings.login_rate_limit)
def login(request: Request, payload: LoginRequest, db: Session = Depends(get_db)):
    """
    Authenticate with email and password.

    Any failure answers with the same 401 "Invalid email or password".
    """
    result = service.login_user(
        db,
        payload.email,
        payload.password,
        remember_me=payload.remember_me,
        client=service.ClientInfo.from_request(request),
    )
    response = api_response("Login successful", _session_data(result))
    set_auth_cookies(response, result["tokens"])
    return response


@router.post("/refresh-token")
def refresh_token(
    request: Request,
    payload: Optional[RefreshTokenRequest] = None,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
):
    """
    Exchange a refresh token for a new pair. The presented token is used up.

    The refresh token is read from the body, then the refresh cookie, then
    the Authorization header.
    """
    token = (
        (payload.refresh_token if payload else None)
        or request.cookies.get(settings.refresh_cookie_name)
        or (credentials.credentials if credentials else None)
    )
    result = service.refresh_tokens(db, token, service.ClientInfo.from_request(request))
    response = api_response("Token refreshed successfully", _session_data(result))
    set_auth_cookies(response, result["tokens"])
    return response


@router.post("/logout")
def logout(
    request: Request,
    payload: Optional[LogoutRequest] = None,
    context: LogoutContext = Depends(get_logout_context),
    db: Session = Depends(get_db),
):
    """
    Sign out the current session.

    Always succeeds, even with an expired or missing token; cookies are cleared.
    """
    refresh = (payload.refresh_token if payload else None) or request.cookies.get(settings.refresh_cookie_name)
    service.logout_user(db, context.user_id, context.token, refresh_token=refresh)
    response = api_response("Logged out successfully")
    clear_auth_cookies(response)
    return response


@router.post("/revoke-refresh-token")
def revoke_all_sessions(
    identity: AuthenticatedIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Sign out from every device by revoking all of the caller's tokens."""
    revoked = service.logout_from_all_devices(db, identity.id)
    response = api_response("Logged out from all devices successfully", {"revoked_sessions": revoked})
    clear_auth_cookies(response)
    return response


@router.post("/forgot-password")
@limiter.limit(settings.forgot_password_rate_limit)
def forgot_password(request: Request, payload: ForgotPasswordRequest, db: Session = Depends(get_db)):
    """
    Request a password reset link.

    The answer is identical whether or not the email belongs to an account.
    """
    service.forgot_password(db, payload.email, service.ClientInfo.from_request(request))
    return api_response(service.GENERIC_RESET_MESSAGE)


@router.get("/verify-reset-token")
def verify_reset_token(token: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    data = service.verify_reset_token(db, token)
    return api_response("Reset token is valid", data)


@router.post("/reset-password")
def reset_password(request: Request, payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    """
    Set a new password with a reset token.

    Every session of the account is revoked, so the user must log in again.
    """
    service.reset_password(db, payload.token, payload.new_password, service.ClientInfo.from_request(request))
    response = api_response("Password has been reset successfully. Please log in with your new password.")
    clear_auth_cookies(response)
    return response


@router.post("/change-password")
def change_password(
    payload: ChangePasswordRequest,
    identity: AuthenticatedIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    revoked = service.change_password(db, identity, payload.current_password, payload.new_password)
    response = api_response(
        "Password changed successfully. Please log in again.",
        {"revoked_sessions": revoked},
    )
    clear_auth_cookies(response)
    return response


@router.post("/verify-email")
def verify_email(payload: VerifyEmailRequest, db: Session = Depends(get_db)):
    user = service.verify_email(db, payload.token)
    return api_response("Email verified successfully", {"user": UserResponse.model_validate(user)})


@router.post("/verify")
def verify_token(identity: AuthenticatedIdentity = Depends(get_current_identity)):
    """Check that the presented access token is still honoured."""
    return api_response("Token is valid", {"valid": True, "user": identity})


@router.get("/me")
def read_current_user(
    identity: AuthenticatedIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    result = service.get_user_profile(db, identity.id)
    profile = result["profile"]
    return api_response(
        "User profile retrieved successfully",
        {
            "user": UserResponse.model_validate(result["user"]),
            "profile": ProfileResponse.model_validate(profile) if profile is not None else None,
        },
    )


@router.get("/session")
def read_session(identity: Optional[AuthenticatedIdentity] = Depends(get_optional_identity)):
    """
    Describe the caller's session; anonymous callers get authenticated=false.
    """
    return api_response(
        "Session retrieved successfully",
        {"authenticated": identity is not None, "user": identity},
    )
