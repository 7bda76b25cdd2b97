"""
Tests for the auth service functions.
"""
import pytest

from clinic_auth.auth import service
from clinic_auth.auth.dependencies import resolve_identity
from clinic_auth.auth.exceptions import (
    DuplicateEmailException,
    InvalidCredentialsException,
    InvalidRefreshTokenException,
    InvalidResetTokenException,
    TokenRevokedException,
    UserInactiveException,
    ValidationException,
)
from clinic_auth.auth.models import AccountStatus, PasswordReset, TokenType, UserRole
from clinic_auth.auth.schemas import RegisterRequest
from clinic_auth.auth.session_registry import SessionRegistry
from clinic_auth.auth.tokens import verify_token
from clinic_auth.config import settings
from clinic_auth.core.audit_service import list_audit_events

TEST_PASSWORD = "Password123!"


def _register(db, email="dr@x.com", role="doctor", **extra):
    payload = RegisterRequest(
        email=email,
        password=TEST_PASSWORD,
        confirm_password=TEST_PASSWORD,
        first_name="Dana",
        last_name="Ray",
        role=role,
        specialization="Chiropractic" if role == "doctor" else None,
        **extra,
    )
    return service.register_user(db, payload)


def test_register_creates_user_profile_and_sessions(db):
    result = _register(db)

    user = result["user"]
    assert user.role == UserRole.DOCTOR
    assert result["profile"].specialization == "Chiropractic"
    assert SessionRegistry(db).count_active_for_user(user.id) == 2
    claims = verify_token(result["tokens"].access_token, settings.jwt_secret, TokenType.ACCESS)
    assert claims["user_id"] == user.id
    assert claims["profile_id"] == result["profile"].id


def test_register_issues_email_verification_token(db):
    result = _register(db, email="verify@example.com", role="patient")

    user = service.verify_email(db, result["verification_token"])
    assert user.is_verified is True


def test_register_duplicate_email_leaves_nothing_behind(db):
    _register(db)
    with pytest.raises(DuplicateEmailException):
        _register(db, email="DR@x.com")
    assert SessionRegistry(db).count_active_for_user(1) == 2


def test_login_returns_token_for_user(db, make_user):
    user = make_user(email="login@example.com")

    result = service.login_user(db, "login@example.com", TEST_PASSWORD)

    claims = verify_token(result["tokens"].access_token, settings.jwt_secret, TokenType.ACCESS)
    assert claims["user_id"] == user.id
    assert result["user"].last_login_at is not None


@pytest.mark.parametrize(
    "email,password",
    [
        ("nobody@example.com", TEST_PASSWORD),
        ("patient@example.com", "WrongPassword1!"),
    ],
)
def test_login_failures_are_indistinguishable(db, make_user, email, password):
    make_user()
    with pytest.raises(InvalidCredentialsException) as exc_info:
        service.login_user(db, email, password)
    assert exc_info.value.message == "Invalid email or password"
    assert exc_info.value.error_code == "4011"


def test_login_rejects_inactive_account(db, make_user):
    make_user(status=AccountStatus.SUSPENDED)
    with pytest.raises(InvalidCredentialsException):
        service.login_user(db, "patient@example.com", TEST_PASSWORD)


def test_failed_login_is_audited(db, make_user):
    make_user()
    with pytest.raises(InvalidCredentialsException):
        service.login_user(db, "patient@example.com", "WrongPassword1!")
    assert list_audit_events(db, action="USER_LOGIN_FAILED").count() == 1


def test_refresh_rotates_and_rejects_replay(db, make_user):
    make_user()
    old = service.login_user(db, "patient@example.com", TEST_PASSWORD)["tokens"]

    new = service.refresh_tokens(db, old.refresh_token)["tokens"]
    assert new.refresh_token != old.refresh_token

    with pytest.raises(InvalidRefreshTokenException):
        service.refresh_tokens(db, old.refresh_token)

    # the rotated token is still good
    service.refresh_tokens(db, new.refresh_token)


def test_refresh_rejects_access_token(db, make_user):
    make_user()
    tokens = service.login_user(db, "patient@example.com", TEST_PASSWORD)["tokens"]
    with pytest.raises(InvalidRefreshTokenException):
        service.refresh_tokens(db, tokens.access_token)


def test_refresh_for_inactive_user_keeps_old_row(db, make_user):
    user = make_user()
    tokens = service.login_user(db, "patient@example.com", TEST_PASSWORD)["tokens"]
    # status flipped behind the service's back, sessions left in place
    user.status = AccountStatus.INACTIVE
    db.commit()

    with pytest.raises(InvalidRefreshTokenException):
        service.refresh_tokens(db, tokens.refresh_token)
    assert SessionRegistry(db).find_active(tokens.refresh_token) is not None


def test_logout_revokes_token_but_codec_still_accepts_it(db, make_user):
    user = make_user()
    tokens = service.login_user(db, "patient@example.com", TEST_PASSWORD)["tokens"]

    removed = service.logout_user(db, user.id, tokens.access_token, refresh_token=tokens.refresh_token)

    assert removed == 2
    assert verify_token(tokens.access_token, settings.jwt_secret)["user_id"] == user.id
    with pytest.raises(TokenRevokedException):
        resolve_identity(db, tokens.access_token)


def test_logout_is_lenient(db):
    assert service.logout_user(db, None, None) == 0
    assert service.logout_user(db, 42, "unknown-token") == 0


def test_logout_from_all_devices(db, make_user):
    user = make_user()
    first = service.login_user(db, "patient@example.com", TEST_PASSWORD)["tokens"]
    second = service.login_user(db, "patient@example.com", TEST_PASSWORD)["tokens"]

    assert service.logout_from_all_devices(db, user.id) == 4
    for tokens in (first, second):
        with pytest.raises(TokenRevokedException):
            resolve_identity(db, tokens.access_token)


def test_forgot_password_unknown_email_returns_none(db):
    assert service.forgot_password(db, "ghost@example.com") is None
    assert db.query(PasswordReset).count() == 0


def test_reset_password_invalidates_everything(db, make_user):
    user = make_user()
    tokens = service.login_user(db, "patient@example.com", TEST_PASSWORD)["tokens"]
    reset_token = service.forgot_password(db, "patient@example.com")

    info = service.verify_reset_token(db, reset_token)
    assert info == {"email": "patient@example.com", "first_name": "Pat", "last_name": "Smith"}

    service.reset_password(db, reset_token, "BrandNew123!")

    with pytest.raises(TokenRevokedException):
        resolve_identity(db, tokens.access_token)
    with pytest.raises(InvalidRefreshTokenException):
        service.refresh_tokens(db, tokens.refresh_token)
    with pytest.raises(InvalidResetTokenException):
        service.reset_password(db, reset_token, "Another123!")
    with pytest.raises(InvalidCredentialsException):
        service.login_user(db, "patient@example.com", TEST_PASSWORD)
    assert service.login_user(db, "patient@example.com", "BrandNew123!")["user"].id == user.id


def test_reset_password_with_unknown_token(db):
    with pytest.raises(InvalidResetTokenException):
        service.reset_password(db, "made-up", "BrandNew123!")
    with pytest.raises(InvalidResetTokenException):
        service.verify_reset_token(db, "made-up")


def test_change_password_requires_current_password(db, make_user):
    make_user()
    tokens = service.login_user(db, "patient@example.com", TEST_PASSWORD)["tokens"]
    identity = resolve_identity(db, tokens.access_token)

    with pytest.raises(ValidationException):
        service.change_password(db, identity, "WrongPassword1!", "BrandNew123!")

    assert service.change_password(db, identity, TEST_PASSWORD, "BrandNew123!") == 2
    with pytest.raises(TokenRevokedException):
        resolve_identity(db, tokens.access_token)


def test_deactivation_revokes_sessions(db, make_user):
    user = make_user()
    tokens = service.login_user(db, "patient@example.com", TEST_PASSWORD)["tokens"]

    service.update_user_status(db, user.id, AccountStatus.INACTIVE)

    assert SessionRegistry(db).count_active_for_user(user.id) == 0
    with pytest.raises(TokenRevokedException):
        resolve_identity(db, tokens.access_token)


def test_identity_requires_active_user(db, make_user):
    user = make_user()
    tokens = service.login_user(db, "patient@example.com", TEST_PASSWORD)["tokens"]
    user.status = AccountStatus.SUSPENDED
    db.commit()

    with pytest.raises(UserInactiveException):
        resolve_identity(db, tokens.access_token)


def test_verify_user_account_leaves_status_alone(db, make_user):
    user = make_user(status=AccountStatus.SUSPENDED)

    verified = service.verify_user_account(db, user.id)

    assert verified.is_verified is True
    assert verified.status == AccountStatus.SUSPENDED
