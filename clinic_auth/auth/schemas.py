"""
Auth Schemas - Pydantic models for request validation and response serialization.
"""
import re
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from .models import AccountStatus, UserRole

PUBLIC_REGISTRATION_ROLES = (UserRole.PATIENT, UserRole.DOCTOR, UserRole.STAFF)

_PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&]).+$")
_NAME_PATTERN = re.compile(r"^[A-Za-z\s'-]+$")


def validate_password_strength(value: str) -> str:
    if not _PASSWORD_PATTERN.match(value):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, "
            "one number, and one special character"
        )
    return value


def _normalize_email(value: str) -> str:
    return value.strip().lower()


class RegisterRequest(BaseModel):
    """
    Registration Schema - Used for self-registration of patients, doctors and staff

    Fields:
    - email: Login email (lower-cased)
    - password / confirm_password: Must match and meet the strength rules
    - first_name / last_name: Stored on the profile row
    - role: patient (default), doctor or staff; admins are never self-registered
    - phone_number: Optional contact number
    - specialization / license_number: Doctor details, specialization required for doctors
    - date_of_birth / gender: Optional patient details
    """
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    confirm_password: str
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    role: UserRole = UserRole.PATIENT
    phone_number: Optional[str] = Field(None, max_length=20)
    specialization: Optional[str] = Field(None, max_length=100)
    license_number: Optional[str] = Field(None, max_length=50)
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return validate_password_strength(value)

    @field_validator("first_name", "last_name")
    @classmethod
    def check_name(cls, value: str) -> str:
        value = value.strip()
        if not _NAME_PATTERN.match(value):
            raise ValueError("Name can only contain letters, spaces, hyphens, and apostrophes")
        return value

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("role")
    @classmethod
    def check_role(cls, value: UserRole) -> UserRole:
        if value not in PUBLIC_REGISTRATION_ROLES:
            raise ValueError("Role must be one of: patient, doctor, staff")
        return value

    @model_validator(mode="after")
    def check_consistency(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        if self.role == UserRole.DOCTOR and not (self.specialization and self.specialization.strip()):
            raise ValueError("Specialization is required for doctors")
        return self


class LoginRequest(BaseModel):
    """
    User Login Schema - Used for authentication

    Fields:
    - email: User's email address
    - password: User's plain text password
    - remember_me: Issue a longer-lived refresh token
    """
    email: EmailStr
    password: str = Field(..., min_length=1)
    remember_me: bool = False

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class RefreshTokenRequest(BaseModel):
    """Refresh token may also arrive as a cookie or bearer header."""
    refresh_token: Optional[str] = None


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class ResetPasswordRequest(BaseModel):
    """
    Reset Password Schema

    Fields:
    - token: One-time token from the reset link
    - new_password / confirm_password: Must match and meet the strength rules
    """
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return validate_password_strength(value)

    @model_validator(mode="after")
    def check_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return validate_password_strength(value)

    @model_validator(mode="after")
    def check_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        if self.new_password == self.current_password:
            raise ValueError("New password must be different from current password")
        return self


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1)


class UserStatusUpdate(BaseModel):
    status: AccountStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class ProfileUpdateRequest(BaseModel):
    """
    Self-service profile edit. Only the fields sent are changed.

    Email, role and status cannot be changed here; unknown fields are rejected.
    """
    model_config = ConfigDict(extra="forbid")

    first_name: Optional[str] = Field(None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone_number: Optional[str] = Field(None, max_length=20)
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)
    specialization: Optional[str] = Field(None, min_length=1, max_length=100)
    license_number: Optional[str] = Field(None, max_length=50)

    @field_validator("first_name", "last_name")
    @classmethod
    def check_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            raise ValueError("Name cannot be empty")
        value = value.strip()
        if not _NAME_PATTERN.match(value):
            raise ValueError("Name can only contain letters, spaces, hyphens, and apostrophes")
        return value

    @model_validator(mode="after")
    def check_not_empty(self):
        if not self.model_fields_set:
            raise ValueError("No profile fields to update")
        return self


class UserResponse(BaseModel):
    """
    User Response Schema - Used when returning user data to clients

    Never includes the password hash.
    """
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    username: str
    role: UserRole
    status: AccountStatus
    phone_number: Optional[str] = None
    is_verified: bool
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ProfileResponse(BaseModel):
    """Patient or doctor profile; fields that do not apply are null."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    specialization: Optional[str] = None
    license_number: Optional[str] = None


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_in: int


class AuthenticatedIdentity(BaseModel):
    """
    The caller of the current request.

    Built from verified claims and a freshly loaded user row on every request.
    """
    id: int
    email: str
    username: str
    role: UserRole
    status: AccountStatus
    profile_id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    token: str = Field(..., exclude=True, repr=False)

