"""
Authentication models - users, issued session tokens and password reset tokens.

Users are never hard-deleted; access is withdrawn by flipping status.
"""
import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


def _enum_values(enum_class):
    return [member.value for member in enum_class]


class UserRole(str, enum.Enum):
    """
    Enumeration for user roles in the clinic system.

    Roles:
    - PATIENT: Patients who book appointments and fill in intake forms
    - DOCTOR: Chiropractors who see patients
    - STAFF: Front desk staff managing appointments and records
    - ADMIN: System administrators with full access
    """
    PATIENT = "patient"
    DOCTOR = "doctor"
    STAFF = "staff"
    ADMIN = "admin"


class AccountStatus(str, enum.Enum):
    """
    Enumeration for account status.

    Only ACTIVE accounts can log in or use issued tokens.
    """
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class TokenType(str, enum.Enum):
    """Kinds of signed tokens the service issues."""
    ACCESS = "access"
    REFRESH = "refresh"
    EMAIL_VERIFICATION = "email_verification"


class User(Base):
    """
    User Model - Stores credentials and account state for every role

    Fields:
    - id: Primary key for user identification
    - email: Unique, lower-cased email address used for login
    - username: Local part of the email, used for display
    - password_hash: bcrypt hash (never store raw passwords)
    - role: User role (patient, doctor, staff, admin)
    - status: Account status (active, inactive, suspended)
    - phone_number: Contact number (optional)
    - is_verified: Whether the email address has been verified
    - last_login_at: Timestamp of the last successful login
    - created_at / updated_at: Row timestamps
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(
        Enum(UserRole, name="user_role", values_callable=_enum_values),
        nullable=False,
        default=UserRole.PATIENT,
    )
    status = Column(
        Enum(AccountStatus, name="account_status", values_callable=_enum_values),
        nullable=False,
        default=AccountStatus.ACTIVE,
    )
    phone_number = Column(String(20), nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    patient_profile = relationship("Patient", back_populates="user", uselist=False)
    doctor_profile = relationship("Doctor", back_populates="user", uselist=False)
    issued_tokens = relationship("IssuedToken", back_populates="user", passive_deletes=True)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE


class IssuedToken(Base):
    """
    IssuedToken Model - Session registry row for one signed token

    A signed token is only honoured while a matching row exists and has not
    expired; deleting the row revokes the token.

    Fields:
    - id: Primary key
    - user_id: Owner of the token
    - token_hash: SHA-256 hex digest of the signed token
    - token_type: access or refresh
    - expires_at: Same instant as the token's exp claim
    - user_agent / ip_address: Client that the token was issued to
    - created_at: Issue time
    """
    __tablename__ = "issued_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, index=True, nullable=False)
    token_type = Column(
        Enum(TokenType, name="token_type", values_callable=_enum_values),
        nullable=False,
    )
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    user_agent = Column(String(255), nullable=True)
    ip_address = Column(String(45), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="issued_tokens")

    def __repr__(self):
        return f"<IssuedToken(id={self.id}, user_id={self.user_id}, type='{self.token_type}')>"


class PasswordReset(Base):
    """
    PasswordReset Model - One-time password reset token

    Only the SHA-256 digest of the emailed token is stored. Rows are deleted
    when used and purged once expired.
    """
    __tablename__ = "password_resets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, index=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")
