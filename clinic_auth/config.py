"""
Application configuration settings loaded from environment variables.
Uses pydantic_settings for validation and type conversion.
"""
import re
from datetime import timedelta
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {
    "": "seconds",
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
}


def parse_duration(value: str) -> timedelta:
    """
    Parse a short duration string such as "15m", "24h", "7d" or "900".

    Args:
        value: Duration string; a bare number is read as seconds

    Returns:
        timedelta: Parsed duration

    Raises:
        ValueError: If the string is not a supported duration
    """
    match = _DURATION_PATTERN.match(str(value))
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


class Settings(BaseSettings):
    """
    Application settings class with environment variable validation.

    Attributes:
        database_url: SQLAlchemy connection string
        db_pool_size: Connections kept open in the pool
        db_max_overflow: Extra connections allowed above the pool size
        db_connect_timeout: Seconds to wait for a connection before failing

        jwt_secret: Signing key for access tokens (at least 32 characters)
        jwt_refresh_secret: Optional separate signing key for refresh tokens
        jwt_algorithm: JWT signing algorithm
        jwt_expires_in: Access token lifetime ("15m", "1h", ...)
        refresh_token_expires_in: Refresh token lifetime
        remember_me_refresh_expires_in: Refresh token lifetime with "remember me"
        jwt_issuer / jwt_audience: Registered claims stamped on every token

        bcrypt_rounds: Password hash cost factor
        password_reset_expire_minutes: Lifetime of one-time reset tokens

        # Rate limiting
        rate_limit_enabled: Global switch for the slowapi limiter
        login_rate_limit / register_rate_limit / forgot_password_rate_limit:
            slowapi limit strings per client IP

        # Cookies
        access_cookie_name / refresh_cookie_name: Cookie names for the token pair

        # Bootstrap admin settings (optional)
        bootstrap_admin_email: Optional admin email for first admin creation
        bootstrap_admin_password: Optional admin password for first admin creation
    """
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    # Database settings
    database_url: str
    db_pool_size: int = 10
    db_max_overflow: int = 10
    db_connect_timeout: int = 2

    # JWT settings
    jwt_secret: str
    jwt_refresh_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    jwt_expires_in: str = "15m"
    refresh_token_expires_in: str = "7d"
    remember_me_refresh_expires_in: str = "30d"
    jwt_issuer: str = "chiropractor-clinic"
    jwt_audience: str = "clinic-users"

    # Password settings
    bcrypt_rounds: int = 12
    password_reset_expire_minutes: int = 60

    # Rate limiting
    rate_limit_enabled: bool = True
    login_rate_limit: str = "5/15minutes"
    register_rate_limit: str = "5/15minutes"
    forgot_password_rate_limit: str = "3/hour"

    # Cookie settings
    access_cookie_name: str = "accessToken"
    refresh_cookie_name: str = "refreshToken"

    # Frontend settings
    frontend_url: str = "http://localhost:5173"
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Bootstrap admin settings (optional - only used for first admin creation)
    bootstrap_admin_email: Optional[str] = None
    bootstrap_admin_password: Optional[str] = None

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, value: str) -> str:
        if len(value) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters long")
        return value

    @field_validator("jwt_expires_in", "refresh_token_expires_in", "remember_me_refresh_expires_in")
    @classmethod
    def validate_duration(cls, value: str) -> str:
        parse_duration(value)
        return value

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, value: int) -> int:
        # passlib's bcrypt backend accepts 4..31
        if not 4 <= value <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return value

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def refresh_secret(self) -> str:
        return self.jwt_refresh_secret or self.jwt_secret

    @property
    def access_token_ttl(self) -> timedelta:
        return parse_duration(self.jwt_expires_in)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return parse_duration(self.refresh_token_expires_in)

    @property
    def remember_me_refresh_ttl(self) -> timedelta:
        return parse_duration(self.remember_me_refresh_expires_in)


# Create settings instance
settings = Settings()
