"""
Authentication-specific exceptions.
"""
from typing import Iterable, Union

from fastapi import status

from ..exceptions import AppException
from .models import UserRole


class ValidationException(AppException):
    """Exception raised when input fails a business validation rule."""
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "4001"
    default_message = "Validation error"


class DuplicateEmailException(AppException):
    """Exception raised when email already exists."""
    status_code = status.HTTP_409_CONFLICT
    error_code = "4091"
    default_message = "User with this email already exists"


class InvalidCredentialsException(AppException):
    """Exception raised when credentials are invalid."""
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "4011"
    default_message = "Invalid email or password"


class MissingTokenException(AppException):
    """Exception raised when no access token was presented."""
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "4001"
    default_message = "Access token required"


class TokenExpiredException(AppException):
    """Exception raised when token has expired."""
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "4002"
    default_message = "Token has expired"


class InvalidTokenException(AppException):
    """Exception raised when token is invalid."""
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "4003"
    default_message = "Invalid token"


class TokenRevokedException(AppException):
    """Exception raised when a validly signed token has no active session."""
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "4005"
    default_message = "Token has been revoked or is unknown"


class InvalidRefreshTokenException(AppException):
    """Exception raised when a refresh token cannot be rotated."""
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "4013"
    default_message = "Invalid or expired refresh token"


class UserInactiveException(AppException):
    """Exception raised when the token's user is gone or not active."""
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "4015"
    default_message = "User not found or inactive"


class InvalidResetTokenException(AppException):
    """Exception raised during password reset."""
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "4020"
    default_message = "Invalid or expired reset token"


class UserNotFoundException(AppException):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "4041"
    default_message = "User not found"


class RoleNotAllowedException(AppException):
    """Exception raised when user doesn't have required role."""
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "4030"
    default_message = "Access denied"

    def __init__(self, required_roles: Iterable[Union[str, UserRole]], user_role: Union[str, UserRole]):
        self.required_roles = [getattr(role, "value", role) for role in required_roles]
        self.user_role = getattr(user_role, "value", user_role)
        detail = f"Access denied. Required roles: {self.required_roles}. Your role: {self.user_role}"
        super().__init__(detail, public_message=self.default_message)
