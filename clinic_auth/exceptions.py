"""
Global exception handlers and the application exception base class.

Every error response leaves through one of these handlers, so the response
envelope stays identical across the service:
{success, message, statusCode, errorCode, errors?}
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from .config import settings

# Set up logging
logger = logging.getLogger(__name__)


class AppException(Exception):
    """
    Base exception class for application-specific exceptions.

    Attributes:
        message: Human readable message (logged; shown to clients unless public_message is set)
        status_code: HTTP status code
        error_code: Short numeric string identifying the failure for clients
        public_message: Optional message shown to clients in production instead of message
    """
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "5000"
    default_message: str = "Internal Server Error"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        public_message: Optional[str] = None,
    ):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.public_message = public_message
        super().__init__(self.message)

    @property
    def detail(self) -> str:
        return self.message


class DatabaseUnavailableException(AppException):
    """Raised when a pooled connection cannot be acquired."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "5030"
    default_message = "Database connection not available"


class InternalServerException(AppException):
    """Raised for unexpected failures; details stay in the server log."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "5000"
    default_message = "Internal Server Error"


def error_response(
    message: str,
    status_code: int,
    error_code: str,
    errors: Optional[List[Any]] = None,
) -> JSONResponse:
    """
    Build the standard error envelope.

    Args:
        message: Message for the client
        status_code: HTTP status code
        error_code: Short numeric error code
        errors: Optional list of field-level errors

    Returns:
        JSONResponse: Error response
    """
    content: Dict[str, Any] = {
        "success": False,
        "message": message,
        "statusCode": status_code,
        "errorCode": error_code,
    }
    if errors:
        content["errors"] = jsonable_encoder(errors)
    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException):
    """
    Handler for application-specific exceptions.

    Args:
        request: The request that caused the exception
        exc: The exception instance

    Returns:
        JSONResponse: Standardized error response
    """
    if exc.status_code >= 500:
        logger.error(f"Application error [{exc.error_code}] on {request.url.path}: {exc.message}")
    else:
        logger.warning(f"Request rejected [{exc.error_code}] on {request.url.path}: {exc.message}")

    message = exc.message
    if exc.public_message and settings.is_production:
        message = exc.public_message
    return error_response(message, exc.status_code, exc.error_code)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handler for request validation exceptions.

    Args:
        request: The request that caused the exception
        exc: The validation exception instance

    Returns:
        JSONResponse: Standardized error response with validation details
    """
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg"),
        }
        for error in exc.errors()
    ]
    logger.warning(f"Validation error on {request.url.path}: {errors}")
    first = errors[0] if errors else {"field": "", "message": "Invalid request"}
    message = f"Validation error: {first['field']} {first['message']}".strip()
    return error_response(message, status.HTTP_400_BAD_REQUEST, "4001", errors)


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded):
    """Handler for slowapi rate limit rejections."""
    client_host = request.client.host if request.client else "unknown"
    logger.warning(f"Rate limit exceeded for {client_host} on {request.url.path}: {exc.detail}")
    return error_response(
        "Too many requests. Please try again later.",
        status.HTTP_429_TOO_MANY_REQUESTS,
        "4290",
    )


async def database_unavailable_handler(request: Request, exc: Exception):
    """Handler for connection and pool acquisition failures."""
    logger.error(f"Database unavailable on {request.url.path}: {exc}")
    return error_response(
        DatabaseUnavailableException.default_message,
        DatabaseUnavailableException.status_code,
        DatabaseUnavailableException.error_code,
    )


async def integrity_error_handler(request: Request, exc: IntegrityError):
    """Handler for unique/foreign key violations that slipped past service checks."""
    logger.warning(f"Integrity error on {request.url.path}: {exc.orig}")
    return error_response("Resource already exists", status.HTTP_409_CONFLICT, "4090")


async def unhandled_exception_handler(request: Request, exc: Exception):
    """Collapse anything unexpected to a 500 without echoing details."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(
        InternalServerException.default_message,
        InternalServerException.status_code,
        InternalServerException.error_code,
    )


# Register exception handlers with FastAPI app
def register_exception_handlers(app):
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(OperationalError, database_unavailable_handler)
    app.add_exception_handler(PoolTimeoutError, database_unavailable_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
