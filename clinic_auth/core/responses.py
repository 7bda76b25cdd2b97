"""
Success envelope and auth cookie helpers.

Every successful response body has the shape
{success, message, statusCode, data?}; errors are built in exceptions.py.
"""
from typing import Any, Optional

from fastapi import Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..auth.tokens import TokenPair
from ..config import settings


def api_response(message: str, data: Optional[Any] = None, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    content = {
        "success": True,
        "message": message,
        "statusCode": status_code,
    }
    if data is not None:
        content["data"] = jsonable_encoder(data)
    return JSONResponse(status_code=status_code, content=content)


def set_auth_cookies(response: Response, tokens: TokenPair) -> None:
    """Attach the token pair as httpOnly cookies living as long as the tokens."""
    common = {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "lax",
        "path": "/",
    }
    response.set_cookie(
        settings.access_cookie_name,
        tokens.access_token,
        max_age=int(tokens.access_ttl.total_seconds()),
        **common,
    )
    response.set_cookie(
        settings.refresh_cookie_name,
        tokens.refresh_token,
        max_age=int(tokens.refresh_ttl.total_seconds()),
        **common,
    )


def clear_auth_cookies(response: Response) -> None:
    for name in (settings.access_cookie_name, settings.refresh_cookie_name):
        response.delete_cookie(name, path="/", httponly=True, secure=settings.is_production, samesite="lax")
