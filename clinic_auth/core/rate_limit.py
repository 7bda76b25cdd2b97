"""
Per-client rate limiting for the credential endpoints.

Limits are keyed by the client address and kept in process memory.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
