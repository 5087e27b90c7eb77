"""
api/limiter.py -- Shared slowapi rate limiter for the auth routes.

One Limiter instance for the whole app: api/main.py mounts it as middleware,
api/routes/v1/auth.py applies per-route limits with @limiter.limit(). Separate
instances would keep separate counters and the login limit would never trip.

Counters live in process memory and are keyed by client IP, so each worker
process enforces the limit on its own.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_limit() -> str:
    """LOGIN_RATE_LIMIT, e.g. "10/minute". slowapi calls this on every request."""
    return get_settings().login_rate_limit
