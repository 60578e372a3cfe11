"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/v1/auth.py (to apply the password-check limit with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def check_rate_limit() -> str:
    """Return the configured limit for POST /auth/check (e.g. "10/minute").

    Passed to @limiter.limit() as a callable so the value is read from
    settings at request time rather than frozen at import.
    """
    return get_settings().check_rate_limit
