"""
auth/dependencies.py -- FastAPI Depends() helpers for the HTTP bridge.

The bridge is called by a host application, not by end users, so there is
exactly one way in: the X-API-Key header carrying the shared secret from
DUNEAUTH_API_KEY.

try_authenticate_client() is the soft variant (returns False on failure).
require_client() wraps it and raises HTTP 401 if the caller is not the host.
get_backend() hands route handlers the DuneAuthBackend from app.state.

Fail closed: an empty DUNEAUTH_API_KEY, or one shorter than 16 characters,
means no caller can authenticate.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import hmac

from fastapi import HTTPException, Request

from auth.backend import DuneAuthBackend
from core.config import get_settings

MIN_API_KEY_LENGTH = 16


def bridge_key_is_usable(key: str) -> bool:
    """Return True if key is long enough to guard the bridge.

    A shorter key is treated like an empty one: the bridge stays locked.
    """
    return len(key) >= MIN_API_KEY_LENGTH


def try_authenticate_client(request: Request) -> bool:
    """Return True if the request carries the configured bridge API key.

    hmac.compare_digest keeps the comparison constant-time so the key cannot
    be recovered byte by byte from response timing.
    """
    expected = get_settings().api_key
    if not bridge_key_is_usable(expected):
        return False
    presented = request.headers.get("X-API-Key", "")
    if not presented:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def require_client(request: Request) -> None:
    """Require the bridge API key. Raises HTTP 401 otherwise.

    Use as a router-level dependency:
        router = APIRouter(dependencies=[Depends(require_client)])
    """
    if not try_authenticate_client(request):
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "A valid X-API-Key header is required."},
        )


def get_backend(request: Request) -> DuneAuthBackend:
    """Return the process-wide backend created in the application lifespan."""
    return request.app.state.backend
