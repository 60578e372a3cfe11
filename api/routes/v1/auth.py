"""
api/routes/v1/auth.py -- Password verification endpoint.

Routes:
  POST /api/v1/auth/check   -- verify username + cleartext password; {"valid": bool}

Security:
  Rate-limited per client IP (DUNEAUTH_CHECK_RATE_LIMIT, default 10/minute).
  Cache-Control: no-store on every response.
  The same 200 {"valid": false} is returned for unknown user, inactive
  account, expired password, unsupported hash and wrong password, so the
  response does not reveal which check failed.
  The password is never logged; only the outcome and username are.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import check_rate_limit, limiter
from api.models import PasswordCheckRequest, PasswordCheckResponse
from auth.backend import DuneAuthBackend
from auth.dependencies import get_backend, require_client

logger = logging.getLogger("duneauth.api")

# Auth policy:
# - POST /api/v1/auth/check: requires the bridge API key (require_client)
router = APIRouter(dependencies=[Depends(require_client)])


@router.post("/auth/check", response_model=PasswordCheckResponse)
@limiter.limit(check_rate_limit)  # brute-force mitigation; the handler must take `request`
def check(
    request: Request,
    body: PasswordCheckRequest,
    backend: DuneAuthBackend = Depends(get_backend),
) -> JSONResponse:
    """Verify a password against the AUTHD store.

    Sync handler on purpose: bcrypt is CPU-bound, so FastAPI runs this in its
    threadpool instead of blocking the event loop.
    """
    valid = backend.check_password(body.username, body.password)
    logger.info("Password check for %r: %s", body.username, "ok" if valid else "rejected")
    resp = JSONResponse(status_code=200, content=PasswordCheckResponse(valid=valid).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp
