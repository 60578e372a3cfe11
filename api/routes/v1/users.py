"""
api/routes/v1/users.py -- Read-only user metadata endpoints.

Routes:
  GET /api/v1/users                 -- one page of active users keyed by name
  GET /api/v1/users/{username}      -- one user (404 if absent or inactive)
  GET /api/v1/user-count            -- count of active users (advisory)
  GET /api/v1/capabilities          -- static capability flags

All routes require the bridge API key. There are no write routes: accounts,
passwords and groups are managed in-game.

Filter parameters: any query parameter other than start/limit is collected
into the filter mapping and handed to the backend, which accepts and ignores
it. Callers may send filters today without breaking when support lands.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from api.models import (
    CapabilitiesResponse,
    ErrorDetail,
    UserCountResponse,
    UserInfoResponse,
    UserListResponse,
)
from auth.backend import DuneAuthBackend
from auth.dependencies import get_backend, require_client

router = APIRouter(dependencies=[Depends(require_client)])

_PAGING_PARAMS = {"start", "limit"}


def _filter_from_query(request: Request) -> dict[str, str]:
    return {k: v for k, v in request.query_params.items() if k not in _PAGING_PARAMS}


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    start: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=0, le=1000),
    backend: DuneAuthBackend = Depends(get_backend),
) -> UserListResponse:
    """Return users [start, start+limit) in store order. limit=0 yields no users."""
    users = backend.retrieve_users(start, limit, _filter_from_query(request))
    return UserListResponse(
        start=start,
        limit=limit,
        users={name: UserInfoResponse.from_user_info(info) for name, info in users.items()},
    )


@router.get("/users/{username}", response_model=UserInfoResponse)
def get_user(
    username: str,
    require_groups: bool = True,
    backend: DuneAuthBackend = Depends(get_backend),
) -> UserInfoResponse:
    """Return one user's name, mail and groups."""
    info = backend.get_user_data(username, require_groups=require_groups)
    if info is None:
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(code="not_found", message="No such user.").model_dump(),
        )
    return UserInfoResponse.from_user_info(info)


@router.get("/user-count", response_model=UserCountResponse)
def user_count(request: Request, backend: DuneAuthBackend = Depends(get_backend)) -> UserCountResponse:
    """Return the number of active users. Not authoritative: 0 when the store is down."""
    return UserCountResponse(count=backend.get_user_count(_filter_from_query(request)))


@router.get("/capabilities", response_model=CapabilitiesResponse)
async def capabilities(backend: DuneAuthBackend = Depends(get_backend)) -> CapabilitiesResponse:
    """Return what this backend can do. Everything except reading is false."""
    return CapabilitiesResponse.from_capabilities(backend.capabilities, backend.is_case_sensitive())
