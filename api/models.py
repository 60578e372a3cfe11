"""
API request and response models for the duneauth HTTP bridge.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Capabilities, UserInfo

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class PasswordCheckRequest(BaseModel):
    """Request body for POST /api/v1/auth/check.

    No whitespace stripping and no case folding: usernames are matched
    exactly, and passwords are compared byte for byte.
    """

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(max_length=1024)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PasswordCheckResponse(BaseModel):
    """Response for POST /api/v1/auth/check.

    valid is the only field. Unknown user, inactive account, expired
    password, unsupported hash and wrong password all read as valid=false.
    """

    model_config = ConfigDict(frozen=True)

    valid: bool


class UserInfoResponse(BaseModel):
    """One user: name, mail, groups (always includes "user")."""

    model_config = ConfigDict(frozen=True)

    name: str
    mail: Optional[str]
    groups: list[str]

    @classmethod
    def from_user_info(cls, info: UserInfo) -> "UserInfoResponse":
        return cls(name=info.name, mail=info.mail, groups=list(info.groups))


class UserListResponse(BaseModel):
    """Response for GET /api/v1/users. Key order follows the store."""

    model_config = ConfigDict(frozen=True)

    start: int
    limit: int
    users: dict[str, UserInfoResponse]


class UserCountResponse(BaseModel):
    """Response for GET /api/v1/user-count. Advisory: 0 when the store is down."""

    model_config = ConfigDict(frozen=True)

    count: int


class CapabilitiesResponse(BaseModel):
    """Static capability flags, keyed by the host's own flag names."""

    model_config = ConfigDict(frozen=True)

    flags: dict[str, bool]
    case_sensitive: bool = True

    @classmethod
    def from_capabilities(cls, caps: Capabilities, case_sensitive: bool) -> "CapabilitiesResponse":
        return cls(flags=caps.as_host_flags(), case_sensitive=case_sensitive)


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
