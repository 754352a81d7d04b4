"""
API request and response models for the account service REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

JSON field names are camelCase (firstName, totalUsers, ...). Python attribute
names stay snake_case; the alias generator bridges the two, and FastAPI
serializes response_model output by alias.

Request bodies are deliberately permissive (plain str with empty defaults):
shape rules live in auth.sessions so that one ValidationError can report
every invalid field at once.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import Device, Identity, LoginSession, User

_REQUEST_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)
_RESPONSE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /signup and POST /create."""

    model_config = _REQUEST_CONFIG

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    password: str = ""


class LoginRequest(BaseModel):
    model_config = _REQUEST_CONFIG

    email: str = ""
    password: str = ""


class UserUpdate(BaseModel):
    """Request body for PUT /update/{id}. password is optional."""

    model_config = _REQUEST_CONFIG

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    password: Optional[str] = None


class SessionStart(BaseModel):
    """Request body for POST /sessions/start.

    Accepts both camelCase and snake_case keys (userId / user_id).
    """

    model_config = _REQUEST_CONFIG

    user_id: int = Field(gt=0)
    start_time: datetime


class DeviceCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=20)
    user_id: int = Field(gt=0)


# ---------------------------------------------------------------------------
# User responses
# ---------------------------------------------------------------------------


class UserOut(BaseModel):
    """Public view of a User. Never includes the password hash."""

    model_config = _RESPONSE_CONFIG

    id: int
    first_name: str
    last_name: str
    email: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserEnvelope(BaseModel):
    model_config = _RESPONSE_CONFIG

    message: str
    user: UserOut


class UserData(BaseModel):
    model_config = _RESPONSE_CONFIG

    data: UserOut


class UserPage(BaseModel):
    """Response for GET /getallusers."""

    model_config = _RESPONSE_CONFIG

    data: list[UserOut]
    total_users: int
    total_pages: int
    current_page: int
    has_next_page: bool
    has_prev_page: bool


class SessionUser(BaseModel):
    """The cached identity stored in the server session (token excluded)."""

    model_config = _RESPONSE_CONFIG

    id: int
    first_name: str
    last_name: str
    email: str
    session_start_time: str


class LoginResponse(BaseModel):
    model_config = _RESPONSE_CONFIG

    message: str
    user: SessionUser
    token: str


class MessageResponse(BaseModel):
    model_config = _RESPONSE_CONFIG

    message: str


class IdentityOut(BaseModel):
    model_config = _RESPONSE_CONFIG

    id: int
    email: str
    expires_at: int

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityOut":
        return cls(id=identity.user_id, email=identity.email, expires_at=identity.expires_at)


class VerifyTokenResponse(BaseModel):
    model_config = _RESPONSE_CONFIG

    valid: bool = True
    user: IdentityOut


# ---------------------------------------------------------------------------
# Login history and device responses
# ---------------------------------------------------------------------------


class SessionOut(BaseModel):
    model_config = _RESPONSE_CONFIG

    id: int
    user_id: int
    start_time: str

    @classmethod
    def from_session(cls, session: LoginSession) -> "SessionOut":
        return cls(id=session.id, user_id=session.user_id, start_time=session.start_time)


class SessionEnvelope(BaseModel):
    model_config = _RESPONSE_CONFIG

    status: str = "success"
    message: str
    data: SessionOut


class DeviceOut(BaseModel):
    model_config = _RESPONSE_CONFIG

    id: int
    user_id: int
    name: str
    created_at: Optional[str] = None

    @classmethod
    def from_device(cls, device: Device) -> "DeviceOut":
        return cls(id=device.id, user_id=device.user_id, name=device.name, created_at=device.created_at)


class DeviceEnvelope(BaseModel):
    model_config = _RESPONSE_CONFIG

    status: str = "success"
    message: str
    data: DeviceOut


class DeviceList(BaseModel):
    """Response for GET /devices/{user_id}.

    devices -- every recorded device name, newest first.
    latest  -- the most recent device, or None if the user has none.
    logged_in_from -- classification of the caller's own User-Agent.
    """

    model_config = _RESPONSE_CONFIG

    status: str = "success"
    devices: list[str]
    latest: Optional[str] = None
    logged_in_from: str


class CallerDevice(BaseModel):
    model_config = _RESPONSE_CONFIG

    status: str = "success"
    logged_in_from: str


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class FieldError(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = _RESPONSE_CONFIG

    code: str
    message: str
    detail: Optional[str] = None
    errors: Optional[list[FieldError]] = None
    retry_after_seconds: Optional[int] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses.

    Render with model_dump(by_alias=True, exclude_none=True) so optional keys
    only appear when they carry information.
    """

    model_config = _RESPONSE_CONFIG

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
