"""
api/routes/users.py -- Account, authentication, and user directory endpoints.

Routes:
  POST   /signup          -- create account; sets token cookie
  POST   /login           -- password login; sets token + session cookies (rate-limited)
  POST   /logout          -- destroy server session; clears cookies (auth)
  GET    /me              -- decoded identity of the caller (auth)
  GET    /verify-token    -- validate an Authorization: Bearer token only
  POST   /create          -- create a user without logging in as them (auth)
  GET    /getuser/{id}    -- fetch one user (auth, rate-limited)
  GET    /getallusers     -- paginated, searchable, filterable directory (auth, rate-limited)
  DELETE /delete/{id}     -- delete a user and its history (auth)
  PUT    /update/{id}     -- replace a user's profile (auth)

Rate-limited routes:
  @router.<method> must sit ABOVE @limiter.limit so FastAPI registers slowapi's
  wrapper; SlowAPIMiddleware skips decorated routes and leaves them to it.
  Those routes authenticate inside the handler body (get_current_identity
  called directly) so the limiter runs first and a throttled request never
  reaches the auth gate or the store.

Security:
  Login returns the same bad_credentials error for unknown email and wrong
  password, and Cache-Control: no-store on token-bearing responses.
"""

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.limiter import RATE_LIMIT, limiter
from api.models import (
    IdentityOut,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    SessionUser,
    SignupRequest,
    UserData,
    UserEnvelope,
    UserOut,
    UserPage,
    UserUpdate,
    VerifyTokenResponse,
)
from auth.dependencies import get_current_identity, require_bearer_identity
from auth.errors import NotFound
from auth.filters import parse_filters
from auth.models import Identity
from auth.sessions import SESSION_COOKIE, SessionManager, clear_session_cookie, set_session_cookie
from auth.store import UserStore
from auth.tokens import clear_token_cookie, set_token_cookie

router = APIRouter()

# Keeps (page - 1) * size inside a 64-bit SQL integer.
_MAX_PAGE = 1_000_000


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/signup", response_model=UserEnvelope, status_code=201)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Register a new account and log the client in via the token cookie."""
    manager: SessionManager = request.app.state.session_manager
    result = manager.signup(body.first_name, body.last_name, body.email, body.password)
    resp = JSONResponse(
        status_code=201,
        content=UserEnvelope(
            message="User created successfully",
            user=UserOut.from_user(result.user),
        ).model_dump(by_alias=True),
    )
    set_token_cookie(
        resp,
        result.token,
        max_age=manager.tokens.expire_seconds,
        secure=request.app.state.settings.secure_cookies,
    )
    return _no_store(resp)


@router.post("/login", response_model=LoginResponse)
@limiter.limit(RATE_LIMIT)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Sets two cookies with independent lifetimes: the token cookie (token
    expiry, 8h) and the session cookie (server session max age, 1h).
    """
    manager: SessionManager = request.app.state.session_manager
    result = manager.login(body.email, body.password, request.headers.get("user-agent"))
    data = result.server_session.data
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            message="Login successful",
            user=SessionUser(
                id=data["id"],
                first_name=data["firstName"],
                last_name=data["lastName"],
                email=data["email"],
                session_start_time=data["sessionStartTime"],
            ),
            token=result.token,
        ).model_dump(by_alias=True),
    )
    secure = request.app.state.settings.secure_cookies
    set_token_cookie(resp, result.token, max_age=manager.tokens.expire_seconds, secure=secure)
    set_session_cookie(resp, result.session_cookie, max_age=manager.session_max_age, secure=secure)
    return _no_store(resp)


@router.get("/verify-token", response_model=VerifyTokenResponse)
def verify_token(identity: Identity = Depends(require_bearer_identity)) -> VerifyTokenResponse:
    """Return 200 if the Authorization: Bearer token is valid. Cookies are ignored."""
    return VerifyTokenResponse(valid=True, user=IdentityOut.from_identity(identity))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request, identity: Identity = Depends(get_current_identity)) -> JSONResponse:
    """Destroy the server session and clear both cookies.

    A store failure surfaces as a 500 (LogoutError) and the cookies are left
    untouched, so the client does not believe a live session was closed.
    """
    manager: SessionManager = request.app.state.session_manager
    manager.logout(request.cookies.get(SESSION_COOKIE))
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully").model_dump(by_alias=True))
    clear_token_cookie(resp)
    clear_session_cookie(resp)
    return resp


@router.get("/me", response_model=IdentityOut)
def me(identity: Identity = Depends(get_current_identity)) -> IdentityOut:
    return IdentityOut.from_identity(identity)


@router.post("/create", response_model=UserEnvelope, status_code=201)
def create_user(
    request: Request,
    body: SignupRequest,
    identity: Identity = Depends(get_current_identity),
) -> UserEnvelope:
    """Create another account. No token or cookie is issued for it."""
    manager: SessionManager = request.app.state.session_manager
    user = manager.create_user(body.first_name, body.last_name, body.email, body.password)
    return UserEnvelope(message="User created successfully", user=UserOut.from_user(user))


@router.get("/getuser/{user_id}", response_model=UserData)
@limiter.limit(RATE_LIMIT)
def get_user(request: Request, user_id: int) -> UserData:
    get_current_identity(request)
    store: UserStore = request.app.state.user_store
    user = store.get_by_id(user_id)
    if user is None:
        raise NotFound("User not found.")
    return UserData(data=UserOut.from_user(user))


@router.get("/getallusers", response_model=UserPage)
@limiter.limit(RATE_LIMIT)
def get_all_users(
    request: Request,
    page: int = Query(1, ge=1, le=_MAX_PAGE),
    size: int = Query(6, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    filter_: Optional[str] = Query(None, alias="filter", max_length=1000),
) -> UserPage:
    """Return one page of users, newest first.

    filter is a JSON object; see auth/filters.py for the supported keys.
    Unknown keys are a 400, not silently ignored.
    """
    get_current_identity(request)
    filters = parse_filters(filter_)
    store: UserStore = request.app.state.user_store
    users, total = store.list_users(page=page, size=size, search=search, filters=filters)
    total_pages = math.ceil(total / size) if total else 0
    return UserPage(
        data=[UserOut.from_user(u) for u in users],
        total_users=total,
        total_pages=total_pages,
        current_page=page,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )


@router.delete("/delete/{user_id}", response_model=MessageResponse)
def delete_user(
    request: Request,
    user_id: int,
    identity: Identity = Depends(get_current_identity),
) -> MessageResponse:
    manager: SessionManager = request.app.state.session_manager
    manager.delete_user(user_id)
    return MessageResponse(message="User deleted successfully!")


@router.put("/update/{user_id}", response_model=UserEnvelope)
def update_user(
    request: Request,
    user_id: int,
    body: UserUpdate,
    identity: Identity = Depends(get_current_identity),
) -> UserEnvelope:
    manager: SessionManager = request.app.state.session_manager
    user = manager.update_user(user_id, body.first_name, body.last_name, body.email, body.password)
    return UserEnvelope(message="User updated successfully", user=UserOut.from_user(user))
