"""
auth/sessions.py -- Account lifecycle: signup, login, logout, server sessions.

SessionManager owns the multi-step flows whose ordering matters:

  signup:  validate -> uniqueness -> hash + create user -> issue token
           (token failure deletes the just-created user before reporting)
  login:   validate -> lookup -> verify password -> issue token ->
           login-history row -> device row -> server session record
  logout:  delete the server session record

Each step runs only if the previous one succeeded; an exception aborts the
rest of the flow. Nothing is retried.

Server sessions:
  The session cookie carries only an opaque sid signed with itsdangerous'
  TimestampSigner (the same primitive Starlette's SessionMiddleware uses).
  The identity/token pair lives in the server_sessions table, so deleting the
  row at logout makes a resent cookie resolve to nothing. The signer's
  max_age and the row's expires_at both enforce the session max age (1 hour
  by default), which is independent of the 8 hour token expiry.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from itsdangerous import BadSignature, TimestampSigner
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.devices import classify_user_agent
from auth.errors import Conflict, InvalidCredentials, LogoutError, NotFound, TokenError, ValidationError
from auth.models import Device, LoginSession, ServerSession, User
from auth.store import UserStore
from auth.tokens import TokenIssuer, burn_password_check, hash_password, verify_password

logger = logging.getLogger("accounts.auth")

SESSION_COOKIE = "session"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PASSWORD_MIN = 6
_PASSWORD_MAX = 30
# bcrypt rejects (5.x) or truncates (4.x) input past 72 bytes.
_PASSWORD_MAX_BYTES = 72
_NAME_MAX = 100


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _check_names(first_name: str, last_name: str, errors: list[dict[str, str]]) -> None:
    for field, value, label in (("firstName", first_name, "First name"), ("lastName", last_name, "Last name")):
        if not value or not value.strip():
            errors.append({"field": field, "message": f"{label} is required"})
        elif len(value.strip()) > _NAME_MAX:
            errors.append({"field": field, "message": f"{label} must be at most {_NAME_MAX} characters"})


def _check_email(email: str, errors: list[dict[str, str]]) -> None:
    if not email or not _EMAIL_RE.match(email.strip()):
        errors.append({"field": "email", "message": "Invalid email format"})


def _check_password(password: str, errors: list[dict[str, str]]) -> None:
    if not password or not (_PASSWORD_MIN <= len(password) <= _PASSWORD_MAX):
        errors.append(
            {
                "field": "password",
                "message": f"Password must be between {_PASSWORD_MIN} and {_PASSWORD_MAX} characters",
            }
        )
    elif len(password.encode("utf-8")) > _PASSWORD_MAX_BYTES:
        errors.append({"field": "password", "message": f"Password must be at most {_PASSWORD_MAX_BYTES} bytes"})


def validate_account_fields(
    first_name: str,
    last_name: str,
    email: str,
    password: str | None,
    password_required: bool = True,
) -> None:
    """Raise ValidationError listing every invalid field (never just the first)."""
    errors: list[dict[str, str]] = []
    _check_names(first_name, last_name, errors)
    _check_email(email, errors)
    if password_required or password:
        _check_password(password or "", errors)
    if errors:
        raise ValidationError(errors)


def validate_login_fields(email: str, password: str) -> None:
    errors: list[dict[str, str]] = []
    _check_email(email, errors)
    if not password:
        errors.append({"field": "password", "message": "Password is required"})
    if errors:
        raise ValidationError(errors)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class SignupResult:
    user: User
    token: str


@dataclass
class LoginResult:
    user: User
    token: str
    session_cookie: str  # signed sid, ready to be set as the session cookie
    server_session: ServerSession


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class SessionManager:
    """Runs the signup/login/logout flows against a UserStore and TokenIssuer.

    Holds no mutable state of its own, so one instance is shared by every
    request (built once in the app lifespan).
    """

    def __init__(
        self,
        store: UserStore,
        tokens: TokenIssuer,
        session_secret: str,
        session_max_age: int = 60 * 60,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.session_max_age = session_max_age
        self._signer = TimestampSigner(session_secret, salt="accounts.session")

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_user(self, first_name: str, last_name: str, email: str, password: str) -> User:
        """Validate, check uniqueness, hash once, and insert a new user."""
        validate_account_fields(first_name, last_name, email, password)
        if self.store.get_by_email(email) is not None:
            raise Conflict()
        user = User(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email,
            hashed_password=hash_password(password),
        )
        try:
            user_id = self.store.create_user(user)
        except IntegrityError as exc:
            # A concurrent request registered the same email between the
            # pre-check and the insert.
            raise Conflict() from exc
        created = self.store.get_by_id(user_id)
        logger.info("User %d created", user_id)
        return created

    def signup(self, first_name: str, last_name: str, email: str, password: str) -> SignupResult:
        """Create an account and issue its first token.

        If the token cannot be issued the new user row is deleted before
        TokenError is raised, so no half-registered account is left behind.
        """
        user = self.create_user(first_name, last_name, email, password)
        try:
            token = self.tokens.issue(user.id, user.email)
        except Exception as exc:
            logger.error("Token issuance failed for new user %d; rolling back", user.id)
            self.store.delete_user(user.id)
            raise TokenError() from exc
        return SignupResult(user=user, token=token)

    def update_user(
        self,
        user_id: int,
        first_name: str,
        last_name: str,
        email: str,
        password: str | None = None,
    ) -> User:
        """Replace a user's profile. A supplied password is validated and re-hashed."""
        validate_account_fields(first_name, last_name, email, password, password_required=False)
        if self.store.get_by_id(user_id) is None:
            raise NotFound("User not found.")
        owner = self.store.get_by_email(email)
        if owner is not None and owner.id != user_id:
            raise Conflict("Email is already in use.")

        fields = {"first_name": first_name.strip(), "last_name": last_name.strip(), "email": email}
        if password:
            fields["hashed_password"] = hash_password(password)
        try:
            self.store.update_user(user_id, **fields)
        except IntegrityError as exc:
            raise Conflict("Email is already in use.") from exc
        return self.store.get_by_id(user_id)

    def delete_user(self, user_id: int) -> None:
        if not self.store.delete_user(user_id):
            raise NotFound("User not found.")
        logger.info("User %d deleted", user_id)

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, user_agent: str | None = None) -> LoginResult:
        """Verify credentials and open a session.

        Unknown email and wrong password raise the same InvalidCredentials.
        bcrypt runs in both cases so timing does not leak which one it was.
        """
        validate_login_fields(email, password)
        user = self.store.get_by_email(email)
        if user is None:
            burn_password_check(password)
            raise InvalidCredentials()
        if not verify_password(password, user.hashed_password):
            raise InvalidCredentials()

        token = self.tokens.issue(user.id, user.email)

        now = datetime.now(timezone.utc)
        start_time = now.isoformat()
        self.store.create_login_session(LoginSession(user_id=user.id, start_time=start_time))
        self.store.create_device(Device(user_id=user.id, name=classify_user_agent(user_agent)))

        self.store.purge_expired_server_sessions()
        sid = secrets.token_urlsafe(32)
        server_session = ServerSession(
            sid=sid,
            user_id=user.id,
            data={
                "id": user.id,
                "firstName": user.first_name,
                "lastName": user.last_name,
                "email": user.email,
                "token": token,
                "sessionStartTime": start_time,
            },
            created_at=start_time,
            expires_at=(now + timedelta(seconds=self.session_max_age)).isoformat(),
        )
        self.store.create_server_session(server_session)
        logger.info("User %d logged in", user.id)

        return LoginResult(
            user=user,
            token=token,
            session_cookie=self._signer.sign(sid).decode("utf-8"),
            server_session=server_session,
        )

    def logout(self, session_cookie: str | None) -> bool:
        """Destroy the server session behind the cookie, if any.

        Returns True if a record was deleted. A missing or invalid cookie is
        not an error. A store failure raises LogoutError (500) -- it is never
        swallowed, because the client would otherwise believe it is logged out
        while the session is still live.
        """
        sid = self._unsign(session_cookie)
        if sid is None:
            return False
        try:
            deleted = self.store.delete_server_session(sid)
        except SQLAlchemyError as exc:
            logger.error("Could not delete server session: %s", exc)
            raise LogoutError() from exc
        if deleted:
            logger.info("Server session closed")
        return deleted

    def resolve(self, session_cookie: str | None) -> ServerSession | None:
        """Return the live server session for a cookie value, or None. Read-only."""
        sid = self._unsign(session_cookie)
        if sid is None:
            return None
        return self.store.get_server_session(sid)

    def _unsign(self, session_cookie: str | None) -> str | None:
        if not session_cookie:
            return None
        try:
            return self._signer.unsign(session_cookie, max_age=self.session_max_age).decode("utf-8")
        except BadSignature:
            # SignatureExpired is a subclass -- an old cookie is just "no session".
            return None


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, value: str, max_age: int, secure: bool = False) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        value=value,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE, httponly=True, samesite="lax")
