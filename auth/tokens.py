"""
auth/tokens.py -- Password hashing, JWT issue/verify, and the token cookie.

Security design decisions:
  Passwords: bcrypt with a fixed cost of 10 rounds. The _DUMMY_HASH constant
       enables timing equalization at login so response time does not reveal
       whether an email is registered.

  JWT: python-jose with HS256. Tokens carry the user id, email, and an 8 hour
       expiry. TokenIssuer is built once at startup from Settings and passed
       explicitly to whoever needs it -- no module reads the secret from
       ambient global state. An empty secret makes every issue() and verify()
       call raise ConfigurationError instead of producing an unsigned token.

  verify() raises InvalidTokenError for every kind of bad token (expired,
  malformed, wrong signature, missing claims). Callers must not distinguish
  between them when talking to the client.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.errors import ConfigurationError, InvalidTokenError
from auth.models import Identity

logger = logging.getLogger("accounts.auth")

_ALGORITHM = "HS256"
_BCRYPT_ROUNDS = 10
TOKEN_COOKIE = "token"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Callers validate the password first (auth.sessions): bcrypt refuses
    input longer than 72 bytes, and 30 non-ASCII characters can exceed that.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Fails closed: a malformed hash or any other error counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except Exception:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("accounts_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run a bcrypt comparison whose result is discarded (timing equalization)."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# JWT issue / verify
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Signs and validates time-limited bearer tokens.

    Usage:
        tokens = TokenIssuer(settings.jwt_secret, settings.token_expire_seconds)
        token = tokens.issue(user.id, user.email)
        identity = tokens.verify(token)   # raises InvalidTokenError
    """

    def __init__(self, secret: str, expire_seconds: int = 8 * 60 * 60) -> None:
        self._secret = secret
        self.expire_seconds = expire_seconds

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    def _require_secret(self) -> str:
        if not self._secret:
            logger.error("Token operation attempted without a signing secret")
            raise ConfigurationError()
        return self._secret

    def issue(self, user_id: int, email: str, expires_in: timedelta | None = None) -> str:
        """Encode a signed JWT for the given user.

        Args:
            user_id:    Numeric user ID.
            email:      The user's (normalized) email.
            expires_in: Validity window. Defaults to expire_seconds. A negative
                        delta produces an already-expired token (tests use this).
        """
        secret = self._require_secret()
        now = datetime.now(timezone.utc)
        window = expires_in if expires_in is not None else timedelta(seconds=self.expire_seconds)
        payload = {
            "sub": str(user_id),
            "id": user_id,
            "email": email,
            "iat": now,
            "exp": now + window,
        }
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> Identity:
        """Decode and verify a JWT. Raises InvalidTokenError on any failure."""
        secret = self._require_secret()
        try:
            payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
        except JWTError as exc:
            raise InvalidTokenError(str(exc)) from exc
        if not isinstance(payload.get("id"), int) or "email" not in payload or "exp" not in payload:
            raise InvalidTokenError("token is missing required claims")
        return Identity(user_id=payload["id"], email=payload["email"], expires_at=int(payload["exp"]))


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_token_cookie(response, token: str, max_age: int, secure: bool = False) -> None:
    """Write the JWT as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for most cases.
    max_age: matches the JWT expiry, not the server session's max age.
    """
    response.set_cookie(
        TOKEN_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )


def clear_token_cookie(response) -> None:
    response.delete_cookie(TOKEN_COOKIE, httponly=True, samesite="lax")
