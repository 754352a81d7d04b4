"""
auth/errors.py -- Exception taxonomy for the account service.

Every failure the service can report to a client is one of these classes.
Each carries the HTTP status and the machine-readable error code it maps to,
so api/main.py needs a single exception handler for the whole family rather
than one per route. Domain code raises them; only the API layer renders them.

Layer rule: no imports from api/ (auth/ must stay framework-agnostic here).
"""

from __future__ import annotations


class AccountError(Exception):
    """Base class. Subclasses override status_code, code, and message."""

    status_code: int = 500
    code: str = "internal_error"
    message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# 400
# ---------------------------------------------------------------------------


class ValidationError(AccountError):
    """Request payload failed shape validation.

    fields lists every violated field, not just the first one, so a client
    can highlight all problems in a single round trip.
    """

    status_code = 400
    code = "validation_error"
    message = "Request validation failed."

    def __init__(self, fields: list[dict[str, str]], message: str | None = None) -> None:
        super().__init__(message)
        self.fields = fields


class InvalidFilter(ValidationError):
    code = "invalid_filter"
    message = "Invalid filter."


class InvalidCredentials(AccountError):
    # Same message for unknown email and wrong password.
    status_code = 400
    code = "bad_credentials"
    message = "Invalid email or password."


# ---------------------------------------------------------------------------
# 401
# ---------------------------------------------------------------------------


class Unauthenticated(AccountError):
    status_code = 401
    code = "unauthenticated"
    message = "Unauthorized, please log in."


class MalformedAuth(AccountError):
    status_code = 401
    code = "malformed_auth"
    message = "Token malformed."


class InvalidOrExpiredToken(AccountError):
    status_code = 401
    code = "invalid_token"
    message = "Invalid or expired token."


# ---------------------------------------------------------------------------
# 404 / 409 / 429
# ---------------------------------------------------------------------------


class NotFound(AccountError):
    status_code = 404
    code = "not_found"
    message = "Resource not found."


class Conflict(AccountError):
    status_code = 409
    code = "conflict"
    message = "User already exists."


class TooManyRequests(AccountError):
    status_code = 429
    code = "too_many_requests"
    message = "You have exceeded the request limit. Please wait and try again in a few minutes."
    retry_after_seconds = 60


# ---------------------------------------------------------------------------
# 500 -- fatal to the request, never to the process
# ---------------------------------------------------------------------------


class ConfigurationError(AccountError):
    code = "configuration_error"
    message = "Server is not configured to issue tokens."


class TokenError(AccountError):
    code = "token_error"
    message = "Token can't be generated."


class LogoutError(AccountError):
    code = "logout_failed"
    message = "Logout failed."


class InternalError(AccountError):
    pass


# ---------------------------------------------------------------------------
# Verifier-level failure (translated by the auth gate, never rendered directly)
# ---------------------------------------------------------------------------


class InvalidTokenError(Exception):
    """Raised by TokenIssuer.verify() for expired, malformed, or badly signed tokens."""
