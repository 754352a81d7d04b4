"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Candidate tokens are resolved by an ordered chain of resolver functions.
Each returns a token or None; the first non-None wins:
  1. Server session -- the signed session cookie's server-side record.
  2. "token" cookie -- set by signup/login.
  3. Authorization: Bearer <token> header -- API clients.

A present-but-malformed Authorization header (wrong scheme, empty token)
raises MalformedAuth at once; it is not treated as "no credential". It is
only inspected when the first two sources produced nothing.

get_current_identity() is the standard gate. require_bearer_identity() only
consults the header (used by GET /verify-token).

The gate never writes to the store or to the session; its only side effect is
attaching the decoded Identity to request.state.identity for downstream code.

auth/dependencies.py may import from fastapi because this module is part of
the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Optional

from fastapi import Request

from auth.errors import InvalidOrExpiredToken, InvalidTokenError, MalformedAuth, Unauthenticated
from auth.models import Identity
from auth.sessions import SESSION_COOKIE, SessionManager
from auth.tokens import TOKEN_COOKIE, TokenIssuer

TokenResolver = Callable[[Request], Optional[str]]

_BEARER_PREFIX = "Bearer "


def token_from_server_session(request: Request) -> str | None:
    manager: SessionManager = request.app.state.session_manager
    session = manager.resolve(request.cookies.get(SESSION_COOKIE))
    return session.token if session is not None else None


def token_from_cookie(request: Request) -> str | None:
    return request.cookies.get(TOKEN_COOKIE) or None


def token_from_header(request: Request) -> str | None:
    header = request.headers.get("Authorization")
    if header is None:
        return None
    token = header[len(_BEARER_PREFIX) :].strip() if header.startswith(_BEARER_PREFIX) else ""
    if not token:
        raise MalformedAuth()
    return token


TOKEN_RESOLVERS: tuple[TokenResolver, ...] = (
    token_from_server_session,
    token_from_cookie,
    token_from_header,
)


def resolve_token(request: Request, resolvers: Sequence[TokenResolver] = TOKEN_RESOLVERS) -> str | None:
    """Return the first candidate token produced by the resolver chain."""
    for resolver in resolvers:
        token = resolver(request)
        if token:
            return token
    return None


def _authenticate(request: Request, resolvers: Sequence[TokenResolver]) -> Identity:
    token = resolve_token(request, resolvers)
    if token is None:
        raise Unauthenticated()
    tokens: TokenIssuer = request.app.state.tokens
    try:
        identity = tokens.verify(token)
    except InvalidTokenError as exc:
        raise InvalidOrExpiredToken() from exc
    request.state.identity = identity
    return identity


def get_current_identity(request: Request) -> Identity:
    """Require authentication. Raises a 401-class AccountError otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    return _authenticate(request, TOKEN_RESOLVERS)


def require_bearer_identity(request: Request) -> Identity:
    """Require a valid Authorization: Bearer header, ignoring cookies and sessions."""
    return _authenticate(request, (token_from_header,))
