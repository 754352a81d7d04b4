"""
auth/models.py -- Domain dataclasses for account entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; auth/store.py persists them and api/ maps them to response models.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class User:
    """A registered account.

    email is stored lowercased; UserStore normalizes it on every write and
    lookup so callers never have to. hashed_password is always a bcrypt hash
    produced by auth.tokens.hash_password() -- never plaintext.
    """

    first_name: str
    last_name: str
    email: str
    hashed_password: str
    id: int | None = None
    created_at: str | None = None  # ISO 8601, set by store on insert
    updated_at: str | None = None


@dataclass(frozen=True)
class Identity:
    """Decoded token claims attached to the request by the auth gate."""

    user_id: int
    email: str
    expires_at: int  # exp claim, Unix seconds


@dataclass
class LoginSession:
    """One row of login history. Written at login, never updated or pruned."""

    user_id: int
    start_time: str  # ISO 8601
    id: int | None = None


@dataclass
class Device:
    """A device a user logged in from. name is "Mobile", "Tablet", or "Desktop"."""

    user_id: int
    name: str
    id: int | None = None
    created_at: str | None = None


@dataclass
class ServerSession:
    """Server-side session record keyed by an opaque sid.

    The session cookie carries only the signed sid; the cached identity and
    token live here. expires_at is independent of the token's own expiry.
    """

    sid: str
    user_id: int
    data: dict = field(default_factory=dict)  # id, firstName, lastName, email, token, sessionStartTime
    created_at: str | None = None
    expires_at: str | None = None

    @property
    def token(self) -> str | None:
        return self.data.get("token")
