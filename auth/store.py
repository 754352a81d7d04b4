"""
auth/store.py -- SQLAlchemy Core persistence layer for account entities.

Pattern: Repository + Data Mapper. UserStore is the repository; the _row_to_*
functions are the mappers. Route and service code never touches SQL directly.

Tables:
  users            -- accounts (email UNIQUE, stored lowercased)
  login_sessions   -- login history, one row per successful login
  devices          -- device classification per login / explicit registration
  server_sessions  -- server-side session records keyed by opaque sid

Child tables reference users.id with ON DELETE CASCADE. SQLite only honours
that with PRAGMA foreign_keys=ON, which is set per connection below;
delete_user() also removes child rows explicitly so other backends behave the
same without relying on the pragma.

Security:
  All queries use bound parameters. No f-strings in SQL. LIKE patterns from
  user input go through autoescape=True.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    and_,
    create_engine,
    event,
    func,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Engine

from auth.filters import (
    CreatedDateFilter,
    DateRange,
    DeviceFilter,
    EmailFilter,
    LastLoginFilter,
    NameFilter,
    UserFilter,
)
from auth.models import Device, LoginSession, ServerSession, User

logger = logging.getLogger("accounts.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'accounts.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_login_sessions = Table(
    "login_sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("start_time", String(32), nullable=False),
)

_devices = Table(
    "devices",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("name", String(20), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_server_sessions = Table(
    "server_sessions",
    _metadata,
    Column("sid", String(64), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("data", Text, nullable=False),  # JSON blob
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_utc_iso(value: datetime) -> str:
    """Normalize a datetime to a UTC ISO 8601 string. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Filter predicate builders -- one per filter variant
# ---------------------------------------------------------------------------


def _range_clause(column, date_range: DateRange):
    clauses = []
    lower = date_range.lower_bound()
    upper = date_range.upper_bound()
    if lower is not None:
        clauses.append(column >= lower)
    if upper is not None:
        clauses.append(column < upper)
    return and_(*clauses)


def _name_clause(f: NameFilter):
    needle = f.value.lower()
    return or_(
        func.lower(_users.c.first_name).contains(needle, autoescape=True),
        func.lower(_users.c.last_name).contains(needle, autoescape=True),
    )


def _email_clause(f: EmailFilter):
    return _users.c.email.contains(f.value, autoescape=True)


def _created_clause(f: CreatedDateFilter):
    return _range_clause(_users.c.created_at, f.range)


def _device_clause(f: DeviceFilter):
    return _users.c.id.in_(select(_devices.c.user_id).where(_devices.c.name == f.name))


def _last_login_clause(f: LastLoginFilter):
    last_login = (
        select(func.max(_login_sessions.c.start_time))
        .where(_login_sessions.c.user_id == _users.c.id)
        .scalar_subquery()
    )
    return _range_clause(last_login, f.range)


_FILTER_BUILDERS = {
    NameFilter: _name_clause,
    EmailFilter: _email_clause,
    CreatedDateFilter: _created_clause,
    DeviceFilter: _device_clause,
    LastLoginFilter: _last_login_clause,
}


def _search_clause(search: str):
    needle = search.strip().lower()
    return or_(
        func.lower(_users.c.first_name).contains(needle, autoescape=True),
        func.lower(_users.c.last_name).contains(needle, autoescape=True),
        _users.c.email.contains(needle, autoescape=True),
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User, LoginSession, Device, and ServerSession entities.

    Usage:
        store = UserStore()
        user_id = store.create_user(User(first_name="Ada", last_name="L", email="ada@x.io",
                                         hashed_password=hash_password("secret1")))
        user = store.get_by_email("ADA@x.io")   # lookups are case-insensitive
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        The caller must pass an already-hashed password; the store never
        hashes. Raises sqlalchemy.exc.IntegrityError if the email already
        exists -- callers translate that into a 409.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    first_name=user.first_name,
                    last_name=user.last_name,
                    email=normalize_email(user.email),
                    hashed_password=user.hashed_password,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email. Case-insensitive via normalization."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: first_name, last_name, email, hashed_password.
        updated_at is always refreshed. Raises IntegrityError if the new email
        collides with another account.

        Returns True if a row was updated, False if user_id was not found.
        """
        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Delete a user and everything that references it.

        Returns True if the user existed, False otherwise.
        """
        with self.engine.connect() as conn:
            conn.execute(_server_sessions.delete().where(_server_sessions.c.user_id == user_id))
            conn.execute(_devices.delete().where(_devices.c.user_id == user_id))
            conn.execute(_login_sessions.delete().where(_login_sessions.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def list_users(
        self,
        page: int = 1,
        size: int = 6,
        search: str | None = None,
        filters: list[UserFilter] | None = None,
    ) -> tuple[list[User], int]:
        """Return one page of users (newest first) and the total match count.

        search matches first name, last name, or email (case-insensitive).
        filters are ANDed together and with search.
        """
        clauses = [_FILTER_BUILDERS[type(f)](f) for f in (filters or [])]
        if search and search.strip():
            clauses.append(_search_clause(search))

        offset = (page - 1) * size
        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(_users).where(*clauses)).scalar() or 0
            rows = conn.execute(
                _users.select()
                .where(*clauses)
                .order_by(_users.c.created_at.desc(), _users.c.id.desc())
                .offset(offset)
                .limit(size)
            ).fetchall()
        return [_row_to_user(r) for r in rows], total

    # ------------------------------------------------------------------
    # Login sessions (history)
    # ------------------------------------------------------------------

    def create_login_session(self, session: LoginSession) -> int:
        """Record a login. Raises IntegrityError if user_id does not exist."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _login_sessions.insert().values(user_id=session.user_id, start_time=session.start_time)
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_login_session(self, session_id: int) -> LoginSession | None:
        with self.engine.connect() as conn:
            row = conn.execute(_login_sessions.select().where(_login_sessions.c.id == session_id)).fetchone()
        return _row_to_login_session(row) if row is not None else None

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def create_device(self, device: Device) -> int:
        """Insert a device row. Raises IntegrityError if user_id does not exist."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _devices.insert().values(user_id=device.user_id, name=device.name, created_at=_now_iso())
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_device(self, device_id: int) -> Device | None:
        with self.engine.connect() as conn:
            row = conn.execute(_devices.select().where(_devices.c.id == device_id)).fetchone()
        return _row_to_device(row) if row is not None else None

    def list_devices(self, user_id: int) -> list[Device]:
        """Return every device row for a user, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _devices.select().where(_devices.c.user_id == user_id).order_by(_devices.c.id.desc())
            ).fetchall()
        return [_row_to_device(r) for r in rows]

    def latest_device(self, user_id: int) -> Device | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _devices.select().where(_devices.c.user_id == user_id).order_by(_devices.c.id.desc()).limit(1)
            ).fetchone()
        return _row_to_device(row) if row is not None else None

    # ------------------------------------------------------------------
    # Server sessions
    # ------------------------------------------------------------------

    def create_server_session(self, session: ServerSession) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _server_sessions.insert().values(
                    sid=session.sid,
                    user_id=session.user_id,
                    data=json.dumps(session.data),
                    created_at=session.created_at or _now_iso(),
                    expires_at=session.expires_at,
                )
            )
            conn.commit()

    def get_server_session(self, sid: str) -> ServerSession | None:
        """Return the live session for sid, or None if missing or expired.

        Read-only: expired rows are ignored here and removed by
        purge_expired_server_sessions().
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                _server_sessions.select().where(
                    (_server_sessions.c.sid == sid) & (_server_sessions.c.expires_at > _now_iso())
                )
            ).fetchone()
        return _row_to_server_session(row) if row is not None else None

    def delete_server_session(self, sid: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_server_sessions.delete().where(_server_sessions.c.sid == sid))
            conn.commit()
        return result.rowcount > 0

    def purge_expired_server_sessions(self) -> int:
        """Delete every expired server session. Returns the number of rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_server_sessions.delete().where(_server_sessions.c.expires_at <= _now_iso()))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_login_session(row) -> LoginSession:
    return LoginSession(id=row.id, user_id=row.user_id, start_time=row.start_time)


def _row_to_device(row) -> Device:
    return Device(id=row.id, user_id=row.user_id, name=row.name, created_at=row.created_at)


def _row_to_server_session(row) -> ServerSession:
    return ServerSession(
        sid=row.sid,
        user_id=row.user_id,
        data=json.loads(row.data),
        created_at=row.created_at,
        expires_at=row.expires_at,
    )
