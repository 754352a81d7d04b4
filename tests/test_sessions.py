"""Unit tests for auth/sessions.py -- SessionManager account and login flows.

Covers:
- signup hashes the password and issues a token for the new user
- duplicate signup raises Conflict and leaves a single row
- validation reports every invalid field at once
- passwords longer than bcrypt's 72-byte input are rejected
- token failure during signup removes the just-created user
- unknown email and wrong password raise the same InvalidCredentials
- login writes a login-history row, a device row, and a server session
- logout destroys the server session so the cookie no longer resolves
- a tampered session cookie resolves to nothing
- update_user re-hashes only when a password is supplied
"""

import pytest

from auth.errors import Conflict, InvalidCredentials, NotFound, TokenError, ValidationError
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.tokens import TokenIssuer, verify_password

SECRET = "unit-test-signing-key-0123456789-abcdef"


@pytest.fixture
def store():
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def manager(store):
    return SessionManager(store, TokenIssuer(SECRET), session_secret="unit-session-secret")


def _signup(manager, email="ada@example.com", password="secret123"):
    return manager.signup("Ada", "Lovelace", email, password)


# ---------------------------------------------------------------------------
# Signup
# ---------------------------------------------------------------------------


def test_signup_stores_hash_and_issues_token(manager, store):
    result = _signup(manager)
    stored = store.get_by_email("ada@example.com")
    assert stored.hashed_password != "secret123"
    assert verify_password("secret123", stored.hashed_password)
    assert manager.tokens.verify(result.token).user_id == stored.id


def test_signup_normalizes_email(manager, store):
    _signup(manager, email="  Ada@Example.COM ")
    assert store.get_by_email("ada@example.com") is not None


def test_duplicate_signup_conflicts(manager, store):
    _signup(manager)
    with pytest.raises(Conflict):
        _signup(manager, email="ADA@example.com")
    _, total = store.list_users()
    assert total == 1


def test_validation_reports_every_field(manager):
    with pytest.raises(ValidationError) as exc_info:
        manager.signup("", " ", "not-an-email", "123")
    fields = {f["field"] for f in exc_info.value.fields}
    assert fields == {"firstName", "lastName", "email", "password"}


def test_password_length_bounds(manager):
    with pytest.raises(ValidationError):
        _signup(manager, password="x" * 31)
    _signup(manager, password="x" * 30)


def test_password_byte_length_bounds(manager):
    # 30 four-byte characters pass the character limit but not bcrypt's 72 bytes.
    with pytest.raises(ValidationError) as exc_info:
        _signup(manager, password="\U0001F600" * 30)
    assert [f["field"] for f in exc_info.value.fields] == ["password"]
    user = _signup(manager, email="grace@example.com", password="\u00e9" * 30).user
    with pytest.raises(ValidationError):
        manager.update_user(user.id, "Grace", "Hopper", "grace@example.com", password="\U0001F600" * 30)


def test_signup_rolls_back_when_token_cannot_be_issued(store):
    broken = SessionManager(store, TokenIssuer(""), session_secret="unit-session-secret")
    with pytest.raises(TokenError):
        broken.signup("Ada", "Lovelace", "ada@example.com", "secret123")
    assert store.get_by_email("ada@example.com") is None


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------


def test_unknown_email_and_wrong_password_are_indistinguishable(manager):
    _signup(manager)
    with pytest.raises(InvalidCredentials) as unknown:
        manager.login("nobody@example.com", "secret123")
    with pytest.raises(InvalidCredentials) as wrong:
        manager.login("ada@example.com", "wrong-pass")
    assert unknown.value.message == wrong.value.message
    assert unknown.value.code == wrong.value.code


def test_login_token_matches_email_lookup(manager, store):
    _signup(manager)
    result = manager.login("ada@example.com", "secret123")
    assert manager.tokens.verify(result.token).user_id == store.get_by_email("ada@example.com").id


def test_login_records_history_device_and_server_session(manager, store):
    user = _signup(manager).user
    ua = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148"
    result = manager.login("ada@example.com", "secret123", user_agent=ua)

    assert [d.name for d in store.list_devices(user.id)] == ["Mobile"]
    history = store.get_login_session(1)
    assert history.user_id == user.id
    assert history.start_time == result.server_session.data["sessionStartTime"]

    session = manager.resolve(result.session_cookie)
    assert session is not None
    assert session.user_id == user.id
    assert session.token == result.token
    assert session.data["firstName"] == "Ada"


def test_logout_destroys_server_session(manager):
    _signup(manager)
    result = manager.login("ada@example.com", "secret123")
    assert manager.logout(result.session_cookie) is True
    assert manager.resolve(result.session_cookie) is None
    # A second logout with the same cookie has nothing to delete.
    assert manager.logout(result.session_cookie) is False


def test_logout_without_cookie_is_not_an_error(manager):
    assert manager.logout(None) is False


def test_tampered_session_cookie_does_not_resolve(manager):
    _signup(manager)
    result = manager.login("ada@example.com", "secret123")
    assert manager.resolve(result.session_cookie + "x") is None


def test_cookie_signed_with_other_secret_does_not_resolve(manager, store):
    _signup(manager)
    result = manager.login("ada@example.com", "secret123")
    other = SessionManager(store, manager.tokens, session_secret="some-other-secret")
    assert other.resolve(result.session_cookie) is None


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------


def test_update_without_password_keeps_hash(manager, store):
    user = _signup(manager).user
    before = store.get_by_id(user.id).hashed_password
    updated = manager.update_user(user.id, "Augusta", "King", "ada@example.com")
    assert updated.first_name == "Augusta"
    assert store.get_by_id(user.id).hashed_password == before


def test_update_with_password_rehashes(manager, store):
    user = _signup(manager).user
    manager.update_user(user.id, "Ada", "Lovelace", "ada@example.com", password="newpass99")
    assert verify_password("newpass99", store.get_by_id(user.id).hashed_password)


def test_update_to_taken_email_conflicts(manager):
    _signup(manager)
    other = _signup(manager, email="grace@example.com").user
    with pytest.raises(Conflict):
        manager.update_user(other.id, "Grace", "Hopper", "ada@example.com")


def test_update_and_delete_unknown_user(manager):
    with pytest.raises(NotFound):
        manager.update_user(999, "A", "B", "a@b.co")
    with pytest.raises(NotFound):
        manager.delete_user(999)
