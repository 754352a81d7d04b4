"""Unit tests for auth/tokens.py -- password hashing and JWT issue/verify.

Covers:
- hash_password() never stores plaintext and verifies round-trip
- verify_password() fails closed on garbage hashes
- TokenIssuer.issue()/verify() carry the user id and email
- an already-expired token is rejected
- an empty signing secret raises ConfigurationError for issue and verify
- a token signed with another key is rejected
"""

import time
from datetime import timedelta

import pytest

from auth.errors import ConfigurationError, InvalidTokenError
from auth.tokens import TokenIssuer, hash_password, verify_password

SECRET = "unit-test-signing-key-0123456789-abcdef"


def test_hash_is_not_plaintext_and_verifies():
    hashed = hash_password("secret123")
    assert hashed != "secret123"
    assert hashed.startswith("$2b$10$")
    assert verify_password("secret123", hashed)


def test_verify_rejects_wrong_password():
    assert not verify_password("wrong-pass", hash_password("secret123"))


def test_verify_fails_closed_on_malformed_hash():
    assert verify_password("secret123", "not-a-bcrypt-hash") is False


def test_issued_token_round_trips_identity():
    tokens = TokenIssuer(SECRET)
    identity = tokens.verify(tokens.issue(42, "ada@example.com"))
    assert identity.user_id == 42
    assert identity.email == "ada@example.com"


def test_default_expiry_is_eight_hours():
    before = int(time.time())
    identity = TokenIssuer(SECRET).verify(TokenIssuer(SECRET).issue(1, "a@b.co"))
    assert before + 8 * 60 * 60 <= identity.expires_at <= int(time.time()) + 8 * 60 * 60


def test_expired_token_rejected():
    tokens = TokenIssuer(SECRET)
    token = tokens.issue(1, "ada@example.com", expires_in=timedelta(seconds=-1))
    with pytest.raises(InvalidTokenError):
        tokens.verify(token)


def test_token_from_other_key_rejected():
    token = TokenIssuer("another-signing-key-0123456789-zyxwv").issue(1, "ada@example.com")
    with pytest.raises(InvalidTokenError):
        TokenIssuer(SECRET).verify(token)


def test_garbage_token_rejected():
    with pytest.raises(InvalidTokenError):
        TokenIssuer(SECRET).verify("not.a.jwt")


def test_empty_secret_raises_configuration_error():
    tokens = TokenIssuer("")
    assert not tokens.configured
    with pytest.raises(ConfigurationError):
        tokens.issue(1, "ada@example.com")
    with pytest.raises(ConfigurationError):
        tokens.verify("anything")
