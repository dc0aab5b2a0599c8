import uuid
from datetime import timedelta

import pytest

from locolive.auth.tokens import TokenKind, TokenManager
from locolive.core.exceptions import InvalidTokenError, TokenExpiredError

SECRET = "unit-test-secret-key-0123456789"


def _manager(**overrides) -> TokenManager:
    options = {"access_lifetime": timedelta(minutes=15), "refresh_lifetime": timedelta(days=7)}
    options.update(overrides)
    return TokenManager(SECRET, **options)


def test_access_token_round_trip_carries_claims():
    manager = _manager()
    user_id, session_id = uuid.uuid4(), uuid.uuid4()

    pair = manager.issue_pair(user_id, session_id, "u1@test.com")
    claims = manager.verify(pair.access_token, TokenKind.ACCESS)

    assert claims.user_id == user_id
    assert claims.session_id == session_id
    assert claims.email == "u1@test.com"
    assert claims.kind is TokenKind.ACCESS
    assert claims.expires_at > claims.issued_at
    assert pair.refresh_expires_at > pair.access_expires_at


def test_token_kinds_are_not_interchangeable():
    manager = _manager()
    pair = manager.issue_pair(uuid.uuid4(), uuid.uuid4(), None)

    with pytest.raises(InvalidTokenError):
        manager.verify(pair.refresh_token, TokenKind.ACCESS)
    with pytest.raises(InvalidTokenError):
        manager.verify(pair.access_token, TokenKind.REFRESH)


def test_expired_token_is_reported_as_expired():
    manager = _manager(access_lifetime=timedelta(seconds=-5))
    token, _ = manager.issue_access_token(uuid.uuid4(), uuid.uuid4(), None)

    with pytest.raises(TokenExpiredError):
        manager.verify(token, TokenKind.ACCESS)


def test_foreign_signature_and_garbage_are_invalid():
    token, _ = TokenManager(
        "another-secret-key-0123456789",
        access_lifetime=timedelta(minutes=5),
        refresh_lifetime=timedelta(days=1),
    ).issue_access_token(uuid.uuid4(), uuid.uuid4(), None)

    manager = _manager()
    with pytest.raises(InvalidTokenError):
        manager.verify(token, TokenKind.ACCESS)
    with pytest.raises(InvalidTokenError):
        manager.verify("not-a-jwt", TokenKind.ACCESS)


def test_issuer_mismatch_is_invalid():
    token, _ = _manager(issuer="someone-else").issue_refresh_token(uuid.uuid4())

    with pytest.raises(InvalidTokenError):
        _manager().verify(token, TokenKind.REFRESH)


def test_refresh_tokens_are_unique_per_issue():
    manager = _manager()
    user_id = uuid.uuid4()

    first, _ = manager.issue_refresh_token(user_id)
    second, _ = manager.issue_refresh_token(user_id)

    assert first != second
    assert manager.verify(first, TokenKind.REFRESH).token_id != manager.verify(second, TokenKind.REFRESH).token_id


def test_empty_secret_is_rejected():
    with pytest.raises(ValueError):
        TokenManager("", access_lifetime=timedelta(minutes=1), refresh_lifetime=timedelta(hours=1))
