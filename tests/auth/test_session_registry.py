"""
Tests for the session registry.
"""
from datetime import timedelta

from clinic_auth.auth.models import IssuedToken, TokenType
from clinic_auth.auth.session_registry import SessionRegistry
from clinic_auth.core.security import hash_token, utcnow


def _record(registry, user_id, token, token_type=TokenType.ACCESS, expires_in=timedelta(minutes=15)):
    return registry.record(user_id, token, token_type, utcnow() + expires_in)


def test_record_stores_digest_not_token(db, make_user):
    user = make_user()
    registry = SessionRegistry(db)

    issued = _record(registry, user.id, "raw-token-value")
    db.commit()

    assert issued.token_hash == hash_token("raw-token-value")
    assert db.query(IssuedToken).filter(IssuedToken.token_hash == "raw-token-value").count() == 0


def test_find_active_ignores_expired_rows(db, make_user):
    user = make_user()
    registry = SessionRegistry(db)
    _record(registry, user.id, "live")
    _record(registry, user.id, "stale", expires_in=timedelta(minutes=-1))
    db.commit()

    assert registry.find_active("live") is not None
    assert registry.find_active("stale") is None
    assert registry.find_by_token("stale") is not None


def test_find_active_filters_by_type(db, make_user):
    user = make_user()
    registry = SessionRegistry(db)
    _record(registry, user.id, "refresh-token", TokenType.REFRESH)
    db.commit()

    assert registry.find_active("refresh-token", TokenType.ACCESS) is None
    assert registry.find_active("refresh-token", TokenType.REFRESH) is not None


def test_revoke_removes_only_that_token(db, make_user):
    user = make_user()
    registry = SessionRegistry(db)
    _record(registry, user.id, "one")
    _record(registry, user.id, "two")
    db.commit()

    assert registry.revoke("one") == 1
    assert registry.revoke("one") == 0
    assert registry.find_active("two") is not None


def test_revoke_with_user_id_leaves_other_users_tokens(db, make_user):
    alice = make_user(email="alice@example.com")
    bob = make_user(email="bob@example.com")
    registry = SessionRegistry(db)
    _record(registry, bob.id, "bobs-token")
    db.commit()

    assert registry.revoke("bobs-token", user_id=alice.id) == 0
    assert registry.find_active("bobs-token") is not None


def test_revoke_all_for_user(db, make_user):
    alice = make_user(email="alice@example.com")
    bob = make_user(email="bob@example.com")
    registry = SessionRegistry(db)
    _record(registry, alice.id, "a1")
    _record(registry, alice.id, "a2", TokenType.REFRESH)
    _record(registry, bob.id, "b1")
    db.commit()

    assert registry.revoke_all_for_user(alice.id) == 2
    assert registry.count_active_for_user(alice.id) == 0
    assert registry.count_active_for_user(bob.id) == 1


def test_consume_succeeds_once(db, make_user):
    user = make_user()
    registry = SessionRegistry(db)
    _record(registry, user.id, "refresh-me", TokenType.REFRESH)
    db.commit()

    assert registry.consume("refresh-me", TokenType.REFRESH) is True
    assert registry.consume("refresh-me", TokenType.REFRESH) is False


def test_consume_rejects_expired_and_wrong_type(db, make_user):
    user = make_user()
    registry = SessionRegistry(db)
    _record(registry, user.id, "old-refresh", TokenType.REFRESH, expires_in=timedelta(seconds=-5))
    _record(registry, user.id, "access-token", TokenType.ACCESS)
    db.commit()

    assert registry.consume("old-refresh", TokenType.REFRESH) is False
    assert registry.consume("access-token", TokenType.REFRESH) is False


def test_purge_expired(db, make_user):
    user = make_user()
    registry = SessionRegistry(db)
    _record(registry, user.id, "expired-1", expires_in=timedelta(minutes=-10))
    _record(registry, user.id, "expired-2", expires_in=timedelta(minutes=-1))
    _record(registry, user.id, "current")
    db.commit()

    assert registry.purge_expired(user.id) == 2
    assert db.query(IssuedToken).count() == 1
