import logging
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from app.modules.auth.service import AuthService, TokenCache, clear_auth_cache, token_cache


@pytest.fixture(autouse=True)
def empty_cache():
    clear_auth_cache()
    yield
    clear_auth_cache()


@pytest.fixture
def supabase() -> MagicMock:
    client = MagicMock()
    client.auth.get_user.return_value = SimpleNamespace(user=SimpleNamespace(
        id="u1", email="u1@example.com", user_metadata=None, app_metadata={"provider": "email"},
    ))
    return client


def identity(user_id):
    return {"id": user_id, "email": None, "user_metadata": {}, "app_metadata": {}}


class TestGetCurrentUser:
    def test_resolves_identity(self, supabase):
        user = AuthService(supabase).get_current_user("token")
        assert user == {
            "id": "u1",
            "email": "u1@example.com",
            "user_metadata": {},
            "app_metadata": {"provider": "email"},
        }
        supabase.auth.get_user.assert_called_once_with(jwt="token")

    def test_repeated_token_is_served_from_cache(self, supabase):
        service = AuthService(supabase)
        service.get_current_user("token")
        service.get_current_user("token")
        assert supabase.auth.get_user.call_count == 1
        assert len(token_cache) == 1

    def test_cleared_cache_asks_supabase_again(self, supabase):
        service = AuthService(supabase)
        service.get_current_user("token")
        clear_auth_cache()
        service.get_current_user("token")
        assert supabase.auth.get_user.call_count == 2

    def test_unknown_token_is_401_and_not_cached(self, supabase):
        supabase.auth.get_user.return_value = SimpleNamespace(user=None)
        with pytest.raises(HTTPException) as exc:
            AuthService(supabase).get_current_user("token")
        assert exc.value.status_code == 401
        assert len(token_cache) == 0

    def test_expired_jwt_is_401(self, supabase):
        supabase.auth.get_user.side_effect = Exception("JWT expired")
        with pytest.raises(HTTPException) as exc:
            AuthService(supabase).get_current_user("token")
        assert exc.value.detail == "Invalid or expired token"

    def test_other_failures_are_401(self, supabase):
        supabase.auth.get_user.side_effect = Exception("connection reset")
        with pytest.raises(HTTPException) as exc:
            AuthService(supabase).get_current_user("token")
        assert exc.value.status_code == 401
        assert exc.value.detail == "Authentication failed"


class TestIdentify:
    def test_no_token_is_anonymous(self, supabase):
        assert AuthService(supabase).identify(None) is None
        supabase.auth.get_user.assert_not_called()

    def test_rejected_token_raises_by_default(self, supabase):
        supabase.auth.get_user.side_effect = Exception("invalid JWT")
        with pytest.raises(HTTPException) as exc:
            AuthService(supabase).identify("token")
        assert exc.value.status_code == 401

    def test_rejected_token_is_anonymous_when_tolerated(self, supabase, caplog):
        supabase.auth.get_user.side_effect = Exception("invalid JWT")
        with caplog.at_level(logging.INFO, logger="app.modules.auth.service"):
            assert AuthService(supabase).identify("token", tolerate_invalid=True) is None
        assert "Ignoring rejected token" in caplog.text

    def test_valid_token_is_identified_when_tolerated(self, supabase):
        assert AuthService(supabase).identify("token", tolerate_invalid=True)["id"] == "u1"


class TestTokenCache:
    def test_expired_identity_is_dropped_on_read(self, clock):
        cache = TokenCache(ttl_seconds=60, max_size=10, clock=clock)
        cache.put("t1", identity("u1"))
        clock.advance(60)
        assert cache.get("t1") is None
        assert len(cache) == 0

    def test_keeps_caching_after_many_expired_tokens(self, clock):
        cache = TokenCache(ttl_seconds=60, max_size=500, clock=clock)
        for i in range(500):
            cache.put(f"t{i}", identity(f"u{i}"))
        clock.advance(61)
        cache.put("fresh", identity("fresh"))
        assert cache.get("fresh") == identity("fresh")
        assert len(cache) == 1

    def test_full_cache_drops_the_oldest_live_identity(self, clock):
        cache = TokenCache(ttl_seconds=60, max_size=2, clock=clock)
        cache.put("t1", identity("u1"))
        cache.put("t2", identity("u2"))
        cache.put("t3", identity("u3"))
        assert cache.get("t1") is None
        assert cache.get("t2") == identity("u2")
        assert cache.get("t3") == identity("u3")

    def test_refreshing_a_cached_token_does_not_evict(self, clock):
        cache = TokenCache(ttl_seconds=60, max_size=2, clock=clock)
        cache.put("t1", identity("u1"))
        cache.put("t2", identity("u2"))
        cache.put("t2", identity("u2"))
        assert len(cache) == 2
        assert cache.get("t1") == identity("u1")

    def test_stores_digests_not_tokens(self):
        cache = TokenCache()
        cache.put("secret-token", identity("u1"))
        assert "secret-token" not in cache._identities
