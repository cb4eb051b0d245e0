# ==============================================================================
# Tests for ValkeyCache
# ==============================================================================
"""
Unit tests for the Valkey report cache, backed by fakeredis.
"""

from unittest.mock import patch

import redis

from sitelens.infrastructure.cache import check_valkey_connection, get_valkey_cache
from sitelens.utils.config import Settings, ValkeySettings


class TestValkeyCache:
    def test_set_and_get(self, fake_cache):
        fake_cache.set("sitelens:report:forms:s:abc", {"forms": [{"formId": "signup", "views": 3}]})
        assert fake_cache.get("sitelens:report:forms:s:abc") == {"forms": [{"formId": "signup", "views": 3}]}

    def test_missing_key(self, fake_cache):
        assert fake_cache.get("nope") is None

    def test_ttl(self, fake_cache, fake_redis):
        fake_cache.set("k", {"a": 1}, ttl_seconds=120)
        assert 0 < fake_redis.ttl("k") <= 120

    def test_no_ttl(self, fake_cache, fake_redis):
        fake_cache.set("k", {"a": 1})
        assert fake_redis.ttl("k") == -1

    def test_invalid_json_is_a_miss(self, fake_cache, fake_redis):
        fake_redis.set("k", "{not json")
        assert fake_cache.get("k") is None

    def test_non_object_json_is_a_miss(self, fake_cache, fake_redis):
        fake_redis.set("k", "[1, 2, 3]")
        assert fake_cache.get("k") is None

    def test_delete(self, fake_cache):
        fake_cache.set("k", {"a": 1})
        assert fake_cache.delete("k") is True
        assert fake_cache.delete("k") is False

    def test_delete_pattern(self, fake_cache):
        fake_cache.set("sitelens:report:journeys:s1:a", {})
        fake_cache.set("sitelens:report:journeys:s1:b", {})
        fake_cache.set("sitelens:report:forms:s1:c", {})
        assert fake_cache.delete_pattern("sitelens:report:journeys:*") == 2
        assert fake_cache.get("sitelens:report:forms:s1:c") == {}

    def test_delete_pattern_no_match(self, fake_cache):
        assert fake_cache.delete_pattern("nothing:*") == 0

    def test_ping(self, fake_cache):
        assert fake_cache.ping() is True


class TestFactories:
    def test_disabled_cache_returns_none(self):
        settings = Settings(valkey=ValkeySettings(enabled=False))
        assert get_valkey_cache(settings) is None

    def test_enabled_cache(self):
        settings = Settings(valkey=ValkeySettings(enabled=True, host="cache.internal", port=6380, db=2))
        cache = get_valkey_cache(settings)
        try:
            kwargs = cache.client.connection_pool.connection_kwargs
            assert kwargs["host"] == "cache.internal"
            assert kwargs["port"] == 6380
            assert kwargs["db"] == 2
        finally:
            cache.close()

    def test_url_with_password_and_ssl(self):
        valkey = ValkeySettings(host="h", port=1, password="secret", ssl=True, db=0)
        assert valkey.url == "rediss://:secret@h:1/0"

    def test_check_connection_unreachable(self):
        settings = Settings(valkey=ValkeySettings(enabled=True))
        with patch("sitelens.infrastructure.cache.valkey.redis.from_url") as from_url:
            from_url.return_value.ping.side_effect = redis.ConnectionError("refused")
            assert check_valkey_connection(settings) is False

    def test_check_connection_ok(self, fake_redis):
        settings = Settings(valkey=ValkeySettings(enabled=True))
        with patch("sitelens.infrastructure.cache.valkey.redis.from_url", return_value=fake_redis):
            assert check_valkey_connection(settings) is True
