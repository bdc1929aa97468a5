"""Unit tests for cache utilities."""
import time

import pytest

from booking_core.cache import SimpleTTLCache


class TestSimpleTTLCache:
    """Test the TTL cache implementation."""

    def test_cache_set_and_get(self):
        cache = SimpleTTLCache[str](ttl=60)

        cache.set("key1", "value1")
        assert cache.get("key1") == "value1"

    def test_cache_get_nonexistent_key(self):
        cache = SimpleTTLCache[str](ttl=60)

        assert cache.get("nonexistent") is None

    def test_cache_ttl_expiration(self):
        cache = SimpleTTLCache[str](ttl=1)

        cache.set("key1", "value1")
        time.sleep(1.1)

        assert cache.get("key1") is None

    def test_cache_pop_and_clear(self):
        cache = SimpleTTLCache[str](ttl=60)
        cache.set("key1", "value1")
        cache.set("key2", "value2")

        cache.pop("key1")
        cache.pop("nonexistent")
        assert cache.get("key1") is None
        assert cache.get("key2") == "value2"

        cache.clear()
        assert cache.get("key2") is None

    def test_get_or_load_calls_loader_once(self):
        cache = SimpleTTLCache[int](ttl=60)
        calls = []

        def loader():
            calls.append(1)
            return 42

        assert cache.get_or_load("answer", loader) == 42
        assert cache.get_or_load("answer", loader) == 42
        assert len(calls) == 1

    def test_get_or_load_does_not_cache_errors(self):
        cache = SimpleTTLCache[int](ttl=60)

        def failing():
            raise LookupError("missing")

        with pytest.raises(LookupError):
            cache.get_or_load("k", failing)
        assert cache.get_or_load("k", lambda: 7) == 7

    def test_cache_maxsize(self):
        cache = SimpleTTLCache[str](ttl=60, maxsize=2)

        cache.set("key1", "value1")
        cache.set("key2", "value2")
        cache.set("key3", "value3")

        assert cache.get("key2") == "value2"
        assert cache.get("key3") == "value3"
