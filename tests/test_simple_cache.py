"""Unit tests for the :mod:`closeword.utils.cache` module."""
import pytest

from closeword.utils.cache import SimpleCache


def test_simple_cache_expires_items(monkeypatch):
    """Expired entries should be evicted on access."""

    from closeword.utils import cache as cache_module

    current = 100.0

    def fake_time():
        return current

    monkeypatch.setattr(cache_module.time, "time", fake_time)

    cache = SimpleCache(default_ttl=5.0)

    cache.set("greeting", "hello")
    assert cache.get("greeting") == "hello"

    current = 200.0

    assert cache.get("greeting") is None


def test_max_entries_evicts_entry_closest_to_expiry(monkeypatch):
    from closeword.utils import cache as cache_module

    monkeypatch.setattr(cache_module.time, "time", lambda: 100.0)
    cache = SimpleCache(default_ttl=60, max_entries=2)

    cache.set("short", 1, ttl=10)
    cache.set("long", 2, ttl=100)
    cache.set("new", 3)

    assert len(cache) == 2
    assert cache.get("short") is None
    assert cache.get("long") == 2
    assert cache.get("new") == 3


def test_overwriting_key_does_not_evict():
    cache = SimpleCache(default_ttl=60, max_entries=1)

    cache.set("ranks:1", "a")
    cache.set("ranks:1", "b")

    assert cache.get("ranks:1") == "b"
    assert len(cache) == 1


@pytest.mark.parametrize(
    "key,should_remove",
    [
        ("ranks:1", True),
        ("ranks:22", True),
        ("other:ranks:1", False),
    ],
)
def test_invalidate_prefix_removes_matching_keys(key, should_remove):
    """Only cache entries starting with the prefix should be cleared."""
    cache = SimpleCache(default_ttl=60)
    cache.set(key, "value")

    cache.invalidate_prefix("ranks:")

    expected = None if should_remove else "value"
    assert cache.get(key) == expected


def test_delete_and_clear():
    cache = SimpleCache()
    cache.set("a", 1)
    cache.set("b", 2)

    cache.delete("a")
    assert cache.get("a") is None
    assert cache.get("b") == 2

    cache.clear()
    assert len(cache) == 0
