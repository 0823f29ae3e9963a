from typing import List

import pytest

from scenedepth.core.schemas.enums import DepthMethod
from scenedepth.domain.models import DepthResult
from scenedepth.services.cache import TTLCache, content_hash


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _result(name: str) -> DepthResult:
    return DepthResult(depth_url=f"data:image/jpeg;base64,{name}", method=DepthMethod.MODEL)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(1000.0)


def test_full_cache_evicts_first_inserted_key(clock: FakeClock):
    """Reads do not refresh position; the oldest insertion is evicted."""
    # Arrange
    cache: TTLCache[DepthResult] = TTLCache(max_size=2, ttl_ms=10_000, clock=clock)
    cache.set("a", _result("a"))
    cache.set("b", _result("b"))
    assert cache.get("a") is not None

    # Act
    evicted = cache.set("c", _result("c"))

    # Assert
    assert evicted == ["a"]
    assert "a" not in cache
    assert list(cache) == ["b", "c"]


def test_overwriting_a_key_does_not_evict(clock: FakeClock):
    cache: TTLCache[DepthResult] = TTLCache(max_size=2, ttl_ms=10_000, clock=clock)
    cache.set("a", _result("a"))
    cache.set("b", _result("b"))

    assert cache.set("a", _result("a2")) == []
    assert len(cache) == 2
    assert cache.get("a").depth_url.endswith("a2")


def test_entry_expires_at_ttl(clock: FakeClock):
    """An entry is valid while now - timestamp < ttl and dropped on read after."""
    cache: TTLCache[DepthResult] = TTLCache(max_size=5, ttl_ms=500, clock=clock)
    cache.set("a", _result("a"))

    clock.now += 499
    assert cache.get("a") is not None

    clock.now += 1
    assert cache.get("a") is None
    assert "a" not in cache


def test_zero_ttl_never_hits(clock: FakeClock):
    cache: TTLCache[DepthResult] = TTLCache(max_size=5, ttl_ms=0, clock=clock)
    cache.set("a", _result("a"))

    assert cache.get("a") is None


def test_shrinking_max_size_applies_on_next_insert(clock: FakeClock):
    """Existing entries survive reconfigure; the next insert trims to the new size."""
    cache: TTLCache[DepthResult] = TTLCache(max_size=3, ttl_ms=10_000, clock=clock)
    for key in "abc":
        cache.set(key, _result(key))

    cache.reconfigure(max_size=1)

    assert len(cache) == 3
    assert cache.set("d", _result("d")) == ["a", "b", "c"]
    assert list(cache) == ["d"]


def test_serialized_size_tracks_entries(clock: FakeClock):
    cache: TTLCache[DepthResult] = TTLCache(max_size=5, ttl_ms=10_000, clock=clock)
    assert cache.serialized_size() == 0

    cache.set("k", _result("payload"))

    assert cache.serialized_size() == len(_result("payload").model_dump_json()) + 1
    cache.clear()
    assert len(cache) == 0


def test_content_hash_is_stable():
    keys: List[str] = [content_hash("same input"), content_hash("same input"), content_hash("other")]

    assert keys[0] == keys[1]
    assert keys[0] != keys[2]
    assert len(keys[0]) == 64
