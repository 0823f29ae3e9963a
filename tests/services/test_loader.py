import asyncio
import threading
import time
from typing import List

import pytest

from scenedepth.core.exceptions import ModelLoadError
from scenedepth.services.loader import ModelLoader, RetryPolicy


class FlakyLoad:
    """Blocking load function that fails a fixed number of times first."""

    def __init__(self, failures: int, result: str = "model"):
        self.failures = failures
        self.result = result
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            self.calls += 1
            attempt = self.calls
        if attempt <= self.failures:
            raise RuntimeError(f"load attempt {attempt} failed")
        return self.result


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def sleep(delay: float) -> None:
        sleeps.append(delay)

    return sleep


async def test_load_retries_with_exponential_backoff(fake_sleep, sleeps):
    """Two failures then success: backoff of 1s then 2s."""
    load = FlakyLoad(failures=2)
    loader = ModelLoader("depth", load, RetryPolicy(max_attempts=3), sleep=fake_sleep)

    model = await loader.load()

    assert model == "model"
    assert loader.loaded
    assert load.calls == 3
    assert sleeps == [1.0, 2.0]


async def test_load_gives_up_after_max_attempts(fake_sleep, sleeps):
    load = FlakyLoad(failures=10)
    loader = ModelLoader("depth", load, RetryPolicy(max_attempts=3), sleep=fake_sleep)

    with pytest.raises(ModelLoadError, match="after 3 attempts"):
        await loader.load()

    assert load.calls == 3
    assert sleeps == [1.0, 2.0]
    assert not loader.loaded


async def test_failed_load_is_not_memoized(fake_sleep):
    load = FlakyLoad(failures=1)
    loader = ModelLoader("depth", load, RetryPolicy(max_attempts=1), sleep=fake_sleep)

    with pytest.raises(ModelLoadError):
        await loader.load()

    assert await loader.load() == "model"


async def test_concurrent_loads_share_one_attempt(fake_sleep):
    load = FlakyLoad(failures=0)
    loader = ModelLoader("depth", load, sleep=fake_sleep)

    models = await asyncio.gather(loader.load(), loader.load(), loader.load())

    assert models == ["model", "model", "model"]
    assert load.calls == 1

    await loader.load()
    assert load.calls == 1


async def test_attempt_times_out(fake_sleep):
    def slow_load() -> str:
        time.sleep(0.2)
        return "model"

    loader = ModelLoader("depth", slow_load, RetryPolicy(max_attempts=1, timeout=0.01), sleep=fake_sleep)

    with pytest.raises(ModelLoadError):
        await loader.load()


def test_delay_is_capped():
    policy = RetryPolicy(base_delay=1.0, max_delay=3.0)

    assert [policy.delay_for(attempt) for attempt in range(1, 5)] == [1.0, 2.0, 3.0, 3.0]


def test_unload_drops_model():
    loader = ModelLoader("depth", lambda: "model")
    loader._model = "model"

    loader.unload()

    assert loader.model is None
