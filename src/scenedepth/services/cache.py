import hashlib
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Iterator, List, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


def content_hash(value: str) -> str:
    """Cache key for a principal input (image base64 or URL string)."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry(Generic[T]):
    value: T
    timestamp: float
    hash: str


class TTLCache(Generic[T]):
    """
    Bounded, insertion-ordered cache with a time-to-live per entry.

    When full, the entry inserted first is evicted before a new key is
    added; reads do not refresh an entry's position. An entry is valid while
    `now - timestamp < ttl_ms`; expired entries are dropped on read.
    """

    def __init__(self, max_size: int, ttl_ms: int, clock: Optional[Callable[[], float]] = None):
        self.max_size = max_size
        self.ttl_ms = ttl_ms
        self._clock = clock or _monotonic_ms
        self._entries: Dict[str, CacheEntry[T]] = {}

    def reconfigure(self, max_size: Optional[int] = None, ttl_ms: Optional[int] = None) -> None:
        # Existing entries are kept as-is; limits apply from the next access.
        if max_size is not None:
            self.max_size = max_size
        if ttl_ms is not None:
            self.ttl_ms = ttl_ms

    def get(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp >= self.ttl_ms:
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: T) -> List[str]:
        """Stores a value; returns the keys evicted to stay within `max_size`."""
        evicted = []
        if key not in self._entries:
            while self._entries and len(self._entries) >= self.max_size:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                evicted.append(oldest)
        self._entries[key] = CacheEntry(value=value, timestamp=self._clock(), hash=key)
        return evicted

    def clear(self) -> None:
        self._entries.clear()

    def serialized_size(self) -> int:
        """Approximate footprint in bytes of all entries serialized as JSON."""
        return sum(len(entry.value.model_dump_json()) + len(entry.hash) for entry in self._entries.values())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))
