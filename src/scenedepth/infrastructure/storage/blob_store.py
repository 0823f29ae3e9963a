import threading
import uuid
from typing import Dict, Tuple

from scenedepth.core.logging import LoggerRegistry
from scenedepth.domain.ports.storage import ObjectUrlStore

BLOB_SCHEME = "blob:"
BLOB_PREFIX = "blob:scenedepth/"


class BlobStore(ObjectUrlStore):
    """In-memory registry of revocable `blob:` URLs."""

    def __init__(self):
        self._blobs: Dict[str, Tuple[bytes, str]] = {}
        self._lock = threading.Lock()
        self.logger = LoggerRegistry.get_infrastructure_logger("blob_store")

    def create_object_url(self, data: bytes, content_type: str = "application/octet-stream") -> str:
        url = f"{BLOB_PREFIX}{uuid.uuid4()}"
        with self._lock:
            self._blobs[url] = (data, content_type)
        self.logger.debug("blob.created", url=url, size=len(data), content_type=content_type)
        return url

    def resolve(self, url: str) -> bytes:
        with self._lock:
            entry = self._blobs.get(url)
        if entry is None:
            raise KeyError(f"Unknown or revoked blob URL: {url}")
        return entry[0]

    def content_type(self, url: str) -> str:
        with self._lock:
            entry = self._blobs.get(url)
        if entry is None:
            raise KeyError(f"Unknown or revoked blob URL: {url}")
        return entry[1]

    def revoke(self, url: str) -> bool:
        with self._lock:
            removed = self._blobs.pop(url, None) is not None
        if removed:
            self.logger.debug("blob.revoked", url=url)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._blobs.clear()

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._blobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._blobs)


def is_blob_url(url: str) -> bool:
    return url.startswith(BLOB_SCHEME)
