from typing import Protocol


class ObjectUrlStore(Protocol):
    """Port for a registry of revocable object URLs backed by in-memory bytes."""

    def create_object_url(self, data: bytes, content_type: str) -> str:
        """Register bytes and return a URL handle for them."""
        ...

    def resolve(self, url: str) -> bytes:
        """Return the bytes behind a URL handle."""
        ...

    def revoke(self, url: str) -> bool:
        """Release a URL handle. Returns False if it was unknown."""
        ...

    def __contains__(self, url: object) -> bool:
        ...
