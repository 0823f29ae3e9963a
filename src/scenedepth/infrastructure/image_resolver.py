import asyncio
import base64
import binascii
from pathlib import Path

import httpx

from scenedepth.core.exceptions import InputError
from scenedepth.core.logging import LoggerRegistry
from scenedepth.domain.ports.storage import ObjectUrlStore
from scenedepth.infrastructure.storage.blob_store import is_blob_url


class ImageResolver:
    """
    Resolves the URL forms an image can arrive in to raw bytes.

    Supported forms are `blob:` handles from the object URL store, `data:`
    URLs with base64 payloads, `http(s)://` URLs and local filesystem paths.
    """

    def __init__(self, blob_store: ObjectUrlStore, fetch_timeout: float = 30.0):
        self.blob_store = blob_store
        self.fetch_timeout = fetch_timeout
        self.logger = LoggerRegistry.get_infrastructure_logger("image_resolver")

    async def resolve(self, url: str) -> bytes:
        if not url:
            raise InputError("No image URL provided")

        if is_blob_url(url):
            try:
                return self.blob_store.resolve(url)
            except KeyError as e:
                raise InputError(str(e)) from e

        if url.startswith("data:"):
            return decode_data_url(url)

        if url.startswith(("http://", "https://")):
            return await self._fetch(url)

        path = Path(url)
        if not path.is_file():
            raise InputError(f"Image source not found: {url}")
        return await asyncio.to_thread(path.read_bytes)

    async def _fetch(self, url: str) -> bytes:
        self.logger.info("image.fetch.start", url=url)
        async with httpx.AsyncClient(timeout=self.fetch_timeout, follow_redirects=True) as client:
            try:
                response = await client.get(url)
                response.raise_for_status()
            except httpx.HTTPError as e:
                self.logger.warning("image.fetch.failed", url=url, error=str(e))
                raise InputError(f"Failed to fetch {url}: {e}") from e
        self.logger.info("image.fetch.finished", url=url, size=len(response.content))
        return response.content


def decode_data_url(url: str) -> bytes:
    """Decodes a base64 `data:` URL into bytes."""
    header, sep, payload = url.partition(",")
    if not sep or ";base64" not in header:
        raise InputError("Only base64-encoded data URLs are supported")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InputError(f"Malformed data URL: {e}") from e


def data_url_mime_type(url: str) -> str:
    header = url.partition(",")[0]
    return header[len("data:"):].split(";")[0] or "application/octet-stream"
