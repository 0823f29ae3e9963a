import pytest
from pytest_httpx import HTTPXMock

from scenedepth.core.exceptions import InputError
from scenedepth.infrastructure.image_resolver import ImageResolver, data_url_mime_type, decode_data_url
from scenedepth.infrastructure.storage.blob_store import BlobStore, is_blob_url
from scenedepth.processing.images import to_data_url

PAYLOAD = b"\x89PNG fake bytes"


@pytest.fixture
def blob_store() -> BlobStore:
    return BlobStore()


@pytest.fixture
def resolver(blob_store: BlobStore) -> ImageResolver:
    return ImageResolver(blob_store, fetch_timeout=5)


def test_blob_store_lifecycle(blob_store: BlobStore):
    url = blob_store.create_object_url(PAYLOAD, "image/png")

    assert is_blob_url(url)
    assert url in blob_store
    assert blob_store.resolve(url) == PAYLOAD
    assert blob_store.content_type(url) == "image/png"

    assert blob_store.revoke(url) is True
    assert blob_store.revoke(url) is False
    assert url not in blob_store
    with pytest.raises(KeyError):
        blob_store.resolve(url)


def test_blob_urls_are_unique(blob_store: BlobStore):
    urls = {blob_store.create_object_url(PAYLOAD) for _ in range(5)}

    assert len(urls) == 5
    assert len(blob_store) == 5
    blob_store.clear()
    assert len(blob_store) == 0


async def test_resolve_blob_url(resolver: ImageResolver, blob_store: BlobStore):
    url = blob_store.create_object_url(PAYLOAD)

    assert await resolver.resolve(url) == PAYLOAD


async def test_resolve_revoked_blob_url_is_input_error(resolver: ImageResolver, blob_store: BlobStore):
    url = blob_store.create_object_url(PAYLOAD)
    blob_store.revoke(url)

    with pytest.raises(InputError):
        await resolver.resolve(url)


async def test_resolve_data_url(resolver: ImageResolver):
    url = to_data_url(PAYLOAD, "image/png")

    assert await resolver.resolve(url) == PAYLOAD
    assert data_url_mime_type(url) == "image/png"


@pytest.mark.parametrize("url", ["data:image/png,plain-text", "data:image/png;base64,@@@"])
def test_malformed_data_urls(url):
    with pytest.raises(InputError):
        decode_data_url(url)


async def test_resolve_http_url(resolver: ImageResolver, httpx_mock: HTTPXMock):
    httpx_mock.add_response(url="http://images.test/scene.png", content=PAYLOAD)

    assert await resolver.resolve("http://images.test/scene.png") == PAYLOAD


async def test_resolve_http_error_is_input_error(resolver: ImageResolver, httpx_mock: HTTPXMock):
    httpx_mock.add_response(url="http://images.test/missing.png", status_code=404)

    with pytest.raises(InputError, match="Failed to fetch"):
        await resolver.resolve("http://images.test/missing.png")


async def test_resolve_file_path(resolver: ImageResolver, tmp_path):
    path = tmp_path / "scene.png"
    path.write_bytes(PAYLOAD)

    assert await resolver.resolve(str(path)) == PAYLOAD


@pytest.mark.parametrize("url", ["", "/definitely/not/here.png"])
async def test_resolve_missing_source(resolver: ImageResolver, url):
    with pytest.raises(InputError):
        await resolver.resolve(url)
