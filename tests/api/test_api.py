import pytest
from fastapi.testclient import TestClient

from scenedepth.core.config import Settings
from scenedepth.core.container import ServiceContainer
from scenedepth.core.dependencies import get_container
from scenedepth import main
from scenedepth.main import create_app
from scenedepth.processing.images import to_data_url
from tests.mocks.mock_images import make_image_bytes
from tests.mocks.mock_providers import MockProvider, SceneOnlyProvider

IMAGE_BYTES = make_image_bytes(32, 24)


@pytest.fixture
def container() -> ServiceContainer:
    return ServiceContainer(
        settings=Settings(ANALYSIS_MAX_SIZE=16),
        providers=[
            SceneOnlyProvider("gemini"),
            MockProvider("local-depth"),
            MockProvider("cloud-depth", available=False),
            MockProvider("fallback"),
        ],
    )


@pytest.fixture
def client(container: ServiceContainer):
    app = create_app()
    app.dependency_overrides[get_container] = lambda: container
    with TestClient(app) as client:
        yield client


def _upload(client: TestClient, content: bytes = IMAGE_BYTES):
    return client.post("/api/v1/uploads", files={"file": ("scene.png", content, "image/png")})


def test_health_check(client: TestClient):
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["ai_initialized"] is True
    assert body["active_providers"] == {"scene": "gemini", "depth": "local-depth"}


def test_upload_file(client: TestClient):
    """Uploading an image runs every stage and returns the processed result."""
    response = _upload(client)

    assert response.status_code == 200
    body = response.json()
    assert body["asset"]["type"] == "image"
    assert body["asset"]["width"] == 32
    assert body["asset"]["height"] == 24
    assert body["analysis"]["sceneType"] == "OUTDOOR"
    assert body["depth_map_url"] == "data:image/jpeg;base64,local-depth"
    assert body["background_url"].startswith("data:image/jpeg;base64,")

    session = client.get("/api/v1/session").json()
    assert session["status"] == "ready"
    assert session["progress"]["stage"] == "complete"


def test_upload_empty_file_is_bad_request(client: TestClient):
    response = _upload(client, b"")

    assert response.status_code == 400
    body = response.json()
    assert body["stage"] == "read"
    assert [o["label"] for o in body["recovery"]] == ["Retry Stage", "Select Different File"]
    assert client.get("/api/v1/session").json()["status"] == "error"


def test_upload_url(client: TestClient):
    url = to_data_url(IMAGE_BYTES, "image/png")

    response = client.post("/api/v1/uploads/url", json={"url": url})

    assert response.status_code == 200
    assert response.json()["image_url"] == url


def test_failed_stage_can_be_retried(client: TestClient, container: ServiceContainer):
    container.ai_service.providers["local-depth"].fail = True
    container.ai_service.providers["fallback"].fail = True

    response = _upload(client)

    assert response.status_code == 422
    assert response.json()["stage"] == "depth"
    assert response.json()["recovery"] == [{"label": "Retry Stage", "action": "retry"}]

    container.ai_service.providers["fallback"].fail = False
    retry = client.post("/api/v1/uploads/retry")

    assert retry.status_code == 200
    assert retry.json()["depth_map_url"] == "data:image/jpeg;base64,fallback"


def test_retry_without_failed_run(client: TestClient):
    response = client.post("/api/v1/uploads/retry")

    assert response.status_code == 422


def test_list_and_switch_providers(client: TestClient):
    providers = client.get("/api/v1/providers").json()
    availability = {p["provider_id"]: p["available"] for p in providers["providers"]}
    assert availability == {"gemini": True, "local-depth": True, "cloud-depth": False, "fallback": True}

    response = client.post("/api/v1/providers/switch", json={"type": "depth", "provider_id": "fallback"})
    assert response.status_code == 200
    assert response.json()["active"]["depth"] == "fallback"


@pytest.mark.parametrize("provider_id,status_code", [("missing", 404), ("cloud-depth", 409)])
def test_switch_provider_errors(client: TestClient, provider_id, status_code):
    response = client.post("/api/v1/providers/switch", json={"type": "depth", "provider_id": provider_id})

    assert response.status_code == status_code


def test_cache_endpoints(client: TestClient):
    _upload(client)

    cache = client.get("/api/v1/cache").json()
    assert cache["stats"]["analysis_cache_size"] == 1
    assert cache["stats"]["depth_cache_size"] == 1

    updated = client.patch("/api/v1/cache", json={"max_size": 10})
    assert updated.status_code == 200
    assert updated.json()["config"]["max_size"] == 10
    assert updated.json()["config"]["enabled"] is True
    assert updated.json()["stats"]["analysis_cache_size"] == 1

    cleared = client.delete("/api/v1/cache").json()
    assert cleared["stats"]["total_size"] == 0


def test_invalid_cache_config_is_rejected(client: TestClient):
    response = client.patch("/api/v1/cache", json={"max_size": 0})

    assert response.status_code == 422


def test_paused_service_refuses_uploads(client: TestClient):
    paused = client.post("/api/v1/ai/pause")
    assert paused.json() == {"paused": True, "initialized": True}

    assert _upload(client).status_code == 503

    client.post("/api/v1/ai/resume")
    assert _upload(client).status_code == 200


def test_cancel_session(client: TestClient):
    _upload(client)

    response = client.post("/api/v1/session/cancel")

    assert response.status_code == 200
    assert response.json()["status"] == "idle"


def test_run_serves_the_app_with_uvicorn(monkeypatch):
    calls = []
    monkeypatch.setattr(main, "get_settings", lambda: Settings(HOST="127.0.0.1", PORT=9000))
    monkeypatch.setattr(main.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

    main.run()

    assert calls == [("scenedepth.main:app", {"host": "127.0.0.1", "port": 9000})]
