from scenedepth.core.config import Settings
from scenedepth.core.context import get_run_id, set_run_id
from scenedepth.core.events import EventEmitter


def test_settings_defaults():
    settings = Settings()

    assert settings.CACHE_ENABLED is True
    assert settings.CACHE_MAX_SIZE == 50
    assert settings.CACHE_TTL_MS == 30 * 60 * 1000
    assert settings.MODEL_LOAD_ATTEMPTS == 3
    assert (settings.HOST, settings.PORT) == ("0.0.0.0", 8000)
    assert not settings.is_production


def test_settings_read_prefixed_environment(monkeypatch):
    """Environment variables use the SCENEDEPTH_ prefix."""
    monkeypatch.setenv("SCENEDEPTH_CACHE_MAX_SIZE", "7")
    monkeypatch.setenv("SCENEDEPTH_ENVIRONMENT", " Production ")
    monkeypatch.setenv("SCENEDEPTH_USE_LOCAL_AI", "true")

    settings = Settings()

    assert settings.CACHE_MAX_SIZE == 7
    assert settings.is_production
    assert settings.USE_LOCAL_AI is True


def test_event_emitter_isolates_failing_handlers():
    received = []
    emitter: EventEmitter[str] = EventEmitter("test")

    def broken(event: str) -> None:
        raise RuntimeError("handler bug")

    emitter.subscribe(broken)
    unsubscribe = emitter.subscribe(received.append)

    emitter.emit("first")
    unsubscribe()
    emitter.emit("second")

    assert received == ["first"]
    assert len(emitter) == 1


def test_run_id_context():
    set_run_id("run-42")
    assert get_run_id() == "run-42"

    set_run_id(None)
    assert get_run_id() is None
