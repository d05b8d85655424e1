import pytest
from pydantic import ValidationError

from asclepius.config import Settings


def test_defaults():
    s = Settings(model_url="https://models.test/model.pt", _env_file=None)

    assert s.image_size == 224
    assert s.threshold == 0.5
    assert s.max_upload_bytes == 1_000_000
    assert s.store_backend == "firestore"
    assert s.store_collection == "predictions"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MODEL_URL", "azure://models/asclepius.pt")
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("INFERENCE_TIMEOUT", "2.5")

    s = Settings(_env_file=None)

    assert s.model_url == "azure://models/asclepius.pt"
    assert s.store_backend == "memory"
    assert s.inference_timeout == 2.5


def test_model_url_is_required(monkeypatch):
    monkeypatch.delenv("MODEL_URL", raising=False)
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


@pytest.mark.parametrize("field, value", [("threshold", 1.5), ("store_backend", "redis"), ("max_workers", 0)])
def test_invalid_values(field, value):
    with pytest.raises(ValidationError):
        Settings(model_url="x", _env_file=None, **{field: value})


def test_run_passes_lowercase_log_level(monkeypatch):
    import uvicorn

    from asclepius import main

    calls = []
    monkeypatch.setenv("MODEL_URL", "https://models.test/model.pt")
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    monkeypatch.setattr(main, "configure_logging", lambda *a, **kw: None)
    monkeypatch.setattr(uvicorn, "run", lambda *a, **kw: calls.append(kw))

    main.run()

    assert calls[0]["log_level"] == "info"
    assert calls[0]["factory"] is True


def test_pixel_ceiling_default():
    assert Settings(model_url="x", _env_file=None).max_image_pixels == 4096 * 4096
