import pytest

from longscribe.config import PipelineConfig, local_pool_size
from longscribe.errors import ConfigurationError


def test_from_env(monkeypatch):
    monkeypatch.setenv("TRANSCRIPTION_SERVICE", "deepgram")
    monkeypatch.setenv("TRANSCRIPTION_API_KEY", "dg-key")
    monkeypatch.setenv("CHUNK_SIZE_MB", "12")
    monkeypatch.setenv("WHISPER_TEMPERATURE", "3")
    monkeypatch.setenv("TRANSCRIPT_LANGUAGE", "en")
    monkeypatch.setenv("ENABLE_SUMMARISER", "true")
    config = PipelineConfig.from_env()
    assert config.provider_id == "deepgram"
    assert config.resolved_model_id == "nova-3"
    assert config.credentials == "dg-key"
    assert config.chunk_size_mb == 12
    assert config.hints.temperature == pytest.approx(0.3)
    assert config.hints.language == "en"
    assert config.enable_summariser
    assert config.remote_pool_size == 50
    assert config.join_mode == "simple"


def test_defaults(monkeypatch):
    for name in ("TRANSCRIPTION_SERVICE", "CHUNK_SIZE_MB", "TIMEOUT_SECONDS", "MAX_CONCURRENT"):
        monkeypatch.delenv(name, raising=False)
    config = PipelineConfig.from_env()
    assert config.provider_id == "openai"
    assert config.chunk_size_mb == 24
    assert config.timeout_seconds == 300
    assert config.local_pool_size == 10


def test_gemini_joins_directly():
    assert PipelineConfig(provider_id="google_gemini").join_mode == "direct"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"provider_id": "carrier-pigeon"},
        {"provider_id": "openai", "model_id": "nova-3"},
        {"chunk_size_mb": 30},
        {"chunk_size_mb": 4},
        {"timeout_seconds": 0},
    ],
)
def test_invalid_values(kwargs):
    with pytest.raises(ConfigurationError):
        PipelineConfig(**kwargs)


def test_non_numeric_env_value(monkeypatch):
    monkeypatch.setenv("CHUNK_SIZE_MB", "big")
    with pytest.raises(ConfigurationError):
        PipelineConfig.from_env()


def test_local_pool_size_is_clamped():
    assert local_pool_size(24) == 10
    assert local_pool_size(8) == 30
    assert local_pool_size(1000) == 6
