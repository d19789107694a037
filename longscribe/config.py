"""
Pipeline configuration.

All tunables are gathered into a single :class:`PipelineConfig` value that is
passed explicitly into the executor, scheduler and summariser.  The
:meth:`PipelineConfig.from_env` constructor reads the same kind of
environment variables the Cloud Function deployment uses:

* ``TRANSCRIPTION_SERVICE`` / ``TRANSCRIPTION_MODEL`` / ``TRANSCRIPTION_API_KEY``
* ``CHUNK_SIZE_MB`` – target segment size, between 8 and 24 (default 24).
* ``WHISPER_PROMPT`` / ``WHISPER_TEMPERATURE`` / ``TRANSCRIPT_LANGUAGE`` – hints.
* ``TIMEOUT_SECONDS`` – time budget of one run.
* ``ENABLE_SUMMARISER`` / ``GENAI_API_KEY`` / ``GENAI_MODEL`` – summarisation.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import ConfigurationError
from .models import TranscriptionHints

DEFAULT_CHUNK_SIZE_MB = 24
MIN_CHUNK_SIZE_MB = 8
MAX_CHUNK_SIZE_MB = 24

# Outbound calls allowed in flight (and started per refill window) per service.
PROVIDER_CONCURRENCY: Dict[str, int] = {
    "openai": 50,
    "deepgram": 50,
    "groqcloud": 20,
    "elevenlabs": 10,
    "google_gemini": 15,
    "google_speech": 10,
}

PROVIDER_MODELS: Dict[str, List[str]] = {
    "openai": ["whisper-1", "gpt-4o-transcribe", "gpt-4o-mini-transcribe"],
    "groqcloud": ["whisper-large-v3-turbo", "distil-whisper-large-v3-en", "whisper-large-v3"],
    "deepgram": ["nova-3", "nova-2", "nova-general"],
    "elevenlabs": ["scribe_v1"],
    "google_gemini": ["gemini-2.0-flash", "gemini-2.0-flash-lite", "gemini-1.5-flash"],
    "google_speech": ["latest_long", "latest_short", "default", "phone_call", "video"],
}

# Providers returning finished prose per call are joined without the
# sentence-boundary heuristic.
DIRECT_JOIN_PROVIDERS = frozenset({"google_gemini"})

LOCAL_POOL_MIN = 6
LOCAL_POOL_MAX = 30


def local_pool_size(chunk_size_mb: float) -> int:
    """Number of segment file handles allowed open at once.

    Smaller segments permit more concurrent handles: 24 MB gives 10, 8 MB
    gives 30.
    """
    if chunk_size_mb <= 0:
        return LOCAL_POOL_MIN
    size = math.ceil(240 / chunk_size_mb)
    return max(LOCAL_POOL_MIN, min(LOCAL_POOL_MAX, size))


def _getenv_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _getenv_int(name: str, default: int) -> int:
    value = _getenv_str(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc


def _getenv_bool(name: str, default: bool = False) -> bool:
    value = _getenv_str(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


@dataclass
class PipelineConfig:
    provider_id: str = "openai"
    model_id: Optional[str] = None
    credentials: Optional[str] = None
    chunk_size_mb: float = DEFAULT_CHUNK_SIZE_MB
    hints: TranscriptionHints = field(default_factory=TranscriptionHints)
    timeout_seconds: float = 300.0
    work_dir: str = "/tmp"
    ffmpeg_path: str = "ffmpeg"
    liveness_interval: float = 2.0
    max_concurrent: Optional[int] = None
    refill_interval: float = 1.0
    max_attempts: int = 3
    request_timeout: float = 600.0
    summary_max_tokens: int = 2750
    enable_downsampling: bool = False
    enable_summariser: bool = False
    genai_api_key: Optional[str] = None
    genai_model: str = "models/gemini-1.5-flash"
    summary_max_concurrent: int = 35

    def __post_init__(self) -> None:
        self.validate()

    @property
    def resolved_model_id(self) -> str:
        if self.model_id:
            return self.model_id
        return PROVIDER_MODELS[self.provider_id][0]

    @property
    def remote_pool_size(self) -> int:
        if self.max_concurrent:
            return self.max_concurrent
        return PROVIDER_CONCURRENCY.get(self.provider_id, 5)

    @property
    def local_pool_size(self) -> int:
        return local_pool_size(self.chunk_size_mb)

    @property
    def join_mode(self) -> str:
        return "direct" if self.provider_id in DIRECT_JOIN_PROVIDERS else "simple"

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` if any value is out of range."""
        if self.provider_id not in PROVIDER_MODELS:
            raise ConfigurationError(
                f"Unsupported transcription service: {self.provider_id}. "
                f"Choose one of {', '.join(sorted(PROVIDER_MODELS))}."
            )
        if self.model_id and self.model_id not in PROVIDER_MODELS[self.provider_id]:
            raise ConfigurationError(
                f"Invalid transcription model {self.model_id!r} for service "
                f"{self.provider_id}. Available models: "
                f"{', '.join(PROVIDER_MODELS[self.provider_id])}."
            )
        if not MIN_CHUNK_SIZE_MB <= self.chunk_size_mb <= MAX_CHUNK_SIZE_MB:
            raise ConfigurationError(
                f"Chunk size must be between {MIN_CHUNK_SIZE_MB} and "
                f"{MAX_CHUNK_SIZE_MB} MB, got {self.chunk_size_mb}"
            )
        temperature = self.hints.temperature
        if temperature is not None and not 0 <= temperature <= 2:
            raise ConfigurationError(f"Temperature must be between 0 and 2, got {temperature}")
        if self.timeout_seconds <= 0:
            raise ConfigurationError("Timeout must be positive")
        if self.max_attempts < 1:
            raise ConfigurationError("At least one attempt is required")
        if self.summary_max_tokens <= 0:
            raise ConfigurationError("Summary chunk size must be positive")

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Build a configuration from environment variables."""
        raw_temperature = _getenv_str("WHISPER_TEMPERATURE")
        temperature = None
        if raw_temperature is not None:
            # The workflow exposes temperature as an integer 0-20.
            temperature = _getenv_int("WHISPER_TEMPERATURE", 0) / 10
        hints = TranscriptionHints(
            prompt=_getenv_str("WHISPER_PROMPT"),
            temperature=temperature,
            language=_getenv_str("TRANSCRIPT_LANGUAGE"),
        )
        max_concurrent = _getenv_int("MAX_CONCURRENT", 0) or None
        return cls(
            provider_id=_getenv_str("TRANSCRIPTION_SERVICE", "openai"),
            model_id=_getenv_str("TRANSCRIPTION_MODEL"),
            credentials=_getenv_str("TRANSCRIPTION_API_KEY"),
            chunk_size_mb=_getenv_int("CHUNK_SIZE_MB", DEFAULT_CHUNK_SIZE_MB),
            hints=hints,
            timeout_seconds=float(_getenv_int("TIMEOUT_SECONDS", 300)),
            work_dir=_getenv_str("WORK_DIR", "/tmp"),
            ffmpeg_path=_getenv_str("FFMPEG_PATH", "ffmpeg"),
            max_concurrent=max_concurrent,
            request_timeout=float(_getenv_int("REQUEST_TIMEOUT", 600)),
            summary_max_tokens=_getenv_int("SUMMARY_MAX_TOKENS", 2750),
            enable_downsampling=_getenv_bool("ENABLE_DOWNSAMPLING"),
            enable_summariser=_getenv_bool("ENABLE_SUMMARISER"),
            genai_api_key=_getenv_str("GENAI_API_KEY"),
            genai_model=_getenv_str("GENAI_MODEL", "models/gemini-1.5-flash"),
        )
