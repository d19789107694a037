"""Provider interface and registry."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import BinaryIO, Callable, Dict, Optional, Type

from ..config import PROVIDER_MODELS
from ..errors import ErrorKind, ProviderError, wrap_provider_error
from ..models import Segment, TranscriptionHints, TranscriptResult

logger = logging.getLogger(__name__)

_REGISTRY: Dict[str, Type["TranscriptionProvider"]] = {}


def register_provider(provider_id: str) -> Callable[[Type["TranscriptionProvider"]], Type["TranscriptionProvider"]]:
    """Class decorator adding a provider to the registry under ``provider_id``."""

    def decorator(cls: Type["TranscriptionProvider"]) -> Type["TranscriptionProvider"]:
        _REGISTRY[provider_id] = cls
        return cls

    return decorator


def get_provider(provider_id: str, credentials: Optional[str] = None, **options) -> "TranscriptionProvider":
    """Instantiate the provider registered as ``provider_id``."""
    try:
        cls = _REGISTRY[provider_id]
    except KeyError:
        raise ProviderError(
            f"Unsupported transcription service: {provider_id}",
            provider_id=provider_id,
            kind=ErrorKind.PERMANENT,
        ) from None
    return cls(credentials, provider_id=provider_id, **options)


def registered_providers() -> Dict[str, Type["TranscriptionProvider"]]:
    return dict(_REGISTRY)


def check_response(response, provider_id: str) -> Dict:
    """Return the JSON body of ``response`` or raise a tagged error."""
    if response.status_code != 200:
        logger.error("%s returned status %s", provider_id, response.status_code)
        raise ProviderError(
            f"Transcription failed with status {response.status_code}: {response.text}",
            provider_id=provider_id,
            kind=ErrorKind.TRANSIENT if response.status_code >= 500 else ErrorKind.PERMANENT,
            status=response.status_code,
        )
    return response.json()


class TranscriptionProvider(ABC):
    """One remote speech-to-text service.

    Subclasses implement :meth:`_transcribe`; :meth:`submit` validates the
    model and wraps any failure in a :class:`ProviderError` tagged with the
    provider id so the retry policy can classify it.
    """

    provider_id = "base"

    def __init__(
        self,
        credentials: Optional[str] = None,
        *,
        provider_id: Optional[str] = None,
        request_timeout: float = 600.0,
    ) -> None:
        self.credentials = credentials
        if provider_id:
            self.provider_id = provider_id
        self.request_timeout = request_timeout

    def submit(
        self,
        segment: Segment,
        model_id: str,
        hints: Optional[TranscriptionHints] = None,
        stream: Optional[BinaryIO] = None,
    ) -> TranscriptResult:
        """Transcribe one segment.

        Args:
            segment: The segment to send.
            model_id: Provider model identifier.
            hints: Optional prompt, temperature and language hints.
            stream: Open binary handle on the segment file.  When omitted
                the file is opened and closed here.
        """
        hints = hints or TranscriptionHints()
        supported = PROVIDER_MODELS.get(self.provider_id)
        if supported is not None and model_id not in supported:
            raise ProviderError(
                f"Unsupported model {model_id!r}",
                provider_id=self.provider_id,
                kind=ErrorKind.PERMANENT,
                segment_name=segment.name,
            )
        try:
            if stream is not None:
                return self._transcribe(segment, stream, model_id, hints)
            with open(segment.file_path, "rb") as handle:
                return self._transcribe(segment, handle, model_id, hints)
        except Exception as exc:
            raise wrap_provider_error(
                exc, provider_id=self.provider_id, segment_name=segment.name
            ) from exc

    @abstractmethod
    def _transcribe(
        self,
        segment: Segment,
        stream: BinaryIO,
        model_id: str,
        hints: TranscriptionHints,
    ) -> TranscriptResult: ...
