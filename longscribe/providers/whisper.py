"""
Whisper-style transcription endpoints.

OpenAI and Groq expose the same ``/audio/transcriptions`` multipart API, so
one adapter serves both; only the base URL differs.
"""

import logging
import os
from typing import BinaryIO, Dict, Optional

import requests

from ..models import ProviderMetadata, Segment, TranscriptionHints, TranscriptResult
from ..transcript_formatter import cues_from_segments, render_cues
from .base import TranscriptionProvider, check_response, register_provider

logger = logging.getLogger(__name__)

OPENAI_API_URL = os.environ.get("OPENAI_API_URL", "https://api.openai.com/v1")
GROQ_API_URL = os.environ.get("GROQ_API_URL", "https://api.groq.com/openai/v1")


@register_provider("openai")
class OpenAITranscriber(TranscriptionProvider):
    provider_id = "openai"
    base_url = OPENAI_API_URL

    def _request_fields(self, model_id: str, hints: TranscriptionHints) -> Dict[str, str]:
        # gpt-4o transcription models only return plain JSON without segments.
        timed = "gpt-4o" not in model_id.lower()
        fields = {
            "model": model_id,
            "response_format": "verbose_json" if timed else "json",
        }
        if timed:
            fields["timestamp_granularities[]"] = "segment"
        if hints.prompt:
            fields["prompt"] = hints.prompt
        if hints.temperature is not None:
            fields["temperature"] = str(hints.temperature)
        if hints.language:
            fields["language"] = hints.language
        return fields

    def _transcribe(
        self,
        segment: Segment,
        stream: BinaryIO,
        model_id: str,
        hints: TranscriptionHints,
    ) -> TranscriptResult:
        response = requests.post(
            f"{self.base_url}/audio/transcriptions",
            headers={"Authorization": f"Bearer {self.credentials}"},
            data=self._request_fields(model_id, hints),
            files={"file": (segment.name, stream)},
            timeout=self.request_timeout,
        )
        body = check_response(response, self.provider_id)
        cues = cues_from_segments(body.get("segments"))
        return TranscriptResult(
            text=body.get("text") or "",
            cue_track=render_cues(cues),
            cues=cues,
            metadata=ProviderMetadata(
                language=body.get("language"),
                duration_seconds=_as_float(body.get("duration")),
                model=model_id,
            ),
        )


@register_provider("groqcloud")
class GroqTranscriber(OpenAITranscriber):
    provider_id = "groqcloud"
    base_url = GROQ_API_URL


def _as_float(value) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None
