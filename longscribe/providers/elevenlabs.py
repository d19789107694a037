"""ElevenLabs Scribe transcription."""

import logging
import os
from typing import BinaryIO, Dict, List

import requests

from ..models import Cue, ProviderMetadata, Segment, TranscriptionHints, TranscriptResult
from ..transcript_formatter import (
    count_speakers,
    group_words_into_cues,
    parse_subtitle_markup,
    render_cues,
)
from .base import TranscriptionProvider, check_response, register_provider

logger = logging.getLogger(__name__)

ELEVENLABS_API_URL = os.environ.get(
    "ELEVENLABS_API_URL", "https://api.elevenlabs.io/v1/speech-to-text"
)


def _srt_content(body: Dict) -> str:
    for fmt in body.get("additional_formats") or []:
        if fmt and fmt.get("requested_format", fmt.get("format")) == "srt":
            return fmt.get("content") or ""
    return ""


@register_provider("elevenlabs")
class ElevenLabsTranscriber(TranscriptionProvider):
    provider_id = "elevenlabs"

    def _transcribe(
        self,
        segment: Segment,
        stream: BinaryIO,
        model_id: str,
        hints: TranscriptionHints,
    ) -> TranscriptResult:
        data = {
            "model_id": model_id,
            "diarize": "true",
            "timestamps_granularity": "word",
            "tag_audio_events": "true",
            "additional_formats": '[{"format": "srt"}]',
        }
        if hints.language:
            data["language_code"] = hints.language
        response = requests.post(
            ELEVENLABS_API_URL,
            headers={"xi-api-key": self.credentials or ""},
            data=data,
            files={"file": (segment.name, stream)},
            timeout=self.request_timeout,
        )
        body = check_response(response, self.provider_id)

        words = [w for w in body.get("words") or [] if w.get("type", "word") == "word"]
        srt = _srt_content(body)
        cues: List[Cue] = parse_subtitle_markup(srt) if srt else []
        if not cues:
            cues = group_words_into_cues(words, text_key="text", speaker_key="speaker_id")
        speakers = count_speakers(words, key="speaker_id")
        return TranscriptResult(
            text=body.get("text") or "",
            cue_track=render_cues(cues),
            cues=cues,
            metadata=ProviderMetadata(
                language=body.get("language_code") or hints.language,
                confidence=body.get("language_probability"),
                speakers=speakers or None,
                model=model_id,
            ),
        )
