"""Deepgram pre-recorded transcription."""

import logging
import os
from typing import BinaryIO

import requests

from ..models import ProviderMetadata, Segment, TranscriptionHints, TranscriptResult
from ..transcript_formatter import count_speakers, cues_from_segments, render_cues
from .base import TranscriptionProvider, check_response, register_provider

logger = logging.getLogger(__name__)

DEEPGRAM_API_URL = os.environ.get("DEEPGRAM_API_URL", "https://api.deepgram.com/v1/listen")


@register_provider("deepgram")
class DeepgramTranscriber(TranscriptionProvider):
    provider_id = "deepgram"

    def _transcribe(
        self,
        segment: Segment,
        stream: BinaryIO,
        model_id: str,
        hints: TranscriptionHints,
    ) -> TranscriptResult:
        params = {
            "model": model_id,
            "diarize": "true",
            "punctuate": "true",
            "utterances": "true",
            "numerals": "true",
            "smart_format": "true",
        }
        if hints.language:
            params["language"] = hints.language
        else:
            params["detect_language"] = "true"
        logger.info("Starting Deepgram transcription request for %s", segment.name)
        response = requests.post(
            DEEPGRAM_API_URL,
            params=params,
            headers={
                "Authorization": f"Token {self.credentials}",
                "Content-Type": "application/octet-stream",
            },
            data=stream,
            timeout=self.request_timeout,
        )
        body = check_response(response, self.provider_id)

        results = body.get("results") or {}
        channel = (results.get("channels") or [{}])[0]
        alternative = (channel.get("alternatives") or [{}])[0]
        utterances = results.get("utterances") or []
        cues = cues_from_segments(
            {"start": u.get("start"), "end": u.get("end"), "text": u.get("transcript"), "speaker": u.get("speaker")}
            for u in utterances
        )
        speakers = count_speakers(alternative.get("words") or [])
        meta = body.get("metadata") or {}
        return TranscriptResult(
            text=alternative.get("transcript") or "",
            cue_track=render_cues(cues),
            cues=cues,
            metadata=ProviderMetadata(
                language=channel.get("detected_language") or hints.language,
                confidence=alternative.get("confidence"),
                speakers=speakers or None,
                duration_seconds=meta.get("duration"),
                model=model_id,
                extra={"request_id": meta.get("request_id")} if meta.get("request_id") else {},
            ),
        )
