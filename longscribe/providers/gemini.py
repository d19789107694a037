"""
Gemini transcription.

The segment is uploaded through the Generative AI file API, the model is
asked to write out the audio as prose, and the upload is deleted again.
Gemini returns no timing, so results carry an empty cue track.
"""

import logging
import mimetypes
from typing import BinaryIO

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from ..models import ProviderMetadata, Segment, TranscriptionHints, TranscriptResult
from .base import TranscriptionProvider, register_provider

logger = logging.getLogger(__name__)

DEFAULT_TRANSCRIPTION_PROMPT = (
    "Transcribe this audio file completely and accurately. Remove filler words "
    "like 'um' and 'like'. Remove stammering. Convert numbers to numerals. "
    "Convert measurements to numerals with units. Do not add any additional "
    "text or commentary."
)


def _delete_upload(uploaded) -> None:
    try:
        genai.delete_file(uploaded.name)
    except google_exceptions.GoogleAPIError as exc:
        logger.warning("Could not delete uploaded file %s: %s", uploaded.name, exc)


@register_provider("google_gemini")
class GeminiTranscriber(TranscriptionProvider):
    provider_id = "google_gemini"

    def _transcribe(
        self,
        segment: Segment,
        stream: BinaryIO,
        model_id: str,
        hints: TranscriptionHints,
    ) -> TranscriptResult:
        genai.configure(api_key=self.credentials)
        mime_type = mimetypes.guess_type(segment.file_path)[0] or "audio/mpeg"
        uploaded = genai.upload_file(stream, mime_type=mime_type, display_name=segment.name)
        try:
            prompt = hints.prompt or DEFAULT_TRANSCRIPTION_PROMPT
            model = genai.GenerativeModel(model_id)
            generation_config = {}
            if hints.temperature is not None:
                generation_config["temperature"] = hints.temperature
            response = model.generate_content(
                [uploaded, prompt], generation_config=generation_config or None
            )
        finally:
            _delete_upload(uploaded)
        logger.info("Gemini transcribed %s", segment.name)
        return TranscriptResult(
            text=(response.text or "").strip(),
            metadata=ProviderMetadata(
                language=hints.language,
                model=model_id,
                extra={"file": getattr(uploaded, "name", None)},
            ),
        )
