"""
Google Cloud Speech-to-Text transcription.

Each segment is converted to 16 kHz mono LINEAR16 WAV, staged in the Cloud
Storage bucket named by ``GCS_BUCKET`` and recognised with a long-running
job, which accepts recordings far longer than the synchronous endpoint.
Diarisation and word time offsets are enabled; the response is converted
to a dictionary and words are grouped into speaker-labelled cues.  The
staged object and the local WAV are removed once the job finishes.
"""

import logging
import os
import uuid
from typing import Any, BinaryIO, Dict, List, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import speech_v1p1beta1 as speech
from google.cloud import storage
from google.protobuf.json_format import MessageToDict

from .. import audio_processor
from ..errors import ConfigurationError
from ..models import ProviderMetadata, Segment, TranscriptionHints, TranscriptResult
from ..transcript_formatter import (
    count_speakers,
    flatten_word_info,
    group_words_into_cues,
    render_cues,
)
from .base import TranscriptionProvider, register_provider

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE_CODE = "en-US"
DIARISATION_SPEAKERS = 6


def _transcript_text(data: Dict[str, Any]) -> str:
    parts: List[str] = []
    for result in data.get("results", []):
        alternatives = result.get("alternatives", [])
        if alternatives and alternatives[0].get("transcript"):
            parts.append(alternatives[0]["transcript"].strip())
    return " ".join(parts)


def _words_with_speaker(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Return the diarised word list.

    With diarisation enabled the last result repeats every word with its
    ``speakerTag``; earlier results carry no tags.
    """
    results = data.get("results", [])
    if results:
        last = results[-1].get("alternatives", [{}])[0].get("words", [])
        if any("speakerTag" in w for w in last):
            return [w for w in last if "word" in w]
    return flatten_word_info(data)


def _delete_blob(blob) -> None:
    try:
        blob.delete()
    except google_exceptions.GoogleAPIError as exc:
        logger.warning("Could not delete staged audio %s: %s", blob.name, exc)


@register_provider("google_speech")
class GoogleSpeechTranscriber(TranscriptionProvider):
    provider_id = "google_speech"

    def __init__(
        self, credentials: Optional[str] = None, *, bucket: Optional[str] = None, **kwargs
    ) -> None:
        super().__init__(credentials, **kwargs)
        self.bucket_name = bucket or os.environ.get("GCS_BUCKET")
        if not self.bucket_name:
            raise ConfigurationError("GCS_BUCKET is required to stage audio for Google Speech")

    def _stage(self, wav_path: str, segment: Segment):
        bucket = storage.Client().bucket(self.bucket_name)
        blob = bucket.blob(f"longscribe/{os.path.splitext(segment.name)[0]}-{uuid.uuid4().hex[:12]}.wav")
        blob.upload_from_filename(wav_path, content_type="audio/wav")
        return blob

    def _transcribe(
        self,
        segment: Segment,
        stream: BinaryIO,
        model_id: str,
        hints: TranscriptionHints,
    ) -> TranscriptResult:
        config = speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=audio_processor.WAV_SAMPLE_RATE,
            language_code=hints.language or DEFAULT_LANGUAGE_CODE,
            model=model_id,
            enable_automatic_punctuation=True,
            enable_word_confidence=True,
            enable_word_time_offsets=True,
            diarization_config=speech.SpeakerDiarizationConfig(
                enable_speaker_diarization=True,
                min_speaker_count=1,
                max_speaker_count=DIARISATION_SPEAKERS,
            ),
        )
        wav_path = audio_processor.convert_to_wav(segment.file_path)
        blob = None
        try:
            blob = self._stage(wav_path, segment)
            gcs_uri = f"gs://{self.bucket_name}/{blob.name}"
            logger.info("Starting STT job for %s", gcs_uri)
            client = speech.SpeechClient()
            operation = client.long_running_recognize(
                config=config, audio=speech.RecognitionAudio(uri=gcs_uri)
            )
            response = operation.result(timeout=self.request_timeout)
            logger.info("STT job complete for %s", gcs_uri)
        finally:
            audio_processor.cleanup_temp_file(wav_path)
            if blob is not None:
                _delete_blob(blob)
        data = MessageToDict(response._pb)

        words = _words_with_speaker(data)
        cues = group_words_into_cues(
            words, start_key="startTime", end_key="endTime", speaker_key="speakerTag"
        )
        results = data.get("results", [])
        first = results[0]["alternatives"][0] if results and results[0].get("alternatives") else {}
        language = results[0].get("languageCode") if results else None
        speakers = count_speakers(words, key="speakerTag")
        return TranscriptResult(
            text=_transcript_text(data),
            cue_track=render_cues(cues),
            cues=cues,
            metadata=ProviderMetadata(
                language=language or hints.language,
                confidence=first.get("confidence"),
                speakers=speakers or None,
                model=model_id,
            ),
        )
