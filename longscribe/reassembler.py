"""
Transcript reassembly.

Per-segment results are merged into one transcript in segment order.  Two
join modes exist:

``simple``
    Texts are joined with a single space.  When the previous text ends with a
    period and the next one starts with a lowercase letter, the period is
    dropped, since the split most likely fell mid-sentence.  This can also
    strip legitimate periods (abbreviations); the behaviour is kept for
    compatibility with existing transcripts.
``direct``
    Texts are concatenated as-is, for providers returning finished prose.
"""

import json
import logging
from typing import Iterable, List, Optional, Sequence

from .models import AggregatedMetadata, TranscriptResult, UnifiedTranscript

logger = logging.getLogger(__name__)

JOIN_MODES = ("simple", "direct")


def _join_simple(texts: Sequence[str]) -> str:
    combined = ""
    for text in texts:
        if not combined:
            combined = text
            continue
        if combined.endswith(".") and text[:1].islower():
            combined = combined[:-1]
        combined = f"{combined} {text}"
    return combined


def aggregate_metadata(results: Iterable[TranscriptResult]) -> AggregatedMetadata:
    """Merge per-segment metadata.

    The duration is the longest reported segment duration, languages keep
    first-seen order, and speakers are summed across segments (``None`` when
    no segment reported a count).
    """
    durations: List[float] = []
    languages: List[str] = []
    speakers: Optional[int] = None
    for result in results:
        meta = result.metadata
        if meta.duration_seconds is not None:
            durations.append(meta.duration_seconds)
        if meta.language and meta.language not in languages:
            languages.append(meta.language)
        if meta.speakers is not None:
            speakers = (speakers or 0) + meta.speakers
    return AggregatedMetadata(
        duration_seconds=max(durations) if durations else None,
        languages=languages,
        speakers=speakers,
    )


def reassemble(results: Sequence[TranscriptResult], mode: str = "simple") -> UnifiedTranscript:
    """Join ``results`` (already in segment order) into one transcript."""
    if mode not in JOIN_MODES:
        raise ValueError(f"Unknown join mode {mode!r}; expected one of {JOIN_MODES}")
    texts = [r.text for r in results]
    if mode == "direct":
        full_text = "".join(texts)
    else:
        full_text = _join_simple([t for t in texts if t])
    metadata = aggregate_metadata(results)
    logger.info(
        json.dumps(
            {
                "event": "transcript_assembled",
                "segments": len(results),
                "characters": len(full_text),
                "mode": mode,
            }
        )
    )
    return UnifiedTranscript(full_text=full_text, metadata=metadata)


def combine_cue_tracks(results: Sequence[TranscriptResult]) -> str:
    """Concatenate the per-segment cue tracks in segment order."""
    return "\n\n".join(r.cue_track for r in results if r.cue_track)
