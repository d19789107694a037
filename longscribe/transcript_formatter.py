"""
Cue track formatting utilities.

Speech-to-text services report timing in different shapes: word lists,
utterance lists, or ready-made subtitle markup.  The functions in this module
bring all of them into one normalised cue track where every cue is rendered
as two lines, a start timestamp followed by the text, optionally prefixed
with ``Speaker N:``.  End timestamps are dropped.
"""

import re
from typing import Any, Dict, Iterable, List, Optional

from .models import Cue

_TIMESTAMP_LINE = re.compile(
    r"(\d{2}:\d{2}:\d{2}[.,]\d{3})\s*-->\s*(\d{2}:\d{2}:\d{2}[.,]\d{3})"
)
_VOICE_TAG = re.compile(r"^<v\s+([^>]+)>(.*?)(?:</v>)?$", re.IGNORECASE)
_PUNCTUATION = re.compile(r"^[\.!?,:;]+$")
_SECONDS = re.compile(r"([0-9]+(?:\.[0-9]+)?)s")


def format_timestamp(seconds: Optional[float]) -> str:
    """Format seconds as ``HH:MM:SS.mmm``."""
    ms = int(round((seconds or 0) * 1000))
    hours, rem = divmod(ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, ms = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{ms:03d}"


def parse_timestamp(value: str) -> float:
    """Parse ``HH:MM:SS.mmm`` (or the SRT comma variant) into seconds."""
    hours, minutes, seconds = value.strip().replace(",", ".").split(":")
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def parse_seconds(time_str: Any) -> float:
    """Parse a duration such as ``"1.5s"`` or a bare number into seconds."""
    if isinstance(time_str, (int, float)):
        return float(time_str)
    match = _SECONDS.match(time_str or "")
    return float(match.group(1)) if match else 0.0


def speaker_label(speaker: Any) -> Optional[str]:
    """Return ``Speaker N`` for a raw speaker identifier, or ``None``."""
    if speaker is None or speaker == "":
        return None
    text = str(speaker)
    if text.lower().startswith("speaker"):
        # "speaker_0" / "Speaker 0" -> "Speaker 0"
        text = re.sub(r"^speaker[_\s]*", "", text, flags=re.IGNORECASE)
    return f"Speaker {text}"


def count_speakers(entries: Iterable[Dict[str, Any]], key: str = "speaker") -> int:
    """Count distinct, non-empty speaker identifiers across ``entries``."""
    speakers = set()
    for entry in entries:
        value = entry.get(key)
        if value is not None and value != "":
            speakers.add(value)
    return len(speakers)


def flatten_word_info(data: Dict) -> List[Dict]:
    """Extract a flat list of word dictionaries from a Cloud Speech response."""
    words: List[Dict] = []
    for result in data.get("results", []):
        alternatives = result.get("alternatives", [])
        if not alternatives:
            continue
        # Use the first alternative, which is typically the most probable.
        for wi in alternatives[0].get("words", []):
            if "word" in wi:
                words.append(wi)
    return words


def cues_from_segments(segments: Optional[Iterable[Dict[str, Any]]]) -> List[Cue]:
    """Build cues from ``{start, end, text}`` ranges such as Whisper segments."""
    cues: List[Cue] = []
    for seg in segments or []:
        text = (seg.get("text") or "").strip()
        if not text:
            continue
        cues.append(
            Cue(
                start=float(seg.get("start") or 0.0),
                end=seg.get("end"),
                text=text,
                speaker=speaker_label(seg.get("speaker")),
            )
        )
    return cues


def group_words_into_cues(
    words: Iterable[Dict[str, Any]],
    *,
    text_key: str = "word",
    start_key: str = "start",
    end_key: str = "end",
    speaker_key: str = "speaker",
    max_cue_seconds: float = 10.0,
) -> List[Cue]:
    """Group word-level timings into cues.

    A new cue starts whenever the speaker changes or the current cue has run
    longer than ``max_cue_seconds``.  Punctuation tokens are attached to the
    preceding word without a space.
    """
    cues: List[Cue] = []
    current: Optional[Cue] = None
    current_speaker: Any = object()
    for wi in words:
        word = (wi.get(text_key) or "").strip()
        if not word:
            continue
        start = parse_seconds(wi.get(start_key, 0.0))
        end = wi.get(end_key)
        end = parse_seconds(end) if end is not None else None
        speaker = wi.get(speaker_key)
        new_group = (
            current is None
            or speaker != current_speaker
            or start - current.start >= max_cue_seconds
        )
        if new_group:
            if current is not None:
                cues.append(current)
            current = Cue(start=start, end=end, text=word, speaker=speaker_label(speaker))
            current_speaker = speaker
        else:
            if _PUNCTUATION.match(word):
                current.text += word
            else:
                current.text += f" {word}"
            if end is not None:
                current.end = end
    if current is not None:
        cues.append(current)
    return cues


def parse_subtitle_markup(markup: Optional[str]) -> List[Cue]:
    """Parse WebVTT or SRT markup into cues.

    Headers, ``NOTE`` blocks and numeric cue indices are skipped, and inline
    ``<v Speaker N>`` voice tags become the cue's speaker.
    """
    cues: List[Cue] = []
    current: Optional[Cue] = None
    for raw in (markup or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        stamp = _TIMESTAMP_LINE.search(line)
        if stamp:
            if current is not None and current.text:
                cues.append(current)
            current = Cue(
                start=parse_timestamp(stamp.group(1)),
                end=parse_timestamp(stamp.group(2)),
                text="",
            )
            continue
        # Anything before the first timestamp is header or metadata.
        if current is None or re.fullmatch(r"\d+", line):
            continue
        voice = _VOICE_TAG.match(line)
        if voice:
            current.speaker = speaker_label(voice.group(1))
            line = voice.group(2).strip()
        current.text = f"{current.text} {line}".strip()
    if current is not None and current.text:
        cues.append(current)
    return cues


def render_cues(cues: Iterable[Cue], offset_seconds: float = 0.0) -> str:
    """Render cues in the normalised two-line form."""
    blocks = []
    for cue in cues:
        text = f"{cue.speaker}: {cue.text}" if cue.speaker else cue.text
        blocks.append(f"{format_timestamp(cue.start + offset_seconds)}\n{text}")
    return "\n\n".join(blocks)


def normalize_subtitle_markup(markup: Optional[str]) -> str:
    """Reformat WebVTT/SRT markup into the normalised cue track."""
    return render_cues(parse_subtitle_markup(markup))
