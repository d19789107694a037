"""Data models shared across the pipeline stages."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

SEGMENT_PREFIX = "chunk-"
SEGMENT_INDEX_WIDTH = 3


def segment_file_name(index: int, extension: str) -> str:
    """Return the deterministic file name for segment ``index``."""
    return f"{SEGMENT_PREFIX}{index:0{SEGMENT_INDEX_WIDTH}d}{extension}"


@dataclass
class SourceMedia:
    path: str
    byte_size: int
    duration_seconds: float = 0.0
    extension: str = ""

    def __post_init__(self) -> None:
        if not self.extension:
            self.extension = Path(self.path).suffix
        self.extension = self.extension.lower()
        if self.extension and not self.extension.startswith("."):
            self.extension = f".{self.extension}"


@dataclass(frozen=True)
class SegmentPlan:
    """Outcome of segment planning.

    ``segment_duration_seconds`` equals ``duration_seconds`` when no split is
    required.
    """

    segment_duration_seconds: float
    split_required: bool
    duration_seconds: float = 0.0

    @property
    def segment_count(self) -> int:
        if not self.split_required:
            return 1
        return math.ceil(self.duration_seconds / self.segment_duration_seconds)

    def segment_durations(self) -> List[float]:
        """Expected duration of every segment, the last one holding the tail."""
        if not self.split_required:
            return [self.duration_seconds]
        count = self.segment_count
        full = [float(self.segment_duration_seconds)] * (count - 1)
        return full + [self.duration_seconds - sum(full)]


@dataclass
class Segment:
    index: int
    file_path: str
    byte_size: int
    start_offset_seconds: float = 0.0

    @property
    def name(self) -> str:
        return Path(self.file_path).name


@dataclass
class TranscriptionHints:
    prompt: Optional[str] = None
    temperature: Optional[float] = None
    language: Optional[str] = None


@dataclass
class TranscriptionJob:
    segment: Segment
    provider_id: str
    model_id: str
    credentials: Optional[str] = None
    hints: TranscriptionHints = field(default_factory=TranscriptionHints)
    attempt_count: int = 0


@dataclass
class Cue:
    """One timestamped caption entry."""

    start: float
    text: str
    end: Optional[float] = None
    speaker: Optional[str] = None


@dataclass
class ProviderMetadata:
    language: Optional[str] = None
    confidence: Optional[float] = None
    speakers: Optional[int] = None
    duration_seconds: Optional[float] = None
    model: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TranscriptResult:
    text: str
    cue_track: str = ""
    cues: List[Cue] = field(default_factory=list)
    metadata: ProviderMetadata = field(default_factory=ProviderMetadata)
    attempts: int = 1


@dataclass
class AggregatedMetadata:
    duration_seconds: Optional[float] = None
    languages: List[str] = field(default_factory=list)
    speakers: Optional[int] = None


@dataclass
class UnifiedTranscript:
    full_text: str
    metadata: AggregatedMetadata = field(default_factory=AggregatedMetadata)


@dataclass(frozen=True)
class TokenChunk:
    start_token_index: int
    end_token_index: int
    text: str

    @property
    def token_count(self) -> int:
        return self.end_token_index - self.start_token_index


@dataclass
class PipelineOutput:
    transcript: str
    per_segment_results: List[TranscriptResult]
    metadata: AggregatedMetadata
    chunks: List[TokenChunk] = field(default_factory=list)
    cue_track: str = ""
    summaries: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transcript": self.transcript,
            "perSegmentResults": [asdict(r) for r in self.per_segment_results],
            "aggregatedMetadata": asdict(self.metadata),
            "cueTrack": self.cue_track,
            "chunks": [asdict(c) for c in self.chunks],
            "summaries": self.summaries,
        }
