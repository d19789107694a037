"""
Source audio utilities.

Probing and optional downsampling of the uploaded recording happen locally
with the `pydub` library, which in turn relies on ``ffmpeg``/``ffprobe``.
Downsampling produces 16 kHz mono AAC at 32 kbps, small enough that most
recordings no longer need splitting.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError, CouldntEncodeError
from pydub.utils import mediainfo

from .errors import PreconditionError, ProcessError
from .models import SourceMedia

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".flac", ".mp3", ".m4a", ".wav", ".mp4", ".mpeg", ".mpga", ".webm"}

DOWNSAMPLE_RATE = 16_000
DOWNSAMPLE_BITRATE = "32k"
WAV_SAMPLE_RATE = 16_000


def is_supported_audio(path: str) -> bool:
    """Check whether the file at ``path`` has a supported audio extension."""
    return Path(path).suffix.lower() in SUPPORTED_EXTENSIONS


def _probe_duration(path: str) -> float:
    try:
        info = mediainfo(path)
    except (OSError, ValueError) as exc:
        logger.warning("Could not probe duration of %s: %s", path, exc)
        return 0.0
    try:
        return max(float(info.get("duration") or 0.0), 0.0)
    except (TypeError, ValueError):
        return 0.0


def probe_source(path: str) -> SourceMedia:
    """Describe the recording at ``path``.

    An unknown duration is reported as ``0``, which the planner treats as a
    request not to split.

    Raises:
        PreconditionError: If the file is missing or has an unsupported type.
    """
    if not os.path.isfile(path):
        raise PreconditionError(f"File does not exist at path: {path}")
    if not is_supported_audio(path):
        raise PreconditionError(
            f"Unsupported audio type {Path(path).suffix!r}. Supported types: "
            f"{', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )
    source = SourceMedia(
        path=path,
        byte_size=os.path.getsize(path),
        duration_seconds=_probe_duration(path),
    )
    logger.info(
        "Probed %s: %d bytes, %.2f seconds", path, source.byte_size, source.duration_seconds
    )
    return source


def _load(path: str) -> AudioSegment:
    try:
        return AudioSegment.from_file(path)
    except CouldntDecodeError as exc:
        raise PreconditionError(f"Could not decode audio file {path}: {exc}") from exc


def convert_to_wav(input_path: str, *, target_sample_rate: int = WAV_SAMPLE_RATE) -> str:
    """Convert an audio file to a 16 kHz mono LINEAR16 WAV file.

    The file lives in a temporary directory and should be cleaned up by the
    caller with :func:`cleanup_temp_file`.
    """
    audio = _load(input_path).set_channels(1).set_frame_rate(target_sample_rate)
    fd, tmp_path = tempfile.mkstemp(suffix=".wav")
    os.close(fd)
    try:
        audio.export(tmp_path, format="wav")
    except CouldntEncodeError as exc:
        cleanup_temp_file(tmp_path)
        raise ProcessError(f"Could not write WAV for {input_path}: {exc}") from exc
    return tmp_path


def downsample(path: str, out_dir: Optional[str] = None) -> str:
    """Convert an audio file to 16 kHz mono AAC in an ``.m4a`` container.

    Args:
        path: Path to the source audio file.
        out_dir: Directory for the output.  A temporary file is used when
            omitted; the caller is responsible for removing it.

    Returns:
        The path to the downsampled file.

    Raises:
        PreconditionError: If the recording cannot be decoded.
        ProcessError: If the AAC encoder fails.
    """
    audio = _load(path).set_channels(1).set_frame_rate(DOWNSAMPLE_RATE)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
        out_path = os.path.join(out_dir, f"{Path(path).stem}-downsampled.m4a")
    else:
        fd, out_path = tempfile.mkstemp(suffix=".m4a")
        os.close(fd)
    # pydub names the container format; the codec is passed separately.
    try:
        audio.export(out_path, format="ipod", codec="aac", bitrate=DOWNSAMPLE_BITRATE)
    except CouldntEncodeError as exc:
        raise ProcessError(f"Could not encode {out_path}: {exc}") from exc
    logger.info(
        "Downsampled %s (%d bytes) to %s (%d bytes)",
        path,
        os.path.getsize(path),
        out_path,
        os.path.getsize(out_path),
    )
    return out_path


def cleanup_temp_file(path: Optional[str]) -> None:
    """Remove a temporary file if it exists.

    Args:
        path: Path to the temporary file.  Nothing happens if ``path`` is
            ``None`` or the file does not exist.
    """
    if path and os.path.exists(path):
        try:
            os.remove(path)
        except OSError as exc:
            logger.warning("Failed to remove temporary file %s: %s", path, exc)
