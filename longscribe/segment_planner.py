"""
Segment planning.

Estimates how long each segment of a recording must be so that a
stream-copied slice lands near the target upload size.  This is a pure
computation: no file is touched.
"""

import json
import logging
import math

from .models import SegmentPlan

logger = logging.getLogger(__name__)

MEGABYTE = 1024 * 1024
DEFAULT_TARGET_MB = 24
MIN_TAIL_SECONDS = 30
MAX_SEGMENT_BYTES = 25 * MEGABYTE


def format_duration(seconds: float) -> str:
    """Format a number of seconds as ``HH:MM:SS``."""
    total = int(round(seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def plan_segments(
    duration: float, byte_size: int, target_mb: float = DEFAULT_TARGET_MB
) -> SegmentPlan:
    """Choose a segment duration for a recording.

    Args:
        duration: Length of the recording in seconds.  Zero or negative means
            unknown, in which case the file is not split.
        byte_size: Size of the recording in bytes.
        target_mb: Desired size of each segment in megabytes.

    Returns:
        A :class:`SegmentPlan`.  When ``split_required`` is false the caller
        must still produce exactly one segment.
    """
    if not duration or duration <= 0 or byte_size <= 0:
        logger.warning("Unknown duration or size; the file will not be split")
        return SegmentPlan(
            segment_duration_seconds=max(duration or 0, 0),
            split_required=False,
            duration_seconds=max(duration or 0, 0),
        )

    target_bytes = target_mb * MEGABYTE
    # ceil(target_bits / bitrate), with bitrate = byte_size * 8 / duration.
    # Multiplying before dividing keeps exact inputs exact.
    segment_time = math.ceil(target_bytes * duration / byte_size)

    full_segments = math.floor(duration / segment_time)
    tail = duration - full_segments * segment_time

    if tail < MIN_TAIL_SECONDS and full_segments > 0:
        segment_time = math.ceil(duration / full_segments)
        estimated_bytes = segment_time * byte_size / duration
        if estimated_bytes > MAX_SEGMENT_BYTES:
            segment_time = math.ceil(duration / (full_segments + 1))

    if segment_time >= duration:
        logger.info(
            "File will not be split (segment time %s >= duration %s)",
            format_duration(segment_time),
            format_duration(duration),
        )
        return SegmentPlan(
            segment_duration_seconds=duration,
            split_required=False,
            duration_seconds=duration,
        )

    plan = SegmentPlan(
        segment_duration_seconds=segment_time,
        split_required=True,
        duration_seconds=duration,
    )
    logger.info(
        json.dumps(
            {
                "event": "segment_plan",
                "segments": plan.segment_count,
                "segment_time": segment_time,
                "duration": duration,
                "target_mb": target_mb,
            }
        )
    )
    return plan
