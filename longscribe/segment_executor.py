"""
Segment execution.

Turns a :class:`~longscribe.models.SegmentPlan` into ordered segment files
on disk.  Splitting is delegated to ffmpeg's segment muxer, driven through
``ffmpeg-python``; the audio stream is copied, never re-encoded.
"""

import json
import logging
import os
import re
import shutil
import subprocess
import threading
import time
from typing import List, Optional

import ffmpeg

from .config import PipelineConfig
from .errors import PreconditionError, ProcessError, SegmentationTimeoutError
from .models import (
    SEGMENT_INDEX_WIDTH,
    SEGMENT_PREFIX,
    Segment,
    SegmentPlan,
    SourceMedia,
    segment_file_name,
)
from .run_context import RunContext

logger = logging.getLogger(__name__)


class _StreamCollector:
    """Drain one pipe of a child process on a background thread."""

    def __init__(self, stream, name: str, on_line=None) -> None:
        self.name = name
        self._stream = stream
        self._on_line = on_line
        self._parts: List[str] = []
        self._thread = threading.Thread(target=self._drain, name=f"ffmpeg-{name}", daemon=True)

    def start(self) -> "_StreamCollector":
        if self._stream is not None:
            self._thread.start()
        return self

    def _drain(self) -> None:
        for raw in iter(self._stream.readline, b""):
            line = raw.decode("utf-8", errors="replace")
            self._parts.append(line)
            if self._on_line:
                self._on_line(line)
        self._stream.close()

    def join(self, timeout: Optional[float] = None) -> str:
        if self._thread.is_alive():
            self._thread.join(timeout)
        return "".join(self._parts)


class SegmentExecutor:
    """Produce segment files for one run.

    Args:
        run: Run context owning the working directory and process registry.
        config: Pipeline configuration (ffmpeg path, liveness interval).
    """

    def __init__(self, run: RunContext, config: PipelineConfig) -> None:
        self.run = run
        self.ffmpeg_path = config.ffmpeg_path
        self.liveness_interval = config.liveness_interval

    def execute(
        self, source: SourceMedia, plan: SegmentPlan, output_dir: Optional[str] = None
    ) -> List[Segment]:
        """Write the segments for ``source`` and delete the source.

        Raises:
            PreconditionError: If the source file is missing or unreadable.
            ProcessError: If ffmpeg cannot be spawned, exits non-zero, or
                leaves a gap in the segment numbering.
            SegmentationTimeoutError: If the run's time budget runs out.
        """
        self._check_source(source.path)
        output_dir = output_dir or self.run.prepare_segment_dir()
        os.makedirs(output_dir, exist_ok=True)
        extension = source.extension or os.path.splitext(source.path)[1]

        if not plan.split_required:
            target = os.path.join(output_dir, segment_file_name(0, extension))
            try:
                shutil.copyfile(source.path, target)
            except OSError as exc:
                raise PreconditionError(
                    f"Failed to copy single segment from {source.path}: {exc}"
                ) from exc
            logger.info("Created 1 segment: %s", target)
        else:
            self._split(source.path, plan, output_dir, extension)

        self._remove_source(source.path)
        segments = self._collect_segments(output_dir, extension, plan)
        logger.info(
            json.dumps({"event": "segments_ready", "count": len(segments), "dir": output_dir})
        )
        return segments

    @staticmethod
    def _check_source(path: str) -> None:
        if not path or not os.path.isfile(path):
            raise PreconditionError(f"File does not exist at path: {path}")
        if not os.access(path, os.R_OK):
            raise PreconditionError(f"File is not readable: {path}")

    def _build_command(self, source_path: str, segment_time: float, pattern: str):
        return (
            ffmpeg.input(source_path, analyzeduration=0, probesize="32k", thread_queue_size=64)
            .output(
                pattern,
                acodec="copy",
                f="segment",
                segment_time=segment_time,
                reset_timestamps=1,
                map="0:a:0",
                max_muxing_queue_size=64,
            )
            .global_args("-hide_banner", "-loglevel", "info")
            .overwrite_output()
        )

    def _split(self, source_path: str, plan: SegmentPlan, output_dir: str, extension: str) -> None:
        pattern = os.path.join(
            output_dir, f"{SEGMENT_PREFIX}%0{SEGMENT_INDEX_WIDTH}d{extension}"
        )
        stream = self._build_command(source_path, plan.segment_duration_seconds, pattern)
        logger.info(
            "Splitting file into segments with ffmpeg command: %s",
            " ".join(stream.compile(cmd=self.ffmpeg_path)),
        )

        started = time.monotonic()
        progress = {"count": 0, "last": started}

        def on_stderr(line: str) -> None:
            if "Opening" in line and SEGMENT_PREFIX in line:
                now = time.monotonic()
                progress["count"] += 1
                logger.info(
                    "Created segment %d in %.2f seconds", progress["count"], now - progress["last"]
                )
                progress["last"] = now

        try:
            process = stream.run_async(cmd=self.ffmpeg_path, pipe_stdout=True, pipe_stderr=True)
        except OSError as exc:
            raise ProcessError(f"ffmpeg process error: {exc}") from exc

        with self.run.track(process):
            stdout = _StreamCollector(process.stdout, "stdout").start()
            stderr = _StreamCollector(process.stderr, "stderr", on_stderr).start()
            returncode = self._wait(process)
            out_text = stdout.join()
            err_text = stderr.join()

        elapsed = time.monotonic() - started
        logger.info(
            "Segmentation completed in %.2f seconds (%d segments)", elapsed, progress["count"]
        )
        if returncode != 0:
            raise ProcessError(
                f"ffmpeg process failed with code {returncode}",
                returncode=returncode,
                stdout=out_text,
                stderr=err_text,
            )

    def _wait(self, process) -> int:
        while True:
            try:
                return process.wait(timeout=self.liveness_interval)
            except subprocess.TimeoutExpired:
                if self.run.is_expired():
                    process.kill()
                    process.wait()
                    raise SegmentationTimeoutError(
                        "Segmentation process terminated due to timeout"
                    ) from None

    @staticmethod
    def _remove_source(path: str) -> None:
        try:
            os.remove(path)
            logger.info("Original file cleaned up after segmenting")
        except OSError as exc:
            logger.warning("Failed to clean up original file %s: %s", path, exc)

    @staticmethod
    def _collect_segments(output_dir: str, extension: str, plan: SegmentPlan) -> List[Segment]:
        name_re = re.compile(rf"^{re.escape(SEGMENT_PREFIX)}(\d+){re.escape(extension)}$")
        found = []
        for name in os.listdir(output_dir):
            match = name_re.match(name)
            if match:
                found.append((int(match.group(1)), name))
        found.sort()

        indices = [index for index, _ in found]
        if indices != list(range(len(indices))):
            raise ProcessError(f"Segment numbering has gaps in {output_dir}: {indices}")
        if not found:
            raise ProcessError(f"No segments were produced in {output_dir}")

        step = plan.segment_duration_seconds if plan.split_required else 0
        segments = []
        for index, name in found:
            path = os.path.join(output_dir, name)
            segments.append(
                Segment(
                    index=index,
                    file_path=path,
                    byte_size=os.path.getsize(path),
                    start_offset_seconds=index * step,
                )
            )
        return segments
