"""
Orchestration layer for the transcription pipeline.

This module defines the function called from the entrypoint in
:mod:`longscribe.main`.  It coordinates the steps of one run:

* Optionally downsample the recording.
* Plan the segment length and split the recording with ffmpeg.
* Transcribe every segment concurrently, with retries.
* Reassemble the transcript and re-split it into token chunks.
* Optionally summarise every chunk.

Any error aborts the run: leftover processes are killed and the working
directory is removed before the error propagates.
"""

from __future__ import annotations

import json
import logging
from typing import Optional, Union

from . import audio_processor
from .config import PipelineConfig
from .errors import PipelineError
from .models import PipelineOutput, SourceMedia
from .providers import TranscriptionProvider, get_provider
from .reassembler import combine_cue_tracks, reassemble
from .run_context import RunContext
from .scheduler import TranscriptionScheduler
from .segment_executor import SegmentExecutor
from .segment_planner import plan_segments
from .summarizer import summarize_chunks
from .token_chunker import chunk_for_summary

logger = logging.getLogger(__name__)


def process_audio(
    source: Union[str, SourceMedia],
    config: Optional[PipelineConfig] = None,
    *,
    provider: Optional[TranscriptionProvider] = None,
    encoding=None,
) -> PipelineOutput:
    """Run the whole pipeline on one recording.

    Args:
        source: Path of the recording, or an already probed
            :class:`SourceMedia`.  The file is consumed by segmentation.
        config: Pipeline configuration; read from the environment when
            omitted.
        provider: Provider adapter override.  Built from ``config`` when
            omitted.
        encoding: Tokeniser override for chunking.

    Returns:
        The transcript, per-segment results, merged metadata, token chunks
        and (when enabled) chunk summaries.

    Raises:
        PipelineError: Any failure of any stage.
    """
    config = config or PipelineConfig.from_env()
    downsampled = None
    try:
        if isinstance(source, str):
            source = audio_processor.probe_source(source)
        with RunContext(config.work_dir, timeout_seconds=config.timeout_seconds) as run:
            logger.info(json.dumps({"event": "pipeline_started", "run": run.run_id, "file": source.path}))
            provider = provider or get_provider(
                config.provider_id, config.credentials, request_timeout=config.request_timeout
            )
            if config.enable_downsampling:
                downsampled = audio_processor.downsample(source.path, run.work_dir)
                source = audio_processor.probe_source(downsampled)

            plan = plan_segments(source.duration_seconds, source.byte_size, config.chunk_size_mb)
            segments = SegmentExecutor(run, config).execute(source, plan)
            results = TranscriptionScheduler(config, provider).schedule_all(segments)
            transcript = reassemble(results, config.join_mode)
            chunks = chunk_for_summary(transcript.full_text, config.summary_max_tokens, encoding)
            summaries = summarize_chunks(chunks, config) if config.enable_summariser else None

        logger.info(json.dumps({"event": "pipeline_finished", "run": run.run_id, "segments": len(results)}))
        return PipelineOutput(
            transcript=transcript.full_text,
            per_segment_results=results,
            metadata=transcript.metadata,
            chunks=chunks,
            cue_track=combine_cue_tracks(results),
            summaries=summaries,
        )
    except Exception as exc:
        code = exc.code if isinstance(exc, PipelineError) else "unexpected"
        logger.error(json.dumps({"event": "pipeline_failed", "code": code, "error": str(exc)}))
        raise
    finally:
        audio_processor.cleanup_temp_file(downsampled)
