"""
Concurrent transcription of segments.

Two pools bound every job: a local pool limiting how many segment files are
open at once, and a :class:`~longscribe.rate_limiter.RateLimiter` limiting
outbound calls to the provider.  Results are returned in segment order no
matter in which order the calls complete.
"""

import json
import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import List, Optional

from .config import PipelineConfig
from .models import Segment, TranscriptionJob, TranscriptResult
from .providers.base import TranscriptionProvider
from .rate_limiter import RateLimiter
from .retry_policy import RetryPolicy
from .transcript_formatter import render_cues

logger = logging.getLogger(__name__)


class TranscriptionScheduler:
    """Run one transcription job per segment.

    Args:
        config: Pipeline configuration providing pool sizes and hints.
        provider: Provider adapter used for every segment.
        retry_policy: Optional override, mostly for tests.
        limiter: Optional override of the remote-call pool.
    """

    def __init__(
        self,
        config: PipelineConfig,
        provider: TranscriptionProvider,
        retry_policy: Optional[RetryPolicy] = None,
        limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.config = config
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=config.max_attempts)
        self.limiter = limiter or RateLimiter(
            config.remote_pool_size, refill_interval=config.refill_interval
        )
        self.local_pool = threading.BoundedSemaphore(config.local_pool_size)
        self._progress_lock = threading.Lock()
        self._completed = 0

    def _job_for(self, segment: Segment) -> TranscriptionJob:
        return TranscriptionJob(
            segment=segment,
            provider_id=self.provider.provider_id,
            model_id=self.config.resolved_model_id,
            credentials=self.config.credentials,
            hints=self.config.hints,
        )

    def _run_job(self, job: TranscriptionJob, total: int) -> TranscriptResult:
        with self.local_pool:
            with open(job.segment.file_path, "rb") as stream:
                with self.limiter.slot():

                    def call(current: TranscriptionJob) -> TranscriptResult:
                        stream.seek(0)
                        return self.provider.submit(
                            current.segment, current.model_id, current.hints, stream=stream
                        )

                    result = self.retry_policy.run(job, call)

        if result.cues:
            result.cue_track = render_cues(result.cues, job.segment.start_offset_seconds)
        with self._progress_lock:
            self._completed += 1
            done = self._completed
        logger.info(
            "Transcribed %s (%d/%d, %d attempt(s))",
            job.segment.name,
            done,
            total,
            result.attempts,
        )
        return result

    def schedule_all(self, segments: List[Segment]) -> List[TranscriptResult]:
        """Transcribe ``segments`` and return results aligned by index.

        Raises:
            ProviderError: The first fatal error.  Jobs not yet started are
                cancelled and the results of jobs already running are
                discarded.
        """
        if not segments:
            return []
        total = len(segments)
        self._completed = 0
        logger.info(
            json.dumps(
                {
                    "event": "transcription_scheduled",
                    "segments": total,
                    "provider": self.provider.provider_id,
                    "model": self.config.resolved_model_id,
                    "max_concurrent": self.limiter.max_concurrent,
                    "local_pool": self.config.local_pool_size,
                }
            )
        )

        workers = min(total, max(self.config.local_pool_size, self.limiter.max_concurrent))
        results: List[Optional[TranscriptResult]] = [None] * total
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="transcribe")
        try:
            futures = {
                executor.submit(self._run_job, self._job_for(segment), total): position
                for position, segment in enumerate(segments)
            }
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            for future in done:
                if future.exception() is not None:
                    logger.error(
                        "Transcription of %s failed, cancelling remaining jobs",
                        segments[futures[future]].name,
                    )
                    executor.shutdown(wait=True, cancel_futures=True)
                    raise future.exception()
            for future, position in futures.items():
                results[position] = future.result()
        finally:
            executor.shutdown(wait=True)

        return results
