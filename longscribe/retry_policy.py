"""
Bounded retries for provider calls.

Each try is captured as an :class:`Attempt` value instead of letting the
exception escape, so the retry decision depends only on the classified
:class:`~longscribe.errors.ErrorKind` and never on exception identity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from .errors import (
    ErrorKind,
    PermanentProviderError,
    ProviderError,
    TransientProviderError,
    wrap_provider_error,
)
from .models import TranscriptionJob, TranscriptResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


@dataclass
class Attempt:
    """Outcome of a single provider call."""

    result: Optional[TranscriptResult] = None
    error: Optional[ProviderError] = None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.kind is ErrorKind.TRANSIENT


def _log_retry(state: RetryCallState) -> None:
    attempt: Attempt = state.outcome.result()
    logger.warning(
        "Retry attempt %d for %s due to: %s",
        state.attempt_number,
        attempt.error.segment_name or "segment",
        attempt.error,
    )


def _last_attempt(state: RetryCallState) -> Attempt:
    return state.outcome.result()


class RetryPolicy:
    """Run a job with at most ``max_attempts`` tries.

    Args:
        max_attempts: Total number of tries, including the first.
        wait: tenacity wait strategy between tries.  Defaults to a capped
            exponential backoff; tests pass ``wait_none()``.
    """

    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS, wait=None) -> None:
        self.max_attempts = max_attempts
        self.wait = wait if wait is not None else wait_exponential(multiplier=1, min=1, max=10)

    def _retrying(self) -> Retrying:
        return Retrying(
            retry=retry_if_result(lambda attempt: attempt.retryable),
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            before_sleep=_log_retry,
            retry_error_callback=_last_attempt,
        )

    def run(
        self, job: TranscriptionJob, call: Callable[[TranscriptionJob], TranscriptResult]
    ) -> TranscriptResult:
        """Call ``call(job)`` until it succeeds or retrying cannot help.

        Returns:
            The successful result with ``attempts`` set.

        Raises:
            PermanentProviderError: On the first non-retryable failure.
            TransientProviderError: When every attempt failed transiently.
        """

        def once() -> Attempt:
            job.attempt_count += 1
            try:
                return Attempt(result=call(job))
            except Exception as exc:
                error = wrap_provider_error(
                    exc, provider_id=job.provider_id, segment_name=job.segment.name
                )
                logger.error(
                    "Error transcribing %s with %s (attempt %d): %s",
                    job.segment.name,
                    job.provider_id,
                    job.attempt_count,
                    error,
                )
                return Attempt(error=error)

        attempt: Attempt = self._retrying()(once)
        if attempt.error is None:
            attempt.result.attempts = job.attempt_count
            return attempt.result

        error = attempt.error
        escalated_cls = (
            TransientProviderError if error.kind is ErrorKind.TRANSIENT else PermanentProviderError
        )
        message = error.args[0] if error.args else ""
        if escalated_cls is TransientProviderError:
            message = f"Gave up after {job.attempt_count} attempts: {message}"
        raise escalated_cls(
            message,
            provider_id=error.provider_id,
            kind=error.kind,
            segment_name=error.segment_name,
            status=error.status,
        ) from error
