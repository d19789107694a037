"""
Exception taxonomy for the transcription pipeline.

Every error carries a short machine-readable ``code`` alongside its human
readable message so that callers can branch without parsing text.  Any of
these errors aborts the whole run: a missing or corrupted segment would
break transcript ordering downstream.
"""

from __future__ import annotations

import enum
from typing import Optional

import requests
from google.api_core import exceptions as google_exceptions


class ErrorKind(enum.Enum):
    """How the retry driver should treat a failed provider call."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    code = "pipeline"


class PreconditionError(PipelineError, FileNotFoundError):
    """The source file is missing, unreadable or of an unsupported type."""

    code = "precondition"


class ConfigurationError(PipelineError, ValueError):
    """A configuration value is missing or out of range."""

    code = "configuration"


class ProcessError(PipelineError):
    """The segmentation process failed to spawn or exited non-zero."""

    code = "process"

    def __init__(
        self,
        message: str,
        *,
        returncode: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    def __str__(self) -> str:
        base = super().__str__()
        if not self.stdout and not self.stderr:
            return base
        return f"{base}\nstdout: {self.stdout}\nstderr: {self.stderr}"


class SegmentationTimeoutError(PipelineError, TimeoutError):
    """The run's time budget ran out while segmentation was in progress."""

    code = "timeout"


class SummaryError(PipelineError):
    """Tokenising or summarising the finished transcript failed."""

    code = "summary"


class ProviderError(PipelineError):
    """A remote transcription call failed.

    Attributes:
        provider_id: Identifier of the provider that raised the error.
        segment_name: File name of the segment being transcribed, if known.
        kind: Whether retrying could help.
        status: HTTP-equivalent status code, if the service reported one.
    """

    code = "provider"

    def __init__(
        self,
        message: str,
        *,
        provider_id: str,
        kind: ErrorKind = ErrorKind.PERMANENT,
        segment_name: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.provider_id = provider_id
        self.kind = kind
        self.segment_name = segment_name
        self.status = status

    def __str__(self) -> str:
        where = f" ({self.segment_name})" if self.segment_name else ""
        return f"[{self.provider_id}]{where} {super().__str__()}"


class TransientProviderError(ProviderError):
    """Raised once a retryable provider error has used up every attempt."""

    code = "provider_transient"


class PermanentProviderError(ProviderError):
    """Raised for provider errors that retrying will not fix."""

    code = "provider_permanent"


_TRANSIENT_MARKERS = ("econnreset", "connection error", "connection reset")


def _status_of(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    code = getattr(exc, "code", None)
    if isinstance(code, int):
        return code
    return None


def classify_error(exc: BaseException) -> ErrorKind:
    """Decide whether ``exc`` is worth retrying.

    Network resets, connection failures and 5xx statuses are transient.
    Everything else (validation failures, 4xx statuses, unsupported models
    or formats) is permanent.
    """
    if isinstance(exc, ProviderError):
        if exc.status is not None:
            return ErrorKind.TRANSIENT if exc.status >= 500 else ErrorKind.PERMANENT
        return exc.kind
    if isinstance(exc, (requests.ConnectionError, requests.Timeout, ConnectionError)):
        return ErrorKind.TRANSIENT
    if isinstance(exc, (google_exceptions.ServerError, google_exceptions.RetryError)):
        return ErrorKind.TRANSIENT
    status = _status_of(exc)
    if status is not None and status >= 500:
        return ErrorKind.TRANSIENT
    message = str(exc).lower()
    if any(marker in message for marker in _TRANSIENT_MARKERS):
        return ErrorKind.TRANSIENT
    return ErrorKind.PERMANENT


def wrap_provider_error(
    exc: BaseException, *, provider_id: str, segment_name: Optional[str] = None
) -> ProviderError:
    """Wrap an arbitrary exception with the provider's identifier."""
    if isinstance(exc, ProviderError):
        if exc.segment_name is None:
            exc.segment_name = segment_name
        exc.kind = classify_error(exc)
        return exc
    return ProviderError(
        str(exc) or exc.__class__.__name__,
        provider_id=provider_id,
        kind=classify_error(exc),
        segment_name=segment_name,
        status=_status_of(exc),
    )
