import pytest
import requests
from tenacity import wait_none

from longscribe.errors import (
    ErrorKind,
    PermanentProviderError,
    ProviderError,
    TransientProviderError,
    classify_error,
)
from longscribe.models import Segment, TranscriptionJob, TranscriptResult
from longscribe.retry_policy import RetryPolicy


def _job():
    segment = Segment(index=0, file_path="/tmp/chunk-000.mp3", byte_size=1)
    return TranscriptionJob(segment=segment, provider_id="openai", model_id="whisper-1")


class FlakyCall:
    """Fails with ``errors`` in turn, then succeeds."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self, job):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return TranscriptResult(text="ok")


def test_two_transient_failures_then_success():
    call = FlakyCall(
        ProviderError("overloaded", provider_id="openai", status=503),
        requests.ConnectionError("Connection error."),
    )
    job = _job()
    result = RetryPolicy(wait=wait_none()).run(job, call)
    assert result.text == "ok"
    assert result.attempts == 3
    assert job.attempt_count == 3
    assert call.calls == 3


def test_permanent_failure_is_not_retried():
    call = FlakyCall(ProviderError("Invalid file format", provider_id="openai", status=400))
    with pytest.raises(PermanentProviderError) as excinfo:
        RetryPolicy(wait=wait_none()).run(_job(), call)
    assert call.calls == 1
    assert excinfo.value.code == "provider_permanent"
    assert excinfo.value.segment_name == "chunk-000.mp3"


def test_exhausted_transient_failures_escalate():
    call = FlakyCall(*[ConnectionResetError("ECONNRESET") for _ in range(5)])
    with pytest.raises(TransientProviderError) as excinfo:
        RetryPolicy(max_attempts=3, wait=wait_none()).run(_job(), call)
    assert call.calls == 3
    assert excinfo.value.code == "provider_transient"
    assert "3 attempts" in str(excinfo.value)


def test_success_on_first_try_records_one_attempt():
    result = RetryPolicy(wait=wait_none()).run(_job(), FlakyCall())
    assert result.attempts == 1


@pytest.mark.parametrize(
    "exc, kind",
    [
        (requests.Timeout("read timed out"), ErrorKind.TRANSIENT),
        (RuntimeError("socket hang up: ECONNRESET"), ErrorKind.TRANSIENT),
        (ProviderError("boom", provider_id="x", status=502), ErrorKind.TRANSIENT),
        (ProviderError("quota", provider_id="x", status=429), ErrorKind.PERMANENT),
        (ValueError("unsupported format"), ErrorKind.PERMANENT),
    ],
)
def test_classify_error(exc, kind):
    assert classify_error(exc) is kind
