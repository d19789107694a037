import threading
import time

import pytest
from tenacity import wait_none

from longscribe.config import PipelineConfig
from longscribe.errors import ErrorKind, PermanentProviderError, ProviderError
from longscribe.models import Cue, ProviderMetadata, Segment, TranscriptResult
from longscribe.providers.base import TranscriptionProvider
from longscribe.rate_limiter import RateLimiter
from longscribe.retry_policy import RetryPolicy
from longscribe.scheduler import TranscriptionScheduler


class FakeProvider(TranscriptionProvider):
    provider_id = "openai"

    def __init__(self, delay=None, fail_on=None, transient_failures=0):
        super().__init__("key")
        self.delay = delay or (lambda segment: 0)
        self.fail_on = fail_on
        self.transient_failures = transient_failures
        self.lock = threading.Lock()
        self.in_flight = 0
        self.peak = 0
        self.calls = 0
        self.bytes_seen = {}

    def _transcribe(self, segment, stream, model_id, hints):
        with self.lock:
            self.calls += 1
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
            fail_transient = self.transient_failures > 0
            if fail_transient:
                self.transient_failures -= 1
        try:
            self.bytes_seen[segment.index] = stream.read()
            time.sleep(self.delay(segment))
            if fail_transient:
                raise ConnectionResetError("ECONNRESET")
            if self.fail_on is not None and self.fail_on(segment):
                raise ProviderError("Invalid file format", provider_id="openai", kind=ErrorKind.PERMANENT)
            return TranscriptResult(
                text=f"Segment {segment.index}.",
                cues=[Cue(start=1.0, text=f"cue {segment.index}")],
                metadata=ProviderMetadata(duration_seconds=10.0),
            )
        finally:
            with self.lock:
                self.in_flight -= 1


def _segments(tmp_path, count):
    segments = []
    for i in range(count):
        path = tmp_path / f"chunk-{i:03d}.mp3"
        path.write_bytes(f"audio {i}".encode())
        segments.append(Segment(index=i, file_path=str(path), byte_size=7, start_offset_seconds=906 * i))
    return segments


def _scheduler(provider, **config_kwargs):
    config_kwargs.setdefault("refill_interval", 0.01)
    config = PipelineConfig(**config_kwargs)
    return TranscriptionScheduler(config, provider, retry_policy=RetryPolicy(wait=wait_none()))


def test_results_stay_aligned_when_completing_in_reverse(tmp_path):
    count = 6
    provider = FakeProvider(delay=lambda s: (count - s.index) * 0.02)
    results = _scheduler(provider, max_concurrent=count).schedule_all(_segments(tmp_path, count))
    assert [r.text for r in results] == [f"Segment {i}." for i in range(count)]
    assert provider.bytes_seen == {i: f"audio {i}".encode() for i in range(count)}


def test_outstanding_calls_never_exceed_max_concurrent(tmp_path):
    provider = FakeProvider(delay=lambda s: 0.02)
    scheduler = _scheduler(provider, max_concurrent=2)
    results = scheduler.schedule_all(_segments(tmp_path, 10))
    assert len(results) == 10
    assert provider.peak <= 2
    assert scheduler.limiter.peak <= 2


def test_transient_failures_are_retried(tmp_path):
    provider = FakeProvider(transient_failures=2)
    results = _scheduler(provider, max_concurrent=1).schedule_all(_segments(tmp_path, 1))
    assert results[0].attempts == 3
    assert provider.calls == 3


def test_first_fatal_error_cancels_queued_jobs(tmp_path):
    provider = FakeProvider(fail_on=lambda s: True)
    scheduler = _scheduler(provider, max_concurrent=1, refill_interval=0.05)
    with pytest.raises(PermanentProviderError):
        scheduler.schedule_all(_segments(tmp_path, 40))
    assert provider.calls < 40


def test_cue_tracks_are_shifted_to_recording_time(tmp_path):
    results = _scheduler(FakeProvider(), max_concurrent=3).schedule_all(_segments(tmp_path, 3))
    assert results[0].cue_track == "00:00:01.000\ncue 0"
    assert results[1].cue_track == "00:15:07.000\ncue 1"
    assert results[2].cue_track == "00:30:13.000\ncue 2"


def test_empty_batch(tmp_path):
    assert _scheduler(FakeProvider()).schedule_all([]) == []


def test_pool_sizes_follow_config():
    config = PipelineConfig(provider_id="elevenlabs", chunk_size_mb=8)
    scheduler = TranscriptionScheduler(config, FakeProvider())
    assert scheduler.limiter.max_concurrent == 10
    assert config.local_pool_size == 30
    assert PipelineConfig(chunk_size_mb=24).local_pool_size == 10


def test_rate_limiter_waits_for_refill():
    now = [0.0]
    limiter = RateLimiter(2, refill_interval=1.0, clock=lambda: now[0])
    for _ in range(2):
        with limiter.slot():
            pass
    waiter = threading.Thread(target=limiter.acquire)
    waiter.start()
    waiter.join(0.05)
    assert waiter.is_alive()
    now[0] = 1.0
    waiter.join(3)
    assert not waiter.is_alive()
    assert limiter.running == 1
    limiter.release()


def test_rate_limiter_release_without_acquire():
    with pytest.raises(RuntimeError):
        RateLimiter(1).release()
