import os
import threading

import pytest

from longscribe.run_context import RunContext


class FakeProcess:
    def __init__(self, pid=42):
        self.pid = pid
        self.returncode = None
        self.kills = 0

    def poll(self):
        return self.returncode

    def kill(self):
        self.kills += 1
        self.returncode = -9


def test_abort_kills_tracked_processes(tmp_path):
    run = RunContext(str(tmp_path))
    running, finished = FakeProcess(1), FakeProcess(2)
    finished.returncode = 0
    entered = threading.Event()
    release = threading.Event()

    def hold(process):
        with run.track(process):
            entered.set()
            release.wait(5)

    workers = [threading.Thread(target=hold, args=(p,)) for p in (running, finished)]
    for worker in workers:
        entered.clear()
        worker.start()
        entered.wait(5)
    assert run.active_processes == 2

    run.abort()

    assert running.kills == 1
    assert finished.kills == 0
    assert run.active_processes == 0
    release.set()
    for worker in workers:
        worker.join(5)
    assert run.active_processes == 0


def test_error_inside_run_kills_tracked_process(tmp_path):
    process = FakeProcess()
    with pytest.raises(RuntimeError):
        with RunContext(str(tmp_path), run_id="boom") as run:
            run.prepare_segment_dir()
            with run.track(process):
                assert run.active_processes == 1
                raise RuntimeError("segment writer crashed")
    assert process.kills == 1
    assert run.active_processes == 0
    assert not os.path.exists(run.segment_dir)


def test_error_in_other_thread_leaves_registry_for_abort(tmp_path):
    process = FakeProcess()
    tracked = threading.Event()
    release = threading.Event()

    def hold(run):
        with run.track(process):
            tracked.set()
            release.wait(5)

    with pytest.raises(ValueError):
        with RunContext(str(tmp_path)) as run:
            worker = threading.Thread(target=hold, args=(run,))
            worker.start()
            tracked.wait(5)
            raise ValueError("planner failed")
    release.set()
    worker.join(5)
    assert process.kills == 1
    assert run.active_processes == 0


def test_finished_block_does_not_kill(tmp_path):
    process = FakeProcess()
    run = RunContext(str(tmp_path))
    with run.track(process):
        pass
    assert process.kills == 0
    assert run.active_processes == 0


def test_is_expired_trips_before_the_limit(tmp_path):
    now = [0.0]
    run = RunContext(str(tmp_path), timeout_seconds=10, clock=lambda: now[0])
    now[0] = 6.9
    assert not run.is_expired()
    now[0] = 7.0
    assert run.is_expired()
