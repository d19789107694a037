"""
Run-scoped resources.

A :class:`RunContext` owns everything one pipeline run leaves behind: the
working directory holding segment files, and every external process spawned
on the run's behalf.  Processes are registered for exactly as long as they
are alive, and :meth:`RunContext.abort` terminates whatever is left.
"""

import contextlib
import logging
import os
import shutil
import threading
import time
import uuid
from typing import Callable, Iterator, Optional, Set

logger = logging.getLogger(__name__)

EARLY_TERMINATION_SECONDS = 3


class RunContext:
    """Working directory, process registry and time budget for one run.

    Args:
        work_dir: Parent directory under which the run directory is created.
        timeout_seconds: Total time budget.  The liveness check trips a few
            seconds before the budget is spent so that logs survive.
        run_id: Identifier used in the run directory name.
        clock: Monotonic clock, overridable in tests.
    """

    def __init__(
        self,
        work_dir: str = "/tmp",
        *,
        timeout_seconds: float = 300.0,
        run_id: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.work_dir = work_dir
        self.segment_dir = os.path.join(work_dir, f"chunks-{self.run_id}")
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self.started_at = clock()
        self._processes: Set[object] = set()
        self._lock = threading.Lock()

    def __enter__(self) -> "RunContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.abort()
        self.cleanup()
        return False

    @property
    def elapsed(self) -> float:
        return self._clock() - self.started_at

    def is_expired(self) -> bool:
        """Return ``True`` once the run should stop to stay within budget."""
        limit = self.timeout_seconds - EARLY_TERMINATION_SECONDS
        if self.elapsed >= limit:
            logger.warning(
                "Run %s reached its time limit (%.2fs elapsed of %ss)",
                self.run_id,
                self.elapsed,
                self.timeout_seconds,
            )
            return True
        return False

    @property
    def active_processes(self) -> int:
        with self._lock:
            return len(self._processes)

    @contextlib.contextmanager
    def track(self, process) -> Iterator[object]:
        """Register ``process`` while the block runs.

        A process still running when the block raises is killed.
        """
        with self._lock:
            self._processes.add(process)
        try:
            yield process
        except BaseException:
            self._kill(process)
            raise
        finally:
            with self._lock:
                self._processes.discard(process)

    def abort(self) -> None:
        """Kill every process still registered with this run."""
        with self._lock:
            leftovers = list(self._processes)
            self._processes.clear()
        for process in leftovers:
            self._kill(process)

    @staticmethod
    def _kill(process) -> None:
        if process.poll() is not None:
            return
        try:
            process.kill()
            logger.info("Killed leftover process %s", getattr(process, "pid", "?"))
        except OSError as exc:
            logger.warning("Error killing leftover process: %s", exc)

    def prepare_segment_dir(self) -> str:
        """Create an empty directory for this run's segment files."""
        if os.path.isdir(self.segment_dir):
            shutil.rmtree(self.segment_dir)
        os.makedirs(self.segment_dir, exist_ok=True)
        return self.segment_dir

    def cleanup(self) -> None:
        """Remove the run's segment directory."""
        if os.path.isdir(self.segment_dir):
            shutil.rmtree(self.segment_dir, ignore_errors=True)
            logger.info("Removed working directory %s", self.segment_dir)
