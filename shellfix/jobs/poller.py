"""
Job poller.

Watches a job's status artifact on a fixed interval until the job
completes or its deadline passes:

    PENDING -> COMPLETED   status file written; artifacts read, then removed
    PENDING -> TIMED_OUT   deadline passed; worker killed, artifacts removed

Each poll is its own event-loop callback (``loop.call_later``); nothing
here blocks. A job keeps being polled after its pane has moved on, so
its artifacts are still removed once the child finishes; the owner's
stale-job guard is consulted at resolution and a stale result is
dropped without any other side effect.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from ..models import Job, JobResult, JobState
from .runner import JobRunner

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECS = 0.2
DEADLINE_GRACE_SECS = 4.0


def read_artifact(path: Path) -> str:
    """Read an artifact; a missing or unreadable file reads as empty."""
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""


def parse_status(text: str) -> Optional[int]:
    value = text.strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return -1


class JobPoller:
    """Polls background jobs; one cancellable timer per job id."""

    def __init__(
        self,
        runner: JobRunner,
        interval: float = POLL_INTERVAL_SECS,
        grace: float = DEADLINE_GRACE_SECS,
        clock: Callable[[], float] = time.monotonic,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._runner = runner
        self._interval = interval
        self._grace = grace
        self._clock = clock
        self._loop = loop
        self._watching: Dict[str, Tuple[Job, Optional[asyncio.TimerHandle]]] = {}

    def deadline_for(self, timeout_secs: float) -> float:
        return timeout_secs + self._grace

    def is_watching(self, job_id: str) -> bool:
        return job_id in self._watching

    # -- Single step ----------------------------------------------------------

    def poll_once(self, job: Job, timeout_secs: float) -> JobResult:
        """
        Check a job once.

        Returns a PENDING result while the status file is absent and the
        deadline has not passed. Otherwise the job is resolved: artifacts
        are read (on completion) and always removed. A timed-out worker is
        terminated first.
        """
        status_text = read_artifact(job.paths.status)
        status = parse_status(status_text)

        if status is None:
            if job.elapsed(self._clock()) < self.deadline_for(timeout_secs):
                return JobResult(job_id=job.id, state=JobState.PENDING)
            # The worker must be gone before its artifacts are removed
            self._runner.terminate(job)
            self._runner.cleanup(job)
            logger.debug(f"job {job.id} timed out")
            return JobResult(job_id=job.id, state=JobState.TIMED_OUT)

        stdout = read_artifact(job.paths.response)
        stderr = read_artifact(job.paths.stderr)
        self._runner.cleanup(job)
        logger.debug(f"job {job.id} completed status={status}")
        return JobResult(
            job_id=job.id,
            state=JobState.COMPLETED,
            status=status,
            stdout=stdout,
            stderr=stderr,
        )

    # -- Scheduling -----------------------------------------------------------

    def watch(
        self,
        job: Job,
        timeout_secs: float,
        is_current: Callable[[], bool],
        on_resolved: Callable[[JobResult], None],
    ) -> None:
        """Poll `job` every interval until it resolves.

        Args:
            job: The job to watch; the poller owns it from here on.
            timeout_secs: Request timeout; the deadline adds the grace.
            is_current: Stale-job guard, consulted once the job resolves.
            on_resolved: Called once with the COMPLETED or TIMED_OUT
                result, only if the job is still current.
        """
        self._watching[job.id] = (job, None)
        self._schedule(job, timeout_secs, is_current, on_resolved)

    def _schedule(self, job, timeout_secs, is_current, on_resolved) -> None:
        loop = self._loop or asyncio.get_running_loop()
        handle = loop.call_later(
            self._interval, self._tick, job, timeout_secs, is_current, on_resolved
        )
        self._watching[job.id] = (job, handle)

    def _tick(self, job, timeout_secs, is_current, on_resolved) -> None:
        if job.id not in self._watching:
            return

        result = self.poll_once(job, timeout_secs)
        if result.state == JobState.PENDING:
            self._schedule(job, timeout_secs, is_current, on_resolved)
            return

        self._watching.pop(job.id, None)
        if not is_current():
            logger.debug(f"job {job.id} resolved after its pane moved on; discarded")
            return
        on_resolved(result)

    def cancel(self, job_id: str, terminate: bool = False) -> Optional[Job]:
        """Stop watching a job and remove its artifacts.

        With `terminate`, the worker process is killed as well.
        """
        entry = self._watching.pop(job_id, None)
        if entry is None:
            return None
        job, handle = entry
        if handle is not None:
            handle.cancel()
        if terminate:
            self._runner.terminate(job)
        self._runner.cleanup(job)
        return job

    def cancel_all(self) -> None:
        for job_id in list(self._watching):
            self.cancel(job_id, terminate=True)
