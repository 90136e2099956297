"""
Background job runner.

Launches the remediation request in a detached child process so the
event loop never waits on the network. The child talks back only
through four files per job:

    ai_fix_<id>.request.json   payload, written here before launch
    ai_fix_<id>.response.json  response body, written by the child
    ai_fix_<id>.stderr.log     diagnostics, written by the child
    ai_fix_<id>.status         exit status, written by the child last
"""

import logging
import os
import signal
import subprocess
import sys
import time
from pathlib import Path
from typing import Callable, List, Optional

from ..config import Settings, get_jobs_dir
from ..errors import JobLaunchFailure
from ..models import Job, JobPaths

logger = logging.getLogger(__name__)

WORKER_MODULE = "shellfix.jobs.worker"
API_KEY_ENV = "SHELLFIX_API_KEY"


class JobRunner:
    """Starts background jobs and owns their artifacts until handed off."""

    def __init__(
        self,
        jobs_dir: Optional[Path] = None,
        python: str = sys.executable,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        pid: Optional[int] = None,
    ):
        self._jobs_dir = jobs_dir
        self._python = python
        self._clock = clock
        self._wall_clock = wall_clock
        self._pid = pid if pid is not None else os.getpid()
        self._counter = 0

    @property
    def jobs_dir(self) -> Path:
        return self._jobs_dir or get_jobs_dir()

    def next_job_id(self) -> str:
        """Timestamp, pid and a per-runner counter.

        Every shell process shares the jobs directory, so the pid keeps
        two runners started in the same second apart.
        """
        self._counter += 1
        return f"{int(self._wall_clock())}-{self._pid}-{self._counter}"

    def build_command(self, job: Job, settings: Settings) -> List[str]:
        """Argument vector for the worker process."""
        return [
            self._python,
            "-m",
            WORKER_MODULE,
            settings.base_url,
            str(settings.timeout_secs),
            str(job.paths.request),
            str(job.paths.response),
            str(job.paths.stderr),
            str(job.paths.status),
        ]

    # -- Creation -------------------------------------------------------------

    def start(self, payload: str, settings: Settings) -> Job:
        """Write the request and launch the worker.

        Args:
            payload: Encoded chat-completions request body.
            settings: Settings in effect for this attempt.

        Returns:
            The launched Job.

        Raises:
            JobLaunchFailure: the jobs directory, request file or child
                process could not be created.
        """
        jobs_dir = self.jobs_dir
        try:
            jobs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise JobLaunchFailure(f"state directory unavailable: {e}")

        job_id = self.next_job_id()
        job = Job(
            id=job_id,
            paths=JobPaths.for_job(jobs_dir, job_id),
            started_at=self._clock(),
        )

        try:
            job.paths.request.write_text(payload, encoding="utf-8")
        except OSError as e:
            self.cleanup(job)
            raise JobLaunchFailure(f"failed to write request payload: {e}")

        process_env = os.environ.copy()
        process_env[API_KEY_ENV] = settings.api_key

        popen_kwargs = dict(
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            env=process_env,
            close_fds=True,
        )
        if sys.platform != "win32":
            popen_kwargs["start_new_session"] = True

        try:
            job.process = subprocess.Popen(self.build_command(job, settings), **popen_kwargs)
        except (OSError, ValueError) as e:
            self.cleanup(job)
            raise JobLaunchFailure(f"failed to launch request: {e}")

        logger.debug(f"job {job_id} started pid={job.process.pid}")
        return job

    # -- Lifecycle ------------------------------------------------------------

    def cleanup(self, job: Job) -> None:
        """Delete every artifact of the job. Missing files are fine."""
        status_tmp = job.paths.status.with_name(job.paths.status.name + ".tmp")
        for path in (*job.paths.all(), status_tmp):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"job {job.id}: could not remove {path}: {e}")
        self.reap(job)

    def reap(self, job: Job) -> Optional[int]:
        """Collect the child's exit status if it has finished."""
        if job.process is None:
            return None
        return job.process.poll()

    def terminate(self, job: Job) -> None:
        """SIGTERM the worker's process group (TerminateProcess on Windows)."""
        process = job.process
        if process is None or process.poll() is not None:
            return
        try:
            if sys.platform != "win32":
                os.killpg(os.getpgid(process.pid), signal.SIGTERM)
            else:
                process.terminate()
        except (ProcessLookupError, OSError):
            pass
        logger.debug(f"job {job.id} terminated")
