"""
Data models for the assistant.

Defines the per-pane Session, the background Job that carries one
remediation attempt, and the Suggestion a finished job produces.
"""

import subprocess
import time
from enum import Enum
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field


class JobState(Enum):
    """State of a background job as seen by the poller."""
    PENDING = "pending"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"


@dataclass
class Suggestion:
    """A one-line fix for a failed command."""
    summary: str
    command: str = ""
    why: str = ""
    confidence: float = 0.0
    model: str = ""


@dataclass(frozen=True)
class JobPaths:
    """The four IPC artifacts a job owns."""
    request: Path
    response: Path
    stderr: Path
    status: Path

    @classmethod
    def for_job(cls, jobs_dir: Path, job_id: str) -> "JobPaths":
        base = f"ai_fix_{job_id}"
        return cls(
            request=jobs_dir / f"{base}.request.json",
            response=jobs_dir / f"{base}.response.json",
            stderr=jobs_dir / f"{base}.stderr.log",
            status=jobs_dir / f"{base}.status",
        )

    def all(self) -> tuple[Path, ...]:
        return (self.request, self.response, self.stderr, self.status)


@dataclass
class Job:
    """One remediation attempt running out of process."""

    id: str
    paths: JobPaths
    started_at: float = field(default_factory=time.monotonic)
    process: Optional[subprocess.Popen] = field(default=None, repr=False)

    def elapsed(self, now: Optional[float] = None) -> float:
        """Seconds since the job was started."""
        return (time.monotonic() if now is None else now) - self.started_at


@dataclass
class JobResult:
    """What the poller hands over when a job resolves."""
    job_id: str
    state: JobState
    status: Optional[int] = None
    stdout: str = ""
    stderr: str = ""


@dataclass
class Session:
    """Remediation state for one terminal pane.

    Invariant: ``inflight`` is only true while a job is being started
    or polled, and ``pending_job_id`` names that job once it exists.
    """

    pane_id: str
    inflight: bool = False
    pending_job_id: Optional[str] = None
    last_signature: Optional[str] = None
    last_seen_at: float = 0.0
    failed_command: str = ""
    exit_code: int = 0
    suggestion: Optional[Suggestion] = None
    generated_at: Optional[float] = None
