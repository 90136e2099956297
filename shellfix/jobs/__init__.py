"""Background remediation jobs: launch, poll, and the worker process."""

from .runner import JobRunner
from .poller import JobPoller

__all__ = ["JobRunner", "JobPoller"]
