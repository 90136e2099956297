"""
The assistant: reacts to failed commands in terminal panes.

Wires the host signals to the rest of the package:

    command started  -> remember the command line, drop any pending work
    command exited   -> debounce, start a background job, poll it
    job resolved     -> parse, store and show the suggestion
    apply requested  -> send the stored command back to the pane
    pane closed      -> forget the pane, kill its job

Every handler runs on the event loop and returns quickly. Errors are
caught here and turned into a status line in the pane; nothing is
raised back into the host.
"""

import asyncio
import logging
import time
from functools import partial
from typing import Callable, Dict, Optional

from .config import Settings, load_settings
from .errors import (
    InvalidResponse,
    JobLaunchFailure,
    JobTimeout,
    SettingsDisabled,
    format_error_for_log,
)
from .host import Pane, detect_git_branch
from .jobs import JobPoller, JobRunner
from .logs import setup_logging
from .models import Job, JobResult, JobState
from .notifier import ApplyResult, Notifier
from .parser import parse_response
from .prompts import build_messages, encode_payload
from .session import SessionStore, is_ignored_exit_code

logger = logging.getLogger(__name__)


class Assistant:
    """One assistant per host process, shared by all of its panes."""

    def __init__(
        self,
        settings_loader: Callable[[], Settings] = load_settings,
        runner: Optional[JobRunner] = None,
        poller: Optional[JobPoller] = None,
        notifier: Optional[Notifier] = None,
        sessions: Optional[SessionStore] = None,
        branch_detector: Callable[[str], str] = detect_git_branch,
        clock: Callable[[], float] = time.monotonic,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._load_settings = settings_loader
        self.runner = runner or JobRunner(clock=clock)
        self.poller = poller or JobPoller(self.runner, clock=clock, loop=loop)
        self.notifier = notifier or Notifier()
        self.sessions = sessions or SessionStore(clock=clock)
        self._detect_branch = branch_detector
        self._panes: Dict[str, Pane] = {}
        self._last_command: Dict[str, str] = {}

    # -- Host signals ---------------------------------------------------------

    def on_command_started(self, pane: Pane, command_text: str) -> None:
        """A command line was submitted in `pane`."""
        pane_id = pane.pane_id
        self._panes[pane_id] = pane
        self._last_command[pane_id] = (command_text or "").strip()
        # Any job still running for this pane is now stale; the poller
        # cleans up after it and the guard drops its result.
        self.sessions.cancel(pane_id)

    def on_command_exited(self, pane: Pane, exit_code) -> Optional[Job]:
        """
        The last command in `pane` finished.

        Returns:
            The job started for the failure, or None when nothing was
            started (success, interrupt, duplicate, disabled, busy...).
        """
        pane_id = pane.pane_id
        self._panes[pane_id] = pane

        try:
            code = int(exit_code)
        except (TypeError, ValueError):
            logger.debug(f"pane {pane_id}: ignored non-integer exit code {exit_code!r}")
            return None
        if is_ignored_exit_code(code):
            return None

        session = self.sessions.get_or_create(pane_id)
        if session.inflight:
            logger.debug(f"pane {pane_id}: skipped, job {session.pending_job_id} in flight")
            return None

        # Consumed so a bare Enter cannot re-trigger analysis of the same line
        failed_command = self._last_command.pop(pane_id, "")
        if not failed_command:
            logger.debug(f"pane {pane_id}: skipped, no command text")
            return None

        if not self.sessions.observe_failure(session, failed_command, code):
            return None

        try:
            settings = self._current_settings()
        except SettingsDisabled as e:
            logger.debug(format_error_for_log(e, "analyze"))
            return None

        cwd = self._pane_cwd(pane)
        messages = build_messages(failed_command, code, cwd, self._detect_branch(cwd))
        payload = encode_payload(settings.model, messages)

        # Reserved only once nothing but the launch can fail
        self.sessions.reserve(session)
        self.notifier.show_loading(pane)

        try:
            job = self.runner.start(payload, settings)
        except JobLaunchFailure as e:
            logger.warning(format_error_for_log(e, "start job"))
            self.sessions.release(session)
            self.sessions.clear_suggestion(session)
            self.notifier.status(pane, e.user_message)
            return None

        self.sessions.begin_job(session, job.id)
        logger.debug(f"pane {pane_id}: analyzing {failed_command!r} exit={code} job={job.id}")
        self.poller.watch(
            job,
            settings.timeout_secs,
            is_current=partial(self.sessions.is_current, pane_id, job.id),
            on_resolved=partial(self._on_job_resolved, pane_id, settings),
        )
        return job

    def apply(self, pane: Pane) -> ApplyResult:
        """The user pressed the apply key in `pane`."""
        self._panes[pane.pane_id] = pane
        return self.notifier.apply(pane, self.sessions.get(pane.pane_id))

    def close_pane(self, pane_id: str) -> None:
        """The pane is gone: drop its session and kill its job."""
        session = self.sessions.evict(pane_id)
        self._panes.pop(pane_id, None)
        self._last_command.pop(pane_id, None)
        if session is not None and session.pending_job_id:
            self.poller.cancel(session.pending_job_id, terminate=True)
            logger.debug(f"pane {pane_id}: closed, job {session.pending_job_id} terminated")

    def shutdown(self) -> None:
        """Stop every job; called when the host exits."""
        self.poller.cancel_all()

    # -- Job resolution -------------------------------------------------------

    def _on_job_resolved(self, pane_id: str, settings: Settings, result: JobResult) -> None:
        session = self.sessions.get(pane_id)
        pane = self._panes.get(pane_id)
        if session is None or pane is None:
            return

        if result.state == JobState.TIMED_OUT:
            error = JobTimeout(result.job_id, self.poller.deadline_for(settings.timeout_secs))
            if self.sessions.complete_job(session, result.job_id, None):
                logger.warning(format_error_for_log(error, "poll job"))
                self.notifier.status(pane, error.user_message)
            return

        try:
            suggestion = parse_response(result.status, result.stdout, result.stderr, model=settings.model)
        except InvalidResponse as e:
            if self.sessions.complete_job(session, result.job_id, None):
                logger.warning(format_error_for_log(e, "parse response"))
                self.notifier.status(pane, e.user_message)
            return

        if not self.sessions.complete_job(session, result.job_id, suggestion):
            return
        logger.debug(f"pane {pane_id}: suggestion {suggestion.command!r} ({suggestion.summary})")
        self.notifier.notify(pane, suggestion)

    # -- Helpers --------------------------------------------------------------

    def _current_settings(self) -> Settings:
        """Reload settings for this event.

        Raises:
            SettingsDisabled: the assistant is off or has no API key
        """
        settings = self._load_settings()
        setup_logging(settings.debug)
        if not settings.enabled:
            raise SettingsDisabled("assistant disabled in settings")
        if not settings.api_key:
            raise SettingsDisabled("no api key configured")
        return settings

    def _pane_cwd(self, pane: Pane) -> str:
        try:
            return pane.current_working_dir() or ""
        except Exception as e:
            logger.debug(f"pane {pane.pane_id}: cwd lookup failed: {e}")
            return ""
