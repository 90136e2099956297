"""
Per-pane session state.

Handles:
- Lazy creation of one Session per pane
- Debouncing repeated failure signals
- Correlating a session with its single in-flight job
- Discarding results of jobs the session has moved past

All methods are called from the event loop thread, so the store
holds no lock.
"""

import logging
import time
from typing import Callable, Dict, Optional

from .models import Session, Suggestion

logger = logging.getLogger(__name__)

DEBOUNCE_SECS = 1.0
INTERRUPT_EXIT_CODE = 130
IGNORED_EXIT_CODES = frozenset({0, INTERRUPT_EXIT_CODE})


def make_signature(failed_command: str, exit_code: int) -> str:
    return f"{failed_command}\0{exit_code}"


def is_ignored_exit_code(exit_code: int) -> bool:
    """Success and Ctrl-C are never worth analyzing."""
    return exit_code in IGNORED_EXIT_CODES


class SessionStore:
    """Owns every Session, keyed by pane id."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._sessions: Dict[str, Session] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, pane_id: str) -> bool:
        return pane_id in self._sessions

    # -- Lookup ---------------------------------------------------------------

    def get(self, pane_id: str) -> Optional[Session]:
        return self._sessions.get(pane_id)

    def get_or_create(self, pane_id: str) -> Session:
        session = self._sessions.get(pane_id)
        if session is None:
            session = Session(pane_id=pane_id)
            self._sessions[pane_id] = session
        return session

    # -- Suggestion state -----------------------------------------------------

    def clear_suggestion(self, session: Session) -> None:
        session.suggestion = None
        session.generated_at = None

    def observe_failure(self, session: Session, failed_command: str, exit_code: int) -> bool:
        """
        Record a failure signal unless it duplicates the previous one.

        Returns:
            False when the same (command, exit code) pair was seen less
            than DEBOUNCE_SECS ago; True otherwise, after the previous
            suggestion has been cleared and the new failure recorded.
        """
        signature = make_signature(failed_command, exit_code)
        now = self._clock()
        if (
            session.last_signature == signature
            and (now - session.last_seen_at) <= DEBOUNCE_SECS
        ):
            logger.debug(f"pane {session.pane_id}: skipped duplicate signature")
            return False

        session.last_signature = signature
        session.last_seen_at = now
        self.clear_suggestion(session)
        session.failed_command = failed_command
        session.exit_code = exit_code
        return True

    # -- Job correlation ------------------------------------------------------

    def reserve(self, session: Session) -> bool:
        """Mark the session in flight. False if a job is already in flight."""
        if session.inflight:
            return False
        session.inflight = True
        session.pending_job_id = None
        return True

    def begin_job(self, session: Session, job_id: str) -> None:
        """Correlate the reserved session with the job just launched."""
        if not session.inflight:
            raise RuntimeError(f"pane {session.pane_id} was not reserved for job {job_id}")
        if session.pending_job_id is not None and session.pending_job_id != job_id:
            raise RuntimeError(
                f"pane {session.pane_id} already has job {session.pending_job_id} in flight"
            )
        session.pending_job_id = job_id

    def release(self, session: Session) -> None:
        """Drop the in-flight reservation without touching the suggestion."""
        session.inflight = False
        session.pending_job_id = None

    def is_current(self, pane_id: str, job_id: str) -> bool:
        """Whether `job_id` is still the job this pane is waiting on."""
        session = self._sessions.get(pane_id)
        return session is not None and session.pending_job_id == job_id

    def complete_job(
        self,
        session: Session,
        job_id: str,
        outcome: Optional[Suggestion],
    ) -> bool:
        """
        Apply a job outcome to the session.

        A no-op returning False when the session is no longer waiting on
        `job_id`. Otherwise releases the in-flight flag and stores the
        suggestion, or clears it when `outcome` is None.
        """
        if session.pending_job_id != job_id:
            logger.debug(f"pane {session.pane_id}: discarded stale job {job_id}")
            return False

        self.release(session)
        if outcome is None:
            self.clear_suggestion(session)
        else:
            session.suggestion = outcome
            session.generated_at = self._clock()
        return True

    # -- Host signals ---------------------------------------------------------

    def cancel(self, pane_id: str) -> Optional[Session]:
        """A new command started: forget any pending job and suggestion."""
        session = self._sessions.get(pane_id)
        if session is None:
            return None
        if session.inflight:
            logger.debug(f"pane {pane_id}: cancelled in-flight job {session.pending_job_id}")
        self.release(session)
        self.clear_suggestion(session)
        return session

    def evict(self, pane_id: str) -> Optional[Session]:
        """The pane closed: drop its session entirely."""
        return self._sessions.pop(pane_id, None)
