"""
Host interface.

The assistant never talks to a terminal directly. Whatever hosts it
(the interactive shell in shellfix.shell, a terminal emulator plugin,
tests) supplies a Pane for each terminal pane and forwards the
"command started", "command exited" and "pane closed" signals.
"""

import logging
import os
import subprocess
import sys
from abc import ABC, abstractmethod
from typing import Optional, TextIO

logger = logging.getLogger(__name__)

TOAST_ANALYZING = "shellfix-toast-analyzing"
CLEAR_LINE = "\x15"
GIT_BRANCH_TIMEOUT_SECS = 2


class Pane(ABC):
    """One terminal pane as seen by the assistant."""

    @property
    @abstractmethod
    def pane_id(self) -> str:
        """Stable identifier for the pane's lifetime."""
        ...

    @abstractmethod
    def inject_output(self, text: str) -> None:
        """Render text into the pane's display without sending it to the shell."""
        ...

    @abstractmethod
    def send_text(self, text: str) -> None:
        """Send text to the shell as if typed; a trailing newline executes it."""
        ...

    def emit_toast(self, name: str) -> None:
        """Ask the host for a transient indicator. Optional."""
        return None

    def current_working_dir(self) -> str:
        """Best-effort working directory of the pane's shell."""
        return ""


class StdoutPane(Pane):
    """A pane that writes everything to a stream. Used by `shellfix analyze`."""

    def __init__(self, pane_id: str = "stdout", stream: Optional[TextIO] = None, cwd: str = ""):
        self._pane_id = pane_id
        self._stream = stream or sys.stdout
        self._cwd = cwd or os.getcwd()

    @property
    def pane_id(self) -> str:
        return self._pane_id

    def inject_output(self, text: str) -> None:
        self._stream.write(text.replace("\r\n", "\n"))
        self._stream.flush()

    def send_text(self, text: str) -> None:
        self._stream.write(text.replace(CLEAR_LINE, ""))
        self._stream.flush()

    def current_working_dir(self) -> str:
        return self._cwd


def detect_git_branch(path: str) -> str:
    """Current git branch at `path`, or '' when unknown."""
    if not path:
        return ""
    try:
        result = subprocess.run(
            ["git", "-C", path, "rev-parse", "--abbrev-ref", "HEAD"],
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=GIT_BRANCH_TIMEOUT_SECS,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"git branch lookup failed for {path}: {e}")
        return ""
    if result.returncode != 0:
        return ""
    return result.stdout.strip()
