"""
Notifier and applier.

Renders assistant output into a pane using rich, and applies a stored
suggestion when the user asks for it:

    ╭─ Shellfix Assistant  gti is not a valid command.
    ╰─ git status    Ctrl+G

Applying always clears the pane's partially typed input first. A
dangerous command is pasted for review, never executed.
"""

import io
import logging
from enum import Enum
from typing import Optional

from rich.console import Console
from rich.style import Style
from rich.text import Text

from .errors import PASTED_ONLY_MESSAGE, DangerousCommand, NonActionableCommand, format_error_for_log
from .host import CLEAR_LINE, TOAST_ANALYZING, Pane
from .models import Session, Suggestion
from .parser import normalize_summary, sanitize_command
from .safety.classifier import is_dangerous, is_non_actionable

logger = logging.getLogger(__name__)

TITLE = "Shellfix Assistant"
DEFAULT_APPLY_HINT = "Ctrl+G"

NO_SAFE_COMMAND = "No safe command suggested"
NO_FIX_AVAILABLE = "No quick fix command is available."
PASTED_ONLY = PASTED_ONLY_MESSAGE
SEND_FAILED = "Unable to send the suggested command."
STATUS_FALLBACK = "Checking this error now."

ACCENT = Style(color="color(141)")
MUTED = Style(color="color(244)")
HEADLINE = Style(bold=True)


class ApplyResult(Enum):
    """What apply() did with the stored suggestion."""
    NOTHING = "nothing"     # No command to apply
    EXECUTED = "executed"   # Sent with a trailing newline
    PASTED = "pasted"       # Dangerous: inserted without executing
    FAILED = "failed"       # The pane refused the text


def _render(text: Text) -> str:
    """Render rich Text to a terminal string with CRLF line endings."""
    buffer = io.StringIO()
    console = Console(
        file=buffer,
        force_terminal=True,
        color_system="256",
        width=512,
        soft_wrap=True,
    )
    console.print(text, end="")
    return buffer.getvalue().replace("\r\n", "\n").replace("\n", "\r\n")


class Notifier:
    """Formats assistant output for a pane and applies suggestions."""

    def __init__(self, apply_hint: str = DEFAULT_APPLY_HINT):
        self.apply_hint = apply_hint

    # -- Rendering ------------------------------------------------------------

    def render_notice(self, summary: str, command: str = "") -> str:
        """The two-line suggestion block."""
        text = Text()
        text.append("╭─ " + TITLE, style=ACCENT)
        text.append("  ")
        text.append(summary, style=HEADLINE)
        text.append("\n")
        text.append("╰─", style=ACCENT)
        text.append(" ")
        if command:
            text.append(command)
            if self.apply_hint:
                text.append("    ")
                text.append(self.apply_hint, style=MUTED)
        else:
            text.append(NO_SAFE_COMMAND, style=MUTED)
        return "\r\n" + _render(text)

    def render_status(self, message: str) -> str:
        """A single status line. Unlike summaries, status text is kept whole."""
        text = Text()
        text.append("╰─ " + TITLE, style=ACCENT)
        text.append("  ")
        text.append(" ".join(str(message or "").split()) or STATUS_FALLBACK, style=MUTED)
        return "\r\n" + _render(text) + "\r\n"

    # -- Output ---------------------------------------------------------------

    def _inject(self, pane: Pane, output: str) -> bool:
        try:
            pane.inject_output(output)
        except Exception as e:
            logger.warning(f"pane {pane.pane_id}: inject_output failed: {e}")
            return False
        return True

    def _send(self, pane: Pane, text: str) -> bool:
        try:
            pane.send_text(text)
        except Exception as e:
            logger.warning(f"pane {pane.pane_id}: send_text failed: {e}")
            return False
        return True

    def status(self, pane: Pane, message: str) -> None:
        self._inject(pane, self.render_status(message))

    def show_loading(self, pane: Pane) -> None:
        try:
            pane.emit_toast(TOAST_ANALYZING)
        except Exception as e:
            logger.debug(f"pane {pane.pane_id}: toast failed: {e}")

    def notify(self, pane: Pane, suggestion: Suggestion) -> None:
        """Show a fresh suggestion, then leave the prompt ready for input."""
        summary = normalize_summary(suggestion.summary)
        command = sanitize_command(suggestion.command)
        if self._inject(pane, self.render_notice(summary, command)):
            self._send(pane, "\n")

    # -- Apply ----------------------------------------------------------------

    def apply(self, pane: Pane, session: Optional[Session]) -> ApplyResult:
        """
        Send the session's suggested command to the pane.

        The command is classified again here: a non-actionable command
        is treated as absent, and a dangerous command is pasted without
        the executing newline and a warning is shown.
        """
        suggestion = session.suggestion if session else None
        command = sanitize_command(suggestion.command) if suggestion else ""
        if command and is_non_actionable(command):
            logger.debug(format_error_for_log(NonActionableCommand(command), "apply"))
            command = ""
        if not command:
            self.status(pane, NO_FIX_AVAILABLE)
            return ApplyResult.NOTHING

        dangerous = is_dangerous(command)
        send_text = command if dangerous else command + "\n"
        if not self._send(pane, CLEAR_LINE + send_text):
            self.status(pane, SEND_FAILED)
            return ApplyResult.FAILED

        if dangerous:
            warning = DangerousCommand(command)
            logger.info(format_error_for_log(warning, "apply"))
            self.status(pane, warning.user_message)
            return ApplyResult.PASTED
        return ApplyResult.EXECUTED
