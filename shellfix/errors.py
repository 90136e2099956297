"""
Error types for shellfix.

Provides:
- Custom exception types for every failure the assistant can hit
- Categories used when writing the debug log
- User-facing status lines for each failure

None of these are fatal: the assistant catches them at the event
boundary and turns them into a short status line in the pane.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """Categories of errors for better handling."""
    CONFIGURATION = "configuration"
    JOB = "job"
    RESPONSE = "response"
    SAFETY = "safety"
    UNKNOWN = "unknown"


ANALYZE_FAILED_MESSAGE = "Could not analyze this error right now."
PASTED_ONLY_MESSAGE = "Suggested command pasted only. Please review before running."


class ShellfixError(Exception):
    """Base exception for shellfix errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        user_message: Optional[str] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.category = category
        self.user_message = user_message or message
        self.recoverable = recoverable


class SettingsDisabled(ShellfixError):
    """The assistant is turned off or has no API key. Never shown to the user."""

    def __init__(self, message: str = "assistant disabled", **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            user_message=kwargs.pop("user_message", ""),
            **kwargs
        )


class JobLaunchFailure(ShellfixError):
    """The background request could not be started."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.JOB,
            user_message=kwargs.pop("user_message", ANALYZE_FAILED_MESSAGE),
            **kwargs
        )


class JobTimeout(ShellfixError):
    """No status marker appeared before the polling deadline."""

    def __init__(self, job_id: str, deadline: float, **kwargs):
        super().__init__(
            f"job {job_id} timed out after {deadline:g}s",
            category=ErrorCategory.JOB,
            user_message=kwargs.pop("user_message", ANALYZE_FAILED_MESSAGE),
            **kwargs
        )
        self.job_id = job_id
        self.deadline = deadline


class InvalidResponse(ShellfixError):
    """The child exited non-zero or produced output we could not use."""

    def __init__(self, message: str, stderr: str = "", status: Optional[int] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.RESPONSE,
            user_message=kwargs.pop("user_message", ANALYZE_FAILED_MESSAGE),
            **kwargs
        )
        self.stderr = stderr
        self.status = status


class DangerousCommand(ShellfixError):
    """A suggestion matched a destructive pattern and must not be executed."""

    def __init__(self, command: str, **kwargs):
        super().__init__(
            f"dangerous command: {command}",
            category=ErrorCategory.SAFETY,
            user_message=kwargs.pop("user_message", PASTED_ONLY_MESSAGE),
            **kwargs
        )
        self.command = command


class NonActionableCommand(ShellfixError):
    """A suggestion is diagnostic-only and is withheld from the user."""

    def __init__(self, command: str, **kwargs):
        super().__init__(
            f"non-actionable command: {command}",
            category=ErrorCategory.SAFETY,
            **kwargs
        )
        self.command = command


def format_error_for_log(error: ShellfixError, operation: str) -> str:
    """
    Format an error for the debug log.

    Args:
        error: The error raised
        operation: What the assistant was doing at the time

    Returns:
        Formatted log message
    """
    lines = [f"{error.category.value}: {operation}: {error}"]

    stderr = getattr(error, "stderr", "")
    if stderr:
        lines.append(f"  stderr: {stderr.strip()[:500]}")

    return "\n".join(lines)
