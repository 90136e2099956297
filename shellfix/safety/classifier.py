"""
Command classifier for suggested fixes.

Two pure predicates decide how a suggestion may be offered:
- dangerous commands are never executed automatically, only pasted
- non-actionable commands (diagnostic probes, no-ops) are withheld

Both are applied to the sanitized command when a response is parsed
and again right before a suggestion is applied.
"""

import re
from enum import Enum
from typing import Optional
from dataclasses import dataclass


class CommandRisk(Enum):
    """How a suggested command may be offered."""
    SAFE = "safe"                      # Send and execute on apply
    DANGEROUS = "dangerous"            # Paste only, never execute
    NON_ACTIONABLE = "non_actionable"  # Withhold the command entirely


@dataclass
class CommandCheck:
    """Result of classifying a command."""
    risk: CommandRisk
    reason: Optional[str] = None

    @property
    def may_execute(self) -> bool:
        return self.risk == CommandRisk.SAFE


# Matched against the lowercased command with any leading sudo removed
DANGEROUS_PATTERNS = [
    (r"^:\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:$", "Fork bomb"),
    (r"^mkfs", "Formatting a disk"),
    (r"^dd\s+if=", "Raw disk copy"),
    (r"^shutdown\b", "Shutting down the computer"),
    (r"^reboot\b", "Restarting the computer"),
    (r"^poweroff\b", "Powering off the computer"),
    (r"^git\s+reset\s+--hard\b", "Discarding local git changes"),
]

NON_ACTIONABLE_PATTERNS = [
    (r"^type\s+", "Probes a command type"),
    (r"^which\s+", "Probes the PATH"),
    (r"^command\s+-v\s+", "Probes the PATH"),
    (r"^ll\s*$", "Lists files through an alias"),
    (r"^ll\s+", "Lists files through an alias"),
    (r"\|\|", "Falls back instead of fixing"),
    (r"&&\s*echo", "Only echoes a message"),
    (r";\s*echo", "Only echoes a message"),
]

_SUDO_PREFIX_RE = re.compile(r"^sudo\s+")
_RM_RE = re.compile(r"^(?:sudo\s+(?:.*\s)?)?rm\s+(?P<args>.*)$")
_GIT_CLEAN_RE = re.compile(r"^git\s+clean\s+(?P<args>.*)$")

_dangerous = [(re.compile(pattern), reason) for pattern, reason in DANGEROUS_PATTERNS]
_non_actionable = [(re.compile(pattern), reason) for pattern, reason in NON_ACTIONABLE_PATTERNS]


def _normalize(command: Optional[str]) -> str:
    if not isinstance(command, str):
        return ""
    return command.strip().lower()


def _short_flags(args: str) -> tuple[str, set]:
    """Collect short flag letters and long options from an argument string."""
    letters = ""
    long_options = set()
    for token in args.split():
        if token == "--":
            break
        if token.startswith("--"):
            long_options.add(token)
        elif token.startswith("-") and len(token) > 1:
            letters += token[1:]
    return letters, long_options


def _is_recursive_force_rm(lower: str) -> bool:
    match = _RM_RE.match(lower)
    if not match:
        return False
    letters, long_options = _short_flags(match.group("args"))
    recursive = "r" in letters or "--recursive" in long_options
    force = "f" in letters or "--force" in long_options
    return recursive and force


def _is_forced_git_clean(lower: str) -> bool:
    match = _GIT_CLEAN_RE.match(lower)
    if not match:
        return False
    letters, long_options = _short_flags(match.group("args"))
    force = "f" in letters or "--force" in long_options
    return force and "d" in letters


def dangerous_reason(command: Optional[str]) -> Optional[str]:
    """Why a command is dangerous, or None when it is not."""
    lower = _normalize(command)
    if not lower:
        return None

    if _is_recursive_force_rm(lower):
        return "Deleting files recursively without confirmation"

    normalized = _SUDO_PREFIX_RE.sub("", lower, count=1)
    if _is_forced_git_clean(normalized):
        return "Deleting untracked files and directories"

    for pattern, reason in _dangerous:
        if pattern.search(lower) or pattern.search(normalized):
            return reason
    return None


def non_actionable_reason(command: Optional[str]) -> Optional[str]:
    """Why a command does not fix anything, or None when it might."""
    lower = _normalize(command)
    if not lower:
        return None
    for pattern, reason in _non_actionable:
        if pattern.search(lower):
            return reason
    return None


def is_dangerous(command: Optional[str]) -> bool:
    return dangerous_reason(command) is not None


def is_non_actionable(command: Optional[str]) -> bool:
    return non_actionable_reason(command) is not None


def classify(command: Optional[str]) -> CommandCheck:
    """
    Classify a suggested command.

    Dangerous wins over non-actionable so that a destructive command is
    never reported as merely unhelpful.
    """
    reason = dangerous_reason(command)
    if reason:
        return CommandCheck(risk=CommandRisk.DANGEROUS, reason=reason)

    reason = non_actionable_reason(command)
    if reason:
        return CommandCheck(risk=CommandRisk.NON_ACTIONABLE, reason=reason)

    return CommandCheck(risk=CommandRisk.SAFE)
