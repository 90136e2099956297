"""
Response parser and sanitizer.

Turns the raw artifacts of a finished job into a Suggestion:
- rejects non-zero child exits and unusable response bodies
- extracts the assistant message from a chat-completions response
- parses the model's JSON leniently, tolerating prose around it
- bounds the summary to one short sentence and the command to one line
- withholds commands that would not actually fix anything
"""

import json
import logging
import re
from typing import Any, Optional, Union

from .errors import InvalidResponse, NonActionableCommand, format_error_for_log
from .models import Suggestion
from .safety.classifier import is_non_actionable

logger = logging.getLogger(__name__)

MAX_SUMMARY_CHARS = 72
FALLBACK_SUMMARY = "Fix the command and retry."

_TERMINAL_PUNCTUATION = ".!?。！？"
_SENTENCE_END_RE = re.compile(r"[.!?](?=\s|$)|[。！？]")
_PARENTHESIZED_RE = re.compile(r"\([^()]*\)")
_TRAILING_JUNK_RE = re.compile(r"[\s,;:\-]+$")

# (pattern, replacement), applied in order
_SUMMARY_REWRITES = [
    (r"^\s*the\s+user\s+typed\s+", ""),
    (r"^\s*you\s+typed\s+", ""),
    (r"^\s*this\s+command\s+", "Command "),
    (r"^\s*command\s+failed\b\s*:?\s*", ""),
    (r"^\s*failed\b\s*:?\s*", ""),
    (r"^\s*error\b\s*:?\s*", ""),
    (r"^\s*the\s+command\s+", "Command "),
    (r"\s+which\s+is\s+not\s+a\s+valid\s+", " is not a valid "),
    (r"\s+is\s+not\s+recognized\s+", " is not recognized "),
    (r"\s+maybe\s+.*$", ""),
    (r"\s+git\s+suggests.*$", ""),
    (r"\s+did\s+you\s+mean.*$", ""),
]
_summary_rewrites = [
    (re.compile(pattern, re.IGNORECASE), replacement)
    for pattern, replacement in _SUMMARY_REWRITES
]


# -- Summary ------------------------------------------------------------------

def _truncate_at_word(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    shortened = text[:limit]
    if not text[limit].isspace():
        shortened = re.sub(r"\s+\S*$", "", shortened)
    if not shortened.strip():
        shortened = text[:limit]
    return shortened.strip()


def normalize_summary(value: Any, fallback: str = FALLBACK_SUMMARY) -> str:
    """
    Reduce model text to one short sentence.

    The result is at most MAX_SUMMARY_CHARS long, contains no quotes or
    parenthesized asides, and always ends in terminal punctuation.
    """
    text = str(value or "").strip() or fallback

    text = re.sub(r"[\r\n]+", " ", text)
    text = re.sub(r"[\"'`]", "", text)
    previous = None
    while previous != text:
        previous = text
        text = _PARENTHESIZED_RE.sub("", text)
    for pattern, replacement in _summary_rewrites:
        text = pattern.sub(replacement, text)
    text = re.sub(r"\s+", " ", text).strip()

    sentence_end = _SENTENCE_END_RE.search(text)
    if sentence_end:
        text = text[:sentence_end.end()]

    ends_cleanly = text.endswith(tuple(_TERMINAL_PUNCTUATION))
    if len(text) > MAX_SUMMARY_CHARS or (len(text) == MAX_SUMMARY_CHARS and not ends_cleanly):
        text = _truncate_at_word(text, MAX_SUMMARY_CHARS - 1)

    text = _TRAILING_JUNK_RE.sub("", text)
    if not text:
        return FALLBACK_SUMMARY
    if not text.endswith(tuple(_TERMINAL_PUNCTUATION)):
        text += "."
    return text


# -- Command ------------------------------------------------------------------

def sanitize_command(value: Any) -> str:
    """Reduce a suggested command to a single bare line."""
    if not isinstance(value, str):
        return ""

    command = value.strip().replace("\r", "")
    if command.startswith("```"):
        if "\n" in command:
            command = command.split("\n", 1)[1]
        else:
            command = command[3:]
    if command.endswith("```"):
        command = command[:-3]
    command = command.strip()

    first_line = next((line for line in command.split("\n") if line.strip()), "")
    first_line = first_line.strip()
    if len(first_line) >= 2 and first_line.startswith("`") and first_line.endswith("`"):
        first_line = first_line[1:-1].strip()
    return re.sub(r"^\$\s*", "", first_line)


# -- Response body ------------------------------------------------------------

def extract_message_content(response: Any) -> Optional[str]:
    """
    Pull the assistant message out of a chat-completions response.

    Supports both a plain string content and a list of chunks, where
    each chunk is a string or an object with a 'text' field.
    """
    if not isinstance(response, dict):
        return None
    choices = response.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict):
        return None

    content = message.get("content")
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return None

    chunks = []
    for item in content:
        if isinstance(item, dict) and isinstance(item.get("text"), str):
            chunks.append(item["text"])
        elif isinstance(item, str):
            chunks.append(item)
    if not chunks:
        return None
    return "\n".join(chunks)


def parse_json_object(value: Any) -> Optional[dict]:
    """
    Parse a JSON object, tolerating prose around it.

    Tries the whole string first, then the span from the first '{' to
    the last '}'.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()

    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace == -1 or last_brace < first_brace:
        return None
    try:
        parsed = json.loads(text[first_brace:last_brace + 1])
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _coerce_confidence(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if confidence != confidence:  # NaN
        return 0.0
    return min(max(confidence, 0.0), 1.0)


def parse_result(content: str) -> Suggestion:
    """Build a Suggestion from the model's message text."""
    parsed = parse_json_object(content)
    if parsed is not None:
        return Suggestion(
            summary=normalize_summary(parsed.get("summary")),
            command=sanitize_command(parsed.get("command") or ""),
            why=str(parsed.get("why") or "").strip(),
            confidence=_coerce_confidence(parsed.get("confidence")),
        )

    first_line = next((line for line in (content or "").split("\n") if line.strip()), "")
    return Suggestion(summary=normalize_summary(first_line))


def _coerce_status(raw_status: Union[int, str, None]) -> Optional[int]:
    if isinstance(raw_status, int):
        return raw_status
    try:
        return int(str(raw_status).strip())
    except (TypeError, ValueError):
        return None


def parse_response(
    raw_status: Union[int, str, None],
    raw_stdout: str,
    raw_stderr: str = "",
    model: str = "",
) -> Suggestion:
    """
    Turn a finished job's artifacts into a Suggestion.

    Args:
        raw_status: Exit status written by the worker
        raw_stdout: Response body
        raw_stderr: Worker diagnostics, kept on the error for logging
        model: Model tag recorded on the suggestion

    Raises:
        InvalidResponse: non-zero status, malformed body or empty content
    """
    status = _coerce_status(raw_status)
    if status != 0:
        raise InvalidResponse(
            f"request failed with status {raw_status!r}",
            stderr=raw_stderr or "",
            status=status,
        )

    try:
        response = json.loads(raw_stdout or "")
    except ValueError:
        raise InvalidResponse("invalid json response", stderr=raw_stderr or "", status=status)

    content = extract_message_content(response)
    if not content or not content.strip():
        raise InvalidResponse("empty model response", stderr=raw_stderr or "", status=status)

    suggestion = parse_result(content)
    if suggestion.command and is_non_actionable(suggestion.command):
        logger.debug(format_error_for_log(NonActionableCommand(suggestion.command), "parse response"))
        suggestion.command = ""
    suggestion.model = model
    return suggestion
