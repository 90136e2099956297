"""
Configuration management for shellfix.

Settings come from two sources, highest priority first:
1. Environment variables (SHELLFIX_*)
2. The assistant file (<state dir>/assistant.toml)

Anything missing falls back to the defaults on the Settings model.
The loader is called once per failure event so edits to the file are
picked up without a restart; it never raises.
"""

import logging
import os
import re
import sys
from pathlib import Path
from typing import Any, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.vivgrid.com/v1"
DEFAULT_MODEL = "gpt-5-mini"
TIMEOUT_SECS = 12
SETTINGS_FILENAME = "assistant.toml"

_KEY_VALUE_RE = re.compile(r"^\s*([\w-]+)\s*=\s*(.*?)\s*$")
_TABLE_HEADER_RE = re.compile(r"^\s*\[")


class Settings(BaseModel):
    """Resolved assistant settings."""
    enabled: bool = Field(default=True, description="Send failed commands for analysis")
    base_url: str = Field(default=DEFAULT_BASE_URL, description="Chat-completions API root URL")
    api_key: str = Field(default="", description="Provider API key")
    model: str = Field(default=DEFAULT_MODEL, description="Model id")
    timeout_secs: int = Field(default=TIMEOUT_SECS, description="Request timeout in seconds")
    debug: bool = Field(default=False, description="Write the debug log")

    @property
    def is_usable(self) -> bool:
        """True when a request can actually be made."""
        return self.enabled and bool(self.api_key)

    def masked_api_key(self) -> str:
        """The API key with everything but the last four characters hidden."""
        if not self.api_key:
            return ""
        if len(self.api_key) <= 4:
            return "*" * len(self.api_key)
        return "*" * (len(self.api_key) - 4) + self.api_key[-4:]


def get_state_dir() -> Path:
    """Directory holding the settings file, job artifacts and the debug log."""
    override = os.environ.get("SHELLFIX_STATE_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "shellfix"


def get_settings_path() -> Path:
    return get_state_dir() / SETTINGS_FILENAME


def get_jobs_dir() -> Path:
    return get_state_dir() / "ai_jobs"


def strip_inline_comment(line: str) -> str:
    """Drop a trailing '# comment' that is not inside a quoted string."""
    in_single = False
    in_double = False
    escaped = False

    for index, ch in enumerate(line):
        if in_double:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_double = False
        elif in_single:
            if ch == "'":
                in_single = False
        elif ch == '"':
            in_double = True
        elif ch == "'":
            in_single = True
        elif ch == "#":
            return line[:index].strip()

    return line.strip()


def strip_wrapping_quotes(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_setting_value(raw_value: str) -> Any:
    """
    Parse the right-hand side of a 'key = value' line.

    Returns None for an empty value, a comma-joined string for a
    '[a, b]' list, a bool for true/false, a number when it parses as
    one, otherwise the string with surrounding quotes removed.
    """
    value = raw_value.strip()
    if not value:
        return None

    if value.startswith("[") and value.endswith("]"):
        items = []
        for part in value[1:-1].split(","):
            item = strip_wrapping_quotes(part)
            if item:
                items.append(item)
        return ",".join(items)

    if value == "true":
        return True
    if value == "false":
        return False

    for number_type in (int, float):
        try:
            return number_type(value)
        except ValueError:
            pass

    return strip_wrapping_quotes(value)


def parse_settings_text(text: str) -> dict[str, Any]:
    """
    Parse settings file content into a flat dict.

    Well-formed TOML goes through tomllib and only its top-level keys are
    kept. Anything tomllib rejects (bare strings, for instance) is read
    line by line instead.
    """
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError:
        return parse_settings_lines(text)

    settings: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            continue
        if isinstance(value, list):
            value = ",".join(str(item) for item in value if str(item))
        settings[key] = value
    return settings


def parse_settings_lines(text: str) -> dict[str, Any]:
    """Lenient 'key = value' parser. Table headers are skipped."""
    settings: dict[str, Any] = {}
    for raw_line in text.splitlines():
        line = strip_inline_comment(raw_line)
        if not line or _TABLE_HEADER_RE.match(line):
            continue
        match = _KEY_VALUE_RE.match(line)
        if not match:
            continue
        parsed = parse_setting_value(match.group(2))
        if parsed is not None:
            settings[match.group(1)] = parsed
    return settings


def stringify_setting(value: Any) -> Optional[str]:
    """Normalize a parsed value; booleans become '1' / '0', blanks None."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        normalized = value.strip()
        if not normalized:
            return None
        if normalized == "true":
            return "1"
        if normalized == "false":
            return "0"
        return normalized
    return None


def load_file_settings(path: Path) -> dict[str, Any]:
    """Read the settings file; a missing or unreadable file yields {}."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Cannot read settings file {path}: {e}")
        return {}
    return parse_settings_text(text)


def load_env_overrides() -> dict[str, Any]:
    """Load settings overrides from environment variables."""
    overrides: dict[str, Any] = {}

    api_key = os.environ.get("SHELLFIX_API_KEY")
    if api_key:
        overrides["api_key"] = api_key

    model = os.environ.get("SHELLFIX_MODEL")
    if model:
        overrides["model"] = model

    if os.environ.get("SHELLFIX_DEBUG"):
        overrides["debug"] = True

    return overrides


def load_settings(path: Optional[Path] = None) -> Settings:
    """Resolve the current settings. Never raises."""
    raw = load_file_settings(path or get_settings_path())
    raw.update(load_env_overrides())

    def read(key: str, default: str) -> str:
        value = stringify_setting(raw.get(key))
        return value if value else default

    defaults = Settings()
    return Settings(
        enabled=read("enabled", "1") != "0",
        base_url=read("base_url", defaults.base_url),
        api_key=read("api_key", ""),
        model=read("model", defaults.model),
        debug=read("debug", "0") not in ("0", ""),
    )


def default_settings_template() -> str:
    """Content written by `shellfix init` when no settings file exists."""
    return (
        "# shellfix assistant configuration\n"
        "# enabled: true enables command analysis suggestions; false disables requests.\n"
        "# api_key: provider API key, example: \"sk-xxxx\".\n"
        f"# model: model id, example: \"{DEFAULT_MODEL}\".\n"
        "# base_url: chat-completions API root URL.\n"
        "# debug: true writes assistant-debug.log next to this file.\n"
        "\n"
        "enabled = true\n"
        "# api_key = \"<your_api_key>\"\n"
        f"model = \"{DEFAULT_MODEL}\"\n"
        f"base_url = \"{DEFAULT_BASE_URL}\"\n"
    )


def has_top_level_key(text: str, key: str) -> bool:
    """Whether `key` is assigned before the first table header."""
    for raw_line in text.splitlines():
        line = strip_inline_comment(raw_line)
        if not line:
            continue
        if _TABLE_HEADER_RE.match(line):
            return False
        match = _KEY_VALUE_RE.match(line)
        if match and match.group(1) == key:
            return True
    return False


def add_required_keys(text: str) -> tuple[str, bool]:
    """
    Insert `model` and `base_url` when missing.

    New lines go just before the first table header, or at the end.

    Returns:
        (updated text, whether anything changed)
    """
    missing = []
    if not has_top_level_key(text, "model"):
        missing.append(f"model = \"{DEFAULT_MODEL}\"")
    if not has_top_level_key(text, "base_url"):
        missing.append(f"base_url = \"{DEFAULT_BASE_URL}\"")

    if not missing:
        return text, False

    block = "\n".join(missing) + "\n"
    offset = 0
    for line in text.splitlines(keepends=True):
        if _TABLE_HEADER_RE.match(line) and strip_inline_comment(line):
            before, after = text[:offset], text[offset:]
            if before and not before.endswith("\n"):
                before += "\n"
            return before + block + "\n" + after, True
        offset += len(line)

    if text and not text.endswith("\n"):
        text += "\n"
    return text + block, True


def ensure_settings_file(path: Optional[Path] = None) -> Path:
    """
    Make sure the settings file exists and carries the required keys.

    Raises:
        OSError: if the state directory or file cannot be written
    """
    path = path or get_settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    if not path.exists():
        path.write_text(default_settings_template(), encoding="utf-8")
        logger.info(f"Created settings file {path}")

    text = path.read_text(encoding="utf-8")
    updated, changed = add_required_keys(text)
    if changed:
        path.write_text(updated, encoding="utf-8")
        logger.info(f"Added missing keys to {path}")

    return path
