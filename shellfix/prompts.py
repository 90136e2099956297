"""
Request builder for the remediation call.

Builds the fixed two-message chat exchange sent for every failed
command, and the JSON payload the background worker posts.
"""

import json


SYSTEM_PROMPT = (
    "You are a shell troubleshooting assistant. Output English only and return "
    "exactly one JSON object with keys summary, command, why, confidence. "
    "Do not use markdown or code fences. summary must be one concise sentence "
    "<= 72 chars and must not contain parentheses. command must be a single "
    "direct fix command without commentary. Avoid diagnostic-only commands such "
    "as type or which, alias probing, placeholders, and destructive defaults. "
    "Never use aliases like ll. If you are not confident about a direct fix, "
    "set command to an empty string."
)


def build_messages(failed_command: str, exit_code: int, cwd: str = "", git_branch: str = "") -> list[dict]:
    """
    Build the system and user messages for one failed command.

    Args:
        failed_command: The command line that failed
        exit_code: Its exit status
        cwd: Working directory of the pane, empty if unknown
        git_branch: Current git branch, empty if unknown or not a repo

    Returns:
        List of chat messages
    """
    context = [
        f"Command: {failed_command}",
        f"Exit code: {exit_code}",
        f"Working directory: {cwd or '(unknown)'}",
    ]
    if git_branch:
        context.append(f"Git branch: {git_branch}")

    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": "\n".join(context)},
    ]


def encode_payload(model: str, messages: list[dict]) -> str:
    """Serialize the chat-completions request body."""
    return json.dumps({"model": model, "messages": messages, "stream": False})


def chat_endpoint(base_url: str) -> str:
    """The chat-completions URL for an API root, e.g. https://host/v1."""
    return base_url.strip().rstrip("/") + "/chat/completions"
