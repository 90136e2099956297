"""
Background worker: performs one chat-completions call.

Runs as a detached child of the assistant:

    python -m shellfix.jobs.worker BASE_URL TIMEOUT REQUEST RESPONSE STDERR STATUS

The API key is read from SHELLFIX_API_KEY. The response body goes to
RESPONSE, any error text to STDERR, and the numeric exit status to
STATUS. STATUS is written last; its appearance means the job is done.

Status codes follow curl's so logs read the same whichever transport
produced them: 0 success, 7 connection failure, 22 HTTP error,
28 timeout, 1 anything else.

The SDK timeout bounds each connect and read, not the whole call, so the
call runs on a daemon thread and is abandoned once TIMEOUT has passed
in total. The status is then 28 and the process exits, taking the
thread with it.
"""

import json
import os
import sys
import threading
from pathlib import Path
from typing import Optional

import httpx
from openai import OpenAI
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    RateLimitError,
)

API_KEY_ENV = "SHELLFIX_API_KEY"

STATUS_OK = 0
STATUS_ERROR = 1
STATUS_CONNECTION = 7
STATUS_HTTP = 22
STATUS_TIMEOUT = 28

CONNECT_TIMEOUT_SECS = 3.0


class WorkerError(Exception):
    """A failed request, with the status code to report."""

    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.status = status


def handle_request_error(error: Exception) -> WorkerError:
    """Convert OpenAI SDK errors to a WorkerError with a status code."""
    if isinstance(error, WorkerError):
        return error
    elif isinstance(error, AuthenticationError):
        return WorkerError("Invalid API key. Check api_key in assistant.toml.", STATUS_HTTP)
    elif isinstance(error, RateLimitError):
        return WorkerError("Rate limit reached. Please wait a moment and try again.", STATUS_HTTP)
    elif isinstance(error, APIStatusError):
        return WorkerError(f"HTTP {error.status_code}: {str(error)[:200]}", STATUS_HTTP)
    elif isinstance(error, APITimeoutError):
        return WorkerError("Request timed out.", STATUS_TIMEOUT)
    elif isinstance(error, APIConnectionError):
        return WorkerError("Cannot connect to the API endpoint.", STATUS_CONNECTION)
    else:
        return WorkerError(f"Unexpected error: {str(error)[:200]}", STATUS_ERROR)


def request_completion(base_url: str, api_key: str, timeout: float, payload: dict) -> str:
    """POST the payload to {base_url}/chat/completions and return the raw body."""
    client = OpenAI(
        api_key=api_key,
        base_url=base_url.strip().rstrip("/"),
        timeout=httpx.Timeout(timeout, connect=CONNECT_TIMEOUT_SECS),
        max_retries=0,
    )
    raw = client.chat.completions.with_raw_response.create(
        model=payload["model"],
        messages=payload["messages"],
        stream=False,
    )
    return raw.http_response.text


def request_with_deadline(base_url: str, api_key: str, timeout: float, payload: dict) -> str:
    """Run request_completion, giving up once `timeout` seconds have passed overall."""
    outcome: dict = {}

    def _request():
        try:
            outcome["body"] = request_completion(base_url, api_key, timeout, payload)
        except Exception as e:
            outcome["error"] = e

    request_thread = threading.Thread(target=_request, daemon=True)
    request_thread.start()
    request_thread.join(timeout=timeout)

    if request_thread.is_alive():
        raise WorkerError(f"Request timed out after {timeout:g}s.", STATUS_TIMEOUT)
    if "error" in outcome:
        raise outcome["error"]
    return outcome["body"]


def write_status(path: Path, status: int) -> None:
    """Write the status marker atomically so a poller never sees half of it."""
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(str(status), encoding="utf-8")
    os.replace(tmp_path, path)


def run(
    base_url: str,
    timeout: float,
    request_path: Path,
    response_path: Path,
    stderr_path: Path,
    status_path: Path,
    api_key: Optional[str] = None,
) -> int:
    """Perform the request and write all three output artifacts."""
    api_key = api_key if api_key is not None else os.environ.get(API_KEY_ENV, "")
    status = STATUS_OK
    body = ""
    error_text = ""

    try:
        payload = json.loads(request_path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict) or "model" not in payload or "messages" not in payload:
            raise ValueError("missing model or messages")
    except (OSError, ValueError) as e:
        payload = None
        status = STATUS_ERROR
        error_text = f"Bad request payload: {e}"

    if payload is not None:
        try:
            body = request_with_deadline(base_url, api_key, timeout, payload)
        except Exception as e:
            failure = handle_request_error(e)
            status = failure.status
            error_text = str(failure)

    try:
        response_path.write_text(body, encoding="utf-8")
        stderr_path.write_text(error_text, encoding="utf-8")
    finally:
        write_status(status_path, status)
    return status


def main(argv: Optional[list] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 6:
        print(
            "usage: python -m shellfix.jobs.worker BASE_URL TIMEOUT "
            "REQUEST RESPONSE STDERR STATUS",
            file=sys.stderr,
        )
        return 2

    base_url, timeout, *paths = args
    request_path, response_path, stderr_path, status_path = (Path(p) for p in paths)
    return run(base_url, float(timeout), request_path, response_path, stderr_path, status_path)


if __name__ == "__main__":
    sys.exit(main())
