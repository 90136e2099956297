"""Tests for the remediation request builder."""

import json

from shellfix.prompts import SYSTEM_PROMPT, build_messages, chat_endpoint, encode_payload


class TestBuildMessages:
    """Test the two-message exchange."""

    def test_roles(self):
        messages = build_messages("gti status", 127, "/home/u/src")
        assert [m["role"] for m in messages] == ["system", "user"]
        assert messages[0]["content"] == SYSTEM_PROMPT

    def test_user_context(self):
        messages = build_messages("gti status", 127, "/home/u/src", "main")
        assert messages[1]["content"] == (
            "Command: gti status\n"
            "Exit code: 127\n"
            "Working directory: /home/u/src\n"
            "Git branch: main"
        )

    def test_unknown_cwd_and_no_branch(self):
        content = build_messages("make", 2)[1]["content"]
        assert "Working directory: (unknown)" in content
        assert "Git branch" not in content

    def test_system_prompt_rules(self):
        assert "exactly one JSON object" in SYSTEM_PROMPT
        assert "<= 72 chars" in SYSTEM_PROMPT
        assert "empty string" in SYSTEM_PROMPT


class TestPayload:
    """Test the request body and endpoint."""

    def test_encode_payload(self):
        messages = build_messages("gti status", 127)
        payload = json.loads(encode_payload("gpt-5-mini", messages))
        assert payload == {"model": "gpt-5-mini", "messages": messages, "stream": False}

    def test_chat_endpoint(self):
        assert chat_endpoint("https://api.vivgrid.com/v1") == "https://api.vivgrid.com/v1/chat/completions"
        assert chat_endpoint(" https://host/v1/ ") == "https://host/v1/chat/completions"
