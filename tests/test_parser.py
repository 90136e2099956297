"""Tests for response parsing and sanitizing."""

import json

import pytest

from shellfix.errors import InvalidResponse
from shellfix.parser import (
    FALLBACK_SUMMARY,
    MAX_SUMMARY_CHARS,
    extract_message_content,
    normalize_summary,
    parse_json_object,
    parse_response,
    parse_result,
    sanitize_command,
)


def _chat_response(content):
    return json.dumps({"choices": [{"message": {"role": "assistant", "content": content}}]})


class TestNormalizeSummary:
    """Test summary normalization."""

    def test_plain_sentence_kept(self):
        assert normalize_summary("gti is not a valid command.") == "gti is not a valid command."

    def test_period_added(self):
        assert normalize_summary("Typo in git") == "Typo in git."

    def test_empty_uses_fallback(self):
        assert normalize_summary("") == FALLBACK_SUMMARY
        assert normalize_summary(None) == FALLBACK_SUMMARY
        assert normalize_summary("   ", "Checking this error now.") == "Checking this error now."

    def test_quotes_and_parentheses_removed(self):
        result = normalize_summary('The "gti" command (a typo (of git)) is unknown')
        assert result == "The gti command is unknown."

    def test_the_command_prefix(self):
        assert normalize_summary("The command gti was not found") == "Command gti was not found."

    def test_prefix_rewrites(self):
        assert normalize_summary("Error: file not found") == "file not found."
        assert normalize_summary("You typed gti instead of git") == "gti instead of git."

    def test_suffix_rewrites(self):
        result = normalize_summary("gti is not a git command did you mean git status")
        assert result == "gti is not a git command."

    def test_first_sentence_only(self):
        assert normalize_summary("Missing file. Create it first.") == "Missing file."

    def test_dot_inside_word_is_not_sentence_end(self):
        assert normalize_summary("Run ./configure before make") == "Run ./configure before make."

    def test_cjk_sentence_end(self):
        assert normalize_summary("命令不存在。请检查拼写") == "命令不存在。"

    def test_newlines_collapsed(self):
        assert normalize_summary("line one\nline two") == "line one line two."

    def test_long_text_truncated_at_word(self):
        text = "word " * 30
        result = normalize_summary(text)
        assert len(result) <= MAX_SUMMARY_CHARS
        assert result.endswith("word.")

    def test_long_unbroken_text_truncated(self):
        result = normalize_summary("x" * 200)
        assert len(result) <= MAX_SUMMARY_CHARS
        assert result.endswith(".")

    def test_trailing_junk_stripped(self):
        assert normalize_summary("Install the package:") == "Install the package."


class TestSanitizeCommand:
    """Test command sanitization."""

    def test_plain(self):
        assert sanitize_command("  git status  ") == "git status"

    def test_non_string(self):
        assert sanitize_command(None) == ""
        assert sanitize_command(42) == ""

    def test_fenced_block(self):
        assert sanitize_command("```bash\ngit status\n```") == "git status"

    def test_single_line_fence(self):
        assert sanitize_command("```git status```") == "git status"

    def test_first_line_only(self):
        assert sanitize_command("git add .\ngit commit") == "git add ."

    def test_inline_backticks(self):
        assert sanitize_command("`git status`") == "git status"

    def test_dollar_prompt_removed(self):
        assert sanitize_command("$ git status") == "git status"

    def test_carriage_returns_removed(self):
        assert sanitize_command("git status\r\n") == "git status"


class TestMessageContent:
    """Test extracting the assistant message."""

    def test_string_content(self):
        assert extract_message_content({"choices": [{"message": {"content": "hi"}}]}) == "hi"

    def test_chunked_content(self):
        response = {"choices": [{"message": {"content": [{"text": "a"}, "b", {"type": "x"}]}}]}
        assert extract_message_content(response) == "a\nb"

    @pytest.mark.parametrize("response", [
        None,
        [],
        {},
        {"choices": []},
        {"choices": [{}]},
        {"choices": [{"message": {"content": None}}]},
        {"choices": [{"message": {"content": [{"type": "image"}]}}]},
    ])
    def test_missing(self, response):
        assert extract_message_content(response) is None


class TestJsonObject:
    """Test lenient JSON parsing."""

    def test_whole_string(self):
        assert parse_json_object('{"a": 1}') == {"a": 1}

    def test_prose_around_object(self):
        assert parse_json_object('Sure! {"a": 1} Hope that helps') == {"a": 1}

    def test_not_an_object(self):
        assert parse_json_object("[1, 2]") is None
        assert parse_json_object("no json here") is None
        assert parse_json_object(None) is None


class TestParseResult:
    """Test building a suggestion from model text."""

    def test_full_object(self):
        suggestion = parse_result(json.dumps({
            "summary": "gti is not a valid command.",
            "command": "git status",
            "why": "typo",
            "confidence": 0.92,
        }))
        assert suggestion.summary == "gti is not a valid command."
        assert suggestion.command == "git status"
        assert suggestion.why == "typo"
        assert suggestion.confidence == 0.92

    @pytest.mark.parametrize("raw, expected", [
        (1.7, 1.0),
        (-3, 0.0),
        ("0.5", 0.5),
        ("high", 0.0),
        (None, 0.0),
        (True, 0.0),
        (float("nan"), 0.0),
    ])
    def test_confidence_clamped(self, raw, expected):
        suggestion = parse_result(json.dumps({"summary": "s", "confidence": raw}))
        assert suggestion.confidence == expected

    def test_free_text_falls_back_to_first_line(self):
        suggestion = parse_result("\nThe command has a typo\nTry git status")
        assert suggestion.summary == "Command has a typo."
        assert suggestion.command == ""


class TestParseResponse:
    """Test turning job artifacts into a suggestion."""

    def test_success(self):
        content = json.dumps({"summary": "gti is not a valid command.", "command": "git status"})
        suggestion = parse_response(0, _chat_response(content), model="gpt-5-mini")
        assert suggestion.command == "git status"
        assert suggestion.model == "gpt-5-mini"

    def test_status_as_text(self):
        content = json.dumps({"summary": "ok", "command": "ls"})
        assert parse_response("0\n", _chat_response(content)).command == "ls"

    def test_prose_around_model_json(self):
        content = (
            'Sure! {"summary":"Fix it.","command":"npm install","why":"","confidence":0.8}'
            " Hope that helps!"
        )
        suggestion = parse_response(0, _chat_response(content))
        assert suggestion.summary == "Fix it."
        assert suggestion.command == "npm install"
        assert suggestion.confidence == 0.8

    def test_prose_wrapped_json_recovered(self):
        content = 'Here you go: {"summary": "Typo.", "command": "git status"} done'
        assert parse_response(0, _chat_response(content)).command == "git status"

    def test_non_actionable_command_blanked(self):
        content = json.dumps({"summary": "gti is unknown.", "command": "which gti"})
        suggestion = parse_response(0, _chat_response(content))
        assert suggestion.command == ""
        assert suggestion.summary == "gti is unknown."

    def test_dangerous_command_kept(self):
        content = json.dumps({"summary": "Clean build.", "command": "rm -rf build"})
        assert parse_response(0, _chat_response(content)).command == "rm -rf build"

    def test_nonzero_status(self):
        with pytest.raises(InvalidResponse) as exc_info:
            parse_response(28, "", "curl: (28) timed out")
        assert exc_info.value.status == 28
        assert exc_info.value.stderr == "curl: (28) timed out"
        assert exc_info.value.user_message == "Could not analyze this error right now."

    def test_garbage_status(self):
        with pytest.raises(InvalidResponse):
            parse_response("abc", _chat_response("{}"))

    def test_invalid_json_body(self):
        with pytest.raises(InvalidResponse):
            parse_response(0, "<html>bad gateway</html>")

    def test_empty_content(self):
        with pytest.raises(InvalidResponse):
            parse_response(0, _chat_response("   "))
