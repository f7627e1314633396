"""Tests for the click command."""

from __future__ import annotations

import json
from unittest.mock import patch

from click.testing import CliRunner

from claude_agent_bridge.cli import format_message, main
from claude_agent_bridge.errors import CLINotFoundError
from claude_agent_bridge.messages import (
    AssistantMessage,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ToolUseBlock,
)


def fake_query(*messages, error: Exception | None = None):
    calls = []

    async def _query(prompt, options=None):
        calls.append((prompt, options))
        for message in messages:
            yield message
        if error is not None:
            raise error

    _query.calls = calls
    return _query


ASSISTANT = AssistantMessage(content=[TextBlock(text="Four.")])
RESULT = ResultMessage(subtype="success", num_turns=1, duration_ms=12, total_cost_usd=0.002)


class TestFormatMessage:
    """Tests for format_message."""

    def test_assistant_text_and_tools(self) -> None:
        message = AssistantMessage(
            content=[TextBlock(text="Running"), ToolUseBlock(id="t", name="Bash")]
        )
        assert format_message(message) == "Running\n[tool] Bash"

    def test_result(self) -> None:
        assert format_message(RESULT) == "--- success: 1 turns, 12ms, cost $0.0020"

    def test_result_without_cost(self) -> None:
        assert "cost n/a" in format_message(ResultMessage(subtype="success"))

    def test_system_init(self) -> None:
        message = SystemMessage(subtype="init", data={"session_id": "abc"})
        assert format_message(message) == "--- session abc"

    def test_other_messages_hidden(self) -> None:
        assert format_message(SystemMessage(subtype="compact_boundary")) is None
        assert format_message(AssistantMessage()) is None


class TestMain:
    """Tests for the claude-agent-bridge command."""

    def test_prints_reply(self) -> None:
        query = fake_query(ASSISTANT, RESULT)
        with patch("claude_agent_bridge.cli.query", query):
            result = CliRunner().invoke(main, ["What is 2 + 2?", "--model", "sonnet"])

        assert result.exit_code == 0
        assert "Four." in result.output
        prompt, options = query.calls[0]
        assert prompt == "What is 2 + 2?"
        assert options.model == "sonnet"

    def test_json_output(self) -> None:
        with patch("claude_agent_bridge.cli.query", fake_query(ASSISTANT, RESULT)):
            result = CliRunner().invoke(main, ["--json", "hi"])

        assert result.exit_code == 0
        lines = [json.loads(line) for line in result.output.splitlines() if line.startswith("{")]
        assert [line["type"] for line in lines] == ["assistant", "result"]

    def test_prompt_from_stdin(self) -> None:
        query = fake_query(RESULT)
        with patch("claude_agent_bridge.cli.query", query):
            result = CliRunner().invoke(main, ["-"], input="from stdin\n")

        assert result.exit_code == 0
        assert query.calls[0][0] == "from stdin\n"

    def test_empty_prompt(self) -> None:
        result = CliRunner().invoke(main, ["   "])
        assert result.exit_code == 2
        assert "PROMPT is empty" in result.output

    def test_error_result_exit_code(self) -> None:
        failed = ResultMessage(subtype="error_max_turns", is_error=True)
        with patch("claude_agent_bridge.cli.query", fake_query(failed)):
            result = CliRunner().invoke(main, ["hi"])
        assert result.exit_code == 1

    def test_library_error(self) -> None:
        query = fake_query(error=CLINotFoundError())
        with patch("claude_agent_bridge.cli.query", query):
            result = CliRunner().invoke(main, ["hi"])

        assert result.exit_code == 1
        assert "Error: Claude Code CLI not found" in result.output

    def test_invalid_permission_mode(self) -> None:
        result = CliRunner().invoke(main, ["--permission-mode", "yolo", "hi"])
        assert result.exit_code == 2

    def test_bypass_without_opt_in_is_reported(self) -> None:
        result = CliRunner().invoke(main, ["--permission-mode", "bypassPermissions", "hi"])
        assert result.exit_code == 1
        assert "allow_dangerously_skip_permissions" in result.output
