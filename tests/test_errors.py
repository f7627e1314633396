"""Tests for the error hierarchy."""

from __future__ import annotations

from claude_agent_bridge.errors import (
    AbortError,
    BufferOverflowError,
    ClaudeAgentError,
    CLIConnectionError,
    CLINotFoundError,
    CLIVersionError,
    ControlTimeoutError,
    MessageParseError,
    ProcessError,
    ProtocolError,
)


class TestHierarchy:
    """Every error is catchable as ClaudeAgentError."""

    def test_all_derive_from_base(self) -> None:
        for error in (
            CLINotFoundError(),
            CLIVersionError("1.0.0"),
            CLIConnectionError(),
            ProcessError(),
            BufferOverflowError(),
            ControlTimeoutError(),
            AbortError(),
            ProtocolError("x"),
            MessageParseError(),
        ):
            assert isinstance(error, ClaudeAgentError)

    def test_builtin_bases(self) -> None:
        """Connection and timeout errors also match the builtin types."""
        assert isinstance(CLIConnectionError(), ConnectionError)
        assert isinstance(ProcessError(), ConnectionError)
        assert isinstance(ControlTimeoutError(), TimeoutError)


class TestContext:
    """Errors carry enough context to diagnose without internals."""

    def test_timeout_carries_id_and_duration(self) -> None:
        error = ControlTimeoutError(request_id="req_1_abc", timeout=2.5)
        assert error.request_id == "req_1_abc"
        assert error.timeout == 2.5
        assert "req_1_abc" in str(error)
        assert "2.5s" in str(error)

    def test_abort_reason(self) -> None:
        assert AbortError("user cancelled").reason == "user cancelled"
        assert AbortError().reason == AbortError.DEFAULT_REASON

    def test_process_error(self) -> None:
        error = ProcessError("died", exit_code=2, stderr="fatal")
        assert error.exit_code == 2
        assert "exit code: 2" in str(error)
        assert "fatal" in str(error)

    def test_buffer_snippet_truncated(self) -> None:
        error = BufferOverflowError(snippet="x" * 1000, max_size=10)
        assert len(error.snippet) == BufferOverflowError.SNIPPET_LENGTH
        assert "limit: 10 bytes" in str(error)

    def test_version_error(self) -> None:
        error = CLIVersionError("1.2.3", "2.0.0")
        assert error.found_version == "1.2.3"
        assert "1.2.3" in str(error)
        assert "2.0.0" in str(error)

    def test_not_found_path(self) -> None:
        error = CLINotFoundError(cli_path="/nope/claude")
        assert "/nope/claude" in str(error)
