"""Error hierarchy for the agent bridge.

Every error raised by this package derives from ClaudeAgentError so callers
can catch the whole family with one clause. Errors that mirror a builtin
concept (connection failures, timeouts) also subclass the builtin so
generic handlers keep working.
"""

from __future__ import annotations

from typing import Any

MINIMUM_CLI_VERSION = "2.0.0"


class ClaudeAgentError(Exception):
    """Base class for all agent bridge errors."""


class ConfigurationError(ClaudeAgentError):
    """Raised when Options contain an invalid combination of values."""


class CLINotFoundError(ClaudeAgentError):
    """Raised when the CLI binary cannot be located."""

    def __init__(
        self,
        message: str = "Claude Code CLI not found. Please install it first.",
        cli_path: str | None = None,
    ):
        self.cli_path = cli_path
        if cli_path:
            message = f"{message} (looked for: {cli_path})"
        super().__init__(message)


class CLIVersionError(ClaudeAgentError):
    """Raised when the CLI binary reports a version below the supported floor."""

    def __init__(
        self,
        found_version: str | None = None,
        minimum_version: str = MINIMUM_CLI_VERSION,
    ):
        self.found_version = found_version
        self.minimum_version = minimum_version
        if found_version:
            message = (
                f"Claude Code CLI version {found_version} is below minimum "
                f"required version {minimum_version}"
            )
        else:
            message = (
                "Could not determine Claude Code CLI version. "
                f"Minimum required: {minimum_version}"
            )
        super().__init__(message)


class CLIConnectionError(ClaudeAgentError, ConnectionError):
    """Raised for I/O against a transport that is not (or no longer) connected."""

    def __init__(self, message: str = "Failed to connect to Claude Code CLI"):
        super().__init__(message)


class ProcessError(CLIConnectionError):
    """Raised when the CLI process exits abnormally mid-session."""

    def __init__(
        self,
        message: str = "CLI process failed",
        exit_code: int | None = None,
        stderr: str | None = None,
    ):
        self.exit_code = exit_code
        self.stderr = stderr
        if exit_code is not None:
            message += f" (exit code: {exit_code})"
        if stderr:
            message += f"\nStderr: {stderr}"
        super().__init__(message)


class BufferOverflowError(ClaudeAgentError):
    """Raised when undecodable output grows past the frame buffer limit."""

    SNIPPET_LENGTH = 200

    def __init__(
        self,
        message: str = "Buffer overflow while parsing JSON",
        snippet: str = "",
        max_size: int | None = None,
    ):
        self.snippet = snippet[: self.SNIPPET_LENGTH]
        self.max_size = max_size
        if max_size is not None:
            message += f" (limit: {max_size} bytes)"
        if self.snippet:
            message += f"\nContent: {self.snippet}..."
        super().__init__(message)


class ControlTimeoutError(ClaudeAgentError, TimeoutError):
    """Raised when a control request receives no response before its deadline."""

    def __init__(
        self,
        message: str = "Control request timed out",
        request_id: str | None = None,
        timeout: float | None = None,
    ):
        self.request_id = request_id
        self.timeout = timeout
        if request_id:
            message += f" (request_id: {request_id})"
        if timeout is not None:
            message += f" after {timeout}s"
        super().__init__(message)


class AbortError(ClaudeAgentError):
    """Raised when an operation is unblocked by the cancellation signal."""

    DEFAULT_REASON = "Operation was aborted"

    def __init__(self, reason: str | None = None):
        self.reason = reason or self.DEFAULT_REASON
        super().__init__(self.reason)


class ProtocolError(ClaudeAgentError):
    """Raised when the peer reports an error or speaks an unknown subtype."""

    def __init__(self, message: str, request_id: str | None = None):
        self.request_id = request_id
        super().__init__(message)


class MessageParseError(ClaudeAgentError):
    """Raised when a decoded object cannot be turned into a typed message.

    Recoverable: the reader loop logs and skips these.
    """

    def __init__(self, message: str = "Failed to parse message", raw_message: Any = None):
        self.raw_message = raw_message
        if raw_message is not None:
            message += f"\nRaw message: {repr(raw_message)[:200]}"
        super().__init__(message)
