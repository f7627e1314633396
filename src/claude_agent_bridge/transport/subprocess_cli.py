"""Subprocess transport: runs the CLI as a child process.

Wire format:
- Outbound: JSON object + newline to the child's stdin
- Inbound: JSON object + newline from the child's stdout
- stderr is drained in the background and forwarded to
  Options.stderr_callback when one is configured
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import re
import shutil
from collections import deque
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

from ..errors import (
    MINIMUM_CLI_VERSION,
    CLIConnectionError,
    CLINotFoundError,
    CLIVersionError,
    ProcessError,
)
from ..spawn import DEFAULT_TERMINATE_TIMEOUT, SpawnedProcess, SpawnOptions, default_spawn
from .base import Transport, TransportState
from .framing import JsonFrameReader

if TYPE_CHECKING:
    from ..options import Options

logger = logging.getLogger(__name__)

VERSION_CHECK_TIMEOUT = 2.0
EXIT_WAIT_TIMEOUT = 5.0
STDERR_TAIL_LINES = 100

_VERSION_PATTERN = re.compile(r"(\d+\.\d+\.\d+)")

CLI_SEARCH_PATHS = (
    "/usr/local/bin/claude",
    "/opt/homebrew/bin/claude",
    "~/.local/bin/claude",
)


def find_cli_path() -> str:
    """Locate the CLI binary, falling back to a bare "claude" for PATH lookup."""
    found = shutil.which("claude")
    if found:
        return found
    for candidate in CLI_SEARCH_PATHS:
        path = os.path.expanduser(candidate)
        if os.path.isfile(path) and os.access(path, os.X_OK):
            return path
    return "claude"


def version_satisfies(found: str, minimum: str = MINIMUM_CLI_VERSION) -> bool:
    """Compare dotted versions numerically; missing parts count as zero."""
    found_parts = [int(p) for p in found.split(".")]
    minimum_parts = [int(p) for p in minimum.split(".")]
    width = max(len(found_parts), len(minimum_parts))
    found_parts += [0] * (width - len(found_parts))
    minimum_parts += [0] * (width - len(minimum_parts))
    return found_parts >= minimum_parts


class SubprocessCLITransport(Transport):
    """Transport over a CLI child process."""

    def __init__(self, options: Options | None = None, cli_path: str | None = None):
        super().__init__()
        if options is None:
            from ..options import Options

            options = Options()
        self.options = options
        self.cli_path = cli_path or options.resolved_cli_path() or find_cli_path()

        self._process: SpawnedProcess | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        self._write_lock = asyncio.Lock()
        self._input_closed = False
        self._closing = False

    @property
    def process(self) -> SpawnedProcess | None:
        return self._process

    @property
    def is_ready(self) -> bool:
        return self.is_connected and not self._input_closed

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.is_running

    @property
    def exit_status(self) -> int | None:
        return self._process.exit_status if self._process else None

    @property
    def stderr_output(self) -> str:
        """Most recent stderr lines from the child."""
        return "\n".join(self._stderr_tail)

    def build_command(self, streaming: bool, prompt: str | None = None) -> list[str]:
        """Full argv for the CLI, including the framing flags."""
        cmd = [self.cli_path, *self.options.to_cli_args(), "--output-format", "stream-json"]
        if streaming:
            cmd += ["--input-format", "stream-json"]
        cmd.append("--verbose")
        if not streaming and prompt is not None:
            cmd += ["--print", "--", prompt]
        return cmd

    async def connect(self, streaming: bool = True, prompt: str | None = None) -> None:
        if self._state == TransportState.CONNECTED:
            raise CLIConnectionError("Already connected")
        if self._state == TransportState.CLOSED:
            raise CLIConnectionError("Transport is closed")

        self._state = TransportState.CONNECTING
        self._streaming = streaming
        try:
            if not self.options.skip_version_check:
                await self.check_cli_version()

            cmd = self.build_command(streaming, prompt)
            spawn_options = SpawnOptions(
                command=cmd[0],
                args=cmd[1:],
                cwd=self._working_directory(),
                env=self.options.to_env(),
                abort_signal=self.options.abort_signal,
            )
            spawn = self.options.spawn_process or default_spawn
            self._process = await spawn(spawn_options)
        except FileNotFoundError as e:
            self._state = TransportState.DISCONNECTED
            raise CLINotFoundError(f"Claude CLI not found: {e}", cli_path=self.cli_path) from e
        except (CLINotFoundError, CLIVersionError):
            self._state = TransportState.DISCONNECTED
            raise
        except OSError as e:
            self._state = TransportState.DISCONNECTED
            raise CLIConnectionError(f"Failed to start CLI: {e}") from e

        self._state = TransportState.CONNECTED
        self._stderr_task = asyncio.create_task(self._read_stderr())

        if not streaming:
            await self.end_input()

    async def check_cli_version(self) -> None:
        """Verify the CLI meets the minimum version.

        An unreadable or slow version check is logged and ignored.

        Raises:
            CLINotFoundError: If the binary does not exist
            CLIVersionError: If the reported version is too old
        """
        try:
            version_proc = await asyncio.create_subprocess_exec(
                self.cli_path,
                "-v",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError as e:
            raise CLINotFoundError(cli_path=self.cli_path) from e
        except PermissionError as e:
            raise CLINotFoundError(f"Claude CLI is not executable: {e}", self.cli_path) from e

        try:
            output, _ = await asyncio.wait_for(
                version_proc.communicate(), timeout=VERSION_CHECK_TIMEOUT
            )
        except TimeoutError:
            logger.warning(f"CLI version check timed out after {VERSION_CHECK_TIMEOUT}s, skipping")
            with contextlib.suppress(ProcessLookupError):
                version_proc.kill()
            await version_proc.wait()
            return

        match = _VERSION_PATTERN.search(output.decode("utf-8", errors="replace"))
        if not match:
            logger.warning("Could not determine CLI version, skipping version check")
            return

        found = match.group(1)
        if not version_satisfies(found, MINIMUM_CLI_VERSION):
            raise CLIVersionError(found, MINIMUM_CLI_VERSION)
        logger.debug(f"CLI version {found} OK")

    async def write(self, data: str) -> None:
        if self._state != TransportState.CONNECTED or self._process is None:
            raise CLIConnectionError("Not connected")
        if self._input_closed:
            raise CLIConnectionError("stdin closed")

        if not data.endswith("\n"):
            data += "\n"

        async with self._write_lock:
            try:
                await self._process.write(data.encode("utf-8"))
            except (BrokenPipeError, ConnectionResetError) as e:
                raise CLIConnectionError(
                    "Broken pipe - CLI process may have terminated"
                ) from e

    async def read_messages(self) -> AsyncIterator[dict[str, Any]]:
        if self._state != TransportState.CONNECTED or self._process is None:
            raise CLIConnectionError("Not connected")

        process = self._process
        reader = JsonFrameReader(self.options.max_buffer_size)
        async for frame in reader.frames(process.read_line):
            yield frame

        await self._check_exit(process)

    async def end_input(self) -> None:
        if self._input_closed or self._process is None:
            return
        async with self._write_lock:
            self._input_closed = True
            await self._process.close_stdin()

    async def close(self) -> int | None:
        if self._state == TransportState.CLOSED:
            return self.exit_status

        self._closing = True
        exit_status = None
        if self._process is not None:
            self._input_closed = True
            exit_status = await self._process.close()

        await self._stop_stderr_reader()
        self._state = TransportState.CLOSED
        return exit_status

    async def terminate(self, timeout: float = DEFAULT_TERMINATE_TIMEOUT) -> None:
        self._closing = True
        if self._process is not None:
            await self._process.terminate(timeout=timeout)

    async def kill(self) -> None:
        self._closing = True
        if self._process is not None:
            await self._process.kill()

    async def _check_exit(self, process: SpawnedProcess) -> None:
        """Raise ProcessError if stdout ended because the child failed."""
        if self._closing:
            return
        try:
            exit_code = await asyncio.wait_for(process.wait(), timeout=EXIT_WAIT_TIMEOUT)
        except TimeoutError:
            logger.warning("CLI closed stdout but is still running")
            return
        if self._closing or exit_code in (0, None):
            return
        # Let the stderr reader catch up so the error carries the tail
        if self._stderr_task is not None:
            await asyncio.wait({self._stderr_task}, timeout=1.0)
        raise ProcessError(
            "CLI process exited unexpectedly",
            exit_code=exit_code,
            stderr=self.stderr_output or None,
        )

    async def _read_stderr(self) -> None:
        """Drain stderr so the child never blocks on a full pipe."""
        if self._process is None:
            return
        callback = self.options.stderr_callback
        try:
            while True:
                line = await self._process.read_stderr_line()
                if not line:
                    break
                text = line.decode("utf-8", errors="replace").rstrip("\r\n")
                self._stderr_tail.append(text)
                logger.debug(f"[cli stderr] {text}")
                if callback is not None:
                    try:
                        callback(text)
                    except Exception as e:
                        logger.debug(f"stderr callback raised: {e}")
        except asyncio.CancelledError:
            pass
        except (OSError, ValueError) as e:
            logger.debug(f"stderr reader stopped: {e}")

    async def _stop_stderr_reader(self) -> None:
        if self._stderr_task is None:
            return
        if not self._stderr_task.done():
            self._stderr_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._stderr_task
        self._stderr_task = None

    def _working_directory(self) -> str:
        cwd = str(self.options.cwd) if self.options.cwd else None
        return cwd if cwd and os.path.isdir(cwd) else os.getcwd()
