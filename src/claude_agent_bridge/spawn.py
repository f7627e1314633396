"""Process handles for the CLI child process.

The transport never touches asyncio.subprocess directly; it talks to a
SpawnedProcess. The default implementation spawns a local process, but any
object satisfying the protocol works, so callers can run the CLI inside a
container or over SSH:

    async def docker_spawn(opts: SpawnOptions) -> SpawnedProcess:
        return await LocalSpawnedProcess.spawn(
            SpawnOptions(
                command="docker",
                args=["exec", "-i", "sandbox", opts.command, *opts.args],
                env=opts.env,
            )
        )

    options = Options(spawn_process=docker_spawn)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .abort import AbortSignal

logger = logging.getLogger(__name__)

# Per-read limit of the stdout StreamReader. Longer lines are returned in
# chunks and reassembled by the frame reader.
DEFAULT_STREAM_LIMIT = 64 * 1024
DEFAULT_TERMINATE_TIMEOUT = 5.0


@dataclass(frozen=True)
class SpawnOptions:
    """Everything a spawn function needs to start the CLI."""

    command: str
    args: list[str] = field(default_factory=list)
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    abort_signal: AbortSignal | None = None

    def to_command_list(self) -> list[str]:
        """Full argv, command first."""
        return [self.command, *self.args]


@runtime_checkable
class SpawnedProcess(Protocol):
    """Contract for a running CLI process.

    read_line() returns b"" once stdout is exhausted. Writing to a process
    whose stdin is closed raises BrokenPipeError; the transport reports that
    as a connection error.
    """

    @property
    def pid(self) -> int | None: ...

    @property
    def is_running(self) -> bool: ...

    @property
    def exit_status(self) -> int | None: ...

    async def write(self, data: bytes) -> None: ...

    async def read_line(self) -> bytes: ...

    async def read_stderr_line(self) -> bytes: ...

    async def close_stdin(self) -> None: ...

    async def terminate(self, timeout: float = DEFAULT_TERMINATE_TIMEOUT) -> None: ...

    async def kill(self) -> None: ...

    async def wait(self) -> int | None: ...

    async def close(self) -> int | None: ...


SpawnFunction = Callable[[SpawnOptions], Awaitable[SpawnedProcess]]


class LocalSpawnedProcess:
    """SpawnedProcess backed by asyncio.create_subprocess_exec."""

    def __init__(self, process: asyncio.subprocess.Process):
        self._process = process
        self._stdin_closed = process.stdin is None
        self._killed = False

    @classmethod
    async def spawn(
        cls,
        options: SpawnOptions,
        stream_limit: int = DEFAULT_STREAM_LIMIT,
    ) -> LocalSpawnedProcess:
        """Start a local child process with piped stdio.

        Raises:
            FileNotFoundError: If the command does not exist
        """
        cwd = options.cwd if options.cwd and os.path.isdir(options.cwd) else None
        env = {**os.environ, **options.env}

        process = await asyncio.create_subprocess_exec(
            *options.to_command_list(),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
            limit=stream_limit,
        )
        logger.info(f"Launched subprocess: {options.command} (pid={process.pid})")
        return cls(process)

    @property
    def pid(self) -> int | None:
        return self._process.pid

    @property
    def is_running(self) -> bool:
        return self._process.returncode is None

    @property
    def exit_status(self) -> int | None:
        return self._process.returncode

    @property
    def killed(self) -> bool:
        return self._killed

    async def write(self, data: bytes) -> None:
        stdin = self._process.stdin
        if stdin is None or self._stdin_closed or stdin.is_closing():
            raise BrokenPipeError("stdin is closed")
        stdin.write(data)
        await stdin.drain()

    async def read_line(self) -> bytes:
        return await self._read_from(self._process.stdout)

    async def read_stderr_line(self) -> bytes:
        return await self._read_from(self._process.stderr)

    async def close_stdin(self) -> None:
        stdin = self._process.stdin
        if stdin is None or self._stdin_closed:
            return
        self._stdin_closed = True
        stdin.close()
        try:
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            pass

    async def terminate(self, timeout: float = DEFAULT_TERMINATE_TIMEOUT) -> None:
        """Send SIGTERM, escalating to SIGKILL after timeout."""
        if not self.is_running:
            return
        try:
            self._process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(self._process.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning(f"Process {self.pid} ignored SIGTERM for {timeout}s, killing")
            await self.kill()

    async def kill(self) -> None:
        if not self.is_running:
            return
        self._killed = True
        try:
            self._process.kill()
        except ProcessLookupError:
            return
        await self._process.wait()

    async def wait(self) -> int | None:
        return await self._process.wait()

    async def close(self, timeout: float = DEFAULT_TERMINATE_TIMEOUT) -> int | None:
        """Close stdin, give the process a grace period, then terminate it."""
        await self.close_stdin()
        if self.is_running:
            try:
                await asyncio.wait_for(self._process.wait(), timeout=timeout)
            except TimeoutError:
                await self.terminate(timeout=timeout)
        logger.info(f"Subprocess exited (pid={self.pid}, code={self.exit_status})")
        return self.exit_status

    @staticmethod
    async def _read_from(stream: asyncio.StreamReader | None) -> bytes:
        if stream is None:
            return b""
        try:
            return await stream.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            # EOF: whatever is left (possibly b"")
            return e.partial
        except asyncio.LimitOverrunError as e:
            return await stream.readexactly(e.consumed)


async def default_spawn(options: SpawnOptions) -> SpawnedProcess:
    """Spawn function used when Options.spawn_process is not set."""
    return await LocalSpawnedProcess.spawn(options)
