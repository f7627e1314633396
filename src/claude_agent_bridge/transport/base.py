"""Transport abstraction for talking to the CLI.

A transport moves newline-delimited JSON between the SDK and one CLI
session. The control protocol only sees this interface, so the subprocess
implementation can be swapped for MockTransport in tests or for a custom
implementation (remote exec, recorded sessions, ...).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class TransportState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class Transport(ABC):
    """Base class for CLI transports.

    Lifecycle: connect() once, then write()/read_messages() concurrently,
    then end_input() and/or close(). A closed transport cannot be
    reconnected.
    """

    def __init__(self) -> None:
        self._state = TransportState.DISCONNECTED
        self._streaming = False

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def streaming(self) -> bool:
        return self._streaming

    @property
    def is_connected(self) -> bool:
        return self._state == TransportState.CONNECTED

    @property
    def is_ready(self) -> bool:
        """True when write() may be called."""
        return self.is_connected

    @abstractmethod
    async def connect(self, streaming: bool = True, prompt: str | None = None) -> None:
        """Start the session.

        Args:
            streaming: Keep stdin open for further messages
            prompt: Initial prompt, passed on the command line when not streaming

        Raises:
            CLINotFoundError: If the CLI binary cannot be located
            CLIVersionError: If the CLI is older than the supported minimum
            CLIConnectionError: If the session cannot be started
        """
        ...

    @abstractmethod
    async def write(self, data: str) -> None:
        """Write one serialized JSON object (a trailing newline is added if missing).

        Raises:
            CLIConnectionError: If not connected or the pipe is broken
        """
        ...

    @abstractmethod
    def read_messages(self) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded JSON objects until the session's output ends."""
        ...

    @abstractmethod
    async def end_input(self) -> None:
        """Signal that no more input will be written."""
        ...

    @abstractmethod
    async def close(self) -> int | None:
        """Tear the session down.

        Returns:
            Exit status of the underlying process, if there is one
        """
        ...

    async def terminate(self, timeout: float = 5.0) -> None:
        """Stop the session gracefully; defaults to close()."""
        await self.close()

    async def kill(self) -> None:
        """Stop the session forcefully; defaults to close()."""
        await self.close()
