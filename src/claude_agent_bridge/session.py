"""Multi-turn session API (unstable).

A thinner surface than ClaudeAgentClient: the session connects on first
use, keeps the CLI process across turns and remembers the session id the
CLI reports so it can be resumed later.

    session = unstable_v2_create_session(SessionOptions(model="sonnet"))
    await session.send("Hello!")
    async for message in session.stream():
        print(message)
    await session.close()

These entry points may change without a deprecation period.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from .client import ClaudeAgentClient
from .errors import CLIConnectionError
from .hooks import HookMatcher
from .messages import Message, ResultMessage
from .options import Options
from .permissions import CanUseTool
from .transport.base import Transport

logger = logging.getLogger(__name__)


@dataclass
class SessionOptions:
    """The subset of Options a Session accepts."""

    model: str
    path_to_claude_code_executable: str | None = None
    env: dict[str, str] | None = None
    allowed_tools: list[str] | None = None
    disallowed_tools: list[str] | None = None
    can_use_tool: CanUseTool | None = None
    hooks: dict[str, list[HookMatcher]] | None = None
    permission_mode: str | None = None

    def to_options(self, resume: str | None = None) -> Options:
        return Options(
            model=self.model,
            cli_path=self.path_to_claude_code_executable,
            env=dict(self.env or {}),
            allowed_tools=list(self.allowed_tools or []),
            disallowed_tools=list(self.disallowed_tools or []),
            can_use_tool=self.can_use_tool,
            hooks=self.hooks,
            permission_mode=self.permission_mode,
            resume=resume,
        )


class Session:
    """Persistent conversation over one CLI process."""

    def __init__(
        self,
        options: SessionOptions | dict[str, Any],
        resume: str | None = None,
        transport: Transport | None = None,
    ):
        self.options = options if isinstance(options, SessionOptions) else SessionOptions(**options)
        self._resume = resume
        self._transport = transport
        self._client: ClaudeAgentClient | None = None
        self._session_id = resume
        self._closed = False

    @property
    def session_id(self) -> str | None:
        """Id reported by the CLI, or the resumed id until one arrives."""
        return self._session_id

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: str | list[dict[str, Any]]) -> None:
        client = await self._ensure_connected()
        await client.send_message(message)

    async def stream(self) -> AsyncIterator[Message]:
        """Messages of the current turn, up to and including its result."""
        client = await self._ensure_connected()
        async for message in client.receive_response():
            session_id = getattr(message, "session_id", None)
            if session_id:
                self._session_id = session_id
            yield message

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._client is not None:
            client, self._client = self._client, None
            await client.disconnect()
        logger.debug(f"Session closed (id: {self._session_id})")

    async def __aenter__(self) -> Session:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _ensure_connected(self) -> ClaudeAgentClient:
        if self._closed:
            raise CLIConnectionError("Session is closed")
        if self._client is not None and self._client.is_connected:
            return self._client

        client = ClaudeAgentClient(self.options.to_options(self._resume), transport=self._transport)
        await client.connect()
        self._client = client
        return client


def unstable_v2_create_session(
    options: SessionOptions | dict[str, Any], transport: Transport | None = None
) -> Session:
    """Create a session. Nothing is started until the first send or stream."""
    return Session(options, transport=transport)


def unstable_v2_resume_session(
    session_id: str,
    options: SessionOptions | dict[str, Any],
    transport: Transport | None = None,
) -> Session:
    """Create a session that continues the conversation stored under session_id."""
    return Session(options, resume=session_id, transport=transport)


async def unstable_v2_prompt(
    message: str,
    options: SessionOptions | dict[str, Any],
    transport: Transport | None = None,
) -> ResultMessage | None:
    """Send one prompt and return its result message. The session is always closed."""
    session = unstable_v2_create_session(options, transport=transport)
    try:
        await session.send(message)
        result = None
        async for reply in session.stream():
            if isinstance(reply, ResultMessage):
                result = reply
        return result
    finally:
        await session.close()
