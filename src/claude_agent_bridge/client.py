"""Interactive client for multi-turn sessions.

Usage:
    async with ClaudeAgentClient(Options(model="sonnet")) as client:
        await client.send_message("What files are in this directory?")
        async for message in client.receive_response():
            print(message)

        await client.send_message("Summarise the README")
        async for message in client.receive_response():
            print(message)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from typing import Any

from .errors import CLIConnectionError
from .messages import Message
from .options import Options
from .protocol.control import ControlProtocol
from .protocol.streaming import StreamItem
from .transport.base import Transport
from .transport.subprocess_cli import SubprocessCLITransport
from .types import (
    AccountInfo,
    McpServerStatus,
    McpSetServersResult,
    ModelInfo,
    RewindFilesResult,
    ServerInfo,
    SlashCommand,
)

logger = logging.getLogger(__name__)


class ClaudeAgentClient:
    """Streaming session with the CLI.

    The session stays open across turns until disconnect(). Pass a
    transport to run against something other than a local CLI process
    (MockTransport in tests, for example).
    """

    def __init__(self, options: Options | None = None, transport: Transport | None = None):
        self.options = options or Options()
        self._transport = transport
        self._protocol: ControlProtocol | None = None

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def protocol(self) -> ControlProtocol | None:
        return self._protocol

    @property
    def is_connected(self) -> bool:
        return self._protocol is not None and self._protocol.is_active

    @property
    def server_info(self) -> ServerInfo | None:
        return self._protocol.server_info if self._protocol else None

    async def connect(
        self,
        prompt: str | Iterable[StreamItem] | AsyncIterable[StreamItem] | None = None,
    ) -> ClaudeAgentClient:
        """Start the CLI session, optionally sending a first prompt or stream."""
        if self._protocol is not None:
            raise CLIConnectionError("Already connected")

        if self._transport is None:
            self._transport = SubprocessCLITransport(self.options)
        protocol = ControlProtocol(self._transport, self.options)
        self._protocol = protocol
        try:
            await protocol.start(streaming=True)
        except BaseException:
            self._protocol = None
            raise

        if isinstance(prompt, str):
            await self.send_message(prompt)
        elif prompt is not None:
            await self.stream_input(prompt)
        logger.info("Client connected")
        return self

    async def disconnect(self) -> int | None:
        """End the session gracefully. Returns the CLI exit status if known."""
        if self._protocol is None:
            return None
        protocol, self._protocol = self._protocol, None
        exit_status = await protocol.stop()
        logger.info(f"Client disconnected (exit status: {exit_status})")
        return exit_status

    async def abort(self, reason: str | None = None) -> None:
        """Cancel everything in flight and terminate the CLI."""
        if self._protocol is None:
            if self.options.abort_controller is not None:
                self.options.abort_controller.abort(reason)
            return
        await self._protocol.abort(reason)

    async def __aenter__(self) -> ClaudeAgentClient:
        return await self.connect()

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()

    def _require_protocol(self) -> ControlProtocol:
        if self._protocol is None:
            raise CLIConnectionError("Not connected. Call connect() first.")
        return self._protocol

    # =========================================================================
    # Conversation
    # =========================================================================

    async def send_message(
        self,
        content: str | list[dict[str, Any]],
        session_id: str = "default",
        uuid: str | None = None,
    ) -> None:
        await self._require_protocol().send_user_message(content, session_id, uuid)

    def receive_messages(self) -> AsyncIterator[Message]:
        """Every message until the session ends."""
        return self._require_protocol().each_message()

    def receive_response(self) -> AsyncIterator[Message]:
        """Messages up to and including the next result message."""
        return self._require_protocol().receive_response()

    async def stream_input(
        self,
        items: Iterable[StreamItem] | AsyncIterable[StreamItem],
        session_id: str = "default",
    ) -> int:
        """Send a sequence of user messages. Returns how many were sent."""
        return await self._require_protocol().stream_input(items, session_id)

    def stream_conversation(
        self,
        items: Iterable[StreamItem] | AsyncIterable[StreamItem],
        session_id: str = "default",
    ) -> AsyncIterator[Message]:
        """Send items concurrently while yielding replies up to a result."""
        return self._require_protocol().stream_conversation(items, session_id)

    # =========================================================================
    # Control plane
    # =========================================================================

    async def interrupt(self) -> dict[str, Any]:
        return await self._require_protocol().interrupt()

    async def set_permission_mode(self, mode: str) -> dict[str, Any]:
        return await self._require_protocol().set_permission_mode(mode)

    async def set_model(self, model: str | None) -> dict[str, Any]:
        return await self._require_protocol().set_model(model)

    async def set_max_thinking_tokens(self, tokens: int | None) -> dict[str, Any]:
        return await self._require_protocol().set_max_thinking_tokens(tokens)

    async def rewind_files(self, user_message_id: str, dry_run: bool = False) -> RewindFilesResult:
        return await self._require_protocol().rewind_files(user_message_id, dry_run=dry_run)

    async def set_mcp_servers(self, servers: dict[str, Any]) -> McpSetServersResult:
        return await self._require_protocol().set_mcp_servers(servers)

    async def mcp_reconnect(self, server_name: str) -> dict[str, Any]:
        return await self._require_protocol().mcp_reconnect(server_name)

    async def mcp_toggle(self, server_name: str, enabled: bool) -> dict[str, Any]:
        return await self._require_protocol().mcp_toggle(server_name, enabled)

    async def mcp_server_status(self) -> list[McpServerStatus]:
        return await self._require_protocol().mcp_server_status()

    async def supported_commands(self) -> list[SlashCommand]:
        return await self._require_protocol().supported_commands()

    async def supported_models(self) -> list[ModelInfo]:
        return await self._require_protocol().supported_models()

    async def account_info(self) -> AccountInfo:
        return await self._require_protocol().account_info()
