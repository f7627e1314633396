"""In-memory transport for tests and offline development.

No process is started. Outbound messages are recorded; inbound traffic
comes from scripted responses, a responder function, or feed():

    transport = MockTransport(
        responder=lambda msg: (
            [{"type": "assistant", "message": {"content": []}}, {"type": "result"}]
            if msg["type"] == "user"
            else None
        )
    )
    transport.set_control_response("supported_models", {"models": []})

    async with ClaudeAgentClient(transport=transport) as client:
        await client.send_message("hi")
        ...

    assert transport.written_messages[0]["type"] == "user"
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from ..errors import CLIConnectionError
from ..protocol.wire import (
    FrameKind,
    control_error_envelope,
    control_success_envelope,
    fetch_dual,
)
from .base import Transport, TransportState

logger = logging.getLogger(__name__)

Responder = Callable[[dict[str, Any]], list[dict[str, Any]] | None]

_END = object()


class MockTransport(Transport):
    """Transport that never leaves the process."""

    def __init__(
        self,
        responses: list[dict[str, Any]] | None = None,
        responder: Responder | None = None,
        auto_control_responses: bool = True,
    ):
        super().__init__()
        self._responses = list(responses or [])
        self._responder = responder
        self.auto_control_responses = auto_control_responses
        self._control_responses: dict[str, dict[str, Any] | Exception] = {}
        self._written: list[dict[str, Any]] = []
        self._inbound: asyncio.Queue[Any] = asyncio.Queue()
        self._input_ended = False
        self._finished = False
        self.prompt: str | None = None
        self.exit_code: int | None = None

    @property
    def written_messages(self) -> list[dict[str, Any]]:
        """All messages written through this transport, decoded."""
        return self._written.copy()

    @property
    def input_ended(self) -> bool:
        return self._input_ended

    @property
    def is_ready(self) -> bool:
        return self.is_connected and not self._input_ended

    def written_of_type(self, msg_type: str) -> list[dict[str, Any]]:
        return [m for m in self._written if m.get("type") == msg_type]

    def control_requests(self, subtype: str | None = None) -> list[dict[str, Any]]:
        """Outbound control requests, optionally filtered by subtype."""
        return [
            m
            for m in self.written_of_type(FrameKind.CONTROL_REQUEST.value)
            if subtype is None or m.get("request", {}).get("subtype") == subtype
        ]

    def set_control_response(self, subtype: str, response: dict[str, Any] | Exception) -> None:
        """Canned reply for outbound control requests of one subtype.

        An Exception is answered with an error response carrying its message.
        """
        self._control_responses[subtype] = response

    def feed(self, *messages: dict[str, Any]) -> None:
        """Queue inbound messages as if the CLI had printed them."""
        for message in messages:
            self._inbound.put_nowait(message)

    def finish(self) -> None:
        """End the inbound stream, as if the CLI had exited."""
        if not self._finished:
            self._finished = True
            self._inbound.put_nowait(_END)

    async def connect(self, streaming: bool = True, prompt: str | None = None) -> None:
        if self._state == TransportState.CONNECTED:
            raise CLIConnectionError("Already connected")
        if self._state == TransportState.CLOSED:
            raise CLIConnectionError("Transport is closed")

        self._streaming = streaming
        self.prompt = prompt
        self._state = TransportState.CONNECTED
        self.feed(*self._responses)
        if not streaming:
            self._input_ended = True
            self.finish()

    async def write(self, data: str) -> None:
        if self._state != TransportState.CONNECTED:
            raise CLIConnectionError("Not connected")
        if self._input_ended:
            raise CLIConnectionError("stdin closed")

        message = json.loads(data)
        self._written.append(message)
        logger.debug(f"Mock transport received {message.get('type')}")

        if message.get("type") == FrameKind.CONTROL_REQUEST.value:
            reply = self._auto_reply(message)
            if reply is not None:
                self.feed(reply)

        if self._responder is not None:
            self.feed(*(self._responder(message) or []))

    async def read_messages(self) -> AsyncIterator[dict[str, Any]]:
        if self._state == TransportState.DISCONNECTED:
            raise CLIConnectionError("Not connected")
        while True:
            message = await self._inbound.get()
            if message is _END:
                return
            yield message

    async def end_input(self) -> None:
        """Closing stdin ends the session, so the inbound stream ends too."""
        self._input_ended = True
        self.finish()

    async def close(self) -> int | None:
        if self._state != TransportState.CLOSED:
            self._input_ended = True
            self._state = TransportState.CLOSED
            self.finish()
        return self.exit_code

    def _auto_reply(self, message: dict[str, Any]) -> dict[str, Any] | None:
        request = message.get("request") or {}
        subtype = request.get("subtype", "")
        request_id = fetch_dual(message, "request_id", "")

        canned = self._control_responses.get(subtype)
        if isinstance(canned, Exception):
            return control_error_envelope(request_id, str(canned))
        if canned is not None:
            return control_success_envelope(request_id, canned)
        if self.auto_control_responses:
            return control_success_envelope(request_id, {})
        return None
