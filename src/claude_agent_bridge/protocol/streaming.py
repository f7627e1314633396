"""Streaming input: feeding a sequence of user messages into a session.

Items may be plain strings, dicts carrying content (and optionally
session_id / uuid / parent_tool_use_id), or UserMessage instances. The
sequence may be a regular or an async iterable, finite or not.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from typing import TYPE_CHECKING, Any

from ..errors import AbortError, ClaudeAgentError
from ..messages import Message, UserMessage, is_result
from .wire import fetch_dual, user_message_envelope

if TYPE_CHECKING:
    from .control import ControlProtocol

logger = logging.getLogger(__name__)

StreamItem = str | dict[str, Any] | UserMessage

SENDER_JOIN_TIMEOUT = 1.0


def normalize_stream_item(item: Any, default_session_id: str = "default") -> dict[str, Any]:
    """Build the outbound user envelope for one stream item.

    Raises:
        TypeError: If the item is not a supported type
        ValueError: If a dict item has no content
    """
    if isinstance(item, str):
        return user_message_envelope(item, session_id=default_session_id)

    if isinstance(item, UserMessage):
        return item.to_wire(default_session_id)

    if isinstance(item, dict):
        if item.get("type") == "user" and isinstance(item.get("message"), dict):
            # Already a wire envelope
            return {**item, "session_id": fetch_dual(item, "session_id", default_session_id)}
        content = item.get("content")
        if content is None:
            raise ValueError("Stream item has no content")
        return user_message_envelope(
            content,
            session_id=fetch_dual(item, "session_id", default_session_id),
            uuid=item.get("uuid"),
            parent_tool_use_id=fetch_dual(item, "parent_tool_use_id"),
        )

    raise TypeError(f"Unknown message type in stream: {type(item).__name__}")


async def _iterate(items: Iterable[Any] | AsyncIterable[Any]) -> AsyncIterator[Any]:
    if isinstance(items, AsyncIterable):
        async for item in items:
            yield item
    else:
        for item in items:
            yield item


class StreamInput:
    """Sends caller-supplied messages through a ControlProtocol."""

    def __init__(self, protocol: ControlProtocol):
        self.protocol = protocol
        self.sent = 0

    async def send(
        self,
        items: Iterable[StreamItem] | AsyncIterable[StreamItem],
        session_id: str = "default",
    ) -> int:
        """Write each item as a user message.

        The cancellation signal is checked before every item, so an abort
        stops the stream between items; an item is never half sent.

        Returns:
            Number of items sent

        Raises:
            AbortError: If the signal fires mid-stream
        """
        signal = self.protocol.signal
        async for item in _iterate(items):
            signal.check()
            await self.protocol.send_raw(normalize_stream_item(item, session_id))
            self.sent += 1
        logger.debug(f"Stream input finished after {self.sent} messages")
        return self.sent

    async def conversation(
        self,
        items: Iterable[StreamItem] | AsyncIterable[StreamItem],
        session_id: str = "default",
    ) -> AsyncIterator[Message]:
        """Send items in the background while yielding incoming messages.

        Stops after the first result message. A failure in the sender is
        raised here: AbortError as is, anything else wrapped in
        ClaudeAgentError.
        """
        sender = asyncio.create_task(self.send(items, session_id))

        def check_sender() -> None:
            self._raise_sender_error(sender)

        try:
            async for message in self.protocol.each_message(check=check_sender):
                yield message
                check_sender()
                if is_result(message):
                    break
        finally:
            if not sender.done():
                await asyncio.wait({sender}, timeout=SENDER_JOIN_TIMEOUT)
            if not sender.done():
                sender.cancel()
                await asyncio.gather(sender, return_exceptions=True)

        check_sender()

    @staticmethod
    def _raise_sender_error(sender: asyncio.Task[int]) -> None:
        if not sender.done() or sender.cancelled():
            return
        error = sender.exception()
        if error is None:
            return
        if isinstance(error, AbortError):
            raise error
        raise ClaudeAgentError(f"Stream input error: {error}") from error
