"""One-shot query helper."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable

from .messages import Message, is_result
from .options import Options
from .protocol.control import ControlProtocol
from .protocol.streaming import StreamItem
from .transport.base import Transport
from .transport.subprocess_cli import SubprocessCLITransport

logger = logging.getLogger(__name__)


def needs_streaming(options: Options) -> bool:
    """Whether the session needs an open stdin for control traffic."""
    return options.has_hooks or options.has_sdk_mcp_servers or options.can_use_tool is not None


async def query(
    prompt: str | Iterable[StreamItem] | AsyncIterable[StreamItem],
    options: Options | None = None,
    transport: Transport | None = None,
) -> AsyncIterator[Message]:
    """Run a single prompt and yield messages up to the result.

    A plain string prompt without hooks, permission callbacks or in-process
    MCP servers runs in print mode (prompt on the command line, stdin
    closed). Otherwise the session streams: the prompt, or each item of an
    iterable prompt, is written as a user message.

    Example:
        async for message in query("What is 2 + 2?"):
            if isinstance(message, AssistantMessage):
                print(message.text)
    """
    options = options or Options()
    transport = transport or SubprocessCLITransport(options)
    protocol = ControlProtocol(transport, options)

    streaming = not isinstance(prompt, str) or needs_streaming(options)
    try:
        if not streaming:
            await protocol.start(streaming=False, prompt=prompt)
            async for message in protocol.receive_response():
                yield message
            return

        await protocol.start(streaming=True)
        if isinstance(prompt, str):
            await protocol.send_user_message(prompt)
            messages = protocol.receive_response()
        else:
            messages = protocol.stream_conversation(prompt)

        async for message in messages:
            yield message
            if is_result(message):
                break
    finally:
        await protocol.stop()
