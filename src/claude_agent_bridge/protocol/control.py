"""Control protocol: multiplexes conversation and control traffic.

One ControlProtocol instance drives one CLI session. A background reader
task pulls decoded objects from the transport and routes them:

- control_request   -> a registered handler; the result is written back
                       as a control_response with the same request_id
- control_response  -> resolves the matching PendingRequest
- anything else     -> the conversation queue, consumed by each_message()

Outbound control requests (interrupt, set_model, ...) are correlated by
request_id, so several may be in flight and resolve in any order.

State machine:
    IDLE -> CONNECTING -> INITIALIZING (hooks / SDK MCP servers only)
         -> ACTIVE -> DRAINING -> CLOSED
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import json
import logging
import secrets
import time
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError

from ..abort import AbortSignal
from ..errors import (
    AbortError,
    CLIConnectionError,
    ConfigurationError,
    ControlTimeoutError,
    MessageParseError,
    ProtocolError,
)
from ..hooks import HookCallback, HookContext, build_hook_registry, normalize_hook_response
from ..messages import Message, is_result, parse_message
from ..options import PERMISSION_MODES, Options
from ..permissions import ToolPermissionContext, normalize_permission_result
from ..transport.base import Transport
from ..types import (
    AccountInfo,
    McpServerStatus,
    McpSetServersResult,
    ModelInfo,
    RewindFilesResult,
    ServerInfo,
    SlashCommand,
)
from .streaming import StreamInput, StreamItem
from .wire import (
    ControlRequest,
    ControlResponse,
    ControlSubtype,
    FrameKind,
    classify,
    control_error_envelope,
    control_request_envelope,
    control_success_envelope,
    user_message_envelope,
)

logger = logging.getLogger(__name__)

REQUEST_ID_PREFIX = "req"
POLL_INTERVAL = 0.1
STOP_TIMEOUT = 5.0

ControlHandler = Callable[[ControlRequest], Awaitable[dict[str, Any]]]
MessageParser = Callable[[dict[str, Any]], Message]


class ProtocolState(str, Enum):
    """Session lifecycle."""

    IDLE = "idle"
    CONNECTING = "connecting"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    DRAINING = "draining"
    CLOSED = "closed"


@dataclass
class PendingRequest:
    """An outbound control request waiting for its response."""

    request_id: str
    subtype: str
    future: asyncio.Future[ControlResponse]
    timeout: float
    created_at: float = field(default_factory=time.monotonic)

    @property
    def deadline(self) -> float:
        return self.created_at + self.timeout

    def fail(self, error: Exception) -> None:
        if not self.future.done():
            self.future.set_exception(error)


@dataclass
class _ReaderFailure:
    error: BaseException


_END = object()


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ControlProtocol:
    """Session driver on top of a Transport.

    Usage:
        protocol = ControlProtocol(transport, options)
        await protocol.start()
        await protocol.send_user_message("Hello")
        async for message in protocol.receive_response():
            print(message)
        await protocol.stop()
    """

    def __init__(
        self,
        transport: Transport,
        options: Options | None = None,
        message_parser: MessageParser = parse_message,
    ):
        self.transport = transport
        self.options = options or Options()
        self._parse = message_parser
        self._signal = self.options.abort_signal or AbortSignal()

        self._state = ProtocolState.IDLE
        self._server_info: ServerInfo | None = None
        self._request_counter = 0
        self._pending: dict[str, PendingRequest] = {}
        self._hook_callbacks: dict[str, HookCallback] = {}
        self._messages: asyncio.Queue[Any] = asyncio.Queue()

        self._reader_task: asyncio.Task[None] | None = None
        self._abort_task: asyncio.Task[None] | None = None
        self._handler_tasks: dict[str, asyncio.Task[None]] = {}
        self._closed = asyncio.Event()
        self._unregister_abort: Callable[[], None] | None = None
        self._exit_status: int | None = None

        self._handlers: dict[str, ControlHandler] = {
            ControlSubtype.CAN_USE_TOOL.value: self._handle_can_use_tool,
            ControlSubtype.HOOK_CALLBACK.value: self._handle_hook_callback,
            ControlSubtype.MCP_MESSAGE.value: self._handle_mcp_message,
        }

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> ProtocolState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == ProtocolState.ACTIVE

    @property
    def signal(self) -> AbortSignal:
        """The cancellation signal observed by every wait in this session."""
        return self._signal

    @property
    def server_info(self) -> ServerInfo | None:
        """Initialize acknowledgment, when an initialize request was sent."""
        return self._server_info

    @property
    def pending_request_ids(self) -> list[str]:
        return list(self._pending)

    @property
    def exit_status(self) -> int | None:
        return self._exit_status

    def register_handler(self, subtype: str, handler: ControlHandler) -> None:
        """Handle (or override the handling of) an inbound control request subtype."""
        self._handlers[subtype] = handler

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, streaming: bool = True, prompt: str | None = None) -> ServerInfo | None:
        """Connect the transport, start the reader, and initialize if needed.

        Returns:
            ServerInfo when an initialize handshake took place, else None

        Raises:
            AbortError: If the signal is already aborted
            CLINotFoundError, CLIVersionError, CLIConnectionError: From connect
            ControlTimeoutError, ProtocolError: If initialize fails
        """
        if self._state != ProtocolState.IDLE:
            raise CLIConnectionError(f"Control protocol already started ({self._state.value})")
        self._signal.check()

        self._state = ProtocolState.CONNECTING
        wire_hooks, self._hook_callbacks = build_hook_registry(self.options.hooks)

        try:
            await self.transport.connect(streaming=streaming, prompt=prompt)
        except BaseException:
            self._state = ProtocolState.CLOSED
            self._closed.set()
            raise

        loop = asyncio.get_running_loop()
        self._unregister_abort = self._signal.on_abort(
            lambda reason: self._schedule_on(loop, self._on_signal_abort, reason)
        )
        self._reader_task = asyncio.create_task(self._read_loop())

        if streaming and (self.options.has_hooks or self.options.has_sdk_mcp_servers):
            self._state = ProtocolState.INITIALIZING
            payload: dict[str, Any] = {"hooks": wire_hooks} if wire_hooks else {}
            try:
                response = await self.send_control_request(ControlSubtype.INITIALIZE, payload)
            except BaseException as e:
                await self._shutdown(lambda: CLIConnectionError(f"Initialize failed: {e}"))
                raise
            self._server_info = ServerInfo.from_wire(response)
            logger.debug("Control protocol initialized")

        if self._state in (ProtocolState.CONNECTING, ProtocolState.INITIALIZING):
            self._state = ProtocolState.ACTIVE
        return self._server_info

    async def stop(self) -> int | None:
        """Close input, let the CLI finish, and tear the session down.

        Pending control requests fail with CLIConnectionError.

        Returns:
            The CLI's exit status, if known
        """
        await self._shutdown(
            lambda: CLIConnectionError("Control protocol stopped"),
            graceful=True,
        )
        return self._exit_status

    async def abort(self, reason: str | None = None) -> None:
        """Abort the session.

        Fires the cancellation signal (first reason wins), fails every pending
        control request with AbortError, and terminates the CLI.
        """
        self._signal.abort(reason)
        reason = self._signal.reason
        await self._shutdown(lambda: AbortError(reason))

    def _on_signal_abort(self, reason: str) -> None:
        """Runs on the event loop when the signal fires from anywhere."""
        self._fail_pending(lambda: AbortError(reason))
        if self._state not in (ProtocolState.DRAINING, ProtocolState.CLOSED):
            self._abort_task = asyncio.create_task(self._shutdown(lambda: AbortError(reason)))

    @staticmethod
    def _schedule_on(loop: asyncio.AbstractEventLoop, fn: Callable[..., Any], *args: Any) -> None:
        try:
            loop.call_soon_threadsafe(fn, *args)
        except RuntimeError:
            # Loop already closed; nothing left to wake
            pass

    async def _shutdown(
        self,
        make_error: Callable[[], Exception],
        graceful: bool = False,
    ) -> None:
        if self._state in (ProtocolState.DRAINING, ProtocolState.CLOSED):
            await self._closed.wait()
            return

        self._state = ProtocolState.DRAINING
        self._fail_pending(make_error)

        if graceful:
            with contextlib.suppress(CLIConnectionError):
                await self.transport.end_input()
            if self._reader_task is not None:
                await asyncio.wait({self._reader_task}, timeout=STOP_TIMEOUT)
        else:
            try:
                await self.transport.terminate()
            except (OSError, CLIConnectionError) as e:
                logger.debug(f"Terminate failed: {e}")

        for task in list(self._handler_tasks.values()):
            task.cancel()
        if self._handler_tasks:
            await asyncio.gather(*self._handler_tasks.values(), return_exceptions=True)
        self._handler_tasks.clear()

        if self._reader_task is not None and not self._reader_task.done():
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task

        try:
            self._exit_status = await self.transport.close()
        except (OSError, CLIConnectionError) as e:
            logger.debug(f"Transport close failed: {e}")

        if self._unregister_abort is not None:
            self._unregister_abort()
            self._unregister_abort = None

        self._state = ProtocolState.CLOSED
        self._messages.put_nowait(_END)
        self._closed.set()
        logger.debug(f"Control protocol closed (exit status: {self._exit_status})")

    def _fail_pending(self, make_error: Callable[[], Exception]) -> None:
        for pending in list(self._pending.values()):
            pending.fail(make_error())

    # =========================================================================
    # Reader loop
    # =========================================================================

    async def _read_loop(self) -> None:
        try:
            async for raw in self.transport.read_messages():
                if self._signal.aborted or self._state == ProtocolState.DRAINING:
                    break
                try:
                    self._route(raw)
                except (ValidationError, MessageParseError, ValueError, TypeError) as e:
                    logger.warning(f"Skipping malformed message: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Reader loop failed: {e}")
            self._messages.put_nowait(_ReaderFailure(e))
            self._fail_pending(lambda: CLIConnectionError(f"CLI connection lost: {e}"))
        finally:
            self._fail_pending(lambda: CLIConnectionError("CLI output ended"))
            self._messages.put_nowait(_END)

    def _route(self, raw: dict[str, Any]) -> None:
        kind = classify(raw)

        if kind == FrameKind.CONTROL_REQUEST:
            request = ControlRequest.from_raw(raw)
            logger.debug(f"Control request {request.request_id}: {request.subtype}")
            task = asyncio.create_task(self._handle_control_request(request))
            self._handler_tasks[request.request_id] = task
            task.add_done_callback(lambda _t: self._handler_tasks.pop(request.request_id, None))

        elif kind == FrameKind.CONTROL_RESPONSE:
            response = ControlResponse.from_raw(raw)
            pending = self._pending.get(response.request_id)
            if pending is None or pending.future.done():
                logger.debug(f"Dropping response for unknown request {response.request_id}")
                return
            pending.future.set_result(response)

        elif kind == FrameKind.CONTROL_CANCEL_REQUEST:
            request_id = ControlRequest.from_raw(raw).request_id
            task = self._handler_tasks.get(request_id)
            if task is not None:
                logger.debug(f"Cancelling control request {request_id}")
                task.cancel()

        else:
            self._messages.put_nowait(raw)

    # =========================================================================
    # Inbound control requests
    # =========================================================================

    async def _handle_control_request(self, request: ControlRequest) -> None:
        handler = self._handlers.get(request.subtype)
        try:
            if handler is None:
                raise ProtocolError(
                    f"Unknown control request subtype: {request.subtype}",
                    request_id=request.request_id,
                )
            response = await handler(request)
            envelope = control_success_envelope(request.request_id, response or {})
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Control request {request.subtype} failed: {e}")
            envelope = control_error_envelope(request.request_id, str(e))

        try:
            await self._write(envelope)
        except CLIConnectionError as e:
            logger.debug(f"Could not answer {request.request_id}: {e}")

    async def _handle_can_use_tool(self, request: ControlRequest) -> dict[str, Any]:
        callback = self.options.can_use_tool
        if callback is None:
            return {"behavior": "allow"}

        tool_name = request.get("tool_name", "")
        tool_input = request.get("input") or {}
        context = ToolPermissionContext.from_request(request.payload, signal=self._signal)
        result = await _maybe_await(callback(tool_name, tool_input, context))
        return normalize_permission_result(result)

    async def _handle_hook_callback(self, request: ControlRequest) -> dict[str, Any]:
        callback_id = request.get("callback_id")
        callback = self._hook_callbacks.get(callback_id) if callback_id else None
        if callback is None:
            logger.warning(f"No hook registered for callback id {callback_id}")
            return {}

        context = HookContext(tool_use_id=request.get("tool_use_id"))
        result = await _maybe_await(callback(request.get("input") or {}, context))
        return normalize_hook_response(result)

    async def _handle_mcp_message(self, request: ControlRequest) -> dict[str, Any]:
        server_name = request.get("server_name")
        server = self.options.sdk_mcp_server(server_name) if server_name else None
        if server is None:
            raise ProtocolError(self._missing_mcp_server(server_name), request.request_id)

        mcp_response = await _maybe_await(server.handle_message(request.get("message") or {}))
        return {"mcp_response": mcp_response}

    def _missing_mcp_server(self, server_name: str | None) -> str:
        servers = self.options.mcp_servers
        config = servers.get(server_name) if isinstance(servers, dict) else None
        if config is None:
            return f"Unknown MCP server: {server_name}"
        if isinstance(config, dict) and config.get("type") == "sdk":
            return "No server instance"
        return "Not an SDK MCP server"

    # =========================================================================
    # Outbound control requests
    # =========================================================================

    def _next_request_id(self) -> str:
        self._request_counter += 1
        return f"{REQUEST_ID_PREFIX}_{self._request_counter}_{secrets.token_hex(4)}"

    async def send_control_request(
        self,
        subtype: str | ControlSubtype,
        payload: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send a control request and wait for its response.

        Returns:
            The response body

        Raises:
            AbortError: If the signal fires first (takes priority over timeout)
            ControlTimeoutError: If no response arrives within timeout
            ProtocolError: If the CLI answers with an error
            CLIConnectionError: If the session is not running
        """
        self._signal.check()
        if self._state not in (ProtocolState.INITIALIZING, ProtocolState.ACTIVE):
            raise CLIConnectionError(f"Control protocol is not active ({self._state.value})")
        if self._reader_task is not None and self._reader_task.done():
            raise CLIConnectionError("CLI output has ended")

        subtype = subtype.value if isinstance(subtype, ControlSubtype) else subtype
        timeout = self.options.control_timeout if timeout is None else timeout
        request_id = self._next_request_id()
        loop = asyncio.get_running_loop()
        pending = PendingRequest(
            request_id=request_id,
            subtype=subtype,
            future=loop.create_future(),
            timeout=timeout,
        )
        self._pending[request_id] = pending

        try:
            await self._write(control_request_envelope(request_id, subtype, payload or {}))
            response = await self._await_response(pending)
        finally:
            self._pending.pop(request_id, None)
            if pending.future.done() and not pending.future.cancelled():
                pending.future.exception()

        if response.is_error:
            raise ProtocolError(response.error or "Unknown error", request_id=request_id)
        return response.response

    async def _await_response(self, pending: PendingRequest) -> ControlResponse:
        while True:
            if self._signal.aborted:
                raise AbortError(self._signal.reason)
            if pending.future.done():
                return pending.future.result()
            remaining = pending.deadline - time.monotonic()
            if remaining <= 0:
                raise ControlTimeoutError(request_id=pending.request_id, timeout=pending.timeout)
            await asyncio.wait({pending.future}, timeout=min(POLL_INTERVAL, remaining))

    async def _write(self, message: dict[str, Any]) -> None:
        await self.transport.write(json.dumps(message))

    # =========================================================================
    # Conversation
    # =========================================================================

    async def send_user_message(
        self,
        content: str | list[dict[str, Any]],
        session_id: str = "default",
        uuid: str | None = None,
        parent_tool_use_id: str | None = None,
    ) -> None:
        self._signal.check()
        await self._write(user_message_envelope(content, session_id, uuid, parent_tool_use_id))

    async def send_raw(self, message: dict[str, Any]) -> None:
        """Write an already-built outbound message."""
        self._signal.check()
        await self._write(message)

    async def each_message(
        self, check: Callable[[], None] | None = None
    ) -> AsyncIterator[Message]:
        """Yield parsed conversation messages in arrival order.

        Ends cleanly when the CLI's output ends. Messages that fail to parse
        are logged and skipped.

        Args:
            check: Called on every poll; may raise to stop iteration

        Raises:
            AbortError: If the signal fires
            CLIConnectionError: If the CLI exits abnormally
        """
        while True:
            item = await self._next_item(check)
            if item is _END:
                # Keep the sentinel so later iterators end too
                self._messages.put_nowait(_END)
                self._signal.check()
                return
            if isinstance(item, _ReaderFailure):
                self._messages.put_nowait(_END)
                raise item.error
            try:
                message = self._parse(item)
            except MessageParseError as e:
                logger.warning(f"Skipping unparseable message: {e}")
                continue
            yield message

    async def receive_response(
        self, check: Callable[[], None] | None = None
    ) -> AsyncIterator[Message]:
        """Yield messages up to and including the next result message."""
        async for message in self.each_message(check):
            yield message
            if is_result(message):
                return

    async def _next_item(self, check: Callable[[], None] | None) -> Any:
        while True:
            try:
                return self._messages.get_nowait()
            except asyncio.QueueEmpty:
                pass
            self._signal.check()
            if check is not None:
                check()
            getter = asyncio.ensure_future(self._messages.get())
            done, _ = await asyncio.wait({getter}, timeout=POLL_INTERVAL)
            if getter in done:
                return getter.result()
            getter.cancel()

    async def stream_input(
        self,
        items: Iterable[StreamItem] | AsyncIterable[StreamItem],
        session_id: str = "default",
    ) -> int:
        """Send every item as a user message. See StreamInput.send."""
        return await StreamInput(self).send(items, session_id)

    def stream_conversation(
        self,
        items: Iterable[StreamItem] | AsyncIterable[StreamItem],
        session_id: str = "default",
    ) -> AsyncIterator[Message]:
        """Send items while yielding replies. See StreamInput.conversation."""
        return StreamInput(self).conversation(items, session_id)

    # =========================================================================
    # Control-plane operations
    # =========================================================================

    async def interrupt(self) -> dict[str, Any]:
        return await self.send_control_request(ControlSubtype.INTERRUPT)

    async def set_permission_mode(self, mode: str) -> dict[str, Any]:
        if mode not in PERMISSION_MODES:
            raise ConfigurationError(
                f"Invalid permission_mode: {mode}. Must be one of: {', '.join(PERMISSION_MODES)}"
            )
        return await self.send_control_request(ControlSubtype.SET_PERMISSION_MODE, {"mode": mode})

    async def set_model(self, model: str | None) -> dict[str, Any]:
        """Switch model; None restores the default."""
        return await self.send_control_request(ControlSubtype.SET_MODEL, {"model": model})

    async def set_max_thinking_tokens(self, tokens: int | None) -> dict[str, Any]:
        return await self.send_control_request(
            ControlSubtype.SET_MAX_THINKING_TOKENS, {"max_thinking_tokens": tokens}
        )

    async def rewind_files(self, user_message_id: str, dry_run: bool = False) -> RewindFilesResult:
        """Restore files to their state at a user message (needs file checkpointing)."""
        payload: dict[str, Any] = {"user_message_id": user_message_id}
        if dry_run:
            payload["dry_run"] = True
        response = await self.send_control_request(ControlSubtype.REWIND_FILES, payload)
        return RewindFilesResult.from_wire(response)

    async def set_mcp_servers(self, servers: dict[str, Any]) -> McpSetServersResult:
        """Replace the dynamically added MCP servers.

        In-process (type "sdk") servers are handled locally and not sent.
        """
        external = {
            name: config
            for name, config in servers.items()
            if not (isinstance(config, dict) and config.get("type") == "sdk")
        }
        response = await self.send_control_request(
            ControlSubtype.MCP_SET_SERVERS, {"servers": external}
        )
        return McpSetServersResult.from_wire(response)

    async def mcp_reconnect(self, server_name: str) -> dict[str, Any]:
        return await self.send_control_request(
            ControlSubtype.MCP_RECONNECT, {"serverName": server_name}
        )

    async def mcp_toggle(self, server_name: str, enabled: bool) -> dict[str, Any]:
        return await self.send_control_request(
            ControlSubtype.MCP_TOGGLE, {"serverName": server_name, "enabled": enabled}
        )

    async def mcp_server_status(self) -> list[McpServerStatus]:
        response = await self.send_control_request(ControlSubtype.MCP_STATUS)
        return [McpServerStatus.from_wire(s) for s in response.get("servers") or []]

    async def supported_commands(self) -> list[SlashCommand]:
        response = await self.send_control_request(ControlSubtype.SUPPORTED_COMMANDS)
        return [SlashCommand.from_wire(c) for c in response.get("commands") or []]

    async def supported_models(self) -> list[ModelInfo]:
        response = await self.send_control_request(ControlSubtype.SUPPORTED_MODELS)
        return [ModelInfo.from_wire(m) for m in response.get("models") or []]

    async def account_info(self) -> AccountInfo:
        response = await self.send_control_request(ControlSubtype.ACCOUNT_INFO)
        return AccountInfo.from_wire(response)
