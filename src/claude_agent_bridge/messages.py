"""Conversation message models and the parser that produces them.

The reader loop hands every non-control object to parse_message(). Known
types become typed models; unknown types are preserved as GenericMessage
so newer CLI versions never break iteration. Only objects that cannot be
interpreted at all raise MessageParseError.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from .errors import MessageParseError
from .protocol.wire import fetch_dual

logger = logging.getLogger(__name__)


# =============================================================================
# Content blocks
# =============================================================================


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str = ""


class ThinkingBlock(BaseModel):
    type: Literal["thinking"] = "thinking"
    thinking: str = ""
    signature: str = ""


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str = ""
    name: str = ""
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str = ""
    content: str | list[dict[str, Any]] | None = None
    is_error: bool | None = None


class ServerToolUseBlock(BaseModel):
    """Tool call executed by an MCP server on the API side."""

    type: Literal["server_tool_use"] = "server_tool_use"
    id: str = ""
    name: str = ""
    input: dict[str, Any] = Field(default_factory=dict)
    server_name: str = ""


class ServerToolResultBlock(BaseModel):
    type: Literal["server_tool_result"] = "server_tool_result"
    tool_use_id: str = ""
    content: Any = None
    is_error: bool | None = None
    server_name: str = ""


class ImageBlock(BaseModel):
    """Image content; source is a base64 or url source dict."""

    type: Literal["image"] = "image"
    source: dict[str, Any] = Field(default_factory=dict)

    @property
    def source_type(self) -> str | None:
        return self.source.get("type")

    @property
    def media_type(self) -> str | None:
        return self.source.get("media_type")

    @property
    def data(self) -> str | None:
        return self.source.get("data")

    @property
    def url(self) -> str | None:
        return self.source.get("url")


ContentBlock = (
    TextBlock
    | ThinkingBlock
    | ToolUseBlock
    | ToolResultBlock
    | ServerToolUseBlock
    | ServerToolResultBlock
    | ImageBlock
    | dict[str, Any]
)

_BLOCK_TYPES: dict[str, type[BaseModel]] = {
    "text": TextBlock,
    "thinking": ThinkingBlock,
    "tool_use": ToolUseBlock,
    "tool_result": ToolResultBlock,
    "server_tool_use": ServerToolUseBlock,
    "server_tool_result": ServerToolResultBlock,
    "image": ImageBlock,
}


def parse_content_block(block: Any) -> ContentBlock:
    """Parse one content block. Unknown block types stay as raw dicts."""
    if not isinstance(block, dict):
        return block
    model = _BLOCK_TYPES.get(block.get("type", ""))
    if model is None:
        return block
    return model.model_validate(block)


# =============================================================================
# Messages
# =============================================================================


class UserMessage(BaseModel):
    """A user turn, either sent by us or echoed back by the CLI."""

    type: Literal["user"] = "user"
    content: str | list[ContentBlock] = ""
    uuid: str | None = None
    session_id: str | None = None
    parent_tool_use_id: str | None = None
    is_replay: bool = False

    def to_wire(self, default_session_id: str = "default") -> dict[str, Any]:
        """Outbound envelope for this message."""
        content = self.content
        if isinstance(content, list):
            content = [
                block.model_dump(exclude_none=True) if isinstance(block, BaseModel) else block
                for block in content
            ]
        message: dict[str, Any] = {
            "type": "user",
            "message": {"role": "user", "content": content},
            "parent_tool_use_id": self.parent_tool_use_id,
            "session_id": self.session_id or default_session_id,
        }
        if self.uuid:
            message["uuid"] = self.uuid
        return message


class UserMessageReplay(UserMessage):
    """A user turn the CLI replays when a session is resumed."""

    is_replay: bool = True
    is_synthetic: bool | None = None
    tool_use_result: Any = None


class AssistantMessage(BaseModel):
    type: Literal["assistant"] = "assistant"
    content: list[ContentBlock] = Field(default_factory=list)
    model: str = "unknown"
    uuid: str | None = None
    session_id: str | None = None
    error: str | None = None
    parent_tool_use_id: str | None = None

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        return "".join(block.text for block in self.content if isinstance(block, TextBlock))

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [block for block in self.content if isinstance(block, ToolUseBlock)]


class SystemMessage(BaseModel):
    type: Literal["system"] = "system"
    subtype: str = "unknown"
    data: dict[str, Any] = Field(default_factory=dict)


class CompactBoundaryMessage(SystemMessage):
    """Marks where the CLI compacted the conversation history."""

    subtype: str = "compact_boundary"
    uuid: str = ""
    session_id: str = ""
    compact_metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def trigger(self) -> str | None:
        return self.compact_metadata.get("trigger")

    @property
    def pre_tokens(self) -> int | None:
        return fetch_dual(self.compact_metadata, "pre_tokens")


class StatusMessage(SystemMessage):
    subtype: str = "status"
    uuid: str = ""
    session_id: str = ""
    status: str | None = None


class TaskNotificationMessage(SystemMessage):
    """Background task state change."""

    subtype: str = "task_notification"
    uuid: str = ""
    session_id: str = ""
    task_id: str = ""
    status: str = "unknown"
    output_file: str = ""
    summary: str = ""

    @property
    def completed(self) -> bool:
        return self.status == "completed"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def stopped(self) -> bool:
        return self.status == "stopped"


class _HookSystemMessage(SystemMessage):
    uuid: str = ""
    session_id: str = ""
    hook_id: str | None = None
    hook_name: str = ""
    hook_event: str = ""


class HookStartedMessage(_HookSystemMessage):
    subtype: str = "hook_started"


class HookProgressMessage(_HookSystemMessage):
    subtype: str = "hook_progress"
    stdout: str = ""
    stderr: str = ""
    output: str = ""


class HookResponseMessage(_HookSystemMessage):
    """Output of a shell hook the CLI ran."""

    subtype: str = "hook_response"
    stdout: str = ""
    stderr: str = ""
    output: str = ""
    exit_code: int | None = None
    outcome: str | None = None


class PermissionDenial(BaseModel):
    tool_name: str = ""
    tool_use_id: str = ""
    tool_input: dict[str, Any] = Field(default_factory=dict)


class ResultMessage(BaseModel):
    """Terminal message of a turn."""

    type: Literal["result"] = "result"
    subtype: str = "unknown"
    duration_ms: int = 0
    duration_api_ms: int = 0
    is_error: bool = False
    num_turns: int = 0
    session_id: str = ""
    total_cost_usd: float | None = None
    usage: dict[str, Any] | None = None
    result: str | None = None
    structured_output: Any = None
    errors: list[str] | None = None
    permission_denials: list[PermissionDenial] | None = None
    model_usage: dict[str, Any] | None = None

    @property
    def success(self) -> bool:
        return self.subtype == "success" and not self.is_error


class StreamEvent(BaseModel):
    """Partial-message event, emitted when include_partial_messages is set."""

    type: Literal["stream_event"] = "stream_event"
    uuid: str = ""
    session_id: str = ""
    event: dict[str, Any] = Field(default_factory=dict)
    parent_tool_use_id: str | None = None


class ToolProgressMessage(BaseModel):
    type: Literal["tool_progress"] = "tool_progress"
    uuid: str = ""
    session_id: str = ""
    tool_use_id: str = ""
    tool_name: str = ""
    parent_tool_use_id: str | None = None
    elapsed_time_seconds: float = 0


class AuthStatusMessage(BaseModel):
    type: Literal["auth_status"] = "auth_status"
    uuid: str = ""
    session_id: str = ""
    is_authenticating: bool = False
    output: list[str] = Field(default_factory=list)
    error: str | None = None


class ToolUseSummaryMessage(BaseModel):
    """Condensed summary of the tool calls that preceded it."""

    type: Literal["tool_use_summary"] = "tool_use_summary"
    uuid: str = ""
    session_id: str = ""
    summary: str = ""
    preceding_tool_use_ids: list[str] = Field(default_factory=list)


class GenericMessage(BaseModel):
    """Any message type this library does not model explicitly."""

    type: str
    raw: dict[str, Any] = Field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return fetch_dual(self.raw, key, default)


Message = (
    UserMessage
    | AssistantMessage
    | SystemMessage
    | ResultMessage
    | StreamEvent
    | ToolProgressMessage
    | AuthStatusMessage
    | ToolUseSummaryMessage
    | GenericMessage
)


def is_result(message: Any) -> bool:
    """True for the terminal message of a turn (typed or raw)."""
    if isinstance(message, ResultMessage):
        return True
    if isinstance(message, dict):
        return message.get("type") == "result"
    return False


# =============================================================================
# Parser
# =============================================================================


def parse_message(raw: dict[str, Any]) -> Message:
    """Turn a decoded conversation object into a typed message.

    Raises:
        MessageParseError: If raw has no type or a malformed body
    """
    if not isinstance(raw, dict):
        raise MessageParseError("Message is not a JSON object", raw_message=raw)

    msg_type = raw.get("type")
    if not msg_type or not isinstance(msg_type, str):
        raise MessageParseError("Message has no type", raw_message=raw)

    parser = _PARSERS.get(msg_type)
    if parser is None:
        logger.debug(f"Unmodelled message type: {msg_type}")
        return GenericMessage(type=msg_type, raw=raw)

    try:
        return parser(raw)
    except (ValidationError, TypeError, AttributeError) as e:
        raise MessageParseError(f"Malformed {msg_type} message: {e}", raw_message=raw) from e


def _parse_user(raw: dict[str, Any]) -> UserMessage:
    message = raw.get("message") or {}
    content = message.get("content", "")
    if isinstance(content, list):
        content = [parse_content_block(block) for block in content]
    elif not isinstance(content, str):
        content = str(content)
    common = {
        "content": content,
        "uuid": raw.get("uuid"),
        "session_id": fetch_dual(raw, "session_id"),
        "parent_tool_use_id": fetch_dual(raw, "parent_tool_use_id"),
    }
    if fetch_dual(raw, "is_replay"):
        return UserMessageReplay(
            **common,
            is_synthetic=fetch_dual(raw, "is_synthetic"),
            tool_use_result=fetch_dual(raw, "tool_use_result"),
        )
    return UserMessage(**common)


def _parse_assistant(raw: dict[str, Any]) -> AssistantMessage:
    message = raw.get("message") or {}
    return AssistantMessage(
        content=[parse_content_block(block) for block in message.get("content") or []],
        model=message.get("model") or raw.get("model") or "unknown",
        uuid=raw.get("uuid"),
        session_id=fetch_dual(raw, "session_id"),
        error=message.get("error") or raw.get("error"),
        parent_tool_use_id=fetch_dual(raw, "parent_tool_use_id"),
    )


def _parse_system(raw: dict[str, Any]) -> SystemMessage:
    data = raw.get("data")
    subtype = raw.get("subtype") or "unknown"
    common = {"subtype": subtype, "data": data if isinstance(data, dict) else raw}
    parser = _SYSTEM_PARSERS.get(subtype)
    if parser is None:
        return SystemMessage(**common)
    return parser(raw, common)


def _identity(raw: dict[str, Any]) -> dict[str, Any]:
    return {"uuid": raw.get("uuid") or "", "session_id": fetch_dual(raw, "session_id", "")}


def _hook_identity(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        **_identity(raw),
        "hook_id": fetch_dual(raw, "hook_id"),
        "hook_name": fetch_dual(raw, "hook_name", ""),
        "hook_event": fetch_dual(raw, "hook_event", ""),
    }


def _hook_output(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        "stdout": raw.get("stdout") or "",
        "stderr": raw.get("stderr") or "",
        "output": raw.get("output") or "",
    }


def _parse_compact_boundary(raw: dict[str, Any], common: dict[str, Any]) -> SystemMessage:
    return CompactBoundaryMessage(
        **common,
        **_identity(raw),
        compact_metadata=fetch_dual(raw, "compact_metadata", {}),
    )


def _parse_status(raw: dict[str, Any], common: dict[str, Any]) -> SystemMessage:
    return StatusMessage(**common, **_identity(raw), status=raw.get("status"))


def _parse_task_notification(raw: dict[str, Any], common: dict[str, Any]) -> SystemMessage:
    return TaskNotificationMessage(
        **common,
        **_identity(raw),
        task_id=fetch_dual(raw, "task_id", ""),
        status=raw.get("status") or "unknown",
        output_file=fetch_dual(raw, "output_file", ""),
        summary=raw.get("summary") or "",
    )


def _parse_hook_started(raw: dict[str, Any], common: dict[str, Any]) -> SystemMessage:
    return HookStartedMessage(**common, **_hook_identity(raw))


def _parse_hook_progress(raw: dict[str, Any], common: dict[str, Any]) -> SystemMessage:
    return HookProgressMessage(**common, **_hook_identity(raw), **_hook_output(raw))


def _parse_hook_response(raw: dict[str, Any], common: dict[str, Any]) -> SystemMessage:
    return HookResponseMessage(
        **common,
        **_hook_identity(raw),
        **_hook_output(raw),
        exit_code=fetch_dual(raw, "exit_code"),
        outcome=raw.get("outcome"),
    )


def _parse_result(raw: dict[str, Any]) -> ResultMessage:
    return ResultMessage(
        subtype=raw.get("subtype") or "unknown",
        duration_ms=fetch_dual(raw, "duration_ms", 0),
        duration_api_ms=fetch_dual(raw, "duration_api_ms", 0),
        is_error=fetch_dual(raw, "is_error", False),
        num_turns=fetch_dual(raw, "num_turns", 0),
        session_id=fetch_dual(raw, "session_id", ""),
        total_cost_usd=fetch_dual(raw, "total_cost_usd"),
        usage=raw.get("usage"),
        result=raw.get("result"),
        structured_output=fetch_dual(raw, "structured_output"),
        errors=raw.get("errors"),
        permission_denials=_parse_permission_denials(fetch_dual(raw, "permission_denials")),
        model_usage=fetch_dual(raw, "model_usage"),
    )


def _parse_permission_denials(denials: Any) -> list[PermissionDenial] | None:
    if not isinstance(denials, list):
        return None
    return [
        PermissionDenial(
            tool_name=fetch_dual(denial, "tool_name", ""),
            tool_use_id=fetch_dual(denial, "tool_use_id", ""),
            tool_input=fetch_dual(denial, "tool_input", {}),
        )
        for denial in denials
    ]


def _parse_stream_event(raw: dict[str, Any]) -> StreamEvent:
    return StreamEvent(
        uuid=raw.get("uuid") or "",
        session_id=fetch_dual(raw, "session_id", ""),
        event=raw.get("event") or {},
        parent_tool_use_id=fetch_dual(raw, "parent_tool_use_id"),
    )


def _parse_tool_progress(raw: dict[str, Any]) -> ToolProgressMessage:
    return ToolProgressMessage(
        uuid=raw.get("uuid") or "",
        session_id=fetch_dual(raw, "session_id", ""),
        tool_use_id=fetch_dual(raw, "tool_use_id", ""),
        tool_name=fetch_dual(raw, "tool_name", ""),
        parent_tool_use_id=fetch_dual(raw, "parent_tool_use_id"),
        elapsed_time_seconds=fetch_dual(raw, "elapsed_time_seconds", 0),
    )


def _parse_auth_status(raw: dict[str, Any]) -> AuthStatusMessage:
    return AuthStatusMessage(
        **_identity(raw),
        is_authenticating=bool(fetch_dual(raw, "is_authenticating", False)),
        output=raw.get("output") or [],
        error=raw.get("error"),
    )


def _parse_tool_use_summary(raw: dict[str, Any]) -> ToolUseSummaryMessage:
    return ToolUseSummaryMessage(
        **_identity(raw),
        summary=raw.get("summary") or "",
        preceding_tool_use_ids=fetch_dual(raw, "preceding_tool_use_ids", []),
    )


_SYSTEM_PARSERS = {
    "compact_boundary": _parse_compact_boundary,
    "status": _parse_status,
    "task_notification": _parse_task_notification,
    "hook_started": _parse_hook_started,
    "hook_progress": _parse_hook_progress,
    "hook_response": _parse_hook_response,
}

_PARSERS = {
    "user": _parse_user,
    "assistant": _parse_assistant,
    "system": _parse_system,
    "result": _parse_result,
    "stream_event": _parse_stream_event,
    "tool_progress": _parse_tool_progress,
    "auth_status": _parse_auth_status,
    "tool_use_summary": _parse_tool_use_summary,
}
