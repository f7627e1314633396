"""Wire-level definitions for the CLI control protocol.

Transport: newline-delimited JSON in both directions. Every object carries a
``type`` discriminator. Control traffic is wrapped in envelopes:

    {"type": "control_request", "request_id": "req_1_ab12cd34",
     "request": {"subtype": "interrupt"}}

    {"type": "control_response",
     "response": {"subtype": "success", "request_id": "req_1_ab12cd34",
                  "response": {...}}}

Anything else is a conversation message. The CLI is inconsistent about
field casing, so every read goes through fetch_dual(), which accepts both
snake_case and camelCase (snake_case wins when both are present).
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

_MISSING = object()
_CAMEL_BOUNDARY = re.compile(r"_([a-z0-9])")
_RESPONSE_META_KEYS = frozenset({"subtype", "request_id", "requestId", "error"})


class FrameKind(str, Enum):
    """Routing class of a decoded inbound object."""

    CONTROL_REQUEST = "control_request"
    CONTROL_RESPONSE = "control_response"
    CONTROL_CANCEL_REQUEST = "control_cancel_request"
    CONVERSATION = "conversation"


class ControlSubtype(str, Enum):
    """Known control request subtypes, in both directions."""

    # CLI -> SDK
    CAN_USE_TOOL = "can_use_tool"
    HOOK_CALLBACK = "hook_callback"
    MCP_MESSAGE = "mcp_message"

    # SDK -> CLI
    INITIALIZE = "initialize"
    INTERRUPT = "interrupt"
    SET_PERMISSION_MODE = "set_permission_mode"
    SET_MODEL = "set_model"
    SET_MAX_THINKING_TOKENS = "set_max_thinking_tokens"
    REWIND_FILES = "rewind_files"
    MCP_SET_SERVERS = "mcp_set_servers"
    MCP_RECONNECT = "mcp_reconnect"
    MCP_TOGGLE = "mcp_toggle"
    MCP_STATUS = "mcp_server_status"
    SUPPORTED_COMMANDS = "supported_commands"
    SUPPORTED_MODELS = "supported_models"
    ACCOUNT_INFO = "account_info"


def to_camel(name: str) -> str:
    """Convert snake_case to lowerCamelCase. Already-camel names pass through."""
    return _CAMEL_BOUNDARY.sub(lambda m: m.group(1).upper(), name)


def camelize_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Return a shallow copy of data with camelCase keys."""
    return {to_camel(str(key)): value for key, value in data.items()}


def fetch_dual(raw: dict[str, Any], key: str, default: Any = None) -> Any:
    """Read a field that may appear as snake_case or camelCase.

    The snake_case spelling is preferred when both are present.
    """
    value = raw.get(key, _MISSING)
    if value is not _MISSING and value is not None:
        return value
    camel = to_camel(key)
    if camel != key:
        value = raw.get(camel, _MISSING)
        if value is not _MISSING and value is not None:
            return value
    return default


def classify(raw: dict[str, Any]) -> FrameKind:
    """Decide how the reader loop routes a decoded object."""
    msg_type = raw.get("type")
    if msg_type == FrameKind.CONTROL_REQUEST.value:
        return FrameKind.CONTROL_REQUEST
    if msg_type == FrameKind.CONTROL_RESPONSE.value:
        return FrameKind.CONTROL_RESPONSE
    if msg_type == FrameKind.CONTROL_CANCEL_REQUEST.value:
        return FrameKind.CONTROL_CANCEL_REQUEST
    return FrameKind.CONVERSATION


class ControlRequest(BaseModel):
    """Inbound control request from the CLI, decoded once at the boundary."""

    request_id: str
    subtype: str
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> ControlRequest:
        request = raw.get("request") or {}
        if not isinstance(request, dict):
            request = {}
        return cls(
            request_id=str(fetch_dual(raw, "request_id", "")),
            subtype=str(request.get("subtype", "")),
            payload=request,
        )

    @property
    def known_subtype(self) -> ControlSubtype | None:
        try:
            return ControlSubtype(self.subtype)
        except ValueError:
            return None

    def get(self, key: str, default: Any = None) -> Any:
        """Dual-case lookup into the request body."""
        return fetch_dual(self.payload, key, default)


class ControlResponse(BaseModel):
    """Inbound control response correlated to one of our requests."""

    request_id: str
    subtype: str = "success"
    response: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> ControlResponse:
        body = raw.get("response") or {}
        if not isinstance(body, dict):
            body = {}
        inner = body.get("response")
        if not isinstance(inner, dict):
            inner = {k: v for k, v in body.items() if k not in _RESPONSE_META_KEYS}
        return cls(
            request_id=str(
                fetch_dual(body, "request_id", "") or fetch_dual(raw, "request_id", "")
            ),
            subtype=str(body.get("subtype", "success")),
            response=inner,
            error=body.get("error"),
        )

    @property
    def is_error(self) -> bool:
        return self.subtype == "error"


def control_request_envelope(
    request_id: str, subtype: str, payload: dict[str, Any]
) -> dict[str, Any]:
    """Build an outbound control_request object."""
    return {
        "type": FrameKind.CONTROL_REQUEST.value,
        "request_id": request_id,
        "request": {"subtype": subtype, **payload},
    }


def control_success_envelope(request_id: str, response: dict[str, Any]) -> dict[str, Any]:
    """Build an outbound control_response reporting success."""
    return {
        "type": FrameKind.CONTROL_RESPONSE.value,
        "response": {
            "subtype": "success",
            "request_id": request_id,
            "response": response,
        },
    }


def control_error_envelope(request_id: str, error: str) -> dict[str, Any]:
    """Build an outbound control_response reporting an error."""
    return {
        "type": FrameKind.CONTROL_RESPONSE.value,
        "response": {
            "subtype": "error",
            "request_id": request_id,
            "error": error,
        },
    }


def user_message_envelope(
    content: str | list[dict[str, Any]],
    session_id: str = "default",
    uuid: str | None = None,
    parent_tool_use_id: str | None = None,
) -> dict[str, Any]:
    """Build an outbound user message."""
    message: dict[str, Any] = {
        "type": "user",
        "message": {"role": "user", "content": content},
        "parent_tool_use_id": parent_tool_use_id,
        "session_id": session_id,
    }
    if uuid:
        message["uuid"] = uuid
    return message
