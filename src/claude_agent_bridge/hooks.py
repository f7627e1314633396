"""Hook configuration and response normalisation.

Hooks are caller-supplied callbacks the CLI invokes at lifecycle events
(before a tool runs, after it returns, when a session starts, ...):

    async def block_rm(input: dict, context: HookContext) -> dict:
        if "rm -rf" in input.get("tool_input", {}).get("command", ""):
            return {"decision": "block", "reason": "Refusing rm -rf"}
        return {"continue_": True}

    options = Options(hooks={"PreToolUse": [HookMatcher(matcher="Bash", callbacks=[block_rm])]})

Callbacks return a free-form dict using Python naming; normalize_hook_response
maps it onto the field names the CLI expects.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .protocol.wire import camelize_keys

HOOK_EVENTS = (
    "PreToolUse",
    "PostToolUse",
    "PostToolUseFailure",
    "Notification",
    "UserPromptSubmit",
    "SessionStart",
    "SessionEnd",
    "Stop",
    "SubagentStart",
    "SubagentStop",
    "PreCompact",
    "PermissionRequest",
)

# Python-side key -> wire key. Trailing underscores dodge reserved words.
HOOK_RESPONSE_KEYS = {
    "continue_": "continue",
    "continue": "continue",
    "async_": "async",
    "async": "async",
    "async_timeout": "asyncTimeout",
    "suppress_output": "suppressOutput",
    "stop_reason": "stopReason",
    "decision": "decision",
    "system_message": "systemMessage",
    "reason": "reason",
}


@dataclass(frozen=True)
class HookContext:
    """Context handed to every hook callback."""

    tool_use_id: str | None = None


HookOutput = dict[str, Any] | None
HookCallback = Callable[[dict[str, Any], HookContext], HookOutput | Awaitable[HookOutput]]


@dataclass
class HookMatcher:
    """A set of callbacks for one event, optionally filtered by tool name.

    matcher may be None (match everything), a pipe-separated list of exact
    tool names ("Write|Edit"), or a regular expression.
    """

    matcher: str | None = None
    callbacks: list[HookCallback] = field(default_factory=list)
    timeout: float | None = None

    def matches(self, tool_name: str) -> bool:
        if self.matcher is None or self.matcher in ("", "*"):
            return True
        if "|" in self.matcher:
            return tool_name in self.matcher.split("|")
        return re.search(self.matcher, tool_name) is not None


def hook_callback_id(event: str, matcher_index: int, callback_index: int) -> str:
    """Deterministic id under which a callback is registered with the CLI."""
    return f"hook_{event}_{matcher_index}_{callback_index}"


def build_hook_registry(
    hooks: dict[str, list[HookMatcher]] | None,
) -> tuple[dict[str, list[dict[str, Any]]], dict[str, HookCallback]]:
    """Assign callback ids and build the initialize payload.

    Returns:
        (wire_config, callbacks_by_id). wire_config goes into the
        initialize request; callbacks_by_id is consulted when the CLI
        sends a hook_callback request.
    """
    wire_config: dict[str, list[dict[str, Any]]] = {}
    registry: dict[str, HookCallback] = {}

    for event, matchers in (hooks or {}).items():
        entries = []
        for matcher_index, matcher in enumerate(matchers):
            callback_ids = []
            for callback_index, callback in enumerate(matcher.callbacks):
                callback_id = hook_callback_id(event, matcher_index, callback_index)
                registry[callback_id] = callback
                callback_ids.append(callback_id)

            entry: dict[str, Any] = {
                "matcher": matcher.matcher,
                "hookCallbackIds": callback_ids,
            }
            if matcher.timeout is not None:
                entry["timeout"] = matcher.timeout
            entries.append(entry)
        wire_config[event] = entries

    return wire_config, registry


def normalize_hook_response(result: dict[str, Any] | None) -> dict[str, Any]:
    """Translate a callback's result into the CLI's hook output shape."""
    if not result:
        return {}

    response: dict[str, Any] = {}
    for key, wire_key in HOOK_RESPONSE_KEYS.items():
        if key in result:
            response[wire_key] = result[key]

    specific = result.get("hook_specific_output", result.get("hookSpecificOutput"))
    if isinstance(specific, dict):
        response["hookSpecificOutput"] = camelize_keys(specific)

    return response
