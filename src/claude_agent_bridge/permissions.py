"""Tool permission callback types.

A can_use_tool callback receives (tool_name, tool_input, context) and
returns PermissionResultAllow / PermissionResultDeny, or a plain dict with
a "behavior" key. Anything else is treated as allow.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .errors import ConfigurationError
from .protocol.wire import fetch_dual

if TYPE_CHECKING:
    from .abort import AbortSignal

PERMISSION_UPDATE_TYPES = (
    "addRules",
    "replaceRules",
    "removeRules",
    "setMode",
    "addDirectories",
    "removeDirectories",
)

PERMISSION_UPDATE_DESTINATIONS = (
    "userSettings",
    "projectSettings",
    "localSettings",
    "session",
    "cliArg",
)


@dataclass
class PermissionUpdate:
    """A change to permission rules the CLI should apply alongside an allow."""

    type: str
    rules: list[dict[str, Any]] | None = None
    behavior: str | None = None
    mode: str | None = None
    directories: list[str] | None = None
    destination: str | None = None

    def __post_init__(self):
        if self.type not in PERMISSION_UPDATE_TYPES:
            raise ConfigurationError(
                f"Invalid permission update type: {self.type}. "
                f"Must be one of: {', '.join(PERMISSION_UPDATE_TYPES)}"
            )
        if self.destination is not None and self.destination not in PERMISSION_UPDATE_DESTINATIONS:
            raise ConfigurationError(
                f"Invalid permission update destination: {self.destination}. "
                f"Must be one of: {', '.join(PERMISSION_UPDATE_DESTINATIONS)}"
            )

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        if self.rules is not None:
            data["rules"] = [self._rule_to_wire(rule) for rule in self.rules]
        for key in ("behavior", "mode", "directories", "destination"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @staticmethod
    def _rule_to_wire(rule: Any) -> Any:
        if not isinstance(rule, dict):
            return rule
        wire = {
            "toolName": fetch_dual(rule, "tool_name"),
            "ruleContent": fetch_dual(rule, "rule_content"),
        }
        return {k: v for k, v in wire.items() if v is not None}


@dataclass
class PermissionResultAllow:
    updated_input: dict[str, Any] | None = None
    updated_permissions: list[PermissionUpdate | dict[str, Any]] | None = None

    behavior = "allow"

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {"behavior": "allow"}
        if self.updated_input is not None:
            data["updatedInput"] = self.updated_input
        if self.updated_permissions is not None:
            data["updatedPermissions"] = [
                p.to_wire() if isinstance(p, PermissionUpdate) else p
                for p in self.updated_permissions
            ]
        return data


@dataclass
class PermissionResultDeny:
    message: str = ""
    interrupt: bool = False

    behavior = "deny"

    def to_wire(self) -> dict[str, Any]:
        return {"behavior": "deny", "message": self.message, "interrupt": self.interrupt}


PermissionResult = PermissionResultAllow | PermissionResultDeny


@dataclass(frozen=True)
class ToolPermissionContext:
    """Extra information the CLI attaches to a permission check."""

    permission_suggestions: list[dict[str, Any]] | None = None
    blocked_path: str | None = None
    decision_reason: str | None = None
    tool_use_id: str | None = None
    agent_id: str | None = None
    signal: AbortSignal | None = field(default=None, compare=False)

    @classmethod
    def from_request(
        cls, payload: dict[str, Any], signal: AbortSignal | None = None
    ) -> ToolPermissionContext:
        return cls(
            permission_suggestions=fetch_dual(payload, "permission_suggestions"),
            blocked_path=fetch_dual(payload, "blocked_path"),
            decision_reason=fetch_dual(payload, "decision_reason"),
            tool_use_id=fetch_dual(payload, "tool_use_id"),
            agent_id=fetch_dual(payload, "agent_id"),
            signal=signal,
        )


PermissionOutput = PermissionResult | dict[str, Any] | None
CanUseTool = Callable[
    [str, dict[str, Any], ToolPermissionContext],
    PermissionOutput | Awaitable[PermissionOutput],
]


def normalize_permission_result(result: Any) -> dict[str, Any]:
    """Translate a callback's return value into the wire response."""
    if isinstance(result, PermissionResultAllow | PermissionResultDeny):
        return result.to_wire()

    if isinstance(result, dict):
        if result.get("behavior") == "allow":
            return PermissionResultAllow(
                updated_input=fetch_dual(result, "updated_input"),
                updated_permissions=fetch_dual(result, "updated_permissions"),
            ).to_wire()
        return PermissionResultDeny(
            message=result.get("message") or "",
            interrupt=bool(result.get("interrupt", False)),
        ).to_wire()

    return {"behavior": "allow"}
