"""Tests for permission results and their wire form."""

from __future__ import annotations

import pytest

from claude_agent_bridge.abort import AbortSignal
from claude_agent_bridge.errors import ConfigurationError
from claude_agent_bridge.permissions import (
    PermissionResultAllow,
    PermissionResultDeny,
    PermissionUpdate,
    ToolPermissionContext,
    normalize_permission_result,
)


class TestPermissionResults:
    """Tests for to_wire on result dataclasses."""

    def test_deny(self) -> None:
        assert PermissionResultDeny(message="blocked").to_wire() == {
            "behavior": "deny",
            "message": "blocked",
            "interrupt": False,
        }

    def test_deny_with_interrupt(self) -> None:
        assert PermissionResultDeny("stop", interrupt=True).to_wire()["interrupt"] is True

    def test_allow_bare(self) -> None:
        assert PermissionResultAllow().to_wire() == {"behavior": "allow"}

    def test_allow_with_updates(self) -> None:
        update = PermissionUpdate(
            type="addRules",
            rules=[{"tool_name": "Bash", "rule_content": "ls"}],
            behavior="allow",
            destination="session",
        )
        wire = PermissionResultAllow(
            updated_input={"command": "ls -la"},
            updated_permissions=[update, {"type": "setMode", "mode": "plan"}],
        ).to_wire()

        assert wire == {
            "behavior": "allow",
            "updatedInput": {"command": "ls -la"},
            "updatedPermissions": [
                {
                    "type": "addRules",
                    "rules": [{"toolName": "Bash", "ruleContent": "ls"}],
                    "behavior": "allow",
                    "destination": "session",
                },
                {"type": "setMode", "mode": "plan"},
            ],
        }

    def test_update_type_is_validated(self) -> None:
        with pytest.raises(ConfigurationError, match="permission update type"):
            PermissionUpdate(type="grantEverything")

    def test_update_destination_is_validated(self) -> None:
        with pytest.raises(ConfigurationError, match="permission update destination"):
            PermissionUpdate(type="setMode", mode="plan", destination="cloud")
        assert PermissionUpdate(type="setMode", destination="cliArg").destination == "cliArg"


class TestNormalizePermissionResult:
    """Tests for normalize_permission_result."""

    def test_dataclasses(self) -> None:
        assert normalize_permission_result(PermissionResultDeny("no"))["behavior"] == "deny"
        assert normalize_permission_result(PermissionResultAllow()) == {"behavior": "allow"}

    def test_allow_dict(self) -> None:
        assert normalize_permission_result(
            {"behavior": "allow", "updatedInput": {"x": 1}}
        ) == {"behavior": "allow", "updatedInput": {"x": 1}}

    def test_deny_dict(self) -> None:
        assert normalize_permission_result({"behavior": "deny", "message": "blocked"}) == {
            "behavior": "deny",
            "message": "blocked",
            "interrupt": False,
        }

    def test_anything_else_allows(self) -> None:
        assert normalize_permission_result(None) == {"behavior": "allow"}
        assert normalize_permission_result(True) == {"behavior": "allow"}


class TestToolPermissionContext:
    """Tests for ToolPermissionContext.from_request."""

    def test_dual_case_fields(self) -> None:
        signal = AbortSignal()
        context = ToolPermissionContext.from_request(
            {
                "subtype": "can_use_tool",
                "permissionSuggestions": [{"type": "setMode", "mode": "acceptEdits"}],
                "blocked_path": "/etc/passwd",
                "toolUseId": "tu_1",
            },
            signal=signal,
        )
        assert context.permission_suggestions == [{"type": "setMode", "mode": "acceptEdits"}]
        assert context.blocked_path == "/etc/passwd"
        assert context.tool_use_id == "tu_1"
        assert context.agent_id is None
        assert context.signal is signal
