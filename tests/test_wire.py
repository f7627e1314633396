"""Tests for wire envelopes and dual-case field access."""

from __future__ import annotations

from claude_agent_bridge.protocol.wire import (
    ControlRequest,
    ControlResponse,
    ControlSubtype,
    FrameKind,
    camelize_keys,
    classify,
    control_error_envelope,
    control_request_envelope,
    control_success_envelope,
    fetch_dual,
    to_camel,
    user_message_envelope,
)

# =============================================================================
# Field access
# =============================================================================


class TestFetchDual:
    """Tests for fetch_dual."""

    def test_snake_and_camel_read_identically(self) -> None:
        """sessionId and session_id are interchangeable."""
        assert fetch_dual({"session_id": "abc"}, "session_id") == "abc"
        assert fetch_dual({"sessionId": "abc"}, "session_id") == "abc"

    def test_snake_case_wins(self) -> None:
        """When both spellings are present the snake_case value is used."""
        raw = {"session_id": "snake", "sessionId": "camel"}
        assert fetch_dual(raw, "session_id") == "snake"

    def test_none_falls_through_to_camel(self) -> None:
        """An explicit null snake_case value does not hide the camelCase one."""
        raw = {"tool_use_id": None, "toolUseId": "tu_1"}
        assert fetch_dual(raw, "tool_use_id") == "tu_1"

    def test_default(self) -> None:
        """Missing fields return the default."""
        assert fetch_dual({}, "request_id", "none") == "none"

    def test_falsy_values_are_kept(self) -> None:
        """False and 0 are real values, not missing ones."""
        assert fetch_dual({"is_error": False}, "is_error", True) is False
        assert fetch_dual({"numTurns": 0}, "num_turns", 5) == 0


class TestCamelCase:
    """Tests for case conversion helpers."""

    def test_to_camel(self) -> None:
        assert to_camel("hook_event_name") == "hookEventName"
        assert to_camel("already") == "already"
        assert to_camel("permissionDecision") == "permissionDecision"

    def test_camelize_keys(self) -> None:
        assert camelize_keys({"permission_decision": "deny", "x": 1}) == {
            "permissionDecision": "deny",
            "x": 1,
        }


# =============================================================================
# Classification and envelopes
# =============================================================================


class TestClassify:
    """Tests for routing classification."""

    def test_control_kinds(self) -> None:
        assert classify({"type": "control_request"}) == FrameKind.CONTROL_REQUEST
        assert classify({"type": "control_response"}) == FrameKind.CONTROL_RESPONSE
        assert classify({"type": "control_cancel_request"}) == FrameKind.CONTROL_CANCEL_REQUEST

    def test_everything_else_is_conversation(self) -> None:
        assert classify({"type": "assistant"}) == FrameKind.CONVERSATION
        assert classify({"type": "brand_new_type"}) == FrameKind.CONVERSATION
        assert classify({}) == FrameKind.CONVERSATION


class TestControlRequest:
    """Tests for ControlRequest decoding."""

    def test_from_raw(self) -> None:
        """The request body becomes the payload."""
        request = ControlRequest.from_raw(
            {
                "type": "control_request",
                "request_id": "cli_1",
                "request": {"subtype": "can_use_tool", "toolName": "Bash"},
            }
        )
        assert request.request_id == "cli_1"
        assert request.subtype == "can_use_tool"
        assert request.known_subtype == ControlSubtype.CAN_USE_TOOL
        assert request.get("tool_name") == "Bash"

    def test_camel_request_id(self) -> None:
        request = ControlRequest.from_raw({"requestId": "cli_2", "request": {"subtype": "x"}})
        assert request.request_id == "cli_2"

    def test_unknown_subtype(self) -> None:
        request = ControlRequest.from_raw({"request_id": "r", "request": {"subtype": "teleport"}})
        assert request.known_subtype is None

    def test_malformed_request_body(self) -> None:
        """A non-dict request body yields an empty payload."""
        request = ControlRequest.from_raw({"request_id": "r", "request": "oops"})
        assert request.subtype == ""
        assert request.payload == {}


class TestControlResponse:
    """Tests for ControlResponse decoding."""

    def test_success(self) -> None:
        response = ControlResponse.from_raw(
            {
                "type": "control_response",
                "response": {
                    "subtype": "success",
                    "request_id": "req_1_abc",
                    "response": {"mode": "plan"},
                },
            }
        )
        assert response.request_id == "req_1_abc"
        assert response.is_error is False
        assert response.response == {"mode": "plan"}

    def test_error(self) -> None:
        response = ControlResponse.from_raw(
            {
                "type": "control_response",
                "response": {"subtype": "error", "requestId": "req_2", "error": "nope"},
            }
        )
        assert response.request_id == "req_2"
        assert response.is_error is True
        assert response.error == "nope"

    def test_flat_body_without_inner_response(self) -> None:
        """Fields beside the metadata are treated as the response body."""
        response = ControlResponse.from_raw(
            {"response": {"subtype": "success", "request_id": "r", "models": []}}
        )
        assert response.response == {"models": []}


class TestEnvelopes:
    """Tests for outbound envelope builders."""

    def test_control_request_envelope(self) -> None:
        assert control_request_envelope("req_1", "set_model", {"model": "opus"}) == {
            "type": "control_request",
            "request_id": "req_1",
            "request": {"subtype": "set_model", "model": "opus"},
        }

    def test_success_envelope(self) -> None:
        envelope = control_success_envelope("cli_1", {"behavior": "allow"})
        assert envelope["type"] == "control_response"
        assert envelope["response"] == {
            "subtype": "success",
            "request_id": "cli_1",
            "response": {"behavior": "allow"},
        }

    def test_error_envelope(self) -> None:
        envelope = control_error_envelope("cli_1", "boom")
        assert envelope["response"] == {
            "subtype": "error",
            "request_id": "cli_1",
            "error": "boom",
        }

    def test_user_message_envelope(self) -> None:
        envelope = user_message_envelope("hi", session_id="s1", uuid="u1")
        assert envelope == {
            "type": "user",
            "message": {"role": "user", "content": "hi"},
            "parent_tool_use_id": None,
            "session_id": "s1",
            "uuid": "u1",
        }

    def test_user_message_envelope_without_uuid(self) -> None:
        assert "uuid" not in user_message_envelope("hi")
