"""Typed results of control-plane operations."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from .protocol.wire import fetch_dual


class ServerInfo(BaseModel):
    """Acknowledgment returned by the CLI for the initialize request."""

    commands: list[dict[str, Any]] = Field(default_factory=list)
    output_style: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> ServerInfo:
        return cls(
            commands=fetch_dual(data, "commands", []),
            output_style=fetch_dual(data, "output_style"),
            raw=data,
        )


class RewindFilesResult(BaseModel):
    can_rewind: bool = False
    error: str | None = None
    files_changed: list[str] | None = None
    insertions: int | None = None
    deletions: int | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> RewindFilesResult:
        return cls(
            can_rewind=bool(fetch_dual(data, "can_rewind", False)),
            error=data.get("error"),
            files_changed=fetch_dual(data, "files_changed"),
            insertions=data.get("insertions"),
            deletions=data.get("deletions"),
        )


class SlashCommand(BaseModel):
    name: str
    description: str | None = None
    argument_hint: str | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> SlashCommand:
        return cls(
            name=data.get("name", ""),
            description=data.get("description"),
            argument_hint=fetch_dual(data, "argument_hint"),
        )


class ModelInfo(BaseModel):
    value: str
    display_name: str | None = None
    description: str | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> ModelInfo:
        return cls(
            value=data.get("value", ""),
            display_name=fetch_dual(data, "display_name"),
            description=data.get("description"),
        )


class McpServerStatus(BaseModel):
    name: str
    status: str
    server_info: dict[str, Any] | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> McpServerStatus:
        return cls(
            name=data.get("name", ""),
            status=data.get("status", "unknown"),
            server_info=fetch_dual(data, "server_info"),
        )


class AccountInfo(BaseModel):
    email: str | None = None
    organization: str | None = None
    subscription_type: str | None = None
    token_source: str | None = None
    api_key_source: str | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> AccountInfo:
        return cls(
            email=data.get("email"),
            organization=data.get("organization"),
            subscription_type=fetch_dual(data, "subscription_type"),
            token_source=fetch_dual(data, "token_source"),
            api_key_source=fetch_dual(data, "api_key_source"),
        )


class McpSetServersResult(BaseModel):
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> McpSetServersResult:
        return cls(
            added=data.get("added") or [],
            removed=data.get("removed") or [],
            errors=data.get("errors") or {},
        )
