"""Sandbox configuration for command execution.

Rendered to the CLI as the JSON value of ``--sandbox``:

    sandbox = SandboxSettings(
        enabled=True,
        excluded_commands=["docker"],
        network=SandboxNetworkConfig(allow_local_binding=True),
    )
    options = Options(sandbox=sandbox)

Only values that differ from their defaults are written, so the CLI applies
its own defaults for everything else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class SandboxNetworkConfig:
    """Network access rules inside the sandbox."""

    allowed_domains: list[str] = field(default_factory=list)
    allow_local_binding: bool = False
    allow_unix_sockets: list[str] = field(default_factory=list)
    allow_all_unix_sockets: bool = False
    http_proxy_port: int | None = None
    socks_proxy_port: int | None = None

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {}
        if self.allowed_domains:
            wire["allowedDomains"] = list(self.allowed_domains)
        if self.allow_local_binding:
            wire["allowLocalBinding"] = True
        if self.allow_unix_sockets:
            wire["allowUnixSockets"] = list(self.allow_unix_sockets)
        if self.allow_all_unix_sockets:
            wire["allowAllUnixSockets"] = True
        if self.http_proxy_port is not None:
            wire["httpProxyPort"] = self.http_proxy_port
        if self.socks_proxy_port is not None:
            wire["socksProxyPort"] = self.socks_proxy_port
        return wire


@dataclass
class SandboxIgnoreViolations:
    """File and network patterns whose violations are not reported."""

    file: list[str] = field(default_factory=list)
    network: list[str] = field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {}
        if self.file:
            wire["file"] = list(self.file)
        if self.network:
            wire["network"] = list(self.network)
        return wire


@dataclass
class SandboxRipgrepConfig:
    command: str
    args: list[str] | None = None

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"command": self.command}
        if self.args is not None:
            wire["args"] = list(self.args)
        return wire


@dataclass
class SandboxSettings:
    """Sandbox switch plus its network, filesystem and tooling rules."""

    enabled: bool = False
    auto_allow_bash_if_sandboxed: bool = False
    excluded_commands: list[str] = field(default_factory=list)
    allow_unsandboxed_commands: bool = False
    network: SandboxNetworkConfig | None = None
    ignore_violations: SandboxIgnoreViolations | None = None
    enable_weaker_nested_sandbox: bool = False
    ripgrep: SandboxRipgrepConfig | None = None

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"enabled": self.enabled}
        if self.auto_allow_bash_if_sandboxed:
            wire["autoAllowBashIfSandboxed"] = True
        if self.excluded_commands:
            wire["excludedCommands"] = list(self.excluded_commands)
        if self.allow_unsandboxed_commands:
            wire["allowUnsandboxedCommands"] = True
        if self.network is not None and self.network.to_wire():
            wire["network"] = self.network.to_wire()
        if self.ignore_violations is not None and self.ignore_violations.to_wire():
            wire["ignoreViolations"] = self.ignore_violations.to_wire()
        if self.enable_weaker_nested_sandbox:
            wire["enableWeakerNestedSandbox"] = True
        if self.ripgrep is not None:
            wire["ripgrep"] = self.ripgrep.to_wire()
        return wire
