"""Session configuration.

Options is the single configuration object for a session. It validates
itself on construction and knows how to render the CLI command line and
child environment:

    options = Options(
        model="sonnet",
        permission_mode="acceptEdits",
        max_turns=5,
        can_use_tool=my_permission_callback,
    )
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any

from ._version import __version__
from .abort import AbortController, AbortSignal
from .errors import ConfigurationError
from .hooks import HOOK_EVENTS, HookMatcher
from .permissions import CanUseTool
from .sandbox import SandboxSettings
from .spawn import SpawnFunction
from .transport.framing import DEFAULT_MAX_BUFFER_SIZE

PERMISSION_MODES = ("default", "acceptEdits", "plan", "bypassPermissions", "delegate", "dontAsk")
SETTING_SOURCES = ("user", "project", "local")

DEFAULT_CONTROL_TIMEOUT = 60.0
ENTRYPOINT = "sdk-py"

SKIP_VERSION_CHECK_ENV = "CLAUDE_AGENT_SDK_SKIP_VERSION_CHECK"
CLI_PATH_ENV = "CLAUDE_AGENT_CLI_PATH"


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").lower() == "true"


@dataclass
class ToolsPreset:
    """Named tool set, rendered as JSON for --tools."""

    preset: str = "claude_code"
    type: str = "preset"

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type, "preset": self.preset}


@dataclass
class AgentDefinition:
    """A subagent the CLI can delegate to, passed through --agents."""

    description: str
    prompt: str
    tools: list[str] | None = None
    disallowed_tools: list[str] | None = None
    model: str | None = None
    mcp_servers: list[Any] | None = None
    critical_system_reminder: str | None = None

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"description": self.description, "prompt": self.prompt}
        if self.tools is not None:
            wire["tools"] = self.tools
        if self.disallowed_tools is not None:
            wire["disallowedTools"] = self.disallowed_tools
        if self.model is not None:
            wire["model"] = self.model
        if self.mcp_servers is not None:
            wire["mcpServers"] = self.mcp_servers
        if self.critical_system_reminder is not None:
            wire["criticalSystemReminder_EXPERIMENTAL"] = self.critical_system_reminder
        return wire


@dataclass
class Options:
    """Configuration for a CLI session."""

    # Process
    cli_path: str | None = None
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    spawn_process: SpawnFunction | None = None
    skip_version_check: bool = field(default_factory=lambda: _env_flag(SKIP_VERSION_CHECK_ENV))
    max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE
    stderr_callback: Any = None  # Callable[[str], None]

    # Model and prompts
    model: str | None = None
    fallback_model: str | None = None
    system_prompt: str | dict[str, Any] | None = None
    append_system_prompt: str | None = None

    # Tools and permissions
    tools: list[str] | ToolsPreset | dict[str, Any] | str | None = None
    permission_mode: str | None = None
    allow_dangerously_skip_permissions: bool = False
    permission_prompt_tool_name: str | None = None
    allowed_tools: list[str] = field(default_factory=list)
    disallowed_tools: list[str] = field(default_factory=list)
    can_use_tool: CanUseTool | None = None

    # Conversation
    resume: str | None = None
    continue_conversation: bool = False
    fork_session: bool = False
    resume_session_at: str | None = None
    persist_session: bool = True
    include_partial_messages: bool = False
    enable_file_checkpointing: bool = False

    # Limits
    max_turns: int | None = None
    max_budget_usd: float | None = None
    max_thinking_tokens: int | None = None

    # Extensions
    mcp_servers: dict[str, Any] | str = field(default_factory=dict)
    strict_mcp_config: bool = False
    hooks: dict[str, list[HookMatcher]] | None = None
    add_dirs: list[str] = field(default_factory=list)
    settings: str | None = None
    sandbox: SandboxSettings | dict[str, Any] | None = None
    setting_sources: list[str] | None = None
    plugins: list[str | dict[str, Any]] = field(default_factory=list)
    user: str | None = None
    agent: str | None = None
    agents: dict[str, AgentDefinition | dict[str, Any]] | None = None
    betas: list[str] = field(default_factory=list)
    output_format: dict[str, Any] | None = None
    extra_args: dict[str, str | None] = field(default_factory=dict)

    # Setup hooks, at most one
    init: bool = False
    init_only: bool = False
    maintenance: bool = False

    # Control plane
    abort_controller: AbortController | None = None
    control_timeout: float = DEFAULT_CONTROL_TIMEOUT

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check option combinations.

        Raises:
            ConfigurationError: On the first invalid value found
        """
        if self.permission_mode is not None and self.permission_mode not in PERMISSION_MODES:
            raise ConfigurationError(
                f"Invalid permission_mode: {self.permission_mode}. "
                f"Must be one of: {', '.join(PERMISSION_MODES)}"
            )
        if (
            self.permission_mode == "bypassPermissions"
            and not self.allow_dangerously_skip_permissions
        ):
            raise ConfigurationError(
                "Must set allow_dangerously_skip_permissions=True to use bypassPermissions mode"
            )
        if self.can_use_tool is not None and not callable(self.can_use_tool):
            raise ConfigurationError("can_use_tool must be callable")
        if self.stderr_callback is not None and not callable(self.stderr_callback):
            raise ConfigurationError("stderr_callback must be callable")
        if self.max_turns is not None and (
            isinstance(self.max_turns, bool)
            or not isinstance(self.max_turns, int)
            or self.max_turns < 1
        ):
            raise ConfigurationError("max_turns must be a positive integer")
        if self.max_budget_usd is not None and (
            isinstance(self.max_budget_usd, bool)
            or not isinstance(self.max_budget_usd, int | float)
            or self.max_budget_usd <= 0
        ):
            raise ConfigurationError("max_budget_usd must be a positive number")
        if self.max_buffer_size <= 0:
            raise ConfigurationError("max_buffer_size must be positive")
        if self.control_timeout <= 0:
            raise ConfigurationError("control_timeout must be positive")
        if sum(bool(flag) for flag in (self.init, self.init_only, self.maintenance)) > 1:
            raise ConfigurationError(
                "Only one of init, init_only, or maintenance can be set at a time"
            )
        for source in self.setting_sources or ():
            if source not in SETTING_SOURCES:
                raise ConfigurationError(
                    f"Invalid setting source: {source}. "
                    f"Must be one of: {', '.join(SETTING_SOURCES)}"
                )
        if self.output_format is not None and not isinstance(self.output_format, dict):
            raise ConfigurationError("output_format must be a JSON schema dict")
        if self.tools is not None and not isinstance(self.tools, list | dict | str | ToolsPreset):
            raise ConfigurationError("tools must be a list, preset, dict or string")
        for event, matchers in (self.hooks or {}).items():
            if event not in HOOK_EVENTS:
                raise ConfigurationError(
                    f"Unknown hook event: {event}. Must be one of: {', '.join(HOOK_EVENTS)}"
                )
            for matcher in matchers:
                if not isinstance(matcher, HookMatcher):
                    raise ConfigurationError(f"Hooks for {event} must be HookMatcher instances")

    # =========================================================================
    # Collaborator interface used by the transport and control protocol
    # =========================================================================

    @property
    def has_hooks(self) -> bool:
        return bool(self.hooks)

    @property
    def has_sdk_mcp_servers(self) -> bool:
        return bool(self._sdk_mcp_servers())

    @property
    def abort_signal(self) -> AbortSignal | None:
        return self.abort_controller.signal if self.abort_controller else None

    def sdk_mcp_server(self, name: str) -> Any:
        """Instance of the in-process server registered under name, if any."""
        return self._sdk_mcp_servers().get(name)

    def resolved_cli_path(self) -> str | None:
        return self.cli_path or os.getenv(CLI_PATH_ENV) or None

    def to_env(self) -> dict[str, str]:
        """Extra environment for the child, layered over os.environ by the spawner."""
        env = dict(self.env)
        env["CLAUDE_CODE_ENTRYPOINT"] = ENTRYPOINT
        env["CLAUDE_AGENT_SDK_VERSION"] = __version__
        if self.enable_file_checkpointing:
            env["CLAUDE_CODE_ENABLE_SDK_FILE_CHECKPOINTING"] = "true"
        if self.cwd:
            env["PWD"] = str(self.cwd)
        return env

    def to_cli_args(self) -> list[str]:
        """CLI flags for these options, excluding the framing flags."""
        args: list[str] = []

        if isinstance(self.system_prompt, dict):
            args += ["--system-prompt", json.dumps(self.system_prompt)]
        elif self.system_prompt:
            args += ["--system-prompt", self.system_prompt]
        if self.append_system_prompt:
            args += ["--append-system-prompt", self.append_system_prompt]

        if self.model:
            args += ["--model", self.model]
        if self.fallback_model:
            args += ["--fallback-model", self.fallback_model]

        if isinstance(self.tools, list):
            args += ["--tools", ",".join(self.tools)]
        elif isinstance(self.tools, ToolsPreset):
            args += ["--tools", json.dumps(self.tools.to_wire())]
        elif isinstance(self.tools, dict):
            args += ["--tools", json.dumps(self.tools)]
        elif self.tools is not None:
            args += ["--tools", str(self.tools)]
        if self.allowed_tools:
            args += ["--allowedTools", ",".join(self.allowed_tools)]
        if self.disallowed_tools:
            args += ["--disallowedTools", ",".join(self.disallowed_tools)]

        if self.permission_mode:
            args += ["--permission-mode", self.permission_mode]
        if self.permission_prompt_tool_name:
            args += ["--permission-prompt-tool", self.permission_prompt_tool_name]
        elif self.can_use_tool is not None:
            # Route permission prompts back to us as can_use_tool requests
            args += ["--permission-prompt-tool", "stdio"]
        if self.allow_dangerously_skip_permissions:
            args.append("--dangerously-skip-permissions")

        if self.continue_conversation:
            args.append("--continue")
        if self.resume:
            args += ["--resume", self.resume]
        if self.fork_session:
            args.append("--fork-session")
        if self.resume_session_at:
            args += ["--resume-session-at", self.resume_session_at]

        if self.max_turns is not None:
            args += ["--max-turns", str(self.max_turns)]
        if self.max_budget_usd is not None:
            args += ["--max-budget-usd", str(self.max_budget_usd)]
        if self.max_thinking_tokens is not None:
            args += ["--max-thinking-tokens", str(self.max_thinking_tokens)]

        if isinstance(self.mcp_servers, str):
            args += ["--mcp-config", self.mcp_servers]
        else:
            external = {
                name: config
                for name, config in self.mcp_servers.items()
                if not _is_sdk_server(config)
            }
            if external:
                args += ["--mcp-config", json.dumps({"mcpServers": external})]
        if self.strict_mcp_config:
            args.append("--strict-mcp-config")

        if self.settings:
            args += ["--settings", self.settings]
        if self.sandbox is not None:
            sandbox = self.sandbox
            if isinstance(sandbox, SandboxSettings):
                sandbox = sandbox.to_wire()
            args += ["--sandbox", json.dumps(sandbox)]

        if self.user:
            args += ["--user", self.user]
        if self.agent:
            args += ["--agent", self.agent]
        for directory in self.add_dirs:
            args += ["--add-dir", str(directory)]
        if self.setting_sources:
            args += ["--setting-sources", ",".join(self.setting_sources)]
        for plugin in self.plugins:
            args += ["--plugin-dir", _plugin_dir(plugin)]
        if self.betas:
            args += ["--betas", ",".join(self.betas)]

        if self.enable_file_checkpointing:
            args.append("--enable-file-checkpointing")
        if not self.persist_session:
            args.append("--no-persist-session")
        if self.output_format is not None:
            args += ["--json-schema", json.dumps(_json_schema(self.output_format))]
        if self.include_partial_messages:
            args.append("--include-partial-messages")
        if self.agents:
            agents = {
                name: agent.to_wire() if isinstance(agent, AgentDefinition) else agent
                for name, agent in self.agents.items()
            }
            args += ["--agents", json.dumps(agents)]

        if self.init:
            args.append("--init")
        if self.init_only:
            args.append("--init-only")
        if self.maintenance:
            args.append("--maintenance")

        for key, value in self.extra_args.items():
            flag = key if key.startswith("--") else f"--{key}"
            args += [flag] if value is None else [flag, str(value)]

        return args

    def _sdk_mcp_servers(self) -> dict[str, Any]:
        if not isinstance(self.mcp_servers, dict):
            return {}
        return {
            name: config.get("instance")
            for name, config in self.mcp_servers.items()
            if _is_sdk_server(config)
        }


def _is_sdk_server(config: Any) -> bool:
    return isinstance(config, dict) and config.get("type") == "sdk"


def _json_schema(output_format: dict[str, Any]) -> Any:
    # {"type": "json_schema", "schema": {...}} carries the schema one level down
    if output_format.get("type") == "json_schema" and "schema" in output_format:
        return output_format["schema"]
    return output_format


def _plugin_dir(plugin: str | dict[str, Any]) -> str:
    if isinstance(plugin, dict):
        return str(plugin.get("path") or plugin.get("dir"))
    return str(plugin)
