"""Python SDK for driving the Claude Code CLI as a subprocess.

Entry points:
- query(): one prompt in, messages out
- ClaudeAgentClient: long-lived, multi-turn session with control-plane access
- Session (unstable): lazily connected multi-turn wrapper over the client

Both speak newline-delimited JSON with the CLI and support hooks, tool
permission callbacks, and in-process MCP tool servers.
"""

from ._version import __version__
from .abort import AbortController, AbortSignal
from .client import ClaudeAgentClient
from .errors import (
    AbortError,
    BufferOverflowError,
    ClaudeAgentError,
    CLIConnectionError,
    CLINotFoundError,
    CLIVersionError,
    ConfigurationError,
    ControlTimeoutError,
    MessageParseError,
    ProcessError,
    ProtocolError,
)
from .hooks import HOOK_EVENTS, HookContext, HookMatcher
from .mcp import SdkMcpServer, SdkMcpTool, create_sdk_mcp_server, tool
from .messages import (
    AssistantMessage,
    AuthStatusMessage,
    CompactBoundaryMessage,
    GenericMessage,
    HookProgressMessage,
    HookResponseMessage,
    HookStartedMessage,
    ImageBlock,
    Message,
    PermissionDenial,
    ResultMessage,
    ServerToolResultBlock,
    ServerToolUseBlock,
    StatusMessage,
    StreamEvent,
    SystemMessage,
    TaskNotificationMessage,
    TextBlock,
    ThinkingBlock,
    ToolProgressMessage,
    ToolResultBlock,
    ToolUseBlock,
    ToolUseSummaryMessage,
    UserMessage,
    UserMessageReplay,
    parse_message,
)
from .options import PERMISSION_MODES, SETTING_SOURCES, AgentDefinition, Options, ToolsPreset
from .permissions import (
    PermissionResultAllow,
    PermissionResultDeny,
    PermissionUpdate,
    ToolPermissionContext,
)
from .protocol.control import ControlProtocol, ProtocolState
from .query import query
from .sandbox import (
    SandboxIgnoreViolations,
    SandboxNetworkConfig,
    SandboxRipgrepConfig,
    SandboxSettings,
)
from .session import (
    Session,
    SessionOptions,
    unstable_v2_create_session,
    unstable_v2_prompt,
    unstable_v2_resume_session,
)
from .spawn import LocalSpawnedProcess, SpawnedProcess, SpawnOptions
from .transport import MockTransport, SubprocessCLITransport, Transport
from .types import (
    AccountInfo,
    McpServerStatus,
    McpSetServersResult,
    ModelInfo,
    RewindFilesResult,
    ServerInfo,
    SlashCommand,
)

__all__ = [
    "__version__",
    # Entry points
    "query",
    "ClaudeAgentClient",
    "ControlProtocol",
    "ProtocolState",
    "Session",
    "SessionOptions",
    "unstable_v2_create_session",
    "unstable_v2_resume_session",
    "unstable_v2_prompt",
    # Configuration
    "Options",
    "PERMISSION_MODES",
    "SETTING_SOURCES",
    "AgentDefinition",
    "ToolsPreset",
    "SandboxSettings",
    "SandboxNetworkConfig",
    "SandboxIgnoreViolations",
    "SandboxRipgrepConfig",
    "AbortController",
    "AbortSignal",
    # Hooks and permissions
    "HOOK_EVENTS",
    "HookContext",
    "HookMatcher",
    "PermissionResultAllow",
    "PermissionResultDeny",
    "PermissionUpdate",
    "ToolPermissionContext",
    # MCP
    "SdkMcpServer",
    "SdkMcpTool",
    "create_sdk_mcp_server",
    "tool",
    # Messages
    "Message",
    "UserMessage",
    "UserMessageReplay",
    "AssistantMessage",
    "SystemMessage",
    "CompactBoundaryMessage",
    "StatusMessage",
    "TaskNotificationMessage",
    "HookStartedMessage",
    "HookProgressMessage",
    "HookResponseMessage",
    "ResultMessage",
    "PermissionDenial",
    "StreamEvent",
    "ToolProgressMessage",
    "AuthStatusMessage",
    "ToolUseSummaryMessage",
    "GenericMessage",
    "TextBlock",
    "ThinkingBlock",
    "ToolUseBlock",
    "ToolResultBlock",
    "ServerToolUseBlock",
    "ServerToolResultBlock",
    "ImageBlock",
    "parse_message",
    # Control-plane results
    "AccountInfo",
    "McpServerStatus",
    "McpSetServersResult",
    "ModelInfo",
    "RewindFilesResult",
    "ServerInfo",
    "SlashCommand",
    # Transports and processes
    "Transport",
    "SubprocessCLITransport",
    "MockTransport",
    "SpawnOptions",
    "SpawnedProcess",
    "LocalSpawnedProcess",
    # Errors
    "ClaudeAgentError",
    "ConfigurationError",
    "CLINotFoundError",
    "CLIVersionError",
    "CLIConnectionError",
    "ProcessError",
    "BufferOverflowError",
    "ControlTimeoutError",
    "AbortError",
    "ProtocolError",
    "MessageParseError",
]
