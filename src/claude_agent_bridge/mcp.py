"""In-process MCP tool servers.

Tools defined here run inside the SDK's own process. The CLI reaches them
through mcp_message control requests carrying a JSON-RPC payload:

    @tool("add", "Add two numbers", {"a": float, "b": float})
    async def add(args):
        return str(args["a"] + args["b"])

    calculator = create_sdk_mcp_server("calculator", tools=[add])
    options = Options(mcp_servers={"calculator": calculator.to_config()})
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ._version import __version__

logger = logging.getLogger(__name__)

MCP_PROTOCOL_VERSION = "2024-11-05"

METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603

ToolHandler = Callable[[dict[str, Any]], Any | Awaitable[Any]]

_PY_TYPE_SCHEMAS: dict[type, dict[str, str]] = {
    str: {"type": "string"},
    int: {"type": "integer"},
    float: {"type": "number"},
    bool: {"type": "boolean"},
    list: {"type": "array"},
    dict: {"type": "object"},
}


def _normalize_schema(schema: dict[str, Any] | None) -> dict[str, Any]:
    """Accept either a JSON schema or a {name: python_type} shorthand."""
    if not schema:
        return {"type": "object", "properties": {}}
    if "type" in schema or "properties" in schema:
        return schema
    if all(isinstance(value, type) for value in schema.values()):
        return {
            "type": "object",
            "properties": {
                name: _PY_TYPE_SCHEMAS.get(py_type, {"type": "string"})
                for name, py_type in schema.items()
            },
            "required": list(schema),
        }
    return schema


class SdkMcpTool:
    """A single tool: name, description, input schema and handler."""

    def __init__(
        self,
        name: str,
        description: str,
        input_schema: dict[str, Any] | None,
        handler: ToolHandler,
    ):
        self.name = name
        self.description = description
        self.input_schema = _normalize_schema(input_schema)
        self.handler = handler

    def to_definition(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    async def call(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Run the handler and wrap its result as MCP tool output.

        Handler exceptions become an isError result rather than propagating.
        """
        try:
            result = self.handler(arguments)
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Tool {self.name} failed: {e}")
            return {"content": [{"type": "text", "text": f"Error: {e}"}], "isError": True}
        return {"content": self._to_content(result), "isError": False}

    @staticmethod
    def _to_content(result: Any) -> list[Any]:
        if isinstance(result, str):
            return [{"type": "text", "text": result}]
        if isinstance(result, dict):
            if "content" in result:
                return result["content"]
            return [{"type": "text", "text": json.dumps(result)}]
        if isinstance(result, list):
            return result
        return [{"type": "text", "text": str(result)}]


class SdkMcpServer:
    """JSON-RPC handler exposing a set of SdkMcpTool instances."""

    def __init__(
        self,
        name: str,
        version: str = __version__,
        tools: list[SdkMcpTool] | None = None,
    ):
        self.name = name
        self.version = version
        self.tools: dict[str, SdkMcpTool] = {}
        for t in tools or []:
            self.add_tool(t)

    def add_tool(self, tool: SdkMcpTool) -> None:
        self.tools[tool.name] = tool

    def remove_tool(self, name: str) -> SdkMcpTool | None:
        return self.tools.pop(name, None)

    def to_config(self) -> dict[str, Any]:
        """Entry for Options.mcp_servers."""
        return {"type": "sdk", "name": self.name, "instance": self}

    async def handle_message(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """Handle one JSON-RPC message.

        Returns:
            The JSON-RPC response, or None for notifications.
        """
        method = message.get("method")
        params = message.get("params") or {}
        msg_id = message.get("id")

        try:
            if method == "initialize":
                result = self._initialize()
            elif method == "tools/list":
                result = {"tools": [t.to_definition() for t in self.tools.values()]}
            elif method == "tools/call":
                result = await self._call_tool(params)
            elif method == "notifications/initialized":
                return None
            else:
                return _jsonrpc_error(msg_id, METHOD_NOT_FOUND, f"Method not found: {method}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"MCP server {self.name} failed handling {method}")
            return _jsonrpc_error(msg_id, INTERNAL_ERROR, f"Internal error: {e}")

        return {"jsonrpc": "2.0", "id": msg_id, "result": result}

    def _initialize(self) -> dict[str, Any]:
        return {
            "protocolVersion": MCP_PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": self.name, "version": self.version},
        }

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        target = self.tools.get(name) if isinstance(name, str) else None
        if target is None:
            return {
                "content": [{"type": "text", "text": f"Unknown tool: {name}"}],
                "isError": True,
            }
        return await target.call(params.get("arguments") or {})


def _jsonrpc_error(msg_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": msg_id, "error": {"code": code, "message": message}}


def tool(
    name: str,
    description: str,
    input_schema: dict[str, Any] | None = None,
) -> Callable[[ToolHandler], SdkMcpTool]:
    """Decorator turning a function into an SdkMcpTool."""

    def decorator(handler: ToolHandler) -> SdkMcpTool:
        return SdkMcpTool(name, description, input_schema, handler)

    return decorator


def create_sdk_mcp_server(
    name: str,
    version: str = __version__,
    tools: list[SdkMcpTool] | None = None,
) -> SdkMcpServer:
    return SdkMcpServer(name=name, version=version, tools=tools)
