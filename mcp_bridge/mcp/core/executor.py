# mcp_bridge/mcp/core/executor.py
"""
Tool Execution Engine
=====================
Thực thi một tool theo id và luôn trả về đúng một ExecutionResult.

Pipeline:
1. Resolve tool (NOT_FOUND)
2. Kiểm tra enabled của tool và provider sở hữu (DISABLED)
3. Validate input qua signature của tool (VALIDATION)
4. Dispatch:
   - internal://<name>  -> built-in handler
   - provider-backed    -> `tools/call` tới provider
   - endpoint URL riêng -> `tools/call` thẳng tới endpoint

Engine không bao giờ raise ra ngoài; mọi lỗi nằm trong result.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from mcp_bridge.core.logging import logger
from mcp_bridge.mcp.core.errors import (
    ErrorKind,
    ExecutionError,
    MCPBridgeError,
    NotFoundError,
    ToolTimeoutError,
)
from mcp_bridge.mcp.core.mcp_client import MCPClient
from mcp_bridge.mcp.core.provider import Provider
from mcp_bridge.mcp.core.provider_registry import ProviderRegistry
from mcp_bridge.mcp.core.tool import ExecutionResult, Tool, ToolFunction
from mcp_bridge.mcp.core.tool_registry import ToolRegistry

BuiltinHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class ToolExecutor:
    """
    Execution engine cho cả built-in và provider-backed tools.

    Usage:
        executor = ToolExecutor(tool_registry, provider_registry, handlers=BUILTIN_HANDLERS)

        result = await executor.execute("tool_123", {"query": "rain tomorrow"})
        if result.success:
            print(result.output)
        else:
            print(result.error_kind, result.message)
    """

    def __init__(
        self,
        tool_registry: ToolRegistry,
        provider_registry: ProviderRegistry,
        handlers: Optional[Mapping[str, BuiltinHandler]] = None,
        client: Optional[MCPClient] = None
    ):
        self._tool_registry = tool_registry
        self._provider_registry = provider_registry
        self._handlers: Dict[str, BuiltinHandler] = dict(handlers or {})
        self._client = client or provider_registry.client

    def register_handler(self, name: str, handler: BuiltinHandler) -> None:
        """Register a built-in handler reachable as internal://<name>"""
        self._handlers[name] = handler

    async def execute(self, tool_id: str, tool_input: Any = None) -> ExecutionResult:
        """
        Execute a tool.

        Args:
            tool_id: Registry id of the tool
            tool_input: Raw input, validated against the tool's signature

        Returns:
            ExecutionResult (never raises)
        """
        tool = self._tool_registry.get(tool_id)
        if tool is None:
            return ExecutionResult.fail(tool_id, ErrorKind.NOT_FOUND, f"Tool {tool_id} not found")

        if not tool.enabled:
            return ExecutionResult.fail(tool_id, ErrorKind.DISABLED, f"Tool {tool_id} is disabled")

        provider = None
        if tool.provider_id is not None:
            provider = self._provider_registry.get(tool.provider_id)
            if provider is None:
                return ExecutionResult.fail(
                    tool_id, ErrorKind.NOT_FOUND, f"MCP server {tool.provider_id} not found"
                )
            if not provider.enabled:
                return ExecutionResult.fail(
                    tool_id, ErrorKind.DISABLED, f"MCP server {provider.name} is disabled"
                )

        try:
            arguments = tool.signature.validate(tool_input)
        except MCPBridgeError as e:
            logger.warning(f"Rejected input for tool {tool_id}: {e}")
            return ExecutionResult.fail(tool_id, e.kind, str(e))

        started = time.perf_counter()
        try:
            output = await self._dispatch(tool, provider, arguments)
        except MCPBridgeError as e:
            duration = _elapsed_ms(started)
            logger.error(f"Error executing tool {tool_id}: {e}")
            return ExecutionResult.fail(
                tool_id, e.kind, str(e),
                timed_out=getattr(e, "timed_out", False),
                duration_ms=duration
            )
        except asyncio.TimeoutError:
            duration = _elapsed_ms(started)
            logger.error(f"Tool {tool_id} timed out")
            return ExecutionResult.fail(
                tool_id, ErrorKind.EXECUTION, f"Tool {tool_id} timed out",
                timed_out=True, duration_ms=duration
            )
        except Exception as e:
            duration = _elapsed_ms(started)
            logger.exception(f"Unexpected error executing tool {tool_id}")
            return ExecutionResult.fail(
                tool_id, ErrorKind.EXECUTION, f"Tool execution failed: {e}", duration_ms=duration
            )

        duration = _elapsed_ms(started)
        logger.debug(f"Tool {tool_id} completed in {duration:.1f}ms")
        return ExecutionResult.ok(tool_id, output, duration_ms=duration)

    async def _dispatch(self, tool: Tool, provider: Optional[Provider], arguments: Dict[str, Any]) -> Any:
        timeout = tool.timeout or self._client.default_call_timeout

        handler_name = tool.handler_name
        if handler_name is not None:
            handler = self._handlers.get(handler_name)
            if handler is None:
                raise ExecutionError(f"Unknown internal tool type: {handler_name}", tool_id=tool.id)
            try:
                return await asyncio.wait_for(handler(arguments), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise ToolTimeoutError(f"Tool {tool.name} timed out after {timeout}s", tool_id=tool.id, cause=e) from e

        if provider is None:
            provider = _direct_provider(tool)

        return await self._client.call_tool(
            provider,
            tool.name,
            arguments,
            timeout=timeout,
            tool_id=tool.id
        )

    # --- Model-layer exports ---

    def as_function(self, tool_id: str) -> ToolFunction:
        """
        Callable export of one tool for the model layer.

        Cached in the registry; rebuilt after the tool changes.
        """
        return self._tool_registry.cached_export(tool_id, self._build_function)

    def as_functions(self, channel_id: Optional[str] = None) -> List[ToolFunction]:
        """
        Export enabled tools (optionally channel-scoped) as callable functions.

        Function names must be unique for the model layer; when two tools
        share a name the first registered one wins.
        """
        tools = (
            self._tool_registry.list_for_channel(channel_id)
            if channel_id is not None
            else self._tool_registry.list_enabled()
        )

        functions: List[ToolFunction] = []
        seen = set()
        for tool in tools:
            if tool.name in seen:
                logger.warning(f"Skipping duplicate tool name '{tool.name}' [id={tool.id}]")
                continue
            seen.add(tool.name)
            functions.append(self.as_function(tool.id))
        return functions

    def _build_function(self, tool: Tool) -> ToolFunction:
        tool_id = tool.id

        async def invoke(tool_input: Dict[str, Any]) -> ExecutionResult:
            return await self.execute(tool_id, tool_input)

        return ToolFunction(
            name=tool.name,
            description=tool.description,
            signature=tool.signature,
            invoke=invoke
        )

    # --- Health ---

    async def health(self, tool_id: str) -> Dict[str, Any]:
        """
        Health check for a tool.

        Returns:
            {"healthy": bool, "error": str | None}
        """
        tool = self._tool_registry.get(tool_id)
        if tool is None:
            return {"healthy": False, "error": "Tool not found"}
        if not tool.enabled:
            return {"healthy": False, "error": "Tool is disabled"}
        if tool.handler_name is not None:
            if tool.handler_name not in self._handlers:
                return {"healthy": False, "error": f"Unknown internal tool type: {tool.handler_name}"}
            return {"healthy": True, "error": None}

        try:
            if tool.provider_id is not None:
                provider = self._provider_registry.get(tool.provider_id)
                if provider is None:
                    raise NotFoundError(f"MCP server {tool.provider_id} not found")
            else:
                provider = _direct_provider(tool)
            await self._client.probe(provider)
        except MCPBridgeError as e:
            return {"healthy": False, "error": e.message}

        return {"healthy": True, "error": None}

    def __repr__(self) -> str:
        return f"<ToolExecutor: {len(self._handlers)} built-in handlers>"


def _direct_provider(tool: Tool) -> Provider:
    """Transient connection record for a tool with its own endpoint URL"""
    if not tool.endpoint:
        raise ExecutionError(f"Tool {tool.name} has no endpoint", tool_id=tool.id)
    return Provider(id=tool.id, name=tool.name, endpoint=tool.endpoint)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)
