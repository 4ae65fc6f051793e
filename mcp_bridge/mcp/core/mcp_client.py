# mcp_bridge/mcp/core/mcp_client.py
"""
MCP Client
==========
Client component nói chuyện với các MCP servers (providers) theo
giao thức request/response kiểu JSON-RPC.

Hỗ trợ:
- Reachability probe (GET <endpoint>/health)
- Tool discovery (tools/list)
- Tool execution (tools/call)

Chỉ connection type `http` được implement; `websocket` và `stdio`
raise UnsupportedOperationError thay vì network error.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from mcp_bridge.core.logging import logger
from mcp_bridge.core.settings import settings
from mcp_bridge.mcp.core.errors import (
    ExecutionError,
    ProviderConnectionError,
    ToolTimeoutError,
    UnsupportedOperationError,
)
from mcp_bridge.mcp.core.provider import ConnectionType, Provider

PROTOCOL_VERSION = "2.0"


def generate_request_id() -> str:
    return f"req_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class MCPRequest:
    """Outgoing request to an MCP server"""
    method: str  # tools/list, tools/call
    params: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=generate_request_id)

    def to_dict(self) -> Dict[str, Any]:
        # `jsonrpc` for standard MCP servers, `protocolVersion` for the
        # bridge's own envelope; both carry the same version.
        return {
            "jsonrpc": PROTOCOL_VERSION,
            "protocolVersion": PROTOCOL_VERSION,
            "id": self.id,
            "method": self.method,
            "params": self.params,
        }


@dataclass
class MCPResponse:
    """Reply from an MCP server"""
    result: Any = None
    error: Optional[Dict[str, Any]] = None
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "MCPResponse":
        if not isinstance(data, dict):
            raise ValueError("reply is not a JSON object")
        error = data.get("error")
        if error is not None and not isinstance(error, dict):
            error = {"code": None, "message": str(error)}
        if error is None and "result" not in data:
            raise ValueError("reply has neither result nor error")
        return cls(result=data.get("result"), error=error, id=data.get("id"))

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def error_message(self) -> str:
        if not self.error:
            return ""
        return str(self.error.get("message") or "Unknown error")

    def to_dict(self) -> Dict[str, Any]:
        response = {"jsonrpc": PROTOCOL_VERSION, "protocolVersion": PROTOCOL_VERSION, "id": self.id}
        if self.error:
            response["error"] = self.error
        else:
            response["result"] = self.result
        return response


class MCPClient:
    """
    Request/response client cho MCP providers.

    Usage:
        client = MCPClient()

        await client.probe(provider)
        definitions = await client.list_tools(provider)
        output = await client.call_tool(provider, "web-search", {"query": "rain"})

        await client.close()
    """

    def __init__(
        self,
        probe_timeout: float = settings.MCP_PROBE_TIMEOUT_SECONDS,
        discovery_timeout: float = settings.MCP_DISCOVERY_TIMEOUT_SECONDS,
        default_call_timeout: float = settings.MCP_DEFAULT_TOOL_TIMEOUT_SECONDS,
    ):
        self.probe_timeout = probe_timeout
        self.discovery_timeout = discovery_timeout
        self.default_call_timeout = default_call_timeout
        self._http_session: Optional[aiohttp.ClientSession] = None

    def set_http_session(self, session: aiohttp.ClientSession) -> None:
        """
        Set shared HTTP session from outside.
        Useful for sharing sessions across services.
        """
        self._http_session = session

    async def get_http_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session"""
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()
        return self._http_session

    async def close(self) -> None:
        """Cleanup HTTP resources"""
        if self._http_session and not self._http_session.closed:
            await self._http_session.close()
        self._http_session = None

    # --- Reachability ---

    async def probe(self, provider: Provider) -> None:
        """
        Lightweight reachability check against the provider.

        Raises:
            ProviderConnectionError: unreachable, timed out or non-200
            UnsupportedOperationError: connection type not implemented
        """
        if provider.connection_type == ConnectionType.WEBSOCKET:
            raise UnsupportedOperationError("WebSocket connection not implemented yet")
        if provider.connection_type == ConnectionType.STDIO:
            raise UnsupportedOperationError("STDIO connection not implemented yet")

        url = f"{provider.endpoint.rstrip('/')}/health"
        session = await self.get_http_session()
        try:
            async with session.get(
                url,
                headers=provider.auth_headers(),
                timeout=aiohttp.ClientTimeout(total=self.probe_timeout)
            ) as response:
                if response.status != 200:
                    raise ProviderConnectionError(
                        f"HTTP connection failed with status {response.status}",
                        provider_id=provider.id
                    )
        except asyncio.TimeoutError as e:
            raise ProviderConnectionError(
                f"HTTP connection failed: timed out after {self.probe_timeout}s",
                provider_id=provider.id,
                cause=e
            ) from e
        except aiohttp.ClientError as e:
            raise ProviderConnectionError(
                f"HTTP connection failed: {e}",
                provider_id=provider.id,
                cause=e
            ) from e

        logger.debug(f"Provider {provider.id} reachable at {url}")

    # --- Protocol exchange ---

    async def send_request(
        self,
        provider: Provider,
        request: MCPRequest,
        timeout: float
    ) -> MCPResponse:
        """
        Send one request using the provider's connection type.

        Raises:
            ProviderConnectionError: transport failure, timeout or malformed reply
            UnsupportedOperationError: connection type not implemented
        """
        if provider.connection_type != ConnectionType.HTTP:
            raise UnsupportedOperationError(
                f"Sending requests via {provider.connection_type.value} not implemented yet"
            )

        headers = {"Content-Type": "application/json", **provider.auth_headers()}
        session = await self.get_http_session()

        logger.debug(f"-> {provider.id} {request.method} [id={request.id}]")
        try:
            async with session.post(
                provider.endpoint,
                json=request.to_dict(),
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout)
            ) as response:
                response.raise_for_status()
                data = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise ProviderConnectionError(
                f"{request.method} request to {provider.name} timed out after {timeout}s",
                provider_id=provider.id,
                cause=e
            ) from e
        except aiohttp.ClientError as e:
            raise ProviderConnectionError(
                f"{request.method} request to {provider.name} failed: {e}",
                provider_id=provider.id,
                cause=e
            ) from e
        except ValueError as e:
            raise ProviderConnectionError(
                f"{request.method} reply from {provider.name} is not valid JSON",
                provider_id=provider.id,
                cause=e
            ) from e

        try:
            reply = MCPResponse.from_dict(data)
        except ValueError as e:
            raise ProviderConnectionError(
                f"Malformed {request.method} reply from {provider.name}: {e}",
                provider_id=provider.id,
                cause=e
            ) from e

        if reply.id is not None and reply.id != request.id:
            logger.warning(f"Reply id mismatch from {provider.id}: sent {request.id}, got {reply.id}")
        return reply

    async def list_tools(self, provider: Provider) -> List[Dict[str, Any]]:
        """
        Perform one `tools/list` round-trip.

        Returns:
            Discovered tool definitions ({name, description, inputSchema})
        """
        reply = await self.send_request(
            provider,
            MCPRequest(method="tools/list"),
            timeout=self.discovery_timeout
        )
        if reply.is_error:
            raise ProviderConnectionError(
                f"MCP tool discovery error: {reply.error_message}",
                provider_id=provider.id
            )

        result = reply.result or {}
        tools = result.get("tools", []) if isinstance(result, dict) else None
        if not isinstance(tools, list):
            raise ProviderConnectionError(
                f"Malformed tools/list reply from {provider.name}: tools is not a list",
                provider_id=provider.id
            )
        return [t for t in tools if isinstance(t, dict)]

    async def call_tool(
        self,
        provider: Provider,
        tool_name: str,
        arguments: Dict[str, Any],
        timeout: Optional[float] = None,
        tool_id: Optional[str] = None
    ) -> Any:
        """
        Perform one `tools/call` round-trip.

        Returns:
            The provider's `result` payload, unchanged

        Raises:
            ToolTimeoutError: call exceeded its timeout
            ExecutionError: transport failure or protocol-level error reply
            UnsupportedOperationError: connection type not implemented
        """
        timeout = timeout or self.default_call_timeout
        request = MCPRequest(method="tools/call", params={"name": tool_name, "arguments": arguments})

        try:
            reply = await asyncio.wait_for(
                self.send_request(provider, request, timeout=timeout),
                timeout=timeout
            )
        except asyncio.TimeoutError as e:
            raise ToolTimeoutError(f"Tool {tool_name} timed out after {timeout}s", tool_id=tool_id, cause=e) from e
        except ProviderConnectionError as e:
            if isinstance(e.cause, asyncio.TimeoutError):
                raise ToolTimeoutError(e.message, tool_id=tool_id, cause=e) from e
            raise ExecutionError(e.message, tool_id=tool_id, cause=e) from e

        if reply.is_error:
            raise ExecutionError(f"MCP tool error: {reply.error_message}", tool_id=tool_id)
        return reply.result
