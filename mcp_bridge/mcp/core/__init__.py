# mcp_bridge/mcp/core/__init__.py
"""Core MCP components"""

from mcp_bridge.mcp.core.errors import (
    DisabledError,
    ErrorKind,
    ExecutionError,
    MCPBridgeError,
    NotFoundError,
    ProviderConnectionError,
    ToolTimeoutError,
    UnsupportedOperationError,
    ValidationError,
)
from mcp_bridge.mcp.core.schema import ValidatedSignature, translate
from mcp_bridge.mcp.core.tool import ExecutionResult, Tool, ToolExecution, ToolFunction
from mcp_bridge.mcp.core.provider import ConnectionStatus, ConnectionType, Provider
from mcp_bridge.mcp.core.mcp_client import MCPClient
from mcp_bridge.mcp.core.tool_registry import ToolRegistry
from mcp_bridge.mcp.core.provider_registry import ProviderRegistry
from mcp_bridge.mcp.core.executor import ToolExecutor
from mcp_bridge.mcp.core.selector import RelevanceSelector
from mcp_bridge.mcp.core.agent import AgentOrchestrator, ChatMessage, TurnResult

__all__ = [
    'ErrorKind',
    'MCPBridgeError',
    'NotFoundError',
    'ValidationError',
    'DisabledError',
    'ProviderConnectionError',
    'UnsupportedOperationError',
    'ExecutionError',
    'ToolTimeoutError',
    'ValidatedSignature',
    'translate',
    'Tool',
    'ExecutionResult',
    'ToolExecution',
    'ToolFunction',
    'Provider',
    'ConnectionType',
    'ConnectionStatus',
    'MCPClient',
    'ToolRegistry',
    'ProviderRegistry',
    'ToolExecutor',
    'RelevanceSelector',
    'AgentOrchestrator',
    'ChatMessage',
    'TurnResult',
]
