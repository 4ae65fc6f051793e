# mcp_bridge/mcp/__init__.py
"""
MCP (Model Context Protocol) Module
===================================
Tool-orchestration layer của chat bridge: quản lý MCP servers và tools
của chúng, chọn tools liên quan cho từng message và thực thi có cô lập lỗi.

Components:
- ToolRegistry: Quản lý tools và channel scope
- ProviderRegistry: Quản lý MCP servers và discovery
- ToolExecutor: Thực thi tools, luôn trả về ExecutionResult
- AgentOrchestrator: Điều phối một lượt chat
"""

from mcp_bridge.mcp.core.tool_registry import ToolRegistry
from mcp_bridge.mcp.core.provider_registry import ProviderRegistry
from mcp_bridge.mcp.core.executor import ToolExecutor
from mcp_bridge.mcp.core.agent import AgentOrchestrator

__all__ = [
    'ToolRegistry',
    'ProviderRegistry',
    'ToolExecutor',
    'AgentOrchestrator',
]
