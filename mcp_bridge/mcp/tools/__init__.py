# mcp_bridge/mcp/tools/__init__.py
"""
MCP Tools
=========
Các built-in tools có thể được gọi bởi agent hoặc admin API.
"""

from mcp_bridge.mcp.tools.builtin_tools import (
    BUILTIN_HANDLERS,
    BUILTIN_TOOL_DEFINITIONS,
    file_system_tool,
    git_tool,
    register_builtin_tools,
    web_search_tool,
)

__all__ = [
    'BUILTIN_HANDLERS',
    'BUILTIN_TOOL_DEFINITIONS',
    'file_system_tool',
    'git_tool',
    'web_search_tool',
    'register_builtin_tools',
]
