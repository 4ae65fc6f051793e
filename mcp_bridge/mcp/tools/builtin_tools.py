# mcp_bridge/mcp/tools/builtin_tools.py
"""
Built-in Tools
==============
Các tools nội bộ đăng ký lúc bootstrap với endpoint `internal://<name>`.

Đây là mock implementations: mỗi handler là pure function của các
action parameters đã được validate. Action không hỗ trợ là usage
error (ExecutionError), không phải crash.
"""

from typing import Any, Dict, List
from urllib.parse import quote

from mcp_bridge.core.constants import INTERNAL_ENDPOINT_SCHEME
from mcp_bridge.core.logging import logger
from mcp_bridge.mcp.core.errors import ExecutionError
from mcp_bridge.mcp.core.tool import Tool, utcnow
from mcp_bridge.mcp.core.tool_registry import ToolRegistry


async def file_system_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    action = arguments.get("action")
    path = arguments.get("path")
    content = arguments.get("content")

    if action == "read":
        return {"content": f"Mock file content from {path}", "path": path}
    if action == "write":
        return {"success": True, "path": path, "bytesWritten": len(content or "")}
    if action == "list":
        return {"files": ["file1.txt", "file2.js", "folder1/"], "path": path or "./"}

    raise ExecutionError(f"Unsupported file system action: {action}")


async def web_search_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    query = arguments.get("query", "")
    max_results = arguments.get("maxResults", 5)

    results = [
        {
            "title": f'Search result for "{query}"',
            "url": f"https://example.com/search?q={quote(query, safe='')}",
            "snippet": f"This is a mock search result for the query: {query}",
        }
    ][:max(int(max_results), 0)]

    return {"query": query, "results": results, "totalResults": len(results)}


async def git_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    action = arguments.get("action")
    branch = arguments.get("branch")

    if action == "status":
        return {
            "branch": branch or "main",
            "changes": ["modified: src/app.ts", "new file: lib/new-feature.ts"],
            "clean": False,
        }
    if action == "log":
        return {
            "commits": [
                {
                    "hash": "abc123",
                    "message": "Add new feature",
                    "author": "Developer",
                    "date": utcnow().isoformat(),
                }
            ]
        }

    raise ExecutionError(f"Unsupported git action: {action}")


BUILTIN_HANDLERS = {
    "file-system": file_system_tool,
    "web-search": web_search_tool,
    "git": git_tool,
}

BUILTIN_TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": "file-system",
        "description": "Read, write, and manage files and directories",
        "endpoint": f"{INTERNAL_ENDPOINT_SCHEME}file-system",
        "permissions": ["read", "write"],
        "inputSchema": {
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": ["read", "write", "list"]},
                "path": {"type": "string", "description": "File or directory path"},
                "content": {"type": "string", "description": "Content to write"},
            },
            "required": ["action", "path"],
        },
    },
    {
        "name": "web-search",
        "description": "Search the web for information",
        "endpoint": f"{INTERNAL_ENDPOINT_SCHEME}web-search",
        "permissions": ["read"],
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"},
                "maxResults": {"type": "integer", "description": "Maximum results", "default": 5},
            },
            "required": ["query"],
        },
    },
    {
        "name": "git",
        "description": "Git repository operations",
        "endpoint": f"{INTERNAL_ENDPOINT_SCHEME}git",
        "permissions": ["read"],
        "inputSchema": {
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": ["status", "log"]},
                "repository": {"type": "string", "description": "Repository path"},
                "branch": {"type": "string", "description": "Branch name"},
            },
            "required": ["action"],
        },
    },
]


async def register_builtin_tools(registry: ToolRegistry) -> List[Tool]:
    """Register the built-in tools into a registry"""
    tools = []
    for definition in BUILTIN_TOOL_DEFINITIONS:
        tools.append(await registry.register(definition))
    logger.info(f"Registered {len(tools)} built-in tools")
    return tools
