# tests/conftest.py
import os
import tempfile
from pathlib import Path

# Keep the interaction log of the module-level app out of the working tree
os.environ.setdefault("INTERACTIONS_DB_PATH", str(Path(tempfile.gettempdir()) / "mcp_bridge_test_interactions.json"))
os.environ.setdefault("MCP_REFRESH_INTERVAL_MINUTES", "0")

import pytest
import pytest_asyncio
from aioresponses import CallbackResult, aioresponses

from mcp_bridge.mcp.core.mcp_client import MCPClient
from mcp_bridge.mcp.core.provider_registry import ProviderRegistry
from mcp_bridge.mcp.core.tool_registry import ToolRegistry

SEARCH_TOOL = {
    "name": "web-search",
    "description": "Search the web",
    "inputSchema": {
        "type": "object",
        "properties": {"query": {"type": "string"}},
        "required": ["query"],
    },
}


def rpc_reply(result=None, error=None):
    """aioresponses callback answering a JSON-RPC request with the same id"""

    def callback(url, **kwargs):
        request = kwargs.get("json") or {}
        body = {"jsonrpc": "2.0", "protocolVersion": "2.0", "id": request.get("id")}
        if error is not None:
            body["error"] = error
        else:
            body["result"] = result
        return CallbackResult(status=200, payload=body)

    return callback


def mock_provider(mocked, endpoint, tools=None, healthy=True):
    """Register /health and tools/list mocks for a fake MCP server"""
    if healthy:
        mocked.get(f"{endpoint}/health", status=200, repeat=True)
    else:
        mocked.get(f"{endpoint}/health", status=503, repeat=True)
    mocked.post(endpoint, callback=rpc_reply({"tools": tools or []}), repeat=True)


@pytest.fixture
def mocked():
    with aioresponses() as m:
        yield m


@pytest.fixture
def tool_registry():
    return ToolRegistry()


@pytest_asyncio.fixture
async def client():
    mcp_client = MCPClient(probe_timeout=1, discovery_timeout=1, default_call_timeout=1)
    yield mcp_client
    await mcp_client.close()


@pytest.fixture
def provider_registry(tool_registry, client):
    return ProviderRegistry(tool_registry, client)
