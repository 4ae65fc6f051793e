# tests/test_executor.py
import asyncio

import aiohttp
import pytest

from conftest import SEARCH_TOOL, mock_provider, rpc_reply
from mcp_bridge.mcp.core.errors import ErrorKind
from mcp_bridge.mcp.core.executor import ToolExecutor
from mcp_bridge.mcp.tools import BUILTIN_HANDLERS, register_builtin_tools

ENDPOINT = "http://search.test/rpc"


@pytest.fixture
def executor(tool_registry, provider_registry):
    return ToolExecutor(tool_registry, provider_registry, handlers=BUILTIN_HANDLERS)


def tools_call_requests(mocked, endpoint):
    return [
        call.kwargs["json"]
        for (method, url), calls in mocked.requests.items()
        if method == "POST" and str(url) == endpoint
        for call in calls
        if call.kwargs["json"]["method"] == "tools/call"
    ]


@pytest.mark.asyncio
async def test_unknown_tool_is_not_found(executor):
    result = await executor.execute("tool_missing", {})
    assert result.success is False
    assert result.error_kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_disabled_remote_tool_never_reaches_the_network(mocked, executor, provider_registry, tool_registry):
    mock_provider(mocked, ENDPOINT, tools=[SEARCH_TOOL])
    provider = await provider_registry.add({"name": "search", "endpoint": ENDPOINT})
    tool_id = f"{provider.id}_web-search"
    await tool_registry.update(tool_id, {"enabled": False})

    result = await executor.execute(tool_id, {"query": "rain tomorrow"})

    assert result.error_kind == ErrorKind.DISABLED
    assert tools_call_requests(mocked, ENDPOINT) == []


@pytest.mark.asyncio
async def test_disabled_provider_blocks_its_tools(mocked, executor, provider_registry):
    mock_provider(mocked, ENDPOINT, tools=[SEARCH_TOOL])
    provider = await provider_registry.add({"name": "search", "endpoint": ENDPOINT})
    await provider_registry.update(provider.id, {"enabled": False})

    result = await executor.execute(f"{provider.id}_web-search", {"query": "rain"})

    assert result.error_kind == ErrorKind.DISABLED
    assert tools_call_requests(mocked, ENDPOINT) == []


@pytest.mark.asyncio
async def test_invalid_input_is_rejected_before_dispatch(mocked, executor, provider_registry):
    mock_provider(mocked, ENDPOINT, tools=[SEARCH_TOOL])
    provider = await provider_registry.add({"name": "search", "endpoint": ENDPOINT})

    result = await executor.execute(f"{provider.id}_web-search", {"query": 42})

    assert result.error_kind == ErrorKind.VALIDATION
    assert "query" in result.message
    assert tools_call_requests(mocked, ENDPOINT) == []


@pytest.mark.asyncio
async def test_end_to_end_remote_call_returns_result_unchanged(mocked, executor, provider_registry, tool_registry):
    payload = {"content": [{"type": "text", "text": "Rain expected"}], "isError": False}
    mocked.get(f"{ENDPOINT}/health", status=200)
    mocked.post(ENDPOINT, callback=rpc_reply({"tools": [SEARCH_TOOL]}))
    mocked.post(ENDPOINT, callback=rpc_reply(payload))

    provider = await provider_registry.add({"name": "search", "endpoint": ENDPOINT})
    tool_id = f"{provider.id}_web-search"
    assert tool_id in [t.id for t in tool_registry.list_for_channel("C1")]

    result = await executor.execute(tool_id, {"query": "rain tomorrow"})

    assert result.success is True
    assert result.output == payload
    assert result.duration_ms >= 0
    [request] = tools_call_requests(mocked, ENDPOINT)
    assert request["params"] == {"name": "web-search", "arguments": {"query": "rain tomorrow"}}
    assert request["protocolVersion"] == "2.0"


@pytest.mark.asyncio
async def test_end_to_end_remote_error_carries_provider_message(mocked, executor, provider_registry):
    mocked.get(f"{ENDPOINT}/health", status=200)
    mocked.post(ENDPOINT, callback=rpc_reply({"tools": [SEARCH_TOOL]}))
    mocked.post(ENDPOINT, callback=rpc_reply(error={"code": -32000, "message": "quota exceeded"}))
    provider = await provider_registry.add({"name": "search", "endpoint": ENDPOINT})

    result = await executor.execute(f"{provider.id}_web-search", {"query": "rain tomorrow"})

    assert result.success is False
    assert result.error_kind == ErrorKind.EXECUTION
    assert "quota exceeded" in result.message


@pytest.mark.asyncio
async def test_remote_timeout_is_an_execution_failure(mocked, executor, provider_registry):
    mocked.get(f"{ENDPOINT}/health", status=200)
    mocked.post(ENDPOINT, callback=rpc_reply({"tools": [SEARCH_TOOL]}))
    mocked.post(ENDPOINT, exception=asyncio.TimeoutError())
    provider = await provider_registry.add({"name": "search", "endpoint": ENDPOINT})

    result = await executor.execute(f"{provider.id}_web-search", {"query": "rain"})

    assert result.error_kind == ErrorKind.EXECUTION
    assert result.timed_out is True


@pytest.mark.asyncio
async def test_remote_transport_failure_is_an_execution_failure(mocked, executor, provider_registry):
    mocked.get(f"{ENDPOINT}/health", status=200)
    mocked.post(ENDPOINT, callback=rpc_reply({"tools": [SEARCH_TOOL]}))
    mocked.post(ENDPOINT, exception=aiohttp.ClientConnectionError("connection reset"))
    provider = await provider_registry.add({"name": "search", "endpoint": ENDPOINT})

    result = await executor.execute(f"{provider.id}_web-search", {"query": "rain"})

    assert result.error_kind == ErrorKind.EXECUTION
    assert result.timed_out is False
    assert "connection reset" in result.message


@pytest.mark.asyncio
async def test_builtin_tools_dispatch_by_handler(executor, tool_registry):
    tools = {t.name: t for t in await register_builtin_tools(tool_registry)}

    read = await executor.execute(tools["file-system"].id, {"action": "read", "path": "notes.txt"})
    assert read.output == {"content": "Mock file content from notes.txt", "path": "notes.txt"}

    search = await executor.execute(tools["web-search"].id, {"query": "rain"})
    assert search.output["query"] == "rain"
    assert search.output["totalResults"] == 1

    status = await executor.execute(tools["git"].id, {"action": "status"})
    assert status.output["branch"] == "main"


@pytest.mark.asyncio
async def test_builtin_unknown_action_is_a_validation_error(executor, tool_registry):
    tools = {t.name: t for t in await register_builtin_tools(tool_registry)}

    result = await executor.execute(tools["git"].id, {"action": "push"})

    assert result.error_kind == ErrorKind.VALIDATION


@pytest.mark.asyncio
async def test_unknown_internal_handler_is_an_execution_failure(executor, tool_registry):
    tool = await tool_registry.register({
        "name": "calendar", "description": "Calendar", "endpoint": "internal://calendar"
    })

    result = await executor.execute(tool.id, {})

    assert result.error_kind == ErrorKind.EXECUTION
    assert "calendar" in result.message


@pytest.mark.asyncio
async def test_handler_crash_is_contained(executor, tool_registry):
    async def broken(arguments):
        raise RuntimeError("boom")

    executor.register_handler("broken", broken)
    tool = await tool_registry.register({"name": "broken", "description": "x", "endpoint": "internal://broken"})

    result = await executor.execute(tool.id, {})

    assert result.success is False
    assert result.error_kind == ErrorKind.EXECUTION
    assert "boom" in result.message


@pytest.mark.asyncio
async def test_tool_with_own_endpoint_is_called_directly(mocked, executor, tool_registry):
    url = "http://direct.test/mcp"
    mocked.post(url, callback=rpc_reply({"ok": True}))
    tool = await tool_registry.register({"name": "direct", "description": "Direct", "endpoint": url})

    result = await executor.execute(tool.id, {"x": 1})

    assert result.output == {"ok": True}
    [request] = tools_call_requests(mocked, url)
    assert request["params"] == {"name": "direct", "arguments": {"x": 1}}


@pytest.mark.asyncio
async def test_as_functions_exports_cached_callables(executor, tool_registry):
    await register_builtin_tools(tool_registry)

    functions = executor.as_functions("C1")
    assert [f.name for f in functions] == ["file-system", "web-search", "git"]
    assert executor.as_functions("C1")[0] is functions[0]
    assert functions[1].parameters["required"] == ["query"]

    result = await functions[2].invoke({"action": "log"})
    assert result.success is True
    assert result.output["commits"][0]["hash"] == "abc123"


@pytest.mark.asyncio
async def test_health(executor, tool_registry):
    tools = {t.name: t for t in await register_builtin_tools(tool_registry)}
    assert await executor.health(tools["git"].id) == {"healthy": True, "error": None}

    await tool_registry.update(tools["git"].id, {"enabled": False})
    assert await executor.health(tools["git"].id) == {"healthy": False, "error": "Tool is disabled"}
    assert await executor.health("tool_missing") == {"healthy": False, "error": "Tool not found"}
