# tests/test_tool_registry.py
import asyncio

import pytest

from mcp_bridge.mcp.core.errors import NotFoundError, ValidationError
from mcp_bridge.mcp.core.tool_registry import ToolRegistry


@pytest.mark.asyncio
async def test_register_applies_defaults(tool_registry):
    tool = await tool_registry.register({"name": "calendar", "description": "Team calendar"})

    assert tool.id.startswith("tool_")
    assert tool.version == "1.0.0"
    assert tool.enabled is True
    assert tool.channels == frozenset()
    assert tool.provider_id is None
    assert tool_registry.get(tool.id) is tool


@pytest.mark.asyncio
@pytest.mark.parametrize("definition", [
    {"name": "", "description": "x"},
    {"name": "x", "description": ""},
    {"name": "x"},
    {"description": "x"},
    {"name": "   ", "description": "x"},
])
async def test_register_requires_name_and_description(tool_registry, definition):
    with pytest.raises(ValidationError):
        await tool_registry.register(definition)
    assert tool_registry.count == 0


@pytest.mark.asyncio
async def test_register_rejects_bad_endpoint(tool_registry):
    with pytest.raises(ValidationError) as exc:
        await tool_registry.register({"name": "x", "description": "y", "endpoint": "not a url"})
    assert exc.value.field == "endpoint"


@pytest.mark.asyncio
async def test_list_for_channel_scope_and_enablement(tool_registry):
    everywhere = await tool_registry.register({"name": "a", "description": "all channels"})
    scoped = await tool_registry.register({"name": "b", "description": "C1 only", "channels": ["C1"]})
    other = await tool_registry.register({"name": "c", "description": "C2 only", "channels": ["C2"]})
    disabled = await tool_registry.register({"name": "d", "description": "off", "enabled": False})

    assert tool_registry.list_for_channel("C1") == [everywhere, scoped]
    assert tool_registry.list_for_channel("C2") == [everywhere, other]
    assert disabled not in tool_registry.list_for_channel("C1")


@pytest.mark.asyncio
async def test_update_merges_and_keeps_identifier(tool_registry):
    tool = await tool_registry.register({"name": "git", "description": "Git ops"})

    updated = await tool_registry.update(tool.id, {"id": "hijacked", "enabled": False, "channels": ["C9"]})

    assert updated.id == tool.id
    assert updated.name == "git"
    assert updated.enabled is False
    assert updated.channels == frozenset({"C9"})
    assert "hijacked" not in tool_registry


@pytest.mark.asyncio
async def test_update_revalidates(tool_registry):
    tool = await tool_registry.register({"name": "git", "description": "Git ops"})
    with pytest.raises(ValidationError):
        await tool_registry.update(tool.id, {"description": ""})
    assert tool_registry.get(tool.id).description == "Git ops"


@pytest.mark.asyncio
async def test_update_and_remove_unknown_tool(tool_registry):
    with pytest.raises(NotFoundError):
        await tool_registry.update("missing", {"enabled": False})
    with pytest.raises(NotFoundError):
        await tool_registry.remove("missing")


@pytest.mark.asyncio
async def test_update_schema_rebuilds_signature(tool_registry):
    tool = await tool_registry.register({"name": "x", "description": "y"})
    assert tool.signature.is_opaque

    updated = await tool_registry.update(tool.id, {
        "inputSchema": {"type": "object", "properties": {"q": {"type": "string"}}, "required": ["q"]}
    })
    assert updated.signature.required == ["q"]


@pytest.mark.asyncio
async def test_export_cache_is_invalidated(tool_registry):
    tool = await tool_registry.register({"name": "x", "description": "y"})
    built = []

    def factory(t):
        built.append(t)
        return object()

    first = tool_registry.cached_export(tool.id, factory)
    assert tool_registry.cached_export(tool.id, factory) is first

    await tool_registry.update(tool.id, {"description": "z"})
    assert tool_registry.cached_export(tool.id, factory) is not first
    assert len(built) == 2


@pytest.mark.asyncio
async def test_replace_provider_tools_is_idempotent(tool_registry):
    definitions = [
        {"name": "web-search", "description": "Search"},
        {"name": "fetch", "description": "Fetch a page"},
    ]
    first = await tool_registry.replace_provider_tools("server_1", definitions)
    second = await tool_registry.replace_provider_tools("server_1", definitions)

    assert [t.id for t in first] == ["server_1_web-search", "server_1_fetch"]
    assert [(t.id, t.name, t.description) for t in second] == [(t.id, t.name, t.description) for t in first]
    assert tool_registry.count == 2


@pytest.mark.asyncio
async def test_replace_provider_tools_preserves_admin_settings_and_drops_stale(tool_registry):
    await tool_registry.replace_provider_tools("server_1", [
        {"name": "a", "description": "A"},
        {"name": "b", "description": "B"},
    ])
    await tool_registry.update("server_1_a", {"enabled": False, "channels": ["C1"]})

    await tool_registry.replace_provider_tools("server_1", [{"name": "a", "description": "A v2"}])

    tool = tool_registry.get("server_1_a")
    assert tool.description == "A v2"
    assert tool.enabled is False
    assert tool.channels == frozenset({"C1"})
    assert "server_1_b" not in tool_registry


@pytest.mark.asyncio
async def test_discovered_tool_keeps_server_name_and_schema(tool_registry):
    schema = {"type": "object", "properties": {"q": {"type": "string"}}}
    await tool_registry.replace_provider_tools("server_1", [
        {"name": "search", "description": "Search", "inputSchema": schema},
    ])

    with pytest.raises(ValidationError) as exc:
        await tool_registry.update("server_1_search", {"name": "lookup"})
    assert exc.value.field == "name"

    with pytest.raises(ValidationError) as exc:
        await tool_registry.update("server_1_search", {"inputSchema": {"type": "object", "properties": {}}})
    assert exc.value.field == "inputSchema"
    assert exc.value.reason == "set by the MCP server"

    # Echoing the current values back is allowed
    tool = await tool_registry.update("server_1_search", {
        "name": "search", "inputSchema": schema, "description": "Search the web",
    })
    assert tool.name == "search"
    assert tool.description == "Search the web"


@pytest.mark.asyncio
async def test_remove_by_provider_leaves_builtins(tool_registry):
    builtin = await tool_registry.register({
        "name": "git", "description": "Git ops", "endpoint": "internal://git"
    })
    await tool_registry.replace_provider_tools("server_1", [{"name": "a", "description": "A"}])
    await tool_registry.replace_provider_tools("server_2", [{"name": "a", "description": "A"}])

    removed = await tool_registry.remove_by_provider("server_1")

    assert removed == ["server_1_a"]
    assert [t.id for t in tool_registry.list_all()] == [builtin.id, "server_2_a"]


@pytest.mark.asyncio
async def test_concurrent_updates_to_same_tool_do_not_corrupt():
    registry = ToolRegistry()
    tool = await registry.register({"name": "x", "description": "y"})

    await asyncio.gather(*(
        registry.update(tool.id, {"description": f"d{i}", "version": f"{i}.0.0"})
        for i in range(20)
    ))

    final = registry.get(tool.id)
    assert final.description[1:] == final.version.split(".")[0]
