# tests/test_api.py
import asyncio
import json
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

from main_api import create_app
from mcp_bridge.core.interactions import InteractionLog
from mcp_bridge.mcp.bootstrap import create_runtime
from mcp_bridge.mcp.tools import register_builtin_tools


@pytest.fixture
def slack_payloads():
    return []


@pytest.fixture
def runtime(slack_payloads):
    def slack_api(request):
        slack_payloads.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    responder = AsyncMock()
    responder.generate.return_value = "Done."
    return create_runtime(
        responder=responder,
        interactions=InteractionLog(in_memory=True),
        slack_transport=httpx.MockTransport(slack_api),
    )


@pytest_asyncio.fixture
async def app(runtime):
    await register_builtin_tools(runtime.tools)
    yield create_app(runtime)
    await runtime.client.close()


@pytest.fixture
def api(app):
    return app.test_client()


def tool_id(app, name):
    return app.mcp.tools.get_by_name(name).id


@pytest.mark.asyncio
async def test_slack_url_verification(api):
    response = await api.post("/slack/events", json={"type": "url_verification", "challenge": "abc123"})
    assert response.status_code == 200
    assert await response.get_json() == {"challenge": "abc123"}


@pytest.mark.asyncio
async def test_slack_retries_are_acknowledged_and_ignored(app, api, slack_payloads):
    event = {"type": "event_callback", "event": {"type": "app_mention", "channel": "C1", "text": "hi"}}
    response = await api.post("/slack/events", json=event, headers={"X-Slack-Retry-Num": "1"})

    assert await response.get_json() == {"ok": True}
    app.mcp.agent._responder.generate.assert_not_awaited()


@pytest.mark.asyncio
async def test_slack_ai_tools_command(api):
    response = await api.post("/slack/commands", form={"command": "/ai-tools", "channel_id": "C1"})
    body = await response.get_json()

    assert body["response_type"] == "ephemeral"
    assert "*web-search*" in body["text"]


@pytest.mark.asyncio
async def test_slack_interactivity_tool_picker(api):
    payload = {
        "type": "block_actions",
        "channel": {"id": "C1"},
        "actions": [{"action_id": "select_mcp_tool", "selected_option": {"value": "git"}}],
    }
    response = await api.post("/slack/interactivity", form={"payload": json.dumps(payload)})
    body = await response.get_json()

    assert response.status_code == 200
    assert body["replace_original"] is True
    assert body["text"] == "Selected tool: git"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload, expected", [
    ({"type": "block_actions", "actions": [{"action_id": "open_admin"}]}, {"ok": True}),
    ({"type": "view_submission", "view": {"callback_id": "settings"}}, {"response_action": "clear"}),
    ({"type": "shortcut", "callback_id": "ask_ai"}, {"ok": True}),
])
async def test_slack_interactivity_acknowledges(api, payload, expected):
    response = await api.post("/slack/interactivity", form={"payload": json.dumps(payload)})
    assert response.status_code == 200
    assert await response.get_json() == expected


@pytest.mark.asyncio
async def test_slack_interactivity_rejects_bad_payload(api):
    response = await api.post("/slack/interactivity", form={"payload": "not json"})
    body = await response.get_json()

    assert response.status_code == 400
    assert body["error"]["details"] == [{"field": "payload", "reason": "expected JSON"}]


@pytest.mark.asyncio
async def test_list_tools_for_channel(app, api):
    await app.mcp.tools.register({"name": "calendar", "description": "Calendar", "channels": ["C2"]})

    body = await (await api.get("/mcp/tools?channelId=C1")).get_json()
    assert [t["name"] for t in body["data"]] == ["file-system", "web-search", "git"]

    body = await (await api.get("/mcp/tools")).get_json()
    assert len(body["data"]) == 4


@pytest.mark.asyncio
async def test_register_update_and_delete_tool(api):
    response = await api.post("/mcp/tools", json={"name": "calendar", "description": "Team calendar"})
    assert response.status_code == 201
    created = (await response.get_json())["data"]

    response = await api.put(f"/mcp/tools/{created['id']}", json={"enabled": False})
    assert (await response.get_json())["data"]["enabled"] is False

    response = await api.get(f"/mcp/tools/{created['id']}")
    assert (await response.get_json())["data"]["health"] == {"healthy": False, "error": "Tool is disabled"}

    assert (await api.delete(f"/mcp/tools/{created['id']}")).status_code == 200
    assert (await api.get(f"/mcp/tools/{created['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_register_tool_validation_error(api):
    response = await api.post("/mcp/tools", json={"name": "calendar"})
    body = await response.get_json()

    assert response.status_code == 400
    assert body["success"] is False
    assert body["error"]["kind"] == "validation"


@pytest.mark.asyncio
async def test_execute_builtin_tool(app, api):
    response = await api.post(
        f"/mcp/tools/{tool_id(app, 'git')}/execute", json={"input": {"action": "status"}}
    )
    body = await response.get_json()

    assert response.status_code == 200
    assert body["success"] is True
    assert body["data"]["output"]["branch"] == "main"


@pytest.mark.asyncio
async def test_execute_failure_status_codes(app, api):
    git = tool_id(app, "git")

    response = await api.post("/mcp/tools/tool_missing/execute", json={"input": {}})
    assert response.status_code == 404

    response = await api.post(f"/mcp/tools/{git}/execute", json={"input": {"action": "push"}})
    assert response.status_code == 400
    assert (await response.get_json())["data"]["errorKind"] == "validation"

    await app.mcp.tools.update(git, {"enabled": False})
    response = await api.post(f"/mcp/tools/{git}/execute", json={"input": {"action": "status"}})
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_execution_failure_is_a_completed_call(app, api):
    tool = await app.mcp.tools.register({"name": "calendar", "description": "x", "endpoint": "internal://calendar"})

    response = await api.post(f"/mcp/tools/{tool.id}/execute", json={"input": {}})
    body = await response.get_json()

    assert response.status_code == 200
    assert body["success"] is False
    assert body["data"]["errorKind"] == "execution"


@pytest.mark.asyncio
async def test_add_server_validation_and_not_found(api):
    response = await api.post("/mcp/servers", json={"name": "search"})
    assert response.status_code == 400

    assert (await api.get("/mcp/servers/server_missing")).status_code == 404
    assert (await api.delete("/mcp/servers/server_missing")).status_code == 404
    assert (await api.post("/mcp/servers/server_missing/discover")).status_code == 404

    body = await (await api.get("/mcp/servers")).get_json()
    assert body["data"] == []


@pytest.mark.asyncio
async def test_channels_crud(api):
    response = await api.put("/channels/C1", json={"channelName": "general", "autoRespond": True})
    assert (await response.get_json())["data"]["autoRespond"] is True

    body = await (await api.get("/channels")).get_json()
    assert [c["channelId"] for c in body["data"]] == ["C1"]

    assert (await api.put("/channels/C1", json={"enabled": "no"})).status_code == 400
    assert (await api.delete("/channels/C1")).status_code == 200
    assert (await api.delete("/channels/C1")).status_code == 404


@pytest.mark.asyncio
async def test_ai_chat(app, api):
    response = await api.post("/ai/chat", json={"message": "show the git log", "channelId": "C1"})
    body = await response.get_json()

    assert response.status_code == 200
    assert body["data"]["message"] == "Done."
    assert body["data"]["mcpToolsUsed"] == [tool_id(app, "git")]

    response = await api.post("/ai/chat", json={"channelId": "C1"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_admin_stats(app, api):
    app.mcp.interactions.record_interaction("C1", "U1", True, 1500)

    body = await (await api.get("/admin/stats")).get_json()

    assert body["data"]["totalMessages"] == 1
    assert body["data"]["activeMCPTools"] == 3
    assert body["data"]["tools"] == 3


@pytest.mark.asyncio
async def test_health_reports_mcp_status(api):
    response = await api.get("/health")
    body = await response.get_json()

    assert response.status_code == (200 if body["status"] == "healthy" else 503)
    assert body["mcp"]["tools"] == 3


@pytest.mark.asyncio
async def test_lifespan_bootstraps_and_handles_slack_events(runtime, slack_payloads):
    app = create_app(runtime)

    async with app.test_app() as test_app:
        assert runtime.tools.get_by_name("git") is not None
        test_client = test_app.test_client()

        event = {
            "type": "event_callback",
            "event": {"type": "app_mention", "channel": "C1", "user": "U1",
                      "text": "<@U9> git log", "ts": "1700000000.000100"},
        }
        response = await test_client.post("/slack/events", json=event)
        assert await response.get_json() == {"ok": True}
        await asyncio.gather(*list(app.background_tasks))

    [payload] = slack_payloads
    assert payload["channel"] == "C1"
    assert payload["text"] == "Done."
