# mcp_bridge/api/endpoints.py
import json
from datetime import datetime, timezone

from quart import Blueprint, request, jsonify, current_app

from mcp_bridge.core.logging import logger
from mcp_bridge.core.settings import settings
from mcp_bridge.mcp.bootstrap import get_system_status
from mcp_bridge.mcp.core.agent import ChatMessage
from mcp_bridge.mcp.core.errors import ErrorKind, MCPBridgeError, NotFoundError, ValidationError
from mcp_bridge.services.slack import interaction_response, normalize_event

api_bp = Blueprint('api', __name__)

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 400,
    ErrorKind.DISABLED: 409,
    ErrorKind.UNSUPPORTED: 400,
    ErrorKind.CONNECTION: 502,
    ErrorKind.EXECUTION: 500,
}

# Execution results that still count as a completed call
_COMPLETED_KINDS = {ErrorKind.EXECUTION, ErrorKind.CONNECTION}


def ok(data=None, message=None, status=200):
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return jsonify(body), status


async def get_json_body() -> dict:
    data = await request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", field="$", reason="wrong type")
    return data


@api_bp.errorhandler(MCPBridgeError)
async def handle_bridge_error(error: MCPBridgeError):
    status = STATUS_BY_KIND.get(error.kind, 500)
    logger.warning(f"{request.method} {request.path} -> {status}: {error}")
    return jsonify({"success": False, "error": error.to_dict(), "message": str(error)}), status


# --- Chat ---

@api_bp.route('/slack/events', methods=['POST'])
async def slack_events():
    """Slack Events API webhook."""
    data = await get_json_body()

    # URL verification challenge
    if data.get("challenge"):
        return jsonify({"challenge": data["challenge"]})

    # Slack retries events it did not see acknowledged in time
    if request.headers.get("X-Slack-Retry-Num"):
        return jsonify({"ok": True})

    if data.get("type") == "event_callback":
        params = normalize_event(data.get("event") or {})
        if params:
            current_app.add_background_task(_receive_slack_message, current_app.mcp.slack, params)

    return jsonify({"ok": True})


async def _receive_slack_message(slack, params: dict) -> None:
    try:
        await slack.receive_message(**params)
    except Exception as e:
        logger.critical(f"Error handling Slack message in {params.get('channel_id')}: {e}", exc_info=True)


@api_bp.route('/slack/commands', methods=['POST'])
async def slack_commands():
    """Slash commands (/ai-tools)."""
    form = await request.form
    command, channel_id = form.get("command"), form.get("channel_id")
    if command != "/ai-tools" or not channel_id:
        return jsonify({"response_type": "ephemeral", "text": f"Unknown command: {command}"})

    text = current_app.mcp.slack.tools_command(channel_id)
    return jsonify({"response_type": "ephemeral", "text": text})


@api_bp.route('/slack/interactivity', methods=['POST'])
async def slack_interactivity():
    """Interactive components (buttons, select menus, modals, shortcuts)."""
    form = await request.form
    try:
        payload = json.loads(form.get("payload") or "")
    except ValueError as e:
        raise ValidationError("Invalid interactivity payload", field="payload", reason="expected JSON") from e
    if not isinstance(payload, dict):
        raise ValidationError("Invalid interactivity payload", field="payload", reason="wrong type")

    logger.info(f"Slack interactivity: {payload.get('type')}")
    return jsonify(interaction_response(payload))


@api_bp.route('/ai/chat', methods=['POST'])
async def ai_chat():
    """Run one chat turn without going through Slack."""
    data = await get_json_body()
    content, channel_id = data.get("message"), data.get("channelId")
    if not content or not channel_id:
        raise ValidationError("Message and channelId are required", field="message" if not content else "channelId",
                              reason="missing required field")

    message = ChatMessage(content=content, channel_id=channel_id, user_id=data.get("userId") or "api")
    logger.info(f"Received chat request for channel {channel_id}: '{content[:200]}'")

    response = await current_app.mcp.agent.process_message(message)
    return ok(response.to_dict())


# --- Health & stats ---

@api_bp.route('/health', methods=['GET'])
async def health_check():
    """Health check endpoint."""
    checks = {
        "slack": {
            "botToken": bool(settings.SLACK_BOT_TOKEN.get_secret_value()),
            "signingSecret": bool(settings.SLACK_SIGNING_SECRET.get_secret_value()),
        },
        "ai": {
            "gemini": bool(settings.GOOGLE_API_KEY.get_secret_value()),
        },
    }
    healthy = checks["slack"]["botToken"] and checks["slack"]["signingSecret"] and checks["ai"]["gemini"]

    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
        "mcp": get_system_status(current_app.mcp),
    }), 200 if healthy else 503


@api_bp.route('/admin/stats', methods=['GET'])
async def admin_stats():
    runtime = current_app.mcp
    stats = runtime.interactions.get_stats()
    stats["activeMCPTools"] = runtime.tools.enabled_count
    stats.update(get_system_status(runtime))
    return ok(stats, message="Stats retrieved successfully")


# --- MCP servers ---

@api_bp.route('/mcp/servers', methods=['GET'])
async def list_servers():
    providers = current_app.mcp.providers.list_all()
    return ok([p.to_dict() for p in providers])


@api_bp.route('/mcp/servers', methods=['POST'])
async def add_server():
    data = await get_json_body()
    provider = await current_app.mcp.providers.add(data)
    return ok(provider.to_dict(), message="MCP server added", status=201)


@api_bp.route('/mcp/servers/refresh', methods=['POST'])
async def refresh_servers():
    results = await current_app.mcp.providers.refresh_all()
    return ok(results, message=f"Refreshed {len(results)} MCP servers")


@api_bp.route('/mcp/servers/<server_id>', methods=['GET'])
async def get_server(server_id: str):
    provider = current_app.mcp.providers.get(server_id)
    if provider is None:
        raise NotFoundError(f"MCP server {server_id} not found")
    return ok(provider.to_dict())


@api_bp.route('/mcp/servers/<server_id>', methods=['PUT'])
async def update_server(server_id: str):
    data = await get_json_body()
    provider = await current_app.mcp.providers.update(server_id, data)
    return ok(provider.to_dict(), message="MCP server updated")


@api_bp.route('/mcp/servers/<server_id>', methods=['DELETE'])
async def delete_server(server_id: str):
    await current_app.mcp.providers.remove(server_id)
    return ok(message="MCP server removed")


@api_bp.route('/mcp/servers/<server_id>/discover', methods=['POST'])
async def discover_server(server_id: str):
    definitions = await current_app.mcp.providers.discover(server_id)
    return ok({"tools": definitions}, message=f"Discovered {len(definitions)} tools")


# --- MCP tools ---

@api_bp.route('/mcp/tools', methods=['GET'])
async def list_tools():
    tools_registry = current_app.mcp.tools
    channel_id = request.args.get("channelId")
    tools = tools_registry.list_for_channel(channel_id) if channel_id else tools_registry.list_all()
    return ok([t.to_dict() for t in tools])


@api_bp.route('/mcp/tools', methods=['POST'])
async def register_tool():
    data = await get_json_body()
    tool = await current_app.mcp.tools.register(data)
    return ok(tool.to_dict(), message="Tool registered", status=201)


@api_bp.route('/mcp/tools/<tool_id>', methods=['GET'])
async def get_tool(tool_id: str):
    tool = current_app.mcp.tools.get(tool_id)
    if tool is None:
        raise NotFoundError(f"Tool {tool_id} not found")
    data = tool.to_dict()
    data["health"] = await current_app.mcp.executor.health(tool_id)
    return ok(data)


@api_bp.route('/mcp/tools/<tool_id>', methods=['PUT'])
async def update_tool(tool_id: str):
    data = await get_json_body()
    tool = await current_app.mcp.tools.update(tool_id, data)
    return ok(tool.to_dict(), message="Tool updated")


@api_bp.route('/mcp/tools/<tool_id>', methods=['DELETE'])
async def delete_tool(tool_id: str):
    await current_app.mcp.tools.remove(tool_id)
    return ok(message="Tool removed")


@api_bp.route('/mcp/tools/<tool_id>/execute', methods=['POST'])
async def execute_tool(tool_id: str):
    data = await get_json_body()
    result = await current_app.mcp.executor.execute(tool_id, data.get("input", {}))

    if result.success or result.error_kind in _COMPLETED_KINDS:
        status = 200
    else:
        status = STATUS_BY_KIND.get(result.error_kind, 500)
    return jsonify({"success": result.success, "data": result.to_dict()}), status


# --- Channels ---

@api_bp.route('/channels', methods=['GET'])
async def list_channels():
    channels = current_app.mcp.channels.list_all()
    return ok([c.to_dict() for c in channels], message="Channels retrieved successfully")


@api_bp.route('/channels/<channel_id>', methods=['PUT'])
async def update_channel(channel_id: str):
    data = await get_json_body()
    config = current_app.mcp.channels.upsert(channel_id, data)
    return ok(config.to_dict(), message="Channel updated successfully")


@api_bp.route('/channels/<channel_id>', methods=['DELETE'])
async def delete_channel(channel_id: str):
    current_app.mcp.channels.remove(channel_id)
    return ok(message="Channel removed")
