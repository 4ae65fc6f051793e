# mcp_bridge/services/slack.py
"""
Slack Service
=============
Chat transport adapter:
- normalize_event(): Slack Events API payload -> inbound params
- receive_message(): channel gating + agent + reply + interaction log
- send_message(): chat.postMessage qua Slack Web API (httpx)
- interaction_response(): reply body cho interactivity payloads
"""

import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from mcp_bridge.core.constants import GENERIC_APOLOGY
from mcp_bridge.core.interactions import InteractionLog
from mcp_bridge.core.logging import logger
from mcp_bridge.core.settings import settings
from mcp_bridge.mcp.core.agent import AgentOrchestrator, AgentResponse, ChatMessage
from mcp_bridge.mcp.core.tool_registry import ToolRegistry
from mcp_bridge.services.channels import ChannelRegistry

_MENTION_PATTERN = re.compile(r"<@U[A-Z0-9]+>")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def clean_message_text(text: str) -> str:
    """Remove user mentions and normalize whitespace."""
    text = _MENTION_PATTERN.sub("", text or "")
    return _WHITESPACE_PATTERN.sub(" ", text.strip())


def normalize_event(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Convert a Slack event into receive_message() parameters.

    Returns None for events the bot must ignore (bot messages,
    message subtypes, unsupported event types).
    """
    event_type = event.get("type")
    if event_type not in ("app_mention", "message"):
        return None
    if event.get("subtype") or event.get("bot_id"):
        return None
    if not event.get("channel") or not event.get("text"):
        return None

    return {
        "text": event["text"],
        "channel_id": event["channel"],
        "user_id": event.get("user") or "unknown",
        "thread_id": event.get("thread_ts"),
        "ts": event.get("ts"),
        "is_mention": event_type == "app_mention",
        "is_direct": event.get("channel_type") == "im",
    }


def interaction_response(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Reply body for a Slack interactivity payload.

    Only the tool picker (`select_mcp_tool`) changes the message.
    Anything else is acknowledged.
    """
    payload_type = payload.get("type")

    if payload_type == "block_actions":
        actions = payload.get("actions")
        action = actions[0] if isinstance(actions, list) and actions and isinstance(actions[0], dict) else {}
        if action.get("action_id") == "select_mcp_tool":
            selected = (action.get("selected_option") or {}).get("value")
            return {
                "replace_original": True,
                "text": f"Selected tool: {selected}",
                "blocks": [
                    {"type": "section",
                     "text": {"type": "mrkdwn", "text": f"✅ You selected the *{selected}* tool for this channel."}},
                    {"type": "context",
                     "elements": [{"type": "mrkdwn",
                                   "text": "You can now use this tool by mentioning the bot in your messages."}]},
                ],
            }
        return {"ok": True}

    if payload_type == "view_submission":
        logger.info(f"Modal submission: {(payload.get('view') or {}).get('callback_id')}")
        return {"response_action": "clear"}

    if payload_type == "shortcut":
        logger.info(f"Shortcut triggered: {payload.get('callback_id')}")

    return {"ok": True}


def format_response_blocks(response: AgentResponse) -> List[Dict[str, Any]]:
    blocks = [{"type": "section", "text": {"type": "mrkdwn", "text": response.message}}]
    if response.tools_used:
        blocks.append({
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": f"🔧 Tools used: {', '.join(response.tools_used)}"}]
        })
    return blocks


class SlackService:
    """
    Usage:
        slack = SlackService(agent, channels, interactions, tool_registry)

        params = normalize_event(payload["event"])
        if params:
            await slack.receive_message(**params)
    """

    def __init__(
        self,
        agent: AgentOrchestrator,
        channels: ChannelRegistry,
        interactions: InteractionLog,
        tool_registry: ToolRegistry,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._agent = agent
        self._channels = channels
        self._interactions = interactions
        self._tool_registry = tool_registry
        self._transport = transport

    async def receive_message(
        self,
        text: str,
        channel_id: str,
        user_id: str,
        thread_id: Optional[str] = None,
        ts: Optional[str] = None,
        is_mention: bool = True,
        is_direct: bool = False
    ) -> Optional[AgentResponse]:
        """
        Handle one inbound message.

        Returns:
            AgentResponse if the bot replied, None if the message was gated out
        """
        config = self._channels.resolve(channel_id)
        if not config.enabled:
            logger.debug(f"Ignoring message in disabled channel {channel_id}")
            return None
        if not (is_mention or is_direct or config.auto_respond):
            return None
        if not config.should_trigger(text):
            logger.debug(f"No trigger word in message from {channel_id}")
            return None

        message = ChatMessage(
            content=clean_message_text(text),
            channel_id=channel_id,
            user_id=user_id,
            thread_id=thread_id,
        )
        if ts:
            message.id = f"{channel_id}-{ts}"
            message.timestamp = datetime.fromtimestamp(float(ts), tz=timezone.utc)

        started = time.perf_counter()
        response = await self._agent.process_message(message)
        elapsed_ms = (time.perf_counter() - started) * 1000

        sent = await self.send_message(
            channel_id,
            response.message,
            thread_id=thread_id,
            blocks=format_response_blocks(response) if response.success else None
        )
        if not sent and response.success:
            await self.send_message(channel_id, GENERIC_APOLOGY, thread_id=thread_id)

        self._interactions.record_interaction(
            channel_id=channel_id,
            user_id=user_id,
            success=response.success and sent,
            response_time_ms=elapsed_ms,
            tools_used=response.tools_used,
            response_length=len(response.message)
        )
        return response

    async def send_message(
        self,
        channel_id: str,
        text: str,
        thread_id: Optional[str] = None,
        blocks: Optional[List[Dict[str, Any]]] = None
    ) -> bool:
        """Sends a message via chat.postMessage. Returns True on success."""
        if not text:
            return False

        payload: Dict[str, Any] = {"channel": channel_id, "text": text}
        if thread_id:
            payload["thread_ts"] = thread_id
        if blocks:
            payload["blocks"] = blocks

        headers = {"Authorization": f"Bearer {settings.SLACK_BOT_TOKEN.get_secret_value()}"}
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                res = await client.post(
                    f"{settings.SLACK_API_URL}/chat.postMessage",
                    json=payload,
                    headers=headers,
                    timeout=settings.SLACK_SEND_TIMEOUT_SECONDS
                )
        except httpx.RequestError as e:
            logger.error(f"Connection error calling Slack API: {e}")
            return False

        if res.status_code != 200:
            logger.error(f"Failed to send to Slack, status: {res.status_code}, response: {res.text}")
            return False

        body = res.json()
        if not body.get("ok"):
            logger.error(f"Slack rejected message to {channel_id}: {body.get('error')}")
            return False

        logger.info(f"Successfully sent message to {channel_id}.")
        return True

    def tools_command(self, channel_id: str) -> str:
        """Text for the /ai-tools slash command"""
        tools = self._tool_registry.list_for_channel(channel_id)
        if not tools:
            return "No AI tools are available in this channel."
        lines = "\n".join(f"• *{t.name}*: {t.description}" for t in tools)
        return f"Available AI tools in this channel:\n\n{lines}"
