# mcp_bridge/mcp/bootstrap.py
"""
MCP Bootstrap
=============
Khởi tạo toàn bộ hệ thống MCP:
- Tạo runtime (registries, client, executor, agent, services)
- Đăng ký built-in tools
- Shutdown gọn gàng khi app dừng

Runtime được gắn vào Quart app (`app.mcp`) và inject vào handlers;
không có registry singleton ở module level.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp
import httpx

from mcp_bridge.core.interactions import InteractionLog
from mcp_bridge.core.logging import logger
from mcp_bridge.core.settings import settings
from mcp_bridge.mcp.core.agent import AgentOrchestrator, Responder
from mcp_bridge.mcp.core.executor import ToolExecutor
from mcp_bridge.mcp.core.mcp_client import MCPClient
from mcp_bridge.mcp.core.provider_registry import ProviderRegistry
from mcp_bridge.mcp.core.selector import RelevanceSelector
from mcp_bridge.mcp.core.tool_registry import ToolRegistry
from mcp_bridge.mcp.tools import BUILTIN_HANDLERS, register_builtin_tools
from mcp_bridge.services.channels import ChannelRegistry
from mcp_bridge.services.gemini import GeminiResponder
from mcp_bridge.services.slack import SlackService


@dataclass
class MCPRuntime:
    """Object graph built at startup"""
    tools: ToolRegistry
    providers: ProviderRegistry
    client: MCPClient
    executor: ToolExecutor
    selector: RelevanceSelector
    agent: AgentOrchestrator
    channels: ChannelRegistry
    interactions: InteractionLog
    slack: SlackService


def create_runtime(
    client: Optional[MCPClient] = None,
    responder: Optional[Responder] = None,
    interactions: Optional[InteractionLog] = None,
    slack_transport: Optional[httpx.AsyncBaseTransport] = None
) -> MCPRuntime:
    """Wire every component together. Nothing is started here."""
    client = client or MCPClient()
    tools = ToolRegistry()
    providers = ProviderRegistry(tools, client)
    executor = ToolExecutor(tools, providers, handlers=BUILTIN_HANDLERS, client=client)
    selector = RelevanceSelector()
    agent = AgentOrchestrator(tools, executor, selector, responder or GeminiResponder(executor=executor))
    channels = ChannelRegistry()
    interactions = interactions or InteractionLog()
    slack = SlackService(agent, channels, interactions, tools, transport=slack_transport)

    return MCPRuntime(
        tools=tools,
        providers=providers,
        client=client,
        executor=executor,
        selector=selector,
        agent=agent,
        channels=channels,
        interactions=interactions,
        slack=slack,
    )


async def bootstrap_mcp(
    runtime: MCPRuntime,
    http_session: Optional[aiohttp.ClientSession] = None
) -> None:
    """
    Bootstrap toàn bộ hệ thống MCP.

    Được gọi một lần khi application startup.

    Usage:
        # In main_api.py startup
        runtime = create_runtime()
        await bootstrap_mcp(runtime, http_session)
    """
    logger.info("🚀 Bootstrapping MCP system...")

    if http_session is not None:
        runtime.client.set_http_session(http_session)

    if settings.ENABLE_BUILTIN_TOOLS:
        logger.info("Registering built-in tools...")
        await register_builtin_tools(runtime.tools)

    logger.info("✅ MCP system bootstrapped successfully!")
    logger.info(f"   - Providers: {runtime.providers.count}")
    logger.info(f"   - Tools: {runtime.tools.count}")


async def shutdown_mcp(runtime: MCPRuntime) -> None:
    """
    Gracefully shutdown MCP system.

    Được gọi khi application shutdown.
    """
    logger.info("Shutting down MCP system...")

    await runtime.providers.shutdown()
    runtime.interactions.close()

    logger.info("MCP system shutdown complete")


def get_system_status(runtime: MCPRuntime) -> Dict[str, Any]:
    """Counts of the core's own entities"""
    return {
        "providers": runtime.providers.count,
        "providersByStatus": runtime.providers.status_counts(),
        "tools": runtime.tools.count,
        "enabledTools": runtime.tools.enabled_count,
        "channels": runtime.channels.count,
    }
