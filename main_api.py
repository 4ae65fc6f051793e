# main_api.py
from typing import Optional

import aiohttp
from quart import Quart
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from mcp_bridge.core.logging import logger
from mcp_bridge.core.settings import settings
from mcp_bridge.api.endpoints import api_bp
from mcp_bridge.mcp.bootstrap import MCPRuntime, bootstrap_mcp, create_runtime, shutdown_mcp


def create_app(runtime: Optional[MCPRuntime] = None) -> Quart:
    app = Quart(__name__)
    app.register_blueprint(api_bp)
    app.mcp = runtime or create_runtime()

    @app.before_serving
    async def startup():
        """Initialize resources."""
        app.aiohttp_session = aiohttp.ClientSession()
        logger.info("AIOHTTP ClientSession created.")

        await bootstrap_mcp(app.mcp, app.aiohttp_session)

        scheduler = AsyncIOScheduler()

        # === Scheduled Jobs ===

        # Periodic rediscovery of every enabled MCP server
        if settings.MCP_REFRESH_INTERVAL_MINUTES:
            scheduler.add_job(
                app.mcp.providers.refresh_all,
                'interval', minutes=settings.MCP_REFRESH_INTERVAL_MINUTES,
                misfire_grace_time=300, max_instances=1
            )

        scheduler.start()
        app.scheduler = scheduler
        logger.info(f"✅ Scheduler started with {len(scheduler.get_jobs())} jobs.")

    @app.after_serving
    async def shutdown():
        """Cleanup resources."""
        if hasattr(app, 'scheduler') and app.scheduler.running:
            app.scheduler.shutdown()
            logger.info("Scheduler shutdown.")

        await shutdown_mcp(app.mcp)

        if hasattr(app, 'aiohttp_session') and not app.aiohttp_session.closed:
            await app.aiohttp_session.close()
            logger.info("AIOHTTP ClientSession closed.")

    return app


app = create_app()

if __name__ == '__main__':
    logger.info("Starting MCP Chat Bridge...")
    app.run(host='0.0.0.0', port=5000, debug=False)
