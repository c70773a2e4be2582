# src/taskdesk/web/health.py

from __future__ import annotations

import logging
import time

from aiohttp import web

from ..core.state import AppState

logger = logging.getLogger(__name__)


def build_health_app(state: AppState) -> web.Application:
    started = time.time()
    app_name = str(getattr(state.settings, "app_name", "taskdesk"))

    async def index(_request: web.Request) -> web.Response:
        return web.Response(text=f"{app_name} task manager is running")

    async def health(_request: web.Request) -> web.Response:
        return web.json_response(
            {
                "status": "ok",
                "uptime_seconds": round(time.time() - started, 1),
                "tasks": state.task_store.count(),
                "departments": len(state.departments.names()),
            }
        )

    app = web.Application()
    app.router.add_get("/", index)
    app.router.add_get("/health", health)
    return app


async def start_health_server(state: AppState, *, host: str, port: int) -> web.AppRunner:
    """Start the health endpoint on the running loop. Call runner.cleanup() to stop it."""
    runner = web.AppRunner(build_health_app(state), access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host=host, port=port)
    await site.start()
    logger.info("Health server listening on http://%s:%d", host, port)
    return runner
