# src/taskdesk/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs everything on one event loop:
- reminder scheduler (start-up reconciliation + periodic scan),
- HTTP health endpoint (optional),
- Matrix connector (optional),
- console REPL (optional).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..config import get_settings
from ..connectors.console_connector import ConsoleMessenger, run_console_loop
from ..core.ports import OutboundMessenger
from ..logging_setup import setup_logging
from ..tasks.reminders import run_reminder_scheduler
from .bootstrap import create_initial_state, shutdown

logger = logging.getLogger(__name__)


async def run_app(settings) -> None:
    state = create_initial_state(settings=settings)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        # Some platforms (Windows) do not support loop signal handlers.
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signum, stop.set)

    background: list[asyncio.Task] = []
    health_runner = None
    messenger: OutboundMessenger = ConsoleMessenger()

    if settings.matrix_enabled:
        from ..connectors.matrix_client import create_matrix_client
        from ..connectors.matrix_connector import MatrixMessenger, run_matrix_connector

        client = await create_matrix_client(settings)
        if client is None:
            logger.error("Matrix client creation failed; continuing without Matrix.")
        else:
            messenger = MatrixMessenger(client)
            background.append(asyncio.create_task(run_matrix_connector(state, client, stop), name="matrix"))

    if settings.health_enabled:
        from ..web.health import start_health_server

        try:
            health_runner = await start_health_server(state, host=settings.health_host, port=settings.health_port)
        except OSError:
            logger.exception("Health server could not bind %s:%s", settings.health_host, settings.health_port)

    background.append(
        asyncio.create_task(
            run_reminder_scheduler(
                state.task_store,
                state.config,
                messenger,
                interval_seconds=settings.reminder_interval_seconds,
            ),
            name="reminders",
        )
    )

    try:
        if settings.console_enabled:
            console = asyncio.create_task(run_console_loop(state), name="console")
            stopper = asyncio.create_task(stop.wait())
            await asyncio.wait({console, stopper}, return_when=asyncio.FIRST_COMPLETED)
            stop.set()
            for t in (console, stopper):
                t.cancel()
        else:
            logger.info("Console disabled. Running background services only. Press Ctrl+C to stop.")
            await stop.wait()
    finally:
        stop.set()
        for t in background:
            t.cancel()
        for t in background:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await t

        if health_runner is not None:
            with contextlib.suppress(Exception):
                await health_runner.cleanup()

        await shutdown(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    try:
        asyncio.run(run_app(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
