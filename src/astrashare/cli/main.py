# src/astrashare/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, restores notification state and the task
list, then runs the console connector on the event loop until /exit.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state, shutdown_services, start_services
from ..config import get_settings
from ..connectors.console_connector import confirm, emit, run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _amain(settings) -> None:
    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings, emit=emit, confirm=confirm)
    try:
        await start_services(state)
        if settings.console_enabled:
            await run_console_loop(state)
        else:
            logger.info("Console disabled. Tracking tasks until they finish. Press Ctrl+C to stop.")
            while state.poller.is_active:
                await asyncio.sleep(1.0)
    finally:
        await shutdown_services(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/astrashare")
    log_file = setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s (backend=%s, log=%s)...", settings.app_name, settings.backend_url, log_file)

    try:
        asyncio.run(_amain(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
