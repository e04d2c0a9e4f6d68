# src/astrashare/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime

from ..backend.errors import BackendError, friendly_error_message
from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..scan.scan_session import ScanError
from ..tasks.live_analysis import LiveAnalysisRunningError

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except Exception:
        print(line)


def emit(text: str) -> None:
    """Print a timestamped line; also used by background notifications."""
    print(f"[{_ts_local()}] {text}", flush=True)


async def confirm(question: str) -> bool:
    answer = await asyncio.to_thread(input, f"{question} [y/N] ")
    return answer.strip().lower() in ("y", "yes")


async def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    emit("[CONSOLE] Type /help for commands. Use /exit to quit.\n")

    while True:
        try:
            user_input = (await asyncio.to_thread(input, ">>> ")).strip()
            _rewrite_prev_line(f"[{_ts_local()}] >>> {user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not user_input.startswith("/"):
            user_input = f"/analyze {user_input}"

        try:
            response = await command_registry.handle(state, user_input, emit=emit)
        except BackendError as e:
            logger.info("Backend error: %s", e)
            response = friendly_error_message(e)
        except (ScanError, LiveAnalysisRunningError, KeyError, ValueError) as e:
            response = str(e.args[0]) if e.args else e.__class__.__name__
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is not None:
            emit(response)

    logger.info("Console connector finished.")
