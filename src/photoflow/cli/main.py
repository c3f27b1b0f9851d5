# src/photoflow/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- the worker loop (+ maintenance scheduler) in a background thread (optional),
- the console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..connectors.worker_connector import start_worker_in_background
from ..logging_setup import resolve_log_level, setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    console_level = resolve_log_level(getattr(settings, "log_level", None))

    log_dir = getattr(settings, "data_dir", ".local/photoflow")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "photoflow"))

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    worker = start_worker_in_background(state)

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError):
        # Not in the main thread, or the platform lacks the signal.
        logger.debug("Signal handlers not installed.", exc_info=True)

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Running the worker only. Press Ctrl+C to stop.")
            stop_main.wait()
    finally:
        if worker is not None:
            worker.stop()
            worker.join(timeout=10.0)
        state.job_store.close()
        logger.info("Bye.")


if __name__ == "__main__":
    main()
