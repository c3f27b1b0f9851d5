# src/photoflow/connectors/console_connector.py

from __future__ import annotations

import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..tasks.events import JobUpdate

logger = logging.getLogger(__name__)

# Events worth interrupting the prompt for.
_ANNOUNCED_EVENTS = ("job_completed", "job_failed")


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def format_job_update(update: JobUpdate) -> str:
    task_note = f" task={update.task_type}:{update.task_id}" if update.task_id else ""
    return f"[JOB] #{update.job_id} {update.job_type} {update.status.value}{task_note}"


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Type /help for commands. Use /exit to quit.\n")

    def _on_update(update: JobUpdate) -> None:
        if update.event in _ANNOUNCED_EVENTS:
            _print_ts(format_job_update(update))

    unsubscribe = state.events.subscribe(_on_update)

    def emit(text: str) -> None:
        _print_ts(text)

    try:
        while True:
            try:
                user_input = input(">>> ").strip()
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

            try:
                with state.lock:
                    reply = command_registry.handle(state, user_input, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                reply = "Internal error while handling a command."

            if reply is None:
                reply = "Commands start with '/'. Use /help to list available commands."
            _print_ts(reply)
    finally:
        unsubscribe()

    logger.info("Console connector finished.")
