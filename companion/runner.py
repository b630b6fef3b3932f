"""
Companion Engine — Headless runner.

Restores the app state, runs the engine on an asyncio loop and logs every
timeline notification until interrupted, then saves the app state back.
The desktop window normally plays this role; the runner is the same wiring
without a view.
"""

from __future__ import annotations

import asyncio
import logging
import signal

from companion.config import settings
from companion.core.engine import CompanionEngine
from companion.data.app_state import load_app_state, save_app_state
from companion.data.models import AppState

logger = logging.getLogger(__name__)


def _log_notification(text: str, source: str) -> None:
    logger.info("[%s] %s", source, text)


async def run(stop_event: asyncio.Event | None = None) -> AppState:
    """Run the engine until ``stop_event`` is set. Returns the saved state."""
    defaults = AppState(
        notifier_rate_per_hour=settings.NOTIFIER_RATE_PER_HOUR,
        context_window_length=settings.CONTEXT_WINDOW_LENGTH,
    )
    state = load_app_state(settings.DATA_DIR, defaults)

    engine = CompanionEngine(
        settings.DATA_DIR,
        state,
        reminder_check_seconds=settings.REMINDER_CHECK_SECONDS,
        retention_days=settings.COMPLETED_RETENTION_DAYS,
    )
    engine.subscribe(_log_notification)

    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops don't support signal handlers
            pass

    await engine.start()
    try:
        await stop_event.wait()
    finally:
        await engine.stop()
        final = engine.app_state()
        if save_app_state(settings.DATA_DIR, final):
            logger.info("App state saved (%d messages)", len(final.chat_history))
    return final


def main() -> None:
    """Entry point: configure logging and run until Ctrl+C."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Companion Engine...")
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
