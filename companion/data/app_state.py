"""
Companion Engine — App state aggregate persistence.

The aggregate (chat history plus the two settings the engine consumes) is
restored wholesale at startup and saved wholesale at shutdown.
"""

from __future__ import annotations

import logging
from pathlib import Path

from companion.data.models import AppState
from companion.data.storage import load_document, save_document

logger = logging.getLogger(__name__)

APP_STATE_FILE = "app_state.json"


def load_app_state(data_dir: str | Path, defaults: AppState | None = None) -> AppState:
    """Load ``app_state.json`` from ``data_dir``, or return ``defaults``."""
    path = Path(data_dir) / APP_STATE_FILE
    state = load_document(path, AppState, lambda: defaults or AppState())
    logger.info(
        "App state loaded: %d messages, %d ambient/hour, context %d",
        len(state.chat_history), state.notifier_rate_per_hour, state.context_window_length,
    )
    return state


def save_app_state(data_dir: str | Path, state: AppState) -> bool:
    """Write the aggregate to ``app_state.json``."""
    return save_document(Path(data_dir) / APP_STATE_FILE, state, AppState)
