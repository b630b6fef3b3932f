"""
Companion Engine — Centralized configuration.

Loads all settings from .env. No key is mandatory: a missing or malformed
value falls back to its default so the engine always starts.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator

# Load .env from project root (one level up from companion/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Where reminders.json, achievements.json, mood_entries.json and
    # app_state.json live
    DATA_DIR: str = "data"

    # Reminder due-check tick
    REMINDER_CHECK_SECONDS: int = 30

    # Completed one-shot reminders older than this are pruned on load
    COMPLETED_RETENTION_DAYS: int = 7

    # Initial values for a fresh app_state.json
    NOTIFIER_RATE_PER_HOUR: int = 5
    CONTEXT_WINDOW_LENGTH: int = 10

    LOG_LEVEL: str = "INFO"

    @field_validator("REMINDER_CHECK_SECONDS", "CONTEXT_WINDOW_LENGTH", mode="before")
    @classmethod
    def parse_positive(cls, v: str | int) -> int:
        value = int(v)
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("NOTIFIER_RATE_PER_HOUR", "COMPLETED_RETENTION_DAYS", mode="before")
    @classmethod
    def parse_non_negative(cls, v: str | int) -> int:
        value = int(v)
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def parse_level(cls, v: str) -> str:
        return str(v).strip().upper() or "INFO"


_ENV_KEYS = (
    "DATA_DIR",
    "REMINDER_CHECK_SECONDS",
    "COMPLETED_RETENTION_DAYS",
    "NOTIFIER_RATE_PER_HOUR",
    "CONTEXT_WINDOW_LENGTH",
    "LOG_LEVEL",
)


def _load_settings() -> Settings:
    """Load settings from environment, dropping values that fail validation."""
    values = {key: os.environ[key] for key in _ENV_KEYS if os.getenv(key, "").strip()}
    try:
        return Settings(**values)
    except ValidationError as exc:
        bad = {str(err["loc"][0]) for err in exc.errors() if err["loc"]}
        for key in sorted(bad):
            print(f"WARNING: ignoring invalid {key}={values.get(key)!r} in .env", file=sys.stderr)
        return Settings(**{k: v for k, v in values.items() if k not in bad})


# Singleton, imported by all other modules as:
#   from companion.config import settings
settings = _load_settings()
