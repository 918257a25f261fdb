"""Configuration helpers for Presence Board."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


@dataclass(slots=True)
class Settings:
    """Runtime configuration values loaded from environment variables."""

    telegram_bot_token: str
    api_key: str
    database_path: Path
    timezone: str = "UTC"
    refresh_interval_seconds: float = 10.0
    confirm_window_seconds: int = 10
    rollover_period_seconds: Optional[float] = None
    poll_timeout_seconds: int = 30
    log_level: str = "info"


def load_settings(env_file: str | None = None) -> Settings:
    """Load settings from the environment, optionally from a specific file."""

    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    db_path = Path(os.getenv("DATABASE_PATH", "presence_board.db")).expanduser()

    bot_token = os.getenv("TELEGRAM_BOT_TOKEN")
    api_key = os.getenv("API_KEY")

    if not bot_token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN must be configured")
    if not api_key:
        raise RuntimeError("API_KEY must be configured")

    rollover_period = os.getenv("ROLLOVER_PERIOD_SECONDS")

    return Settings(
        telegram_bot_token=bot_token,
        api_key=api_key,
        database_path=db_path,
        timezone=os.getenv("TIMEZONE", "UTC"),
        refresh_interval_seconds=float(os.getenv("REFRESH_INTERVAL_SECONDS", "10")),
        confirm_window_seconds=int(os.getenv("CONFIRM_WINDOW_SECONDS", "10")),
        rollover_period_seconds=float(rollover_period) if rollover_period else None,
        poll_timeout_seconds=int(os.getenv("POLL_TIMEOUT_SECONDS", "30")),
        log_level=os.getenv("LOG_LEVEL", "info"),
    )


__all__ = ["Settings", "load_settings"]
