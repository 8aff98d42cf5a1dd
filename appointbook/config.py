from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    # Where appointments are loaded from at startup and saved to at shutdown
    data_file: str = "appointments.csv"

    log_level: str = "INFO"

    # How many times a failed save of data_file is attempted before giving up.
    save_retry_attempts: int = 3


def _parse_log_level(raw: str) -> str:
    level = raw.strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise RuntimeError(f"Invalid APPOINTBOOK_LOG_LEVEL value: {raw!r}")
    return level


def _parse_positive_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected integer.") from e
    if value < 1:
        raise RuntimeError(f"{name} must be >= 1")
    return value


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    data_file = os.getenv("APPOINTBOOK_DATA_FILE", "").strip() or "appointments.csv"

    return Settings(
        data_file=data_file,
        log_level=_parse_log_level(os.getenv("APPOINTBOOK_LOG_LEVEL", "INFO")),
        save_retry_attempts=_parse_positive_int("SAVE_RETRY_ATTEMPTS", "3"),
    )
