from __future__ import annotations

import logging
import os
import sys


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.echo_window_ms: int = _env_int("MDSYNC_ECHO_WINDOW_MS", 1000)
        self.debounce_ms: int = _env_int("MDSYNC_DEBOUNCE_MS", 500)
        self.stability_ms: int = _env_int("MDSYNC_STABILITY_MS", 500)
        self.poll_interval_ms: int = _env_int("MDSYNC_POLL_INTERVAL_MS", 100)
        self.shared_debounce: bool = _env_bool("MDSYNC_SHARED_DEBOUNCE", True)
        self.write_attempts: int = _env_int("MDSYNC_WRITE_ATTEMPTS", 8)
        self.write_initial_delay_ms: int = _env_int(
            "MDSYNC_WRITE_INITIAL_DELAY_MS", 200
        )
        self.write_max_delay_ms: int = _env_int("MDSYNC_WRITE_MAX_DELAY_MS", 3000)
        self.log_level: str = os.environ.get("MDSYNC_LOG_LEVEL", "INFO")

    def validate(self) -> None:
        if self.echo_window_ms < 0:
            raise ValueError("MDSYNC_ECHO_WINDOW_MS must not be negative")
        if self.debounce_ms < 0:
            raise ValueError("MDSYNC_DEBOUNCE_MS must not be negative")
        if self.stability_ms < 0:
            raise ValueError("MDSYNC_STABILITY_MS must not be negative")
        if self.poll_interval_ms <= 0:
            raise ValueError("MDSYNC_POLL_INTERVAL_MS must be positive")
        if self.write_attempts < 1:
            raise ValueError("MDSYNC_WRITE_ATTEMPTS must be at least 1")
        if self.write_initial_delay_ms < 0 or self.write_max_delay_ms < 0:
            raise ValueError("write retry delays must not be negative")


def configure_logging(level: str | None = None) -> None:
    """Send log records to stderr; stdout is reserved for the MCP stdio channel."""
    resolved = (level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


settings = Settings()
