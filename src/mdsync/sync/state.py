"""Shared types for sync sessions.

Pydantic models describe what callers send (``SessionOptions``) and what they
get back (``SessionStatus``); the enums name the two sides of a document pair
and the lifecycle states a session moves through.
"""

from __future__ import annotations

import hashlib
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, model_validator


class ChangeSource(StrEnum):
    """Which file of the pair a change notification refers to."""

    TEXT = "text"
    RENDERED = "rendered"

    @property
    def opposite(self) -> ChangeSource:
        return ChangeSource.RENDERED if self is ChangeSource.TEXT else ChangeSource.TEXT


class SessionState(StrEnum):
    """Lifecycle of a ``SyncSession``."""

    CREATED = "created"
    SEEDING = "seeding"
    WATCHING = "watching"
    IDLE = "idle"
    STOPPED = "stopped"


class SessionOptions(BaseModel):
    """Request to create and start a sync session.

    At least one of ``text_path`` / ``rendered_path`` is required; the
    missing one is derived from the other.
    """

    text_path: str | None = None
    rendered_path: str | None = None
    bidirectional: bool = True
    watch: bool = True
    open_rendered: bool = True
    prefer_primary_app: bool = True

    @model_validator(mode="after")
    def _require_a_path(self) -> SessionOptions:
        if not self.text_path and not self.rendered_path:
            raise ValueError("text_path or rendered_path is required")
        return self


class SessionStatus(BaseModel):
    """Status snapshot for one session."""

    id: str
    text_path: str | None = None
    rendered_path: str | None = None
    active: bool
    last_sync_at: int | None = None
    state: SessionState = SessionState.CREATED
    bidirectional: bool = True
    last_error: str | None = None
    pending_path: str | None = None


def compute_bytes_hash(data: bytes) -> str:
    """Hex SHA-256 of *data*."""
    return hashlib.sha256(data).hexdigest()


def compute_file_hash(file_path: str | Path) -> str | None:
    """Hex SHA-256 of a file's bytes, or ``None`` if it cannot be read."""
    try:
        data = Path(file_path).read_bytes()
    except OSError:
        return None
    return compute_bytes_hash(data)
