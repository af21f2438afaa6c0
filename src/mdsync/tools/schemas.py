"""Pydantic models for MCP tool outputs."""

from __future__ import annotations

from pydantic import BaseModel


class StartSessionResponse(BaseModel):
    """Response from ``convert_and_sync``."""

    success: bool
    message: str
    session_id: str | None = None
    text_path: str | None = None
    rendered_path: str | None = None


class StopSessionResponse(BaseModel):
    """Response from ``stop_sync``."""

    success: bool
    message: str
