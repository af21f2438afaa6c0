"""MCP tools for starting, inspecting and stopping sync sessions."""

from __future__ import annotations

import logging
from typing import Any

from mcp.server.fastmcp import FastMCP
from pydantic import ValidationError

from mdsync.sync.engine import SyncEngine
from mdsync.sync.state import SessionOptions
from mdsync.tools.schemas import StartSessionResponse, StopSessionResponse

logger = logging.getLogger(__name__)


def register_sync_tools(mcp: FastMCP, engine: SyncEngine) -> None:
    """Register the session tools with the MCP server."""

    @mcp.tool()
    async def convert_and_sync(
        text_path: str | None = None,
        rendered_path: str | None = None,
        bidirectional: bool = True,
        watch: bool = True,
        open_rendered: bool = True,
        prefer_primary_app: bool = True,
    ) -> dict[str, Any]:
        """Convert between Markdown and DOCX and keep the pair in sync.

        Give a Markdown path, a DOCX path, or both.  A missing file is
        created next to the given one with the other extension.

        Args:
            text_path: Markdown (.md) file.
            rendered_path: Word (.docx) file.
            bidirectional: Also propagate DOCX edits back to Markdown.
            watch: Keep watching both files after the first conversion.
            open_rendered: Open the DOCX in a word processor once ready.
            prefer_primary_app: Prefer Microsoft Word over WPS when opening.
        """
        return (
            await start_session(
                engine,
                text_path=text_path,
                rendered_path=rendered_path,
                bidirectional=bidirectional,
                watch=watch,
                open_rendered=open_rendered,
                prefer_primary_app=prefer_primary_app,
            )
        ).model_dump()

    @mcp.tool()
    def sync_status(
        session_id: str | None = None,
    ) -> dict[str, Any] | list[dict[str, Any]] | None:
        """Report sync session status.

        With a session_id, returns that session (or null if unknown);
        without one, returns every session.

        Args:
            session_id: Optional session to report on.
        """
        status = engine.get_status(session_id)
        if status is None:
            return None
        if isinstance(status, list):
            return [s.model_dump(mode="json") for s in status]
        return status.model_dump(mode="json")

    @mcp.tool()
    async def stop_sync(session_id: str) -> dict[str, Any]:
        """Stop a sync session and release its file watcher.

        Args:
            session_id: Session returned by convert_and_sync.
        """
        return (await stop_session(engine, session_id)).model_dump()


async def start_session(engine: SyncEngine, **fields: Any) -> StartSessionResponse:
    """Validate the request, start a session and describe the outcome."""
    try:
        options = SessionOptions(**fields)
    except ValidationError as exc:
        message = "; ".join(err["msg"] for err in exc.errors())
        return StartSessionResponse(success=False, message=message)

    try:
        session_id = await engine.start_session(options)
    except Exception as exc:
        logger.warning("Failed to start session: %s", exc)
        return StartSessionResponse(success=False, message=str(exc))

    status = engine.get_status(session_id)
    return StartSessionResponse(
        success=True,
        message=f"Session started: {session_id}",
        session_id=session_id,
        text_path=status.text_path,
        rendered_path=status.rendered_path,
    )


async def stop_session(engine: SyncEngine, session_id: str) -> StopSessionResponse:
    if await engine.stop_session(session_id):
        return StopSessionResponse(success=True, message=f"Session stopped: {session_id}")
    return StopSessionResponse(success=False, message=f"Unknown session: {session_id}")
