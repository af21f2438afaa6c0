"""MCP server for bi-directional Markdown <-> Word sync.

Creates a FastMCP server around one ``SyncEngine`` and registers the
session tools.  Sessions live as long as the server process; all of them are
stopped when the server shuts down.

Run with:
    mdsync serve
    # or
    mdsync-server
    # or
    python -m mdsync
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Literal

from mcp.server.fastmcp import FastMCP

from mdsync.config import configure_logging, settings
from mdsync.sync.engine import SyncEngine
from mdsync.tools.sync_tools import register_sync_tools

Transport = Literal["stdio", "sse", "streamable-http"]

SERVER_NAME = "markdown-word-sync"


def build_server(engine: SyncEngine | None = None) -> FastMCP:
    """Create the FastMCP server with the sync tools bound to *engine*."""
    engine = engine or SyncEngine(settings=settings)

    @asynccontextmanager
    async def lifespan(_server: FastMCP) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await engine.shutdown()

    mcp = FastMCP(
        SERVER_NAME,
        instructions=(
            "Keeps a Markdown file and a Word (.docx) document in sync. "
            "Start a session with convert_and_sync, inspect it with "
            "sync_status and end it with stop_sync."
        ),
        lifespan=lifespan,
    )
    register_sync_tools(mcp, engine)
    return mcp


def main(transport: Transport = "stdio") -> None:
    """Entry point for the MCP server."""
    settings.validate()
    configure_logging()
    build_server().run(transport=transport)


if __name__ == "__main__":
    main()
