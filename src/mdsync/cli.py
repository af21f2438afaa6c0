"""CLI entrypoint for mdsync.

``mdsync sync FILE`` converts FILE, then keeps the Markdown and Word
documents in sync until interrupted.  ``mdsync convert`` does a single
conversion and ``mdsync serve`` runs the MCP server.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from mdsync.config import configure_logging, settings
from mdsync.converter import (
    DocumentConverter,
    derive_rendered_path,
    derive_text_path,
    is_rendered_path,
    is_text_path,
)
from mdsync.sync.engine import SyncEngine
from mdsync.sync.state import SessionOptions
from mdsync.sync.writer import DurableWriter


def _classify(file: str) -> Path:
    """Resolve *file* and make sure it has a Markdown or DOCX extension."""
    path = Path(file).resolve()
    if not (is_text_path(path) or is_rendered_path(path)):
        click.echo("Error: expected a .md or .docx file", err=True)
        sys.exit(1)
    return path


@click.group()
@click.version_option(package_name="mdsync")
@click.option(
    "--log-level",
    default=None,
    help="DEBUG, INFO, WARNING or ERROR (default: $MDSYNC_LOG_LEVEL or INFO).",
)
def cli(log_level: str | None) -> None:
    """mdsync: keep Markdown and Word documents in sync."""
    try:
        settings.validate()
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    configure_logging(log_level)


@cli.command()
@click.argument("file", type=click.Path(dir_okay=False))
@click.option(
    "--bidirectional/--one-way",
    default=True,
    help="Also propagate DOCX edits back to Markdown.",
)
@click.option("--watch/--no-watch", default=True, help="Keep watching for changes.")
@click.option("--open/--no-open", "open_", default=True, help="Open the DOCX when ready.")
@click.option(
    "--prefer-word/--prefer-any",
    default=True,
    help="Prefer Microsoft Word over WPS when opening.",
)
def sync(file: str, bidirectional: bool, watch: bool, open_: bool, prefer_word: bool) -> None:
    """Convert FILE (.md or .docx) and keep both documents in sync."""
    path = _classify(file)
    options = SessionOptions(
        text_path=str(path) if is_text_path(path) else None,
        rendered_path=str(path) if is_rendered_path(path) else None,
        bidirectional=bidirectional,
        watch=watch,
        open_rendered=open_,
        prefer_primary_app=prefer_word,
    )
    try:
        asyncio.run(_run_session(options))
    except KeyboardInterrupt:
        click.echo("Stopped.")
    except Exception as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


async def _run_session(options: SessionOptions) -> None:
    engine = SyncEngine(settings=settings)
    try:
        session_id = await engine.start_session(options)
        status = engine.get_status(session_id)
        click.echo(f"Session started: {session_id}")
        click.echo(f"  markdown: {status.text_path}")
        click.echo(f"  docx:     {status.rendered_path}")
        if not status.active:
            return
        click.echo("Watching for changes; press Ctrl+C to stop.")
        await asyncio.Event().wait()
    finally:
        await engine.shutdown()


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", default=None, help="Destination (default: FILE with the other extension).")
def convert(file: str, output: str | None) -> None:
    """Convert FILE once, in the direction its extension implies."""
    path = _classify(file)
    converter = DocumentConverter()
    try:
        if is_text_path(path):
            target = Path(output).resolve() if output else derive_rendered_path(path)
            data = converter.to_rendered(path.read_text(encoding="utf-8"))
        else:
            target = Path(output).resolve() if output else derive_text_path(path)
            data = converter.to_text(path.read_bytes()).encode("utf-8")
    except Exception as exc:
        click.echo(f"Error: cannot convert {path}: {exc}", err=True)
        sys.exit(1)

    writer = DurableWriter(
        max_attempts=settings.write_attempts,
        initial_delay=settings.write_initial_delay_ms / 1000,
        max_delay=settings.write_max_delay_ms / 1000,
    )
    result = asyncio.run(writer.write(target, data))
    if result.committed:
        click.echo(f"OK: {path} -> {result.path}")
    else:
        click.echo(f"PENDING: {target} is locked; wrote {result.path}", err=True)
        sys.exit(2)


@cli.command()
@click.option(
    "--transport",
    type=click.Choice(["stdio", "sse", "streamable-http"]),
    default="stdio",
    show_default=True,
)
def serve(transport: str) -> None:
    """Run the MCP server."""
    from mdsync.server import build_server

    build_server().run(transport=transport)


if __name__ == "__main__":
    cli()
