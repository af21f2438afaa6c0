"""One Markdown/Word document pair kept in sync.

A session seeds whichever file is missing, then (if watching) converts in
the opposite direction every time one side changes.  Writing the opposite
file is itself a change the watcher will see, so after each conversion the
session ignores change notifications for the file it just wrote until the
echo window has passed.  An edit a user makes to that file inside the window
is dropped along with the echo; the window is kept short for that reason.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any

from mdsync.converter import derive_rendered_path, derive_text_path
from mdsync.launcher import NoSuitableApplicationError
from mdsync.sync.differ import SyncDiffer
from mdsync.sync.state import (
    ChangeSource,
    SessionOptions,
    SessionState,
    SessionStatus,
    compute_bytes_hash,
)
from mdsync.sync.watcher import ChangeWatcher
from mdsync.sync.writer import DurableWriter, WriteResult

logger = logging.getLogger(__name__)

DEFAULT_ECHO_WINDOW_MS = 1000


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class SyncSession:
    """Seeding plus watch-and-convert state machine for one document pair.

    Args:
        session_id: Identifier assigned by the registry.
        options: Paths and flags requested by the caller.
        converter: Object with ``to_rendered(str) -> bytes`` and
            ``to_text(bytes) -> str``.
        writer: ``DurableWriter`` used for every output file.
        opener: Object with an async ``open(path, prefer_primary_app)``;
            ``None`` disables opening.
        watcher_factory: Zero-argument callable returning a fresh
            ``ChangeWatcher``.
        echo_window_ms: How long a file the session just wrote is
            considered to be echoing.
    """

    def __init__(
        self,
        session_id: str,
        options: SessionOptions,
        converter: Any,
        writer: DurableWriter,
        *,
        opener: Any = None,
        watcher_factory: Any = ChangeWatcher,
        echo_window_ms: int = DEFAULT_ECHO_WINDOW_MS,
    ) -> None:
        if not options.text_path and not options.rendered_path:
            raise ValueError("text_path or rendered_path is required")

        self.id = session_id
        self.text_path: Path | None = (
            Path(options.text_path).resolve() if options.text_path else None
        )
        self.rendered_path: Path | None = (
            Path(options.rendered_path).resolve() if options.rendered_path else None
        )
        self.bidirectional = options.bidirectional
        self.watch_enabled = options.watch
        self.open_rendered = options.open_rendered
        self.prefer_primary_app = options.prefer_primary_app

        self.state = SessionState.CREATED
        self.last_sync_at: int | None = None
        self.last_error: str | None = None
        self.pending_path: Path | None = None
        self.watcher: ChangeWatcher | None = None

        self._converter = converter
        self._writer = writer
        self._opener = opener
        self._watcher_factory = watcher_factory
        self._echo_window = echo_window_ms / 1000
        self._differ = SyncDiffer()

        # Monotonic deadlines: change notifications for that file are echoes
        # until then.
        self._suppress_until: dict[ChangeSource, float] = {
            ChangeSource.TEXT: 0.0,
            ChangeSource.RENDERED: 0.0,
        }
        # Hash of the bytes this session last wrote to each file.
        self._written_hash: dict[ChangeSource, str | None] = {
            ChangeSource.TEXT: None,
            ChangeSource.RENDERED: None,
        }
        self._locks: dict[ChangeSource, asyncio.Lock] = {
            ChangeSource.TEXT: asyncio.Lock(),
            ChangeSource.RENDERED: asyncio.Lock(),
        }
        self._rerun: dict[ChangeSource, bool] = {
            ChangeSource.TEXT: False,
            ChangeSource.RENDERED: False,
        }

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def active(self) -> bool:
        return self.watcher is not None and self.watcher.active

    def suppressed_until(self, source: ChangeSource) -> float:
        """Monotonic deadline before which *source* changes are echoes."""
        return self._suppress_until[source]

    def status(self) -> SessionStatus:
        return SessionStatus(
            id=self.id,
            text_path=str(self.text_path) if self.text_path else None,
            rendered_path=str(self.rendered_path) if self.rendered_path else None,
            active=self.active,
            last_sync_at=self.last_sync_at,
            state=self.state,
            bidirectional=self.bidirectional,
            last_error=self.last_error,
            pending_path=str(self.pending_path) if self.pending_path else None,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Seed the missing file, optionally open the document, then watch.

        Raises:
            OSError: The single source file given could not be read or the
                seeded file could not be written.  Nothing is watched in
                that case.
        """
        if self.state is not SessionState.CREATED:
            raise RuntimeError(f"Session {self.id} already started")

        if self.text_path and not self.rendered_path:
            self.state = SessionState.SEEDING
            self.rendered_path = derive_rendered_path(self.text_path)
            logger.info("Seeding %s from %s", self.rendered_path, self.text_path)
            await self._convert(ChangeSource.TEXT)
        elif self.rendered_path and not self.text_path:
            self.state = SessionState.SEEDING
            self.text_path = derive_text_path(self.rendered_path)
            logger.info("Seeding %s from %s", self.text_path, self.rendered_path)
            await self._convert(ChangeSource.RENDERED)

        if self.open_rendered and self._opener is not None:
            await self._open_rendered()

        if not self.watch_enabled:
            self.state = SessionState.IDLE
            return

        targets = {self.text_path: ChangeSource.TEXT}
        if self.bidirectional:
            targets[self.rendered_path] = ChangeSource.RENDERED
        self.watcher = self._watcher_factory()
        try:
            await self.watcher.watch(targets, self.handle_change)
        except BaseException:
            await self.watcher.close()
            self.watcher = None
            raise
        self.state = SessionState.WATCHING
        logger.info(
            "Session %s watching %s",
            self.id,
            ", ".join(str(p) for p in targets),
        )

    async def stop(self) -> None:
        """Release the watcher.  Idempotent."""
        watcher, self.watcher = self.watcher, None
        if watcher is not None:
            await watcher.close()
        if self.state is not SessionState.STOPPED:
            self.state = SessionState.STOPPED
            logger.info("Session %s stopped", self.id)

    # ------------------------------------------------------------------
    # Change handling
    # ------------------------------------------------------------------

    async def handle_change(self, source: ChangeSource) -> None:
        """React to a change of the *source* file.

        Echoes are dropped.  A genuine change converts towards the other
        file.  Overlapping changes for the same direction collapse into one
        follow-up conversion.  Conversion and write errors are logged and
        recorded on the session; they never propagate to the watcher.
        """
        if self.state is SessionState.STOPPED:
            return
        if source is ChangeSource.RENDERED and not self.bidirectional:
            return
        if await self._is_echo(source):
            return

        lock = self._locks[source]
        if lock.locked():
            self._rerun[source] = True
            logger.debug("%s conversion in flight; queued a rerun", source)
            return

        async with lock:
            while True:
                self._rerun[source] = False
                try:
                    await self._convert(source)
                except Exception as exc:
                    self.last_error = f"{source} conversion failed: {exc}"
                    logger.exception(
                        "Session %s: %s conversion failed", self.id, source
                    )
                if not self._rerun[source] or self.state is SessionState.STOPPED:
                    break

    async def _is_echo(self, source: ChangeSource) -> bool:
        now = time.monotonic()
        if now < self._suppress_until[source]:
            logger.debug(
                "Session %s: ignored %s change inside echo window", self.id, source
            )
            return True
        written = self._written_hash[source]
        if written is None:
            return False
        path = self._path_for(source)
        if await asyncio.to_thread(self._differ.matches_written, path, written):
            logger.debug(
                "Session %s: ignored %s change, content is what we wrote",
                self.id,
                source,
            )
            return True
        return False

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    async def _convert(self, source: ChangeSource) -> None:
        """Convert from the *source* file to the opposite one and persist it."""
        src_path = self._path_for(source)
        target = source.opposite
        dst_path = self._path_for(target)

        if source is ChangeSource.TEXT:
            text = await asyncio.to_thread(src_path.read_text, encoding="utf-8")
            data = await asyncio.to_thread(self._converter.to_rendered, text)
            logger.info("[sync] markdown -> docx %s => %s", src_path, dst_path)
        else:
            raw = await asyncio.to_thread(src_path.read_bytes)
            text = await asyncio.to_thread(self._converter.to_text, raw)
            data = text.encode("utf-8")
            logger.info("[sync] docx -> markdown %s => %s", src_path, dst_path)
            if logger.isEnabledFor(logging.DEBUG) and await asyncio.to_thread(
                dst_path.exists
            ):
                before = await asyncio.to_thread(dst_path.read_text, encoding="utf-8")
                logger.debug("%s", self._differ.compute_diff(before, text, "markdown"))

        result = await self._writer.write(dst_path, data)
        self._record_write(target, result, data)

    def _record_write(
        self, target: ChangeSource, result: WriteResult, data: bytes
    ) -> None:
        self.last_sync_at = _epoch_ms()
        if result.committed:
            self._written_hash[target] = compute_bytes_hash(data)
            self.pending_path = None
        else:
            self.pending_path = result.path
            self.last_error = (
                f"{self._path_for(target)} is locked; changes saved to {result.path}"
            )
            logger.warning("Session %s: %s", self.id, self.last_error)
        deadline = time.monotonic() + self._echo_window
        if deadline > self._suppress_until[target]:
            self._suppress_until[target] = deadline

    async def _open_rendered(self) -> None:
        try:
            await self._opener.open(self.rendered_path, self.prefer_primary_app)
        except (NoSuitableApplicationError, OSError) as exc:
            self.last_error = f"Could not open {self.rendered_path}: {exc}"
            logger.warning("Session %s: %s", self.id, self.last_error)

    def _path_for(self, source: ChangeSource) -> Path:
        path = self.text_path if source is ChangeSource.TEXT else self.rendered_path
        assert path is not None
        return path
