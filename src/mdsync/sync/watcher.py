"""Debounced, source-tagged file change notifications.

Built on ``watchfiles.awatch``.  The parent directory of each target file is
watched (non-recursively) rather than the file itself, so editors that save
by writing a temporary file and renaming it over the original are still
seen.  A change that arrives within ``debounce_ms`` of the last accepted
change is dropped; an accepted change is delivered once the file has
stopped changing for ``stability_ms``, so writes made during that wait are
part of the same notification.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path

from watchfiles import Change, awatch

from mdsync.sync.state import ChangeSource

logger = logging.getLogger(__name__)

OnChange = Callable[[ChangeSource], Awaitable[None]]

_CLOSE_TIMEOUT = 5.0


class ChangeWatcher:
    """Watch up to two files and report which one changed.

    Usage::

        async with ChangeWatcher() as watcher:
            await watcher.watch({md_path: ChangeSource.TEXT}, on_change)
            ...

    Args:
        debounce_ms: Changes arriving this soon after an accepted change
            are dropped.
        stability_ms: Quiet period a file must show before it counts as
            fully written.
        poll_interval_ms: How often the file is re-checked during the
            quiet period.
        shared_debounce: When ``True`` one debounce window covers every
            watched path; when ``False`` each path has its own.
        force_polling: Passed through to ``watchfiles`` (useful on network
            filesystems and in containers).
    """

    def __init__(
        self,
        *,
        debounce_ms: int = 500,
        stability_ms: int = 500,
        poll_interval_ms: int = 100,
        shared_debounce: bool = True,
        force_polling: bool | None = None,
    ) -> None:
        self.debounce_ms = debounce_ms
        self.stability_ms = stability_ms
        self.poll_interval_ms = poll_interval_ms
        self.shared_debounce = shared_debounce
        self.force_polling = force_polling

        self._targets: dict[Path, ChangeSource] = {}
        self._last_accepted: dict[Path | None, float] = {}
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None
        self._deliveries: set[asyncio.Task[None]] = set()
        self._settling: set[asyncio.Task[None]] = set()

    async def __aenter__(self) -> ChangeWatcher:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def targets(self) -> dict[Path, ChangeSource]:
        return dict(self._targets)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def watch(
        self,
        targets: Mapping[str | Path, ChangeSource],
        on_change: OnChange,
    ) -> None:
        """Start watching *targets* (path -> source tag) in the background.

        Returns once the watch loop is scheduled.  Watching zero paths is
        allowed and arms nothing.
        """
        if self._task is not None:
            raise RuntimeError("ChangeWatcher is already watching")

        self._targets = {Path(p).resolve(): src for p, src in targets.items()}
        if not self._targets:
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(on_change))
        # Let the loop enter awatch before the caller goes on.
        await asyncio.sleep(0)
        logger.debug(
            "Watching %s",
            ", ".join(f"{p} ({s})" for p, s in self._targets.items()),
        )

    async def close(self) -> None:
        """Stop watching and wait for in-flight callbacks.  Safe to call twice."""
        if self._stop_event is not None:
            self._stop_event.set()
        task, self._task = self._task, None
        if task is not None:
            try:
                await asyncio.wait_for(task, timeout=_CLOSE_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning("Watch loop did not stop in time; cancelled")
            except asyncio.CancelledError:
                pass
        for pending in list(self._settling):
            pending.cancel()
        if self._settling:
            await asyncio.gather(*self._settling, return_exceptions=True)
            self._settling.clear()
        if self._deliveries:
            await asyncio.gather(*self._deliveries, return_exceptions=True)
            self._deliveries.clear()

    # ------------------------------------------------------------------
    # Watch loop
    # ------------------------------------------------------------------

    def _accepts(self, change: Change, path: str) -> bool:
        if change == Change.deleted:
            return False
        return Path(path).resolve() in self._targets

    async def _run(self, on_change: OnChange) -> None:
        directories = sorted({str(p.parent) for p in self._targets})
        async for changes in awatch(
            *directories,
            watch_filter=self._accepts,
            stop_event=self._stop_event,
            recursive=False,
            force_polling=self.force_polling,
        ):
            # Stamped on arrival; stability waits run in their own tasks.
            arrived = time.monotonic()
            changed = sorted({Path(raw).resolve() for _change, raw in changes})
            for path in changed:
                if self._debounced(path, arrived):
                    logger.debug("Dropped change to %s (debounce)", path)
                    continue
                task = asyncio.create_task(self._settle(path, on_change))
                self._settling.add(task)
                task.add_done_callback(self._settling.discard)

    async def _settle(self, path: Path, on_change: OnChange) -> None:
        await self._await_write_finish(path)
        self._dispatch(on_change, self._targets[path])

    async def _await_write_finish(self, path: Path) -> None:
        """Wait until *path*'s size and mtime stop changing for ``stability_ms``."""
        if self.stability_ms <= 0:
            return
        interval = self.poll_interval_ms / 1000
        required = self.stability_ms / 1000
        stable_for = 0.0
        last: tuple[int, int] | None = _signature(path)
        while stable_for < required:
            await asyncio.sleep(interval)
            current = _signature(path)
            if current == last:
                stable_for += interval
            else:
                stable_for = 0.0
                last = current

    def _debounced(self, path: Path, now: float | None = None) -> bool:
        """Record a change arriving at *now*; ``True`` if it falls in the window."""
        key = None if self.shared_debounce else path
        if now is None:
            now = time.monotonic()
        last = self._last_accepted.get(key)
        if last is not None and (now - last) * 1000 < self.debounce_ms:
            return True
        self._last_accepted[key] = now
        return False

    def _dispatch(self, on_change: OnChange, source: ChangeSource) -> None:
        task = asyncio.create_task(self._deliver(on_change, source))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    @staticmethod
    async def _deliver(on_change: OnChange, source: ChangeSource) -> None:
        try:
            await on_change(source)
        except Exception:
            logger.exception("Change handler failed for %s change", source)


def _signature(path: Path) -> tuple[int, int] | None:
    try:
        st = path.stat()
    except OSError:
        return None
    return st.st_size, st.st_mtime_ns
