"""Durable file writes for documents another application may hold open.

Word processors commonly keep an exclusive lock on the document they are
editing, so writing the rendered file can fail with "busy" or "permission
denied" for as long as it is open.  :class:`DurableWriter` retries those
errors with exponential backoff and, when retries run out, parks the bytes in
a ``.pending`` sibling instead of dropping them.
"""

from __future__ import annotations

import asyncio
import errno
import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

PENDING_SUFFIX = ".pending"

_TRANSIENT_ERRNOS = frozenset({errno.EBUSY, errno.EPERM, errno.EACCES})


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a durable write.

    ``committed`` is ``False`` when the canonical path could not be updated
    and the data was written to ``path`` (the ``.pending`` sibling) instead.
    """

    path: Path
    committed: bool
    attempts: int


def is_transient_lock_error(exc: OSError) -> bool:
    """Busy / permission-denied errors are treated as a temporary lock."""
    return isinstance(exc, PermissionError) or exc.errno in _TRANSIENT_ERRNOS


def pending_path_for(path: str | Path) -> Path:
    path = Path(path)
    return path.with_name(path.name + PENDING_SUFFIX)


class DurableWriter:
    """Write bytes to a path, riding out transient exclusive locks.

    Args:
        max_attempts: Total write attempts before falling back.
        initial_delay: Wait after the first failure, in seconds.
        max_delay: Cap on any single wait, in seconds.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 8,
        initial_delay: float = 0.2,
        max_delay: float = 3.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay

    def backoff_delays(self) -> list[float]:
        """Waits between consecutive attempts: doubling, capped at ``max_delay``."""
        delays: list[float] = []
        delay = self.initial_delay
        for _ in range(self.max_attempts - 1):
            delays.append(min(delay, self.max_delay))
            delay *= 2
        return delays

    async def write(self, path: str | Path, data: bytes) -> WriteResult:
        """Write *data* to *path*.

        Returns a committed ``WriteResult`` on success.  If every attempt
        hits a transient lock error, the data goes to ``<path>.pending`` and
        the result is not committed.

        Raises:
            OSError: Any non-transient error, raised on the attempt that
                hit it, or an error writing the ``.pending`` fallback.
        """
        target = Path(path)
        delays = self.backoff_delays()
        last_error: OSError | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                await asyncio.to_thread(self._write_once, target, data)
                if attempt > 1:
                    logger.info("Wrote %s after %d attempts", target, attempt)
                return WriteResult(path=target, committed=True, attempts=attempt)
            except OSError as exc:
                if not is_transient_lock_error(exc):
                    raise
                last_error = exc
                if attempt < self.max_attempts:
                    delay = delays[attempt - 1]
                    logger.debug(
                        "%s is locked (%s); retrying in %.0f ms",
                        target,
                        exc,
                        delay * 1000,
                    )
                    await asyncio.sleep(delay)

        fallback = pending_path_for(target)
        logger.warning(
            "Giving up on %s after %d attempts (%s); wrote %s instead",
            target,
            self.max_attempts,
            last_error,
            fallback,
        )
        await asyncio.to_thread(self._write_once, fallback, data)
        return WriteResult(path=fallback, committed=False, attempts=self.max_attempts)

    @staticmethod
    def _write_once(path: Path, data: bytes) -> None:
        path.write_bytes(data)
