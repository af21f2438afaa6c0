"""Session registry for Markdown <-> Word sync.

``SyncEngine`` creates, starts, reports on and stops :class:`SyncSession`
instances.  Its session map is the only state shared across sessions; all
access happens on the event loop thread.
"""

from __future__ import annotations

import logging
import time
import uuid
from functools import partial
from typing import Any

from mdsync.config import Settings, settings as default_settings
from mdsync.converter import DocumentConverter
from mdsync.launcher import DocumentOpener
from mdsync.sync.session import SyncSession
from mdsync.sync.state import SessionOptions, SessionStatus
from mdsync.sync.watcher import ChangeWatcher
from mdsync.sync.writer import DurableWriter

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    """``<epoch-ms>-<6 hex>``; unique enough for one process, not a secret."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


class SyncEngine:
    """Creates and tracks sync sessions.

    Collaborators default to the real implementations configured from
    ``settings``; tests pass fakes.

    Args:
        converter: Shared ``DocumentConverter``-like object.
        writer: Shared ``DurableWriter``.
        opener: Shared ``DocumentOpener``-like object (``None`` disables
            opening documents entirely).
        settings: Configuration source for the defaults above and for
            watcher / echo timings.
    """

    def __init__(
        self,
        *,
        converter: Any = None,
        writer: DurableWriter | None = None,
        opener: Any = None,
        settings: Settings | None = None,
        watcher_factory: Any = None,
    ) -> None:
        self._settings = settings or default_settings
        self._converter = converter or DocumentConverter()
        self._writer = writer or DurableWriter(
            max_attempts=self._settings.write_attempts,
            initial_delay=self._settings.write_initial_delay_ms / 1000,
            max_delay=self._settings.write_max_delay_ms / 1000,
        )
        self._opener = opener if opener is not None else DocumentOpener()
        self._watcher_factory = watcher_factory or partial(
            ChangeWatcher,
            debounce_ms=self._settings.debounce_ms,
            stability_ms=self._settings.stability_ms,
            poll_interval_ms=self._settings.poll_interval_ms,
            shared_debounce=self._settings.shared_debounce,
        )
        self._sessions: dict[str, SyncSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def get_session(self, session_id: str) -> SyncSession | None:
        return self._sessions.get(session_id)

    # ------------------------------------------------------------------
    # Create / start
    # ------------------------------------------------------------------

    async def start_session(self, options: SessionOptions | dict[str, Any]) -> str:
        """Create a session, run its start sequence and return its id.

        Returns only once seeding (if any) has finished.  If starting fails
        the session is discarded and the error propagates.

        Raises:
            ValueError: Neither path was supplied.
            OSError: The source file could not be read, or the seeded file
                could not be written.
        """
        if not isinstance(options, SessionOptions):
            options = SessionOptions.model_validate(options)

        session_id = new_session_id()
        session = SyncSession(
            session_id,
            options,
            self._converter,
            self._writer,
            opener=self._opener if options.open_rendered else None,
            watcher_factory=self._watcher_factory,
            echo_window_ms=self._settings.echo_window_ms,
        )
        self._sessions[session_id] = session
        try:
            await session.start()
        except BaseException:
            self._sessions.pop(session_id, None)
            await session.stop()
            raise
        logger.info("Session %s started (%s)", session_id, session.state)
        return session_id

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(
        self, session_id: str | None = None
    ) -> SessionStatus | list[SessionStatus] | None:
        """Status of one session (``None`` if unknown) or of all sessions."""
        if session_id:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            return session.status()
        return [s.status() for s in self._sessions.values()]

    # ------------------------------------------------------------------
    # Stop
    # ------------------------------------------------------------------

    async def stop_session(self, session_id: str) -> bool:
        """Stop a session and forget it.  Returns ``False`` for an unknown id."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.stop()
        return True

    async def shutdown(self) -> None:
        """Stop every session."""
        for session_id in list(self._sessions):
            await self.stop_session(session_id)
