"""Content comparison used to recognise late echoes.

The time window in :class:`~mdsync.sync.session.SyncSession` catches most
self-caused change notifications.  A notification that arrives after the
window has closed is still an echo if the file holds exactly the bytes the
engine wrote, which is what :class:`SyncDiffer` checks.
"""

from __future__ import annotations

import difflib
from pathlib import Path

from mdsync.sync.state import compute_file_hash


class SyncDiffer:
    """Stateless helpers for comparing on-disk content with what was written."""

    @staticmethod
    def matches_written(path: str | Path, written_hash: str | None) -> bool:
        """Return ``True`` if *path* still holds the content hashed as *written_hash*.

        Returns ``False`` when nothing was recorded or the file cannot be
        read, so the caller falls back to treating the change as genuine.
        """
        if not written_hash:
            return False
        return compute_file_hash(path) == written_hash

    @staticmethod
    def compute_diff(before: str, after: str, label: str = "text") -> str:
        """Unified diff between two versions of a text file, line endings normalised."""
        before_lines = before.replace("\r\n", "\n").splitlines(keepends=True)
        after_lines = after.replace("\r\n", "\n").splitlines(keepends=True)
        diff = difflib.unified_diff(
            before_lines,
            after_lines,
            fromfile=f"{label} (before)",
            tofile=f"{label} (after)",
        )
        return "".join(diff)
