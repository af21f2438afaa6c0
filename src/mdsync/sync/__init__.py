"""Sync engine package for bidirectional Markdown <-> Word synchronization."""

from mdsync.sync.differ import SyncDiffer
from mdsync.sync.engine import SyncEngine, new_session_id
from mdsync.sync.session import SyncSession
from mdsync.sync.state import (
    ChangeSource,
    SessionOptions,
    SessionState,
    SessionStatus,
    compute_bytes_hash,
    compute_file_hash,
)
from mdsync.sync.watcher import ChangeWatcher
from mdsync.sync.writer import DurableWriter, WriteResult, pending_path_for

__all__ = [
    "ChangeSource",
    "ChangeWatcher",
    "DurableWriter",
    "SessionOptions",
    "SessionState",
    "SessionStatus",
    "SyncDiffer",
    "SyncEngine",
    "SyncSession",
    "WriteResult",
    "compute_bytes_hash",
    "compute_file_hash",
    "new_session_id",
    "pending_path_for",
]
