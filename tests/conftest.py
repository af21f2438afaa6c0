"""Shared pytest fixtures and fakes for mdsync tests."""

from __future__ import annotations

import errno
from pathlib import Path

import pytest

from mdsync.config import Settings
from mdsync.sync.state import ChangeSource
from mdsync.sync.writer import DurableWriter

RENDERED_PREFIX = "RENDERED:"


class FakeConverter:
    """Reversible stand-in for DocumentConverter that records its calls."""

    def __init__(self) -> None:
        self.to_rendered_calls: list[str] = []
        self.to_text_calls: list[bytes] = []
        self.fail_next: Exception | None = None

    def to_rendered(self, text: str) -> bytes:
        self.to_rendered_calls.append(text)
        self._maybe_fail()
        return (RENDERED_PREFIX + text).encode("utf-8")

    def to_text(self, data: bytes) -> str:
        self.to_text_calls.append(data)
        self._maybe_fail()
        return data.decode("utf-8").removeprefix(RENDERED_PREFIX)

    def _maybe_fail(self) -> None:
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc


class FakeWatcher:
    """ChangeWatcher stand-in that records targets and never touches the FS."""

    instances: list[FakeWatcher] = []

    def __init__(self) -> None:
        self.targets: dict[Path, ChangeSource] = {}
        self.on_change = None
        self.closed = False
        self._active = False
        FakeWatcher.instances.append(self)

    @property
    def active(self) -> bool:
        return self._active

    async def watch(self, targets, on_change) -> None:
        self.targets = {Path(p): s for p, s in targets.items()}
        self.on_change = on_change
        self._active = bool(self.targets)

    async def close(self) -> None:
        self.closed = True
        self._active = False


class LockedWriter(DurableWriter):
    """DurableWriter whose canonical targets are locked for the first N writes."""

    def __init__(self, locked_for: int, err: int = errno.EACCES, **kwargs) -> None:
        kwargs.setdefault("initial_delay", 0.001)
        kwargs.setdefault("max_delay", 0.004)
        super().__init__(**kwargs)
        self.locked_for = locked_for
        self.err = err
        self.attempts: list[Path] = []

    def _write_once(self, path: Path, data: bytes) -> None:
        self.attempts.append(path)
        is_pending = path.name.endswith(".pending")
        canonical_attempts = sum(1 for p in self.attempts if p == path)
        if not is_pending and canonical_attempts <= self.locked_for:
            if self.err == errno.EACCES:
                raise PermissionError(self.err, "file is locked", str(path))
            raise OSError(self.err, "file is busy", str(path))
        path.write_bytes(data)


@pytest.fixture(autouse=True)
def _reset_fake_watchers():
    FakeWatcher.instances.clear()
    yield
    FakeWatcher.instances.clear()


@pytest.fixture
def fake_converter() -> FakeConverter:
    return FakeConverter()


@pytest.fixture
def fast_writer() -> DurableWriter:
    return DurableWriter(max_attempts=8, initial_delay=0.001, max_delay=0.004)


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with short timings so watcher tests finish quickly."""
    s = Settings()
    s.echo_window_ms = 1000
    s.debounce_ms = 300
    s.stability_ms = 100
    s.poll_interval_ms = 20
    s.shared_debounce = True
    s.write_attempts = 8
    s.write_initial_delay_ms = 1
    s.write_max_delay_ms = 4
    return s


@pytest.fixture
def markdown_file(tmp_path: Path) -> Path:
    path = tmp_path.resolve() / "note.md"
    path.write_text("# Note\n\nHello world.\n", encoding="utf-8")
    return path
