"""Tests for SyncSession: seeding, echo suppression, single-flight and failures."""

from __future__ import annotations

import asyncio
import threading
import time
from unittest.mock import AsyncMock

import pytest

from mdsync.launcher import NoSuitableApplicationError
from mdsync.sync.session import SyncSession
from mdsync.sync.state import ChangeSource, SessionOptions, SessionState

from .conftest import RENDERED_PREFIX, FakeConverter, FakeWatcher, LockedWriter


def _session(options: SessionOptions, converter, writer, **kwargs) -> SyncSession:
    kwargs.setdefault("watcher_factory", FakeWatcher)
    return SyncSession("s-1", options, converter, writer, **kwargs)


class TestConstruction:
    def test_requires_a_path(self, fake_converter, fast_writer):
        options = SessionOptions.model_construct(text_path=None, rendered_path=None)
        with pytest.raises(ValueError, match="required"):
            SyncSession("s", options, fake_converter, fast_writer)

    def test_paths_are_absolute(self, fake_converter, fast_writer, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        session = _session(SessionOptions(text_path="note.md"), fake_converter, fast_writer)
        assert session.text_path == tmp_path.resolve() / "note.md"
        assert session.text_path.is_absolute()


class TestSeeding:
    async def test_text_only_seeds_rendered(self, markdown_file, fake_converter, fast_writer):
        before = int(time.time() * 1000)
        session = _session(
            SessionOptions(text_path=str(markdown_file), open_rendered=False),
            fake_converter,
            fast_writer,
        )
        await session.start()

        rendered = markdown_file.with_suffix(".docx")
        assert session.rendered_path == rendered
        assert rendered.read_bytes() == (RENDERED_PREFIX + markdown_file.read_text()).encode()
        assert session.last_sync_at is not None and session.last_sync_at >= before
        assert session.state is SessionState.WATCHING
        assert session.active

    async def test_rendered_only_seeds_text(self, tmp_path, fake_converter, fast_writer):
        rendered = tmp_path / "report.docx"
        rendered.write_bytes(f"{RENDERED_PREFIX}hello\n".encode())
        session = _session(
            SessionOptions(rendered_path=str(rendered), open_rendered=False),
            fake_converter,
            fast_writer,
        )
        await session.start()
        assert session.text_path == tmp_path.resolve() / "report.md"
        assert session.text_path.read_text() == "hello\n"

    async def test_both_paths_skip_conversion(self, tmp_path, fake_converter, fast_writer):
        md, docx = tmp_path / "a.md", tmp_path / "a.docx"
        md.write_text("x")
        docx.write_bytes(b"y")
        session = _session(
            SessionOptions(text_path=str(md), rendered_path=str(docx), open_rendered=False),
            fake_converter,
            fast_writer,
        )
        await session.start()
        assert fake_converter.to_rendered_calls == []
        assert fake_converter.to_text_calls == []
        assert session.last_sync_at is None

    async def test_unreadable_source_fails_before_watching(self, tmp_path, fake_converter, fast_writer):
        session = _session(
            SessionOptions(text_path=str(tmp_path / "missing.md"), open_rendered=False),
            fake_converter,
            fast_writer,
        )
        with pytest.raises(FileNotFoundError):
            await session.start()
        assert FakeWatcher.instances == []
        assert not session.active

    async def test_watch_disabled_is_idle(self, markdown_file, fake_converter, fast_writer):
        session = _session(
            SessionOptions(text_path=str(markdown_file), watch=False, open_rendered=False),
            fake_converter,
            fast_writer,
        )
        await session.start()
        assert session.state is SessionState.IDLE
        assert not session.active
        assert FakeWatcher.instances == []

    async def test_start_twice_rejected(self, markdown_file, fake_converter, fast_writer):
        session = _session(
            SessionOptions(text_path=str(markdown_file), open_rendered=False),
            fake_converter,
            fast_writer,
        )
        await session.start()
        with pytest.raises(RuntimeError, match="already started"):
            await session.start()


class TestWatchTargets:
    async def test_bidirectional_watches_both(self, markdown_file, fake_converter, fast_writer):
        session = _session(
            SessionOptions(text_path=str(markdown_file), open_rendered=False),
            fake_converter,
            fast_writer,
        )
        await session.start()
        (watcher,) = FakeWatcher.instances
        assert watcher.targets == {
            markdown_file: ChangeSource.TEXT,
            markdown_file.with_suffix(".docx"): ChangeSource.RENDERED,
        }
        assert watcher.on_change == session.handle_change

    async def test_one_way_watches_text_only(self, markdown_file, fake_converter, fast_writer):
        session = _session(
            SessionOptions(text_path=str(markdown_file), bidirectional=False, open_rendered=False),
            fake_converter,
            fast_writer,
        )
        await session.start()
        (watcher,) = FakeWatcher.instances
        assert watcher.targets == {markdown_file: ChangeSource.TEXT}


class TestEchoSuppression:
    async def _started(self, markdown_file, converter, writer, **kwargs):
        session = _session(
            SessionOptions(text_path=str(markdown_file), open_rendered=False),
            converter,
            writer,
            **kwargs,
        )
        await session.start()
        return session

    async def test_rendered_echo_does_not_convert_back(self, markdown_file, fake_converter, fast_writer):
        """Writing the DOCX must not bounce back into a Markdown rewrite."""
        session = await self._started(markdown_file, fake_converter, fast_writer)
        original = markdown_file.read_text()

        await session.handle_change(ChangeSource.RENDERED)

        assert fake_converter.to_text_calls == []
        assert markdown_file.read_text() == original

    async def test_one_hop_per_genuine_edit(self, markdown_file, fake_converter, fast_writer):
        session = await self._started(markdown_file, fake_converter, fast_writer)
        markdown_file.write_text("# Edited\n")

        await session.handle_change(ChangeSource.TEXT)
        await session.handle_change(ChangeSource.RENDERED)  # the echo of that write

        assert fake_converter.to_rendered_calls[-1] == "# Edited\n"
        assert len(fake_converter.to_rendered_calls) == 2  # seed + edit
        assert fake_converter.to_text_calls == []

    async def test_suppression_only_moves_forward(self, markdown_file, fake_converter, fast_writer):
        session = await self._started(markdown_file, fake_converter, fast_writer)
        first = session.suppressed_until(ChangeSource.RENDERED)
        await asyncio.sleep(0.01)
        await session.handle_change(ChangeSource.TEXT)
        assert session.suppressed_until(ChangeSource.RENDERED) > first

    async def test_user_edit_inside_window_is_dropped(self, markdown_file, fake_converter, fast_writer):
        """Accepted trade-off: a real DOCX edit inside the echo window is lost."""
        session = await self._started(markdown_file, fake_converter, fast_writer)
        rendered = markdown_file.with_suffix(".docx")
        rendered.write_bytes(f"{RENDERED_PREFIX}typed in Word\n".encode())

        await session.handle_change(ChangeSource.RENDERED)

        assert fake_converter.to_text_calls == []

    async def test_late_echo_dropped_by_content(self, markdown_file, fake_converter, fast_writer):
        """After the window, unchanged bytes are still recognised as our own write."""
        session = await self._started(
            markdown_file, fake_converter, fast_writer, echo_window_ms=0
        )
        await session.handle_change(ChangeSource.RENDERED)
        assert fake_converter.to_text_calls == []

    async def test_content_check_runs_off_the_event_loop(
        self, markdown_file, fake_converter, fast_writer, monkeypatch
    ):
        session = await self._started(
            markdown_file, fake_converter, fast_writer, echo_window_ms=0
        )
        threads: list[threading.Thread] = []
        original_check = session._differ.matches_written

        def recording_check(path, written_hash):
            threads.append(threading.current_thread())
            return original_check(path, written_hash)

        monkeypatch.setattr(session._differ, "matches_written", recording_check)

        await session.handle_change(ChangeSource.RENDERED)

        assert threads
        assert threads[0] is not threading.main_thread()
        assert fake_converter.to_text_calls == []

    async def test_edit_after_window_converts(self, markdown_file, fake_converter, fast_writer):
        session = await self._started(
            markdown_file, fake_converter, fast_writer, echo_window_ms=0
        )
        rendered = markdown_file.with_suffix(".docx")
        rendered.write_bytes(f"{RENDERED_PREFIX}typed in Word\n".encode())

        await session.handle_change(ChangeSource.RENDERED)

        assert markdown_file.read_text() == "typed in Word\n"
        # Our Markdown write is now the echo.
        assert session.suppressed_until(ChangeSource.TEXT) > 0
        await session.handle_change(ChangeSource.TEXT)
        assert len(fake_converter.to_rendered_calls) == 1  # seed only

    async def test_one_way_ignores_rendered_changes(self, markdown_file, fake_converter, fast_writer):
        session = _session(
            SessionOptions(text_path=str(markdown_file), bidirectional=False, open_rendered=False),
            fake_converter,
            fast_writer,
            echo_window_ms=0,
        )
        await session.start()
        markdown_file.with_suffix(".docx").write_bytes(b"RENDERED:changed")
        before = markdown_file.read_text()

        await session.handle_change(ChangeSource.RENDERED)

        assert fake_converter.to_text_calls == []
        assert markdown_file.read_text() == before


class TestSingleFlight:
    async def test_overlapping_changes_collapse_to_one_rerun(self, markdown_file, fast_writer):
        class SlowConverter(FakeConverter):
            def to_rendered(self, text):
                time.sleep(0.1)
                return super().to_rendered(text)

        converter = SlowConverter()
        session = _session(
            SessionOptions(text_path=str(markdown_file), open_rendered=False),
            converter,
            fast_writer,
        )
        await session.start()
        seeded = len(converter.to_rendered_calls)

        await asyncio.gather(*(session.handle_change(ChangeSource.TEXT) for _ in range(3)))

        assert len(converter.to_rendered_calls) - seeded == 2


class TestFailures:
    async def test_conversion_error_keeps_watching(self, markdown_file, fake_converter, fast_writer):
        session = _session(
            SessionOptions(text_path=str(markdown_file), open_rendered=False),
            fake_converter,
            fast_writer,
        )
        await session.start()
        fake_converter.fail_next = RuntimeError("bad markdown")

        await session.handle_change(ChangeSource.TEXT)

        assert "bad markdown" in session.last_error
        assert session.state is SessionState.WATCHING
        assert session.active

        markdown_file.write_text("fixed\n")
        await session.handle_change(ChangeSource.TEXT)
        assert fake_converter.to_rendered_calls[-1] == "fixed\n"

    async def test_locked_target_reports_pending(self, markdown_file, fake_converter):
        writer = LockedWriter(locked_for=100)
        session = _session(
            SessionOptions(text_path=str(markdown_file), open_rendered=False),
            fake_converter,
            writer,
        )
        await session.start()
        status = session.status()
        assert status.pending_path == str(markdown_file.with_name("note.docx.pending"))
        assert "locked" in status.last_error
        assert not markdown_file.with_suffix(".docx").exists()

    async def test_open_failure_does_not_abort_start(self, markdown_file, fake_converter, fast_writer):
        opener = AsyncMock()
        opener.open.side_effect = NoSuitableApplicationError("no word processor")
        session = _session(
            SessionOptions(text_path=str(markdown_file), prefer_primary_app=False),
            fake_converter,
            fast_writer,
            opener=opener,
        )
        await session.start()
        opener.open.assert_awaited_once_with(markdown_file.with_suffix(".docx"), False)
        assert session.active
        assert "no word processor" in session.last_error


class TestStop:
    async def test_stop_releases_watcher(self, markdown_file, fake_converter, fast_writer):
        session = _session(
            SessionOptions(text_path=str(markdown_file), open_rendered=False),
            fake_converter,
            fast_writer,
        )
        await session.start()
        (watcher,) = FakeWatcher.instances

        await session.stop()
        await session.stop()

        assert watcher.closed
        assert session.watcher is None
        assert session.state is SessionState.STOPPED
        assert not session.status().active

    async def test_changes_after_stop_are_ignored(self, markdown_file, fake_converter, fast_writer):
        session = _session(
            SessionOptions(text_path=str(markdown_file), open_rendered=False),
            fake_converter,
            fast_writer,
        )
        await session.start()
        await session.stop()
        markdown_file.write_text("late\n")
        await session.handle_change(ChangeSource.TEXT)
        assert "late\n" not in fake_converter.to_rendered_calls
