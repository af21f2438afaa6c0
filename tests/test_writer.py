"""Tests for DurableWriter: retry/backoff on locked files and .pending fallback."""

from __future__ import annotations

import errno

import pytest

from mdsync.sync.writer import (
    DurableWriter,
    is_transient_lock_error,
    pending_path_for,
)

from .conftest import LockedWriter


class TestBackoff:
    def test_default_delays_double_and_cap(self):
        """Default schedule: 200 ms doubling, capped at 3 s, 7 waits for 8 attempts."""
        writer = DurableWriter()
        assert writer.backoff_delays() == [0.2, 0.4, 0.8, 1.6, 3.0, 3.0, 3.0]

    def test_single_attempt_has_no_waits(self):
        assert DurableWriter(max_attempts=1).backoff_delays() == []

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValueError, match="at least 1"):
            DurableWriter(max_attempts=0)


class TestTransientClassification:
    @pytest.mark.parametrize("code", [errno.EBUSY, errno.EPERM, errno.EACCES])
    def test_lock_errnos_are_transient(self, code):
        assert is_transient_lock_error(OSError(code, "locked"))

    def test_permission_error_is_transient(self):
        assert is_transient_lock_error(PermissionError("sharing violation"))

    def test_missing_file_is_not_transient(self):
        assert not is_transient_lock_error(FileNotFoundError(errno.ENOENT, "gone"))


class TestWrite:
    async def test_plain_write(self, tmp_path, fast_writer):
        target = tmp_path / "out.docx"
        result = await fast_writer.write(target, b"data")
        assert result.committed
        assert result.path == target
        assert result.attempts == 1
        assert target.read_bytes() == b"data"

    async def test_recovers_from_short_lock(self, tmp_path):
        """A lock that clears before the attempts run out lands at the canonical path."""
        target = tmp_path / "out.docx"
        writer = LockedWriter(locked_for=3)
        result = await writer.write(target, b"new")
        assert result.committed
        assert result.attempts == 4
        assert target.read_bytes() == b"new"
        assert not pending_path_for(target).exists()

    async def test_ebusy_is_retried(self, tmp_path):
        target = tmp_path / "out.docx"
        writer = LockedWriter(locked_for=2, err=errno.EBUSY)
        result = await writer.write(target, b"new")
        assert result.committed
        assert result.attempts == 3

    async def test_exhaustion_writes_pending_sibling(self, tmp_path):
        """A lock outlasting every attempt leaves the canonical file untouched."""
        target = tmp_path / "out.docx"
        target.write_bytes(b"old")
        writer = LockedWriter(locked_for=100)
        result = await writer.write(target, b"new")

        assert not result.committed
        assert result.attempts == 8
        assert result.path == tmp_path / "out.docx.pending"
        assert result.path.read_bytes() == b"new"
        assert target.read_bytes() == b"old"
        canonical = [p for p in writer.attempts if p == target]
        assert len(canonical) == 8

    async def test_non_transient_error_propagates_immediately(self, tmp_path):
        writer = LockedWriter(locked_for=0)
        target = tmp_path / "missing-dir" / "out.docx"
        with pytest.raises(FileNotFoundError):
            await writer.write(target, b"data")
        assert writer.attempts == [target]

    def test_pending_path_keeps_extension(self, tmp_path):
        assert pending_path_for(tmp_path / "a.docx").name == "a.docx.pending"
