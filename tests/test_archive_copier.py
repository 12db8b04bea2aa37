"""Tests for the archive file copier."""

import os
import time
from pathlib import Path

import pytest

from session_recall.archive.copier import copy_atomic, needs_sync, partial_path_for
from session_recall.errors import ConcurrentWriteConflict


class TestNeedsSync:
    """Tests for needs_sync function."""

    def test_missing_source(self, tmp_path: Path) -> None:
        assert needs_sync(tmp_path / "missing", tmp_path / "dest") == (False, "file_not_found")

    def test_new_file(self, tmp_path: Path) -> None:
        source = tmp_path / "source.jsonl"
        source.write_text("{}\n")

        assert needs_sync(source, tmp_path / "dest.jsonl") == (True, "new_file")

    def test_size_changed(self, tmp_path: Path) -> None:
        source = tmp_path / "source.jsonl"
        dest = tmp_path / "dest.jsonl"
        source.write_text("{}\n{}\n")
        dest.write_text("{}\n")

        assert needs_sync(source, dest) == (True, "size_changed")

    def test_mtime_changed(self, tmp_path: Path) -> None:
        source = tmp_path / "source.jsonl"
        dest = tmp_path / "dest.jsonl"
        source.write_text("{}\n")
        dest.write_text("{}\n")
        os.utime(dest, (1_000_000, 1_000_000))

        assert needs_sync(source, dest) == (True, "mtime_changed")

    def test_up_to_date(self, tmp_path: Path) -> None:
        source = tmp_path / "source.jsonl"
        dest = tmp_path / "dest.jsonl"
        source.write_text("{}\n")
        dest.write_text("{}\n")
        os.utime(source, (1_000_000, 1_000_000))
        os.utime(dest, (1_000_000, 1_000_000))

        assert needs_sync(source, dest) == (False, "up_to_date")


class TestCopyAtomic:
    """Tests for copy_atomic function."""

    def test_copies_content_and_mtime(self, tmp_path: Path) -> None:
        """The copy should have the source's bytes and modification time."""
        source = tmp_path / "source.jsonl"
        source.write_bytes(b'{"type": "user"}\n')
        os.utime(source, (1_500_000, 1_500_000))
        dest = tmp_path / "archive" / "proj" / "s.jsonl"

        copied = copy_atomic(source, dest)

        assert copied == len(b'{"type": "user"}\n')
        assert dest.read_bytes() == source.read_bytes()
        assert int(dest.stat().st_mtime) == 1_500_000
        assert not partial_path_for(dest).exists()

    def test_fresh_partial_raises_conflict(self, tmp_path: Path) -> None:
        """A recent partial file means another sync is copying."""
        source = tmp_path / "source.jsonl"
        source.write_text("{}\n")
        dest = tmp_path / "dest.jsonl"
        partial_path_for(dest).write_text("in progress")

        with pytest.raises(ConcurrentWriteConflict):
            copy_atomic(source, dest)

        assert not dest.exists()
        assert partial_path_for(dest).read_text() == "in progress"

    def test_abandoned_partial_is_replaced(self, tmp_path: Path) -> None:
        """A partial file older than the stale threshold should be taken over."""
        source = tmp_path / "source.jsonl"
        source.write_text("{}\n")
        dest = tmp_path / "dest.jsonl"
        partial = partial_path_for(dest)
        partial.write_text("abandoned")
        old = time.time() - 3600
        os.utime(partial, (old, old))

        copy_atomic(source, dest, stale_seconds=60)

        assert dest.read_text() == "{}\n"
        assert not partial.exists()

    def test_up_to_date_copy_after_claim_raises_conflict(self, tmp_path: Path) -> None:
        """A copy already completed by another sync should not be redone."""
        source = tmp_path / "source.jsonl"
        source.write_text("{}\n")
        dest = tmp_path / "dest.jsonl"
        copy_atomic(source, dest)
        before = dest.stat().st_ino

        with pytest.raises(ConcurrentWriteConflict):
            copy_atomic(source, dest)

        assert dest.stat().st_ino == before
        assert not partial_path_for(dest).exists()

    def test_failed_copy_leaves_no_partial(self, tmp_path: Path) -> None:
        """An unreadable source should not leave a partial file behind."""
        dest = tmp_path / "dest.jsonl"

        with pytest.raises(OSError):
            copy_atomic(tmp_path / "missing.jsonl", dest)

        assert not partial_path_for(dest).exists()
        assert not dest.exists()

    def test_partial_path_is_hidden_sibling(self, tmp_path: Path) -> None:
        assert partial_path_for(tmp_path / "s.jsonl") == tmp_path / ".s.jsonl.partial"
