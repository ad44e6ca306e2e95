"""Tests for taskmark.io_utils: atomic writes and per-file locks."""

from __future__ import annotations

import os
import threading

import pytest

from taskmark import io_utils
from taskmark.io_utils import atomic_write_text, file_lock, read_lines, read_text, write_lines, write_text


class TestAtomicWrite:
    """atomic_write_text commits whole content or nothing."""

    def test_creates_parent_dirs(self, tmp_path):
        target = tmp_path / "a" / "b" / "tasks.md"
        atomic_write_text(target, "hello\n")
        assert read_text(target) == "hello\n"

    def test_replaces_existing(self, tmp_path):
        target = tmp_path / "tasks.md"
        write_text(target, "old")
        atomic_write_text(target, "new")
        assert read_text(target) == "new"

    def test_no_temp_files_left(self, tmp_path):
        atomic_write_text(tmp_path / "tasks.md", "x")
        assert sorted(p.name for p in tmp_path.iterdir()) == ["tasks.md"]

    def test_failed_replace_keeps_original(self, tmp_path, monkeypatch):
        target = tmp_path / "tasks.md"
        write_text(target, "original")

        def boom(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", boom)
        with pytest.raises(OSError, match="disk full"):
            atomic_write_text(target, "half written")

        assert read_text(target) == "original"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["tasks.md"]

    def test_unicode_round_trip(self, tmp_path):
        target = tmp_path / "log.md"
        atomic_write_text(target, "# demo – Work Log ✓\n")
        assert read_text(target) == "# demo – Work Log ✓\n"


class TestWriteLines:
    def test_single_trailing_newline(self, tmp_path):
        target = tmp_path / "f.md"
        write_lines(target, ["a", "b", "", ""])
        assert read_text(target) == "a\nb\n"
        assert read_lines(target) == ["a", "b"]


class TestFileLock:
    """The lock registry keys on the resolved path."""

    def test_same_path_same_lock(self, tmp_path):
        a = io_utils._lock_for(tmp_path / "x.md")
        b = io_utils._lock_for(str(tmp_path / "sub" / ".." / "x.md"))
        assert a is b

    def test_reentrant(self, tmp_path):
        path = tmp_path / "x.md"
        with file_lock(path):
            with file_lock(path):
                pass

    def test_serializes_read_modify_write(self, tmp_path):
        path = tmp_path / "counter.txt"
        write_text(path, "0")

        def bump():
            for _ in range(50):
                with file_lock(path):
                    value = int(read_text(path))
                    atomic_write_text(path, str(value + 1))

        threads = [threading.Thread(target=bump) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert read_text(path) == "200"
