"""UTF-8 text I/O, atomic replacement, and per-file writer locks.

Every record file is rewritten whole on each mutation. Two rules keep that
safe within one process:

- a read-modify-write cycle holds :func:`file_lock` for the target path;
- the new content is committed with :func:`atomic_write_text`, so a crash
  mid-write leaves either the old file or the new one, never a mix.
"""

from __future__ import annotations

import os
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

PathLike = Path | str

_locks: dict[Path, threading.RLock] = {}
_locks_guard = threading.Lock()


def _as_path(path: PathLike) -> Path:
    return path if isinstance(path, Path) else Path(path)


def read_text(path: PathLike, errors: str = "strict", **kwargs: Any) -> str:
    """Read path as text with UTF-8 encoding. Forwards extra kwargs to Path.read_text."""
    return _as_path(path).read_text(encoding="utf-8", errors=errors, **kwargs)


def read_lines(path: PathLike) -> list[str]:
    """Read path as a list of lines without trailing newlines."""
    return read_text(path).splitlines()


def write_text(path: PathLike, text: str, **kwargs: Any) -> None:
    """Write text to path with UTF-8 encoding. Forwards extra kwargs to Path.write_text."""
    _as_path(path).write_text(text, encoding="utf-8", **kwargs)


def atomic_write_text(path: PathLike, text: str) -> None:
    """Replace *path* with *text* through a temp file in the same directory."""
    target = _as_path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        newline="\n",
        dir=target.parent,
        prefix=f".{target.name}.",
        suffix=".tmp",
        delete=False,
    ) as handle:
        tmp = Path(handle.name)
        try:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        except BaseException:
            handle.close()
            tmp.unlink(missing_ok=True)
            raise
    try:
        # os.replace overwrites destination if it exists (required on Windows)
        os.replace(tmp, target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def write_lines(path: PathLike, lines: list[str]) -> None:
    """Atomically write *lines* joined with newlines, ending with one newline."""
    atomic_write_text(path, "\n".join(lines).rstrip("\n") + "\n")


def _lock_for(path: PathLike) -> threading.RLock:
    key = _as_path(path).expanduser().resolve()
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _locks[key] = lock
        return lock


@contextmanager
def file_lock(path: PathLike) -> Iterator[None]:
    """Hold the single-writer lock for *path* for the duration of the block.

    Re-entrant, so a locked cycle may call helpers that lock the same file.
    """
    lock = _lock_for(path)
    with lock:
        yield
