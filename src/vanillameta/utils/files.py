"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
import os
import tempfile
import time
from pathlib import Path


def file_age(path: Path, *, now: float | None = None) -> float | None:
    """Return seconds since ``path`` was last modified, or None if it is missing.

    A modification time in the future gives a negative age.
    """
    try:
        mtime = path.stat().st_mtime
    except FileNotFoundError:
        return None
    current = time.time() if now is None else now
    return current - mtime


def make_temp_sibling(path: Path, *, suffix: str = ".part") -> Path:
    """Create an empty temporary file next to ``path`` so it can be renamed over it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=suffix, dir=path.parent)
    os.close(fd)
    return Path(name)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` without exposing a partially written file."""
    tmp = make_temp_sibling(path)
    try:
        with tmp.open("wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def compute_sha256(path: Path) -> str:
    """Compute SHA256 hash for a file."""
    sha = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            sha.update(chunk)
    return sha.hexdigest()
