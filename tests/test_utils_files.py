"""Tests for file utility functions."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from vanillameta.utils.files import atomic_write_bytes, compute_sha256, file_age, make_temp_sibling


class TestFileAge:
    """Tests for file_age."""

    def test_missing_file(self, tmp_path: Path) -> None:
        assert file_age(tmp_path / "missing") is None

    def test_age_from_mtime(self, tmp_path: Path) -> None:
        path = tmp_path / "file"
        path.write_bytes(b"x")
        os.utime(path, (1000.0, 1000.0))

        assert file_age(path, now=1010.0) == 10.0

    def test_future_mtime_is_negative(self, tmp_path: Path) -> None:
        path = tmp_path / "file"
        path.write_bytes(b"x")
        os.utime(path, (2000.0, 2000.0))

        assert file_age(path, now=1000.0) == -1000.0


class TestAtomicWrite:
    """Tests for atomic_write_bytes."""

    def test_creates_file_and_parent(self, tmp_path: Path) -> None:
        path = tmp_path / "sub" / "data.bin"

        atomic_write_bytes(path, b"hello")

        assert path.read_bytes() == b"hello"

    def test_replaces_existing(self, tmp_path: Path) -> None:
        path = tmp_path / "data.bin"
        path.write_bytes(b"old")

        atomic_write_bytes(path, b"new")

        assert path.read_bytes() == b"new"
        assert list(tmp_path.iterdir()) == [path]

    def test_failure_keeps_previous_content(self, tmp_path: Path) -> None:
        path = tmp_path / "data.bin"
        path.write_bytes(b"old")

        with patch("vanillameta.utils.files.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                atomic_write_bytes(path, b"new")

        assert path.read_bytes() == b"old"
        assert list(tmp_path.iterdir()) == [path]

    def test_temp_sibling_in_same_directory(self, tmp_path: Path) -> None:
        tmp = make_temp_sibling(tmp_path / "metadata.xml.gz")

        assert tmp.parent == tmp_path
        assert tmp.name.startswith(".metadata.xml.gz.")
        assert tmp.exists()


class TestComputeSha256:
    """Tests for compute_sha256."""

    def test_matches_hashlib(self, tmp_path: Path) -> None:
        path = tmp_path / "file"
        path.write_bytes(b"content")

        assert compute_sha256(path) == hashlib.sha256(b"content").hexdigest()
