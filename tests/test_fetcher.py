"""Tests for the feed downloader."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional, Tuple

import httpx
import pytest

from vanillameta.cancellable import Cancellable
from vanillameta.errors import FetchError, OperationCancelled
from vanillameta.ingestion.fetcher import Fetcher

URL = "https://example.org/metadata.xml.gz"


def _fetcher(handler: Callable[[httpx.Request], httpx.Response]) -> Fetcher:
    return Fetcher(httpx.Client(transport=httpx.MockTransport(handler)))


class TestFetch:
    """Tests for Fetcher.fetch."""

    def test_downloads_to_destination(self, tmp_path: Path) -> None:
        destination = tmp_path / "metadata.xml.gz"
        fetcher = _fetcher(lambda request: httpx.Response(200, content=b"feed-bytes"))

        fetcher.fetch(URL, destination)

        assert destination.read_bytes() == b"feed-bytes"
        assert list(tmp_path.iterdir()) == [destination]

    def test_reports_progress(self, tmp_path: Path) -> None:
        calls: List[Tuple[int, Optional[int]]] = []
        fetcher = _fetcher(
            lambda request: httpx.Response(
                200, content=b"x" * 10, headers={"Content-Length": "10"}
            )
        )

        fetcher.fetch(URL, tmp_path / "out", on_progress=lambda done, total: calls.append((done, total)))

        assert calls
        assert calls[-1] == (10, 10)

    def test_http_error_status(self, tmp_path: Path) -> None:
        destination = tmp_path / "metadata.xml.gz"
        destination.write_bytes(b"previous")
        fetcher = _fetcher(lambda request: httpx.Response(404, content=b"not found"))

        with pytest.raises(FetchError, match="404"):
            fetcher.fetch(URL, destination)

        assert destination.read_bytes() == b"previous"
        assert list(tmp_path.iterdir()) == [destination]

    def test_transport_error_leaves_destination_absent(self, tmp_path: Path) -> None:
        destination = tmp_path / "metadata.xml.gz"

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FetchError) as exc_info:
            _fetcher(handler).fetch(URL, destination)

        assert "connection refused" in exc_info.value.reason
        assert not destination.exists()
        assert list(tmp_path.iterdir()) == []

    def test_empty_url(self, tmp_path: Path) -> None:
        fetcher = _fetcher(lambda request: httpx.Response(200))

        with pytest.raises(FetchError, match="No metadata URL"):
            fetcher.fetch("", tmp_path / "out")

    def test_cancelled_keeps_previous(self, tmp_path: Path) -> None:
        destination = tmp_path / "metadata.xml.gz"
        destination.write_bytes(b"previous")
        cancellable = Cancellable()
        cancellable.cancel()
        fetcher = _fetcher(lambda request: httpx.Response(200, content=b"new"))

        with pytest.raises(OperationCancelled):
            fetcher.fetch(URL, destination, cancellable=cancellable)

        assert destination.read_bytes() == b"previous"

    def test_close_is_idempotent(self) -> None:
        fetcher = _fetcher(lambda request: httpx.Response(200))

        fetcher.close()
        fetcher.close()
