"""Download of the remote metadata feed.

Uses httpx streaming so large feeds never sit fully in memory and progress
can be reported while the transfer runs.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Optional

import httpx

from vanillameta.cancellable import Cancellable, check
from vanillameta.errors import FetchError, OperationCancelled
from vanillameta.utils.files import make_temp_sibling

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int, Optional[int]], None]

CHUNK_SIZE = 64 * 1024


def log_progress(bytes_downloaded: int, total: int | None) -> None:
    LOGGER.debug("Downloaded %d of %s bytes", bytes_downloaded, total if total is not None else "?")


class Fetcher:
    """Streams a URL to a file, replacing it only once the transfer completed."""

    def __init__(self, client: httpx.Client | None = None, *, timeout: float = 30.0) -> None:
        self._client = client
        self.timeout = timeout

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, follow_redirects=True)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def fetch(
        self,
        url: str,
        destination: Path,
        on_progress: ProgressCallback | None = None,
        cancellable: Cancellable | None = None,
    ) -> None:
        """Download ``url`` into ``destination``.

        On any failure the destination keeps its previous content (or stays
        absent) and ``FetchError`` is raised, or ``OperationCancelled`` when
        ``cancellable`` fired mid-transfer.
        """
        if not url:
            raise FetchError("No metadata URL configured")

        destination = Path(destination)
        try:
            tmp = make_temp_sibling(destination)
        except OSError as exc:
            raise FetchError(f"Unable to write {destination}: {exc}") from exc
        try:
            self._stream_to(url, tmp, on_progress, cancellable)
            check(cancellable)
            os.replace(tmp, destination)
        except OperationCancelled:
            tmp.unlink(missing_ok=True)
            raise
        except httpx.HTTPStatusError as exc:
            tmp.unlink(missing_ok=True)
            raise FetchError(
                f"Server returned {exc.response.status_code} for {url}"
            ) from exc
        except httpx.HTTPError as exc:
            tmp.unlink(missing_ok=True)
            raise FetchError(f"Transfer of {url} failed: {exc}") from exc
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise FetchError(f"Unable to write {destination}: {exc}") from exc

        LOGGER.debug("Successfully downloaded %s to %s", url, destination)

    def _stream_to(
        self,
        url: str,
        target: Path,
        on_progress: ProgressCallback | None,
        cancellable: Cancellable | None,
    ) -> None:
        client = self._get_client()
        with client.stream("GET", url) as response:
            response.raise_for_status()
            length = response.headers.get("Content-Length")
            total = int(length) if length and length.isdigit() else None
            downloaded = 0
            with target.open("wb") as handle:
                for chunk in response.iter_bytes(CHUNK_SIZE):
                    check(cancellable)
                    handle.write(chunk)
                    downloaded += len(chunk)
                    if on_progress is not None:
                        on_progress(downloaded, total)
