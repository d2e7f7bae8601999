"""Filesystem cache holding the compressed feed and the compiled silo."""

from __future__ import annotations

import logging
from pathlib import Path

from vanillameta.models import CachedDocument
from vanillameta.utils.files import atomic_write_bytes, file_age

LOGGER = logging.getLogger(__name__)

DOCUMENT_FILENAME = "metadata.xml.gz"
INDEX_FILENAME = "metadata.index"


class DocumentStore:
    """Age-aware cache of ``metadata.xml.gz`` and ``metadata.index``."""

    def __init__(self, cache_dir: Path) -> None:
        self.cache_dir = Path(cache_dir)

    @property
    def document_path(self) -> Path:
        return self.cache_dir / DOCUMENT_FILENAME

    @property
    def index_path(self) -> Path:
        return self.cache_dir / INDEX_FILENAME

    def ensure_dir(self) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def age(self, path: Path | None = None, *, now: float | None = None) -> float | None:
        """Seconds since the cached document (or ``path``) changed, None when missing."""
        return file_age(path or self.document_path, now=now)

    def is_stale(self, max_age_seconds: float, *, now: float | None = None) -> bool:
        age = self.age(now=now)
        if age is None:
            return True
        return age >= max_age_seconds

    def cached_document(self) -> CachedDocument | None:
        try:
            stat = self.document_path.stat()
        except FileNotFoundError:
            return None
        return CachedDocument(path=self.document_path, mtime=stat.st_mtime, size=stat.st_size)

    def write(self, data: bytes) -> CachedDocument:
        """Atomically replace the cached document with ``data``."""
        self.ensure_dir()
        atomic_write_bytes(self.document_path, data)
        LOGGER.debug("Wrote %d bytes to %s", len(data), self.document_path)
        document = self.cached_document()
        if document is None:
            raise FileNotFoundError(f"{self.document_path} vanished right after being written")
        return document
