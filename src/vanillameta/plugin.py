"""Host-facing entry point tying the metadata pipeline together.

Every asynchronous operation is queued on a private single-thread executor,
so refreshes, listings and refines for one plugin instance run strictly in
submission order and never concurrently. The compiled silo is published as
an immutable snapshot that is swapped, never mutated.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Sequence, Tuple, TypeVar

from vanillameta.cancellable import Cancellable, check
from vanillameta.config import AppConfig
from vanillameta.errors import InstallError, UnsupportedQueryError
from vanillameta.index.aliases import suggestions_for
from vanillameta.index.compiler import IndexCompiler
from vanillameta.index.search import entries_by_id, find_alternates_of, search
from vanillameta.index.storage import SiloStore
from vanillameta.ingestion.fetcher import Fetcher, log_progress
from vanillameta.models import (
    AppQuery,
    AppState,
    ApplicationRecord,
    CompiledIndex,
    IndexEntry,
    RefineFlags,
    RefreshFlags,
    RefreshRequest,
    RefreshResult,
)
from vanillameta.reconcile.apx import ApxRunner
from vanillameta.reconcile.reconciler import Reconciler
from vanillameta.store.documents import DocumentStore
from vanillameta.utils.text import unique_tokens

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def record_from_entry(entry: IndexEntry) -> ApplicationRecord:
    return ApplicationRecord(
        id=entry.id,
        name=entry.name,
        summary=entry.summary,
        description=entry.description,
        keywords=list(entry.keywords),
        sources=list(dict.fromkeys(bundle.package for bundle in entry.bundles)),
        wildcard=entry.wildcard,
    )


def resolve_install_params(record: ApplicationRecord) -> Tuple[str, str]:
    """Return the (container flag, package) pair needed to install or launch."""
    flag = record.container_binding
    package = record.default_source
    if not flag:
        raise InstallError(f"App {record.id} has no container binding")
    if not package:
        raise InstallError(f"App {record.id} has no package name")
    return flag, package


class VanillaMetaPlugin:
    """Owns the cache, the current silo snapshot and the worker queue."""

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        fetcher: Fetcher | None = None,
        runner: ApxRunner | None = None,
    ) -> None:
        self.config = config or AppConfig()
        cache_dir = self.config.resolve_cache_dir(Path.cwd())
        self.store = DocumentStore(cache_dir)
        self.silo = SiloStore(self.store.index_path)
        self.compiler = IndexCompiler(
            self.silo,
            origin=self.config.origin,
            locales=self.config.locales,
            ignore_invalid=self.config.ignore_invalid,
        )
        self.fetcher = fetcher or Fetcher(timeout=self.config.timeout)
        self.runner = runner or ApxRunner(self.config.apx_binary)
        self.reconciler = Reconciler(
            self.config.origin, scope_to_origin=self.config.refine_scope_origin
        )
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vanillameta")
        self._lock = threading.Lock()
        self._index: CompiledIndex | None = None

    def __enter__(self) -> "VanillaMetaPlugin":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        self.fetcher.close()

    @property
    def index(self) -> CompiledIndex | None:
        with self._lock:
            return self._index

    def _publish(self, index: CompiledIndex) -> None:
        with self._lock:
            self._index = index

    def _submit(self, fn: Callable[..., T], *args: object) -> "Future[T]":
        return self._executor.submit(fn, *args)

    # refresh

    def refresh(
        self,
        max_age: float,
        flags: RefreshFlags = RefreshFlags.NONE,
        cancellable: Cancellable | None = None,
    ) -> "Future[RefreshResult]":
        """Download the feed if it is older than ``max_age`` seconds and rebuild the silo."""
        return self._submit(self._refresh, RefreshRequest(max_age=max_age, flags=flags), cancellable)

    def _refresh(self, request: RefreshRequest, cancellable: Cancellable | None) -> RefreshResult:
        check(cancellable)
        fetched = False
        if self.store.is_stale(request.max_age):
            LOGGER.debug("Metadata is missing or older than %s seconds, downloading", request.max_age)
            self.store.ensure_dir()
            self.fetcher.fetch(
                self.config.metadata_url,
                self.store.document_path,
                on_progress=log_progress,
                cancellable=cancellable,
            )
            fetched = True
        else:
            LOGGER.debug(
                "Cache is only %d seconds old, skipping download", self.store.age() or 0
            )

        index, compiled = self._ensure_index(cancellable)
        return RefreshResult(fetched=fetched, compiled=compiled, index=index)

    def _ensure_index(
        self, cancellable: Cancellable | None
    ) -> Tuple[CompiledIndex | None, bool]:
        """Publish a snapshot built from the cached document, compiling only when needed.

        The published snapshot is checked against the document too, so a
        document whose earlier compile failed or was cancelled gets compiled
        on the next refresh even while the cache is fresh.
        """
        current = self.index
        document_path = self.store.document_path
        if not document_path.exists():
            return current, False

        candidate = current or self.silo.load()
        if self.compiler.is_current(candidate, document_path):
            if candidate is not current:
                self._publish(candidate)
            return candidate, False

        LOGGER.debug("Silo does not match %s, compiling", document_path)
        index = self.compiler.compile(document_path, cancellable)
        self._publish(index)
        return index, True

    def _current_index(self) -> CompiledIndex | None:
        """The published snapshot, loading the persisted silo on first use."""
        index = self.index
        if index is None:
            index = self.silo.load()
            if index is not None:
                self._publish(index)
        return index

    # listing

    def list_apps(
        self, query: AppQuery | str, cancellable: Cancellable | None = None
    ) -> "Future[List[ApplicationRecord]]":
        if isinstance(query, str):
            query = AppQuery(keywords=tuple(query.split()))
        return self._submit(self._list_apps, query, cancellable)

    def _list_apps(
        self, query: AppQuery, cancellable: Cancellable | None
    ) -> List[ApplicationRecord]:
        if query.provides_files or query.category is not None:
            raise UnsupportedQueryError("Only keyword and alternate queries are supported")
        if not query.keywords and query.alternate_of is None:
            raise UnsupportedQueryError("Query has neither keywords nor an alternate")
        check(cancellable)

        index = self._current_index()
        if index is None:
            LOGGER.debug("No silo compiled yet, only alias suggestions can be listed")
            entries = suggestions_for(unique_tokens(query.keywords))
        elif query.keywords:
            entries = search(index, query.keywords)
        else:
            entries = []
            for entry in entries_by_id(index, [query.alternate_of.id]):
                entries.extend(
                    alternate
                    for alternate in [entry, *find_alternates_of(index, entry)]
                    if alternate not in entries
                )

        records = [record_from_entry(entry) for entry in entries]
        self.reconciler.claim(records)
        return records

    # reconciliation

    def adopt(self, record: ApplicationRecord) -> None:
        self.reconciler.adopt(record)

    def refine(
        self,
        records: Sequence[ApplicationRecord],
        flags: RefineFlags = RefineFlags.NONE,
        cancellable: Cancellable | None = None,
    ) -> "Future[Sequence[ApplicationRecord]]":
        return self._submit(self._refine, records, flags, cancellable)

    def _refine(
        self,
        records: Sequence[ApplicationRecord],
        flags: RefineFlags,
        cancellable: Cancellable | None,
    ) -> Sequence[ApplicationRecord]:
        check(cancellable)
        index = self._current_index()
        if index is None:
            LOGGER.debug("No silo compiled yet, leaving %d app(s) unrefined", len(records))
            return records
        self.reconciler.refine(records, index, flags)
        return records

    # install / launch

    def install(
        self, record: ApplicationRecord, cancellable: Cancellable | None = None
    ) -> "Future[ApplicationRecord]":
        return self._submit(self._install, record, cancellable)

    def _install(
        self, record: ApplicationRecord, cancellable: Cancellable | None
    ) -> ApplicationRecord:
        if not self.reconciler.owns(record):
            raise InstallError(f"App {record.id} is not managed by {self.config.origin}")
        record.state = AppState.INSTALLING
        try:
            flag, package = resolve_install_params(record)
            check(cancellable)
            self.runner.install(flag, package)
        except Exception:
            record.state = AppState.AVAILABLE
            raise
        record.state = AppState.INSTALLED
        return record

    def launch(
        self, record: ApplicationRecord, cancellable: Cancellable | None = None
    ) -> "Future[None]":
        return self._submit(self._launch, record, cancellable)

    def _launch(self, record: ApplicationRecord, cancellable: Cancellable | None) -> None:
        if not self.reconciler.owns(record):
            raise InstallError(f"App {record.id} is not managed by {self.config.origin}")
        flag, package = resolve_install_params(record)
        check(cancellable)
        self.runner.launch(flag, package)
