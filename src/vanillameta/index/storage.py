"""SQLite persistence for compiled silos."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Tuple

from vanillameta.errors import CompileError
from vanillameta.models import Bundle, CompiledIndex, IndexEntry
from vanillameta.utils.files import make_temp_sibling

LOGGER = logging.getLogger(__name__)

SCHEMA_VERSION = "1"


class SiloStore:
    """Reads and writes ``metadata.index``.

    A silo is always written to a sibling temp file and renamed into place,
    so readers never observe a half-written index and a failed write leaves
    the previous file untouched.
    """

    def __init__(self, index_path: Path) -> None:
        self.index_path = Path(index_path)

    def exists(self) -> bool:
        return self.index_path.exists()

    @staticmethod
    def _connect(path: Path) -> sqlite3.Connection:
        conn = sqlite3.connect(path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    @staticmethod
    @contextmanager
    def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    @staticmethod
    def _ensure_schema(conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS entries (
                position INTEGER PRIMARY KEY,
                app_id TEXT NOT NULL,
                name TEXT,
                summary TEXT,
                description TEXT,
                keywords TEXT,
                origin TEXT,
                launchables TEXT,
                mimetypes TEXT,
                icon TEXT
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS bundles (
                entry_position INTEGER NOT NULL,
                bundle_position INTEGER NOT NULL,
                kind TEXT,
                container TEXT,
                package TEXT NOT NULL,
                PRIMARY KEY (entry_position, bundle_position),
                FOREIGN KEY(entry_position) REFERENCES entries(position) ON DELETE CASCADE
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tokens (
                token TEXT NOT NULL,
                entry_position INTEGER NOT NULL,
                field TEXT NOT NULL
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_bundles_package ON bundles(package)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_tokens_token ON tokens(token)")

    def write(self, index: CompiledIndex) -> None:
        """Persist ``index``, replacing the current silo atomically."""
        try:
            self.index_path.parent.mkdir(parents=True, exist_ok=True)
            tmp = make_temp_sibling(self.index_path, suffix=".tmp")
        except OSError as exc:
            raise CompileError(f"Unable to write silo {self.index_path}: {exc}") from exc

        try:
            conn = self._connect(tmp)
            try:
                with self.transaction(conn):
                    self._ensure_schema(conn)
                    self._insert(conn, index)
            finally:
                conn.close()
            os.replace(tmp, self.index_path)
        except (sqlite3.Error, OSError) as exc:
            tmp.unlink(missing_ok=True)
            raise CompileError(f"Unable to write silo {self.index_path}: {exc}") from exc

        LOGGER.debug("Persisted silo with %d entries to %s", len(index), self.index_path)

    def _insert(self, conn: sqlite3.Connection, index: CompiledIndex) -> None:
        meta = {
            "schema": SCHEMA_VERSION,
            "origin": index.origin,
            "locales": json.dumps(list(index.locales)),
            "rules": json.dumps(list(index.rules)),
            "source_sha256": index.source_sha256,
        }
        conn.executemany("INSERT INTO meta(key, value) VALUES (?, ?)", meta.items())

        for position, entry in enumerate(index.entries):
            conn.execute(
                """
                INSERT INTO entries(position, app_id, name, summary, description,
                                    keywords, origin, launchables, mimetypes, icon)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    position,
                    entry.id,
                    entry.name,
                    entry.summary,
                    entry.description,
                    json.dumps(list(entry.keywords), ensure_ascii=True),
                    entry.origin,
                    json.dumps(list(entry.launchables), ensure_ascii=True),
                    json.dumps(list(entry.mimetypes), ensure_ascii=True),
                    entry.icon,
                ),
            )
            conn.executemany(
                """
                INSERT INTO bundles(entry_position, bundle_position, kind, container, package)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (position, bundle_pos, bundle.kind, bundle.container, bundle.package)
                    for bundle_pos, bundle in enumerate(entry.bundles)
                ],
            )

        conn.executemany(
            "INSERT INTO tokens(token, entry_position, field) VALUES (?, ?, ?)",
            [
                (token, position, field)
                for token, postings in index.tokens.items()
                for position, field in postings
            ],
        )

    def load(self) -> CompiledIndex | None:
        """Load the persisted silo, or None if there is none or it is unreadable."""
        if not self.index_path.exists():
            return None
        try:
            conn = self._connect(self.index_path)
        except sqlite3.Error as exc:
            LOGGER.warning("Unable to open silo %s: %s", self.index_path, exc)
            return None
        try:
            return self._read(conn)
        except (sqlite3.Error, json.JSONDecodeError, KeyError) as exc:
            LOGGER.warning("Ignoring unreadable silo %s: %s", self.index_path, exc)
            return None
        finally:
            conn.close()

    def _read(self, conn: sqlite3.Connection) -> CompiledIndex | None:
        meta = {row["key"]: row["value"] for row in conn.execute("SELECT key, value FROM meta")}
        if meta.get("schema") != SCHEMA_VERSION:
            LOGGER.info("Silo schema %s is outdated, it will be rebuilt", meta.get("schema"))
            return None

        bundles: Dict[int, List[Bundle]] = {}
        packages: Dict[str, List[Tuple[int, int]]] = {}
        for row in conn.execute(
            "SELECT * FROM bundles ORDER BY entry_position, bundle_position"
        ):
            bundles.setdefault(row["entry_position"], []).append(
                Bundle(kind=row["kind"], container=row["container"], package=row["package"])
            )
            packages.setdefault(row["package"], []).append(
                (row["entry_position"], row["bundle_position"])
            )

        entries = tuple(
            IndexEntry(
                id=row["app_id"],
                name=row["name"] or "",
                summary=row["summary"] or "",
                description=row["description"] or "",
                keywords=tuple(json.loads(row["keywords"] or "[]")),
                origin=row["origin"] or "",
                bundles=tuple(bundles.get(row["position"], ())),
                launchables=tuple(json.loads(row["launchables"] or "[]")),
                mimetypes=tuple(json.loads(row["mimetypes"] or "[]")),
                icon=row["icon"] or "",
            )
            for row in conn.execute("SELECT * FROM entries ORDER BY position")
        )

        tokens: Dict[str, List[Tuple[int, str]]] = {}
        for row in conn.execute("SELECT token, entry_position, field FROM tokens ORDER BY rowid"):
            tokens.setdefault(row["token"], []).append((row["entry_position"], row["field"]))

        return CompiledIndex(
            entries=entries,
            packages={key: tuple(value) for key, value in packages.items()},
            tokens={key: tuple(value) for key, value in tokens.items()},
            origin=meta["origin"],
            locales=tuple(json.loads(meta["locales"])),
            source_sha256=meta.get("source_sha256", ""),
            rules=tuple(json.loads(meta.get("rules", "[]"))),
        )
