from __future__ import annotations

import hashlib
import json
import logging
import os
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional

from javacli.domain.models import Endpoint, IndexMetadata, IndexStats
from javacli.errors import IndexStoreError
from javacli.repo.scanner import scan_java_files

logger = logging.getLogger(__name__)

INDEX_FILE_NAME = "index.db"


def _now_ts() -> int:
    return int(time.time())


def compute_fingerprint(project_path: Path, files: Optional[Iterable[str]] = None) -> str:
    """
    sha256 over the project path and the sorted (relative path, mtime_ns, size)
    of every .java file. Any stat error propagates.
    """
    project_path = project_path.resolve()
    if files is None:
        files = scan_java_files(project_path)

    entries: list[tuple[str, int, int]] = []
    for f in files:
        st = os.stat(f)
        rel = os.path.relpath(f, str(project_path)).replace(os.sep, "/")
        entries.append((rel, st.st_mtime_ns, st.st_size))
    entries.sort()

    h = hashlib.sha256()
    h.update(str(project_path).encode("utf-8"))
    for rel, mtime_ns, size in entries:
        h.update(f"\0{rel}\0{mtime_ns}\0{size}".encode("utf-8"))
    return h.hexdigest()


class IndexStore:
    """Project-local SQLite snapshot of the last analysis.

    The index holds exactly one snapshot: metadata (fingerprint + stats) and
    the ordered endpoint list. `save` replaces both in one transaction.
    """

    SCHEMA_VERSION = "1.0"

    def __init__(self, project_path: Path, index_dir_name: str = ".javacli"):
        self.project_path = project_path.resolve()
        self.index_dir = self.project_path / index_dir_name
        self.db_path = self.index_dir / INDEX_FILE_NAME

    # ----------------------------
    # Connection / schema
    # ----------------------------

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            con = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as exc:
            raise IndexStoreError(f"cannot open index {self.db_path}: {exc}") from exc
        con.row_factory = sqlite3.Row
        try:
            with con:
                yield con
        except sqlite3.Error as exc:
            raise IndexStoreError(f"index {self.db_path}: {exc}") from exc
        finally:
            con.close()

    def _init_schema(self, con: sqlite3.Connection) -> None:
        con.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )
        self._check_schema_version(con)

        con.execute(
            """
            CREATE TABLE IF NOT EXISTS metadata (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                version TEXT NOT NULL,
                project_path TEXT NOT NULL,
                generated_at INTEGER NOT NULL,
                fingerprint TEXT NOT NULL,
                stats TEXT NOT NULL
            );
            """
        )
        con.execute(
            """
            CREATE TABLE IF NOT EXISTS endpoints (
                ordinal INTEGER PRIMARY KEY,
                method TEXT NOT NULL,
                path TEXT NOT NULL,
                class_name TEXT NOT NULL,
                method_name TEXT NOT NULL,
                file_path TEXT NOT NULL,
                line_number INTEGER NOT NULL,
                parameters TEXT NOT NULL,
                module_name TEXT
            );
            """
        )
        con.execute("CREATE INDEX IF NOT EXISTS idx_endpoints_mpath ON endpoints(method, path);")

        if self._get_meta(con, "schema_version") is None:
            self._set_meta(con, "schema_version", self.SCHEMA_VERSION)

    def _check_schema_version(self, con: sqlite3.Connection) -> None:
        found = self._get_meta(con, "schema_version")
        if found is not None and found != self.SCHEMA_VERSION:
            raise IndexStoreError(
                f"index {self.db_path} has schema version {found}, expected {self.SCHEMA_VERSION}; "
                "re-run with --force to rebuild it"
            )

    def _has_table(self, con: sqlite3.Connection, table: str) -> bool:
        return (
            con.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
            ).fetchone()
            is not None
        )

    def _readable(self, con: sqlite3.Connection) -> bool:
        if not self._has_table(con, "meta"):
            return False
        self._check_schema_version(con)
        return self._has_table(con, "metadata") and self._has_table(con, "endpoints")

    # ----------------------------
    # Fingerprint
    # ----------------------------

    def fingerprint(self, files: Optional[Iterable[str]] = None) -> str:
        return compute_fingerprint(self.project_path, files)

    def is_valid(self, stored_fingerprint: str) -> bool:
        try:
            return self.fingerprint() == stored_fingerprint
        except Exception as exc:
            logger.warning("cannot fingerprint %s, treating index as stale: %s", self.project_path, exc)
            return False

    # ----------------------------
    # Snapshot read/write
    # ----------------------------

    def exists(self) -> bool:
        return self.db_path.is_file()

    def save(
        self,
        endpoints: list[Endpoint],
        stats: IndexStats,
        fingerprint: Optional[str] = None,
    ) -> IndexMetadata:
        if fingerprint is None:
            fingerprint = self.fingerprint()

        metadata = IndexMetadata(
            version=self.SCHEMA_VERSION,
            project_path=str(self.project_path),
            generated_at=_now_ts(),
            fingerprint=fingerprint,
            stats=stats,
        )
        rows = [
            (
                i,
                ep.method,
                ep.path,
                ep.class_name,
                ep.method_name,
                ep.file_path,
                int(ep.line_number),
                json.dumps(list(ep.parameters)),
                ep.module_name,
            )
            for i, ep in enumerate(endpoints)
        ]

        try:
            self.index_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IndexStoreError(f"cannot create index directory {self.index_dir}: {exc}") from exc
        with self._connect() as con:
            self._init_schema(con)
            con.execute("DELETE FROM metadata;")
            con.execute("DELETE FROM endpoints;")
            con.execute(
                """
                INSERT INTO metadata(id, version, project_path, generated_at, fingerprint, stats)
                VALUES(1,?,?,?,?,?)
                """,
                (
                    metadata.version,
                    metadata.project_path,
                    metadata.generated_at,
                    metadata.fingerprint,
                    stats.model_dump_json(),
                ),
            )
            con.executemany(
                """
                INSERT INTO endpoints(
                    ordinal, method, path, class_name, method_name,
                    file_path, line_number, parameters, module_name
                )
                VALUES(?,?,?,?,?,?,?,?,?)
                """,
                rows,
            )

        logger.debug("saved %d endpoints to %s", len(rows), self.db_path)
        return metadata

    def load_metadata(self) -> Optional[IndexMetadata]:
        if not self.exists():
            return None
        with self._connect() as con:
            if not self._readable(con):
                return None
            row = con.execute(
                "SELECT version, project_path, generated_at, fingerprint, stats FROM metadata WHERE id=1"
            ).fetchone()
        if row is None:
            return None
        try:
            return IndexMetadata(
                version=row["version"],
                project_path=row["project_path"],
                generated_at=row["generated_at"],
                fingerprint=row["fingerprint"],
                stats=IndexStats.model_validate_json(row["stats"]),
            )
        except ValueError as exc:
            raise IndexStoreError(f"index {self.db_path} has unreadable metadata: {exc}") from exc

    def load(self) -> Optional[list[Endpoint]]:
        if not self.exists():
            return None
        with self._connect() as con:
            if not self._readable(con):
                return None
            if con.execute("SELECT 1 FROM metadata WHERE id=1").fetchone() is None:
                return None
            rows = con.execute(
                """
                SELECT method, path, class_name, method_name, file_path,
                       line_number, parameters, module_name
                FROM endpoints ORDER BY ordinal
                """
            ).fetchall()
        return [self._row_to_endpoint(r) for r in rows]

    def list_endpoints(
        self,
        method: Optional[str] = None,
        path_contains: Optional[str] = None,
        class_contains: Optional[str] = None,
        module: Optional[str] = None,
        limit: int = 200,
    ) -> list[Endpoint]:
        if not self.exists():
            return []

        q = """
        SELECT method, path, class_name, method_name, file_path,
               line_number, parameters, module_name
        FROM endpoints
        """
        where: list[str] = []
        params: list[object] = []

        if method:
            where.append("method = ?")
            params.append(method.upper())
        if path_contains:
            where.append("path LIKE ?")
            params.append(f"%{path_contains}%")
        if class_contains:
            where.append("class_name LIKE ?")
            params.append(f"%{class_contains}%")
        if module:
            where.append("module_name = ?")
            params.append(module)

        if where:
            q += " WHERE " + " AND ".join(where)

        q += " ORDER BY method, path, file_path, line_number LIMIT ?"
        params.append(int(limit))

        with self._connect() as con:
            if not self._readable(con):
                return []
            rows = con.execute(q, tuple(params)).fetchall()
        return [self._row_to_endpoint(r) for r in rows]

    def clear(self) -> bool:
        """Delete the index file. Returns False when there was nothing to delete."""
        removed = False
        for p in (self.db_path, self.db_path.with_name(INDEX_FILE_NAME + "-journal")):
            try:
                p.unlink()
                removed = removed or p == self.db_path
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise IndexStoreError(f"cannot delete {p}: {exc}") from exc
        return removed

    # ----------------------------
    # internal helpers
    # ----------------------------

    def _row_to_endpoint(self, row: sqlite3.Row) -> Endpoint:
        try:
            params = json.loads(row["parameters"] or "[]")
            return Endpoint(
                method=row["method"],
                path=row["path"],
                class_name=row["class_name"],
                method_name=row["method_name"],
                file_path=row["file_path"],
                line_number=row["line_number"],
                parameters=tuple(params),
                module_name=row["module_name"],
            )
        except ValueError as exc:
            raise IndexStoreError(f"index {self.db_path} has an unreadable endpoint row: {exc}") from exc

    def _get_meta(self, con: sqlite3.Connection, key: str) -> Optional[str]:
        row = con.execute("SELECT value FROM meta WHERE key=?", (key,)).fetchone()
        return row[0] if row else None

    def _set_meta(self, con: sqlite3.Connection, key: str, value: str) -> None:
        con.execute(
            """
            INSERT INTO meta(key, value) VALUES(?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )
