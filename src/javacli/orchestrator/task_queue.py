from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Protocol

from javacli.domain.models import Endpoint, SourceFile
from javacli.errors import JavacliError

logger = logging.getLogger(__name__)

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

STATUSES = (PENDING, PROCESSING, COMPLETED, FAILED)


class TaskQueueError(JavacliError):
    """The work queue backend failed."""


@dataclass(frozen=True)
class Task:
    id: int
    source: SourceFile


@dataclass(frozen=True)
class TaskResult:
    id: int
    source: SourceFile
    status: str
    endpoints: tuple[Endpoint, ...] = ()
    error: Optional[str] = None


class TaskQueue(Protocol):
    def reset(self) -> None:
        """Drop every task."""
        ...

    def recover_stale(self) -> int:
        """Mark tasks left `processing` by an interrupted run as failed."""
        ...

    def enqueue(self, files: list[SourceFile]) -> list[int]:
        ...

    def claim(self) -> Optional[Task]:
        """Atomically move one pending task to processing; None when drained."""
        ...

    def complete(self, task_id: int, endpoints: list[Endpoint]) -> None:
        ...

    def fail(self, task_id: int, error: str) -> None:
        ...

    def results(self) -> list[TaskResult]:
        """Every task, in enqueue order."""
        ...

    def counts(self) -> dict[str, int]:
        ...


class InMemoryTaskQueue:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tasks: dict[int, TaskResult] = {}
        self._next_id = 1

    def reset(self) -> None:
        with self._lock:
            self._tasks.clear()
            self._next_id = 1

    def recover_stale(self) -> int:
        with self._lock:
            stale = [t for t in self._tasks.values() if t.status == PROCESSING]
            for t in stale:
                self._tasks[t.id] = TaskResult(t.id, t.source, FAILED, error="interrupted")
            return len(stale)

    def enqueue(self, files: list[SourceFile]) -> list[int]:
        ids: list[int] = []
        with self._lock:
            for f in files:
                tid = self._next_id
                self._next_id += 1
                self._tasks[tid] = TaskResult(tid, f, PENDING)
                ids.append(tid)
        return ids

    def claim(self) -> Optional[Task]:
        with self._lock:
            for t in self._tasks.values():
                if t.status == PENDING:
                    self._tasks[t.id] = TaskResult(t.id, t.source, PROCESSING)
                    return Task(id=t.id, source=t.source)
        return None

    def complete(self, task_id: int, endpoints: list[Endpoint]) -> None:
        with self._lock:
            t = self._tasks[task_id]
            self._tasks[task_id] = TaskResult(t.id, t.source, COMPLETED, endpoints=tuple(endpoints))

    def fail(self, task_id: int, error: str) -> None:
        with self._lock:
            t = self._tasks[task_id]
            self._tasks[task_id] = TaskResult(t.id, t.source, FAILED, error=error)

    def results(self) -> list[TaskResult]:
        with self._lock:
            return [self._tasks[k] for k in sorted(self._tasks)]

    def counts(self) -> dict[str, int]:
        out = {s: 0 for s in STATUSES}
        with self._lock:
            for t in self._tasks.values():
                out[t.status] += 1
        return out


class SQLiteTaskQueue:
    """Durable queue in `<project>/<index dir>/queue.db`.

    One connection per operation; claims run inside BEGIN IMMEDIATE so two
    workers never take the same row.
    """

    def __init__(self, db_path: Path, busy_timeout_s: float = 30.0):
        self.db_path = db_path
        self.busy_timeout_s = busy_timeout_s
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise TaskQueueError(f"cannot create queue directory {self.db_path.parent}: {exc}") from exc
        self._init_db()

    @staticmethod
    def db_path_for_project(project_path: Path, index_dir_name: str = ".javacli") -> Path:
        return project_path / index_dir_name / "queue.db"

    # ----------------------------
    # Connection / schema
    # ----------------------------

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        # autocommit; transactions are explicit
        try:
            con = sqlite3.connect(str(self.db_path), timeout=self.busy_timeout_s, isolation_level=None)
        except sqlite3.Error as exc:
            raise TaskQueueError(f"cannot open queue {self.db_path}: {exc}") from exc
        con.row_factory = sqlite3.Row
        try:
            yield con
        except sqlite3.Error as exc:
            raise TaskQueueError(f"queue {self.db_path}: {exc}") from exc
        finally:
            con.close()

    def _init_db(self) -> None:
        with self._connect() as con:
            con.execute("PRAGMA journal_mode=WAL;")
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS analysis_tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    file_path TEXT NOT NULL,
                    module_name TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    result TEXT,
                    error TEXT,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON analysis_tasks(status);")

    # ----------------------------
    # Queue operations
    # ----------------------------

    def reset(self) -> None:
        with self._connect() as con:
            con.execute("DELETE FROM analysis_tasks;")
            con.execute("DELETE FROM sqlite_sequence WHERE name='analysis_tasks';")

    def recover_stale(self) -> int:
        with self._connect() as con:
            cur = con.execute(
                "UPDATE analysis_tasks SET status=?, error=?, updated_at=? WHERE status=?",
                (FAILED, "interrupted", int(time.time()), PROCESSING),
            )
            if cur.rowcount:
                logger.info("marked %d interrupted task(s) as failed", cur.rowcount)
            return cur.rowcount

    def enqueue(self, files: list[SourceFile]) -> list[int]:
        now = int(time.time())
        ids: list[int] = []
        with self._connect() as con:
            con.execute("BEGIN IMMEDIATE;")
            try:
                for f in files:
                    cur = con.execute(
                        """
                        INSERT INTO analysis_tasks(file_path, module_name, status, created_at, updated_at)
                        VALUES(?,?,?,?,?)
                        """,
                        (f.path, f.module_name, PENDING, now, now),
                    )
                    ids.append(int(cur.lastrowid))
                con.execute("COMMIT;")
            except BaseException:
                con.execute("ROLLBACK;")
                raise
        return ids

    def claim(self) -> Optional[Task]:
        with self._connect() as con:
            con.execute("BEGIN IMMEDIATE;")
            try:
                row = con.execute(
                    "SELECT id, file_path, module_name FROM analysis_tasks WHERE status=? ORDER BY id LIMIT 1",
                    (PENDING,),
                ).fetchone()
                if row is not None:
                    con.execute(
                        "UPDATE analysis_tasks SET status=?, updated_at=? WHERE id=?",
                        (PROCESSING, int(time.time()), row["id"]),
                    )
                con.execute("COMMIT;")
            except BaseException:
                con.execute("ROLLBACK;")
                raise
        if row is None:
            return None
        return Task(id=row["id"], source=SourceFile(path=row["file_path"], module_name=row["module_name"]))

    def complete(self, task_id: int, endpoints: list[Endpoint]) -> None:
        payload = json.dumps([ep.model_dump(mode="json") for ep in endpoints])
        with self._connect() as con:
            con.execute(
                "UPDATE analysis_tasks SET status=?, result=?, error=NULL, updated_at=? WHERE id=?",
                (COMPLETED, payload, int(time.time()), task_id),
            )

    def fail(self, task_id: int, error: str) -> None:
        with self._connect() as con:
            con.execute(
                "UPDATE analysis_tasks SET status=?, error=?, updated_at=? WHERE id=?",
                (FAILED, error, int(time.time()), task_id),
            )

    def results(self) -> list[TaskResult]:
        with self._connect() as con:
            rows = con.execute(
                "SELECT id, file_path, module_name, status, result, error FROM analysis_tasks ORDER BY id"
            ).fetchall()

        out: list[TaskResult] = []
        for r in rows:
            endpoints: tuple[Endpoint, ...] = ()
            if r["result"]:
                endpoints = tuple(Endpoint.model_validate(d) for d in json.loads(r["result"]))
            out.append(
                TaskResult(
                    id=r["id"],
                    source=SourceFile(path=r["file_path"], module_name=r["module_name"]),
                    status=r["status"],
                    endpoints=endpoints,
                    error=r["error"],
                )
            )
        return out

    def counts(self) -> dict[str, int]:
        out = {s: 0 for s in STATUSES}
        with self._connect() as con:
            for r in con.execute("SELECT status, COUNT(*) AS n FROM analysis_tasks GROUP BY status"):
                out[r["status"]] = r["n"]
        return out
