from pathlib import Path

from java_fixtures import HELLO_CONTROLLER, PLAIN_SERVICE, TEST_CONTROLLER, VARIABLE_URL_CONTROLLER
from javacli.domain.models import SourceFile
from javacli.extractors.spring.strategies import InProcessAstStrategy, RegexStrategy
from javacli.orchestrator.analyzer import BatchAnalyzer, FileAnalyzer
from javacli.orchestrator.queued import QueuedAnalyzer, default_worker_count
from javacli.orchestrator.task_queue import FAILED, InMemoryTaskQueue, SQLiteTaskQueue


def make_files(tmp_path: Path) -> list[SourceFile]:
    out = []
    for i, content in enumerate([HELLO_CONTROLLER, TEST_CONTROLLER, PLAIN_SERVICE, VARIABLE_URL_CONTROLLER] * 3):
        p = tmp_path / f"pkg{i}" / f"File{i}.java"
        p.parent.mkdir(parents=True)
        p.write_text(content, encoding="utf-8")
        out.append(SourceFile(path=str(p)))
    return out


def file_analyzer() -> FileAnalyzer:
    return FileAnalyzer(primary=InProcessAstStrategy(), fallback=RegexStrategy())


def test_worker_count_is_clamped():
    assert default_worker_count(1) == 2
    assert default_worker_count(4) == 4
    assert default_worker_count(64) == 8


def test_queued_matches_batch(tmp_path: Path):
    files = make_files(tmp_path)

    batch = BatchAnalyzer(file_analyzer()).analyze(files)
    queued = QueuedAnalyzer(file_analyzer(), queue=InMemoryTaskQueue(), max_workers=4).analyze(files)

    assert queued.endpoints == batch.endpoints
    assert queued.controller_count == batch.controller_count == 3
    assert queued.files_analyzed == len(files)


def test_queued_with_sqlite_queue(tmp_path: Path):
    files = make_files(tmp_path / "src")
    queue = SQLiteTaskQueue(SQLiteTaskQueue.db_path_for_project(tmp_path))
    seen: list[tuple[int, int]] = []

    result = QueuedAnalyzer(
        file_analyzer(), queue=queue, max_workers=3, progress=lambda d, t: seen.append((d, t))
    ).analyze(files)

    assert len(result.endpoints) == 3 * (2 + 2 + 3)
    assert queue.counts()["completed"] == len(files)
    assert (len(files), len(files)) in seen


def test_failed_files_are_isolated(tmp_path: Path):
    files = make_files(tmp_path)[:2] + [SourceFile(path=str(tmp_path / "Missing.java"))]
    queue = InMemoryTaskQueue()

    result = QueuedAnalyzer(FileAnalyzer(primary=None, fallback=RegexStrategy()), queue=queue).analyze(files)

    assert result.files_failed == 1
    assert result.files_analyzed == 2
    assert [r.status for r in queue.results()][-1] == FAILED


def test_previous_run_state_is_reset(tmp_path: Path):
    files = make_files(tmp_path)[:1]
    queue = InMemoryTaskQueue()
    queue.enqueue(files)
    queue.claim()  # left processing by an interrupted run

    result = QueuedAnalyzer(file_analyzer(), queue=queue).analyze(files)
    assert len(result.endpoints) == 2
    assert len(queue.results()) == 1


def test_empty_input(tmp_path: Path):
    result = QueuedAnalyzer(file_analyzer()).analyze([])
    assert result.endpoints == []
    assert result.controller_count == 0
