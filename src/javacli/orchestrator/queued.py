from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from javacli.domain.models import AnalysisResult, FileExtraction, SourceFile
from javacli.orchestrator.analyzer import FileAnalyzer, ProgressCallback, collect
from javacli.orchestrator.task_queue import COMPLETED, InMemoryTaskQueue, TaskQueue

logger = logging.getLogger(__name__)

MIN_WORKERS = 2
MAX_WORKERS = 8


def default_worker_count(cpu_count: Optional[int] = None) -> int:
    n = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    return min(MAX_WORKERS, max(MIN_WORKERS, n))


class QueuedAnalyzer:
    """
    Drains a task queue with a bounded thread pool.

    Each worker loops claim -> analyze -> complete|fail until nothing is
    pending. Results come back in enqueue order, so the endpoint list matches
    BatchAnalyzer for the same input.
    """

    def __init__(
        self,
        file_analyzer: FileAnalyzer,
        queue: Optional[TaskQueue] = None,
        max_workers: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
    ):
        self.file_analyzer = file_analyzer
        self.queue: TaskQueue = queue if queue is not None else InMemoryTaskQueue()
        self.max_workers = max_workers or default_worker_count()
        self.progress = progress

    def _worker(self, total: int) -> int:
        handled = 0
        while True:
            task = self.queue.claim()
            if task is None:
                return handled
            try:
                ext = self.file_analyzer.analyze_file(task.source)
            except Exception as exc:
                # analyze_file recovers per-file errors; anything here is unexpected
                logger.exception("worker crashed on %s", task.source.path)
                self.queue.fail(task.id, str(exc))
            else:
                if ext is None:
                    self.queue.fail(task.id, "no engine could analyze the file")
                else:
                    self.queue.complete(task.id, ext.endpoints)
            handled += 1
            if self.progress is not None:
                counts = self.queue.counts()
                self.progress(total - counts["pending"] - counts["processing"], total)

    def analyze(self, files: list[SourceFile]) -> AnalysisResult:
        recovered = self.queue.recover_stale()
        if recovered:
            logger.debug("recovered %d stale task(s) before reset", recovered)
        self.queue.reset()
        if not files:
            return collect([])

        self.queue.enqueue(files)
        workers = min(self.max_workers, len(files))
        logger.debug("draining %d task(s) with %d worker(s)", len(files), workers)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="javacli-worker") as pool:
            futures = [pool.submit(self._worker, len(files)) for _ in range(workers)]
            for fut in futures:
                fut.result()

        extractions: list[Optional[FileExtraction]] = []
        for r in self.queue.results():
            if r.status == COMPLETED:
                extractions.append(FileExtraction(endpoints=list(r.endpoints), is_controller=bool(r.endpoints)))
            else:
                logger.debug("task %d failed for %s: %s", r.id, r.source.path, r.error)
                extractions.append(None)

        counts = self.queue.counts()
        logger.debug("queue drained: %s", counts)
        return collect(extractions)
