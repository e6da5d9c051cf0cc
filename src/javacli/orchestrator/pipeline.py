from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

from javacli.config import Settings, load_settings
from javacli.domain.models import AnalysisResult, Endpoint, IndexStats, SourceFile, build_stats
from javacli.errors import ProjectPathError
from javacli.orchestrator.analyzer import BatchAnalyzer, ProgressCallback, build_file_analyzer
from javacli.orchestrator.queued import QueuedAnalyzer
from javacli.orchestrator.task_queue import SQLiteTaskQueue
from javacli.repo.modules import detect_modules
from javacli.repo.scanner import scan_java_files
from javacli.store.index_store import IndexStore

logger = logging.getLogger(__name__)

AnalyzeMode = Literal["batch", "queued"]
ANALYZE_MODES: tuple[str, ...] = ("batch", "queued")


@dataclass(frozen=True)
class AnalyzeResult:
    endpoints: list[Endpoint]
    controller_count: int
    stats: IndexStats
    from_cache: bool
    index_path: str
    files_scanned: int
    files_failed: int = 0
    mode: str = "batch"


def resolve_project_path(project_path: Path) -> Path:
    p = Path(project_path).expanduser()
    if not p.exists():
        raise ProjectPathError(f"Project path does not exist: {p}")
    if not p.is_dir():
        raise ProjectPathError(f"Project path is not a directory: {p}")
    return p.resolve()


def _analyze_files(
    sources: list[SourceFile],
    project_path: Path,
    mode: str,
    settings: Settings,
    progress: Optional[ProgressCallback],
) -> AnalysisResult:
    file_analyzer = build_file_analyzer(settings, project_root=project_path)

    if mode == "queued":
        queue = SQLiteTaskQueue(SQLiteTaskQueue.db_path_for_project(project_path, settings.index_dir_name))
        return QueuedAnalyzer(
            file_analyzer, queue=queue, max_workers=settings.max_workers, progress=progress
        ).analyze(sources)

    return BatchAnalyzer(file_analyzer, batch_size=settings.batch_size, progress=progress).analyze(sources)


def run_analyze(
    project_path: Path,
    *,
    force: bool = False,
    mode: AnalyzeMode = "batch",
    settings: Optional[Settings] = None,
    progress: Optional[ProgressCallback] = None,
) -> AnalyzeResult:
    """
    Serve the stored snapshot when the project is unchanged, otherwise
    scan, analyze and replace the snapshot.
    """
    if mode not in ANALYZE_MODES:
        raise ValueError(f"mode must be one of {', '.join(ANALYZE_MODES)}, got {mode!r}")

    project_path = resolve_project_path(project_path)
    settings = settings or load_settings()
    store = IndexStore(project_path, index_dir_name=settings.index_dir_name)

    if force:
        if store.clear():
            logger.info("cleared index %s", store.db_path)
    else:
        meta = store.load_metadata()
        if meta is not None and store.is_valid(meta.fingerprint):
            endpoints = store.load() or []
            logger.info("index is up to date, %d endpoints loaded from %s", len(endpoints), store.db_path)
            return AnalyzeResult(
                endpoints=endpoints,
                controller_count=meta.stats.controller_count,
                stats=meta.stats,
                from_cache=True,
                index_path=str(store.db_path),
                files_scanned=meta.stats.total_java_files,
                mode=mode,
            )
        if meta is not None:
            logger.info("project changed since last analysis, re-analyzing")

    started = time.perf_counter()

    files = scan_java_files(project_path)
    # fingerprint the set we are about to analyze, not whatever is on disk after
    fingerprint = store.fingerprint(files)

    modules = detect_modules(project_path)
    sources = [SourceFile(path=f, module_name=modules.module_for_file(f)) for f in files]
    logger.info("analyzing %d Java file(s) in %s mode", len(sources), mode)

    result = _analyze_files(sources, project_path, mode, settings, progress)
    if result.files_failed:
        logger.warning("%d file(s) could not be analyzed", result.files_failed)

    duration_ms = int((time.perf_counter() - started) * 1000)
    stats = build_stats(result.endpoints, total_java_files=len(files), scan_duration_ms=duration_ms)
    store.save(result.endpoints, stats, fingerprint=fingerprint)

    return AnalyzeResult(
        endpoints=result.endpoints,
        controller_count=result.controller_count,
        stats=stats,
        from_cache=False,
        index_path=str(store.db_path),
        files_scanned=len(files),
        files_failed=result.files_failed,
        mode=mode,
    )
