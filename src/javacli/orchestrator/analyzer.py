from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Iterable, Optional

from javacli.config import Settings
from javacli.domain.models import (
    AnalysisResult,
    Endpoint,
    FileExtraction,
    SourceFile,
    count_controllers,
)
from javacli.extractors.spring.strategies import (
    ExtractionStrategy,
    InProcessAstStrategy,
    RegexStrategy,
    SubprocessAstStrategy,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class FileAnalyzer:
    """
    Per-file dispatch: primary engine first, fallback on any failure.
    Never raises for a single bad file; returns None when both engines fail.
    """

    def __init__(self, primary: Optional[ExtractionStrategy], fallback: ExtractionStrategy):
        self.primary = primary
        self.fallback = fallback

    def analyze_file(self, source: SourceFile) -> Optional[FileExtraction]:
        path = Path(source.path)

        if self.primary is not None:
            try:
                return self.primary.extract(path, source.module_name)
            except Exception as exc:
                logger.debug("%s failed on %s, falling back to %s: %s",
                             self.primary.name, path, self.fallback.name, exc)

        try:
            return self.fallback.extract(path, source.module_name)
        except Exception as exc:
            logger.warning("skipping %s: %s", path, exc)
            return None


def build_file_analyzer(settings: Settings, project_root: Optional[Path] = None) -> FileAnalyzer:
    fallback = RegexStrategy(strict=settings.strict_method_names, max_bytes=settings.max_file_bytes)

    primary: Optional[ExtractionStrategy]
    if settings.ast_engine == "subprocess":
        primary = SubprocessAstStrategy(source_root=project_root, timeout_s=settings.ast_timeout_s)
    elif settings.ast_engine == "inprocess":
        primary = InProcessAstStrategy(source_root=project_root)
    else:
        primary = None

    return FileAnalyzer(primary=primary, fallback=fallback)


def collect(extractions: Iterable[Optional[FileExtraction]]) -> AnalysisResult:
    """Fold per-file results (None = failed file) in order."""
    endpoints: list[Endpoint] = []
    analyzed = 0
    failed = 0
    for ext in extractions:
        if ext is None:
            failed += 1
            continue
        analyzed += 1
        endpoints.extend(ext.endpoints)
    return AnalysisResult(
        endpoints=endpoints,
        controller_count=count_controllers(endpoints),
        files_analyzed=analyzed,
        files_failed=failed,
    )


def _mtime_ns(path: str) -> Optional[int]:
    try:
        return os.stat(path).st_mtime_ns
    except OSError:
        return None


class BatchAnalyzer:
    """
    Sequential analysis in fixed-size batches.

    Results are cached per (file path, mtime_ns) on the instance, so a second
    run over unchanged files never re-invokes an engine.
    """

    def __init__(
        self,
        file_analyzer: FileAnalyzer,
        batch_size: int = 10,
        progress: Optional[ProgressCallback] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.file_analyzer = file_analyzer
        self.batch_size = batch_size
        self.progress = progress
        self._cache: dict[tuple[str, int], FileExtraction] = {}

    def _analyze_one(self, source: SourceFile) -> Optional[FileExtraction]:
        mtime_ns = _mtime_ns(source.path)
        key = (source.path, mtime_ns) if mtime_ns is not None else None

        if key is not None and key in self._cache:
            logger.debug("cache hit: %s", source.path)
            return self._cache[key]

        ext = self.file_analyzer.analyze_file(source)
        if ext is not None and key is not None:
            self._cache[key] = ext
        return ext

    def analyze(self, files: list[SourceFile]) -> AnalysisResult:
        total = len(files)
        results: list[Optional[FileExtraction]] = []

        for start in range(0, total, self.batch_size):
            batch = files[start : start + self.batch_size]
            results.extend(self._analyze_one(f) for f in batch)
            if self.progress is not None:
                self.progress(len(results), total)

        return collect(results)
