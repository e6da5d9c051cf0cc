import os
from pathlib import Path
from typing import Optional

from java_fixtures import HELLO_CONTROLLER, PLAIN_SERVICE, TEST_CONTROLLER
from javacli.config import Settings
from javacli.domain.models import Endpoint, FileExtraction, SourceFile
from javacli.errors import AstEngineError, ExtractionError
from javacli.extractors.spring.strategies import (
    InProcessAstStrategy,
    RegexStrategy,
    SubprocessAstStrategy,
)
from javacli.orchestrator.analyzer import BatchAnalyzer, FileAnalyzer, build_file_analyzer


class FailingStrategy:
    name = "failing"

    def __init__(self, exc: Exception):
        self.exc = exc
        self.calls = 0

    def extract(self, path: Path, module_name: Optional[str] = None) -> FileExtraction:
        self.calls += 1
        raise self.exc


class CountingStrategy:
    name = "counting"

    def __init__(self, inner):
        self.inner = inner
        self.calls = 0

    def extract(self, path: Path, module_name: Optional[str] = None) -> FileExtraction:
        self.calls += 1
        return self.inner.extract(path, module_name)


def make_project(tmp_path: Path) -> list[SourceFile]:
    files = {
        "HelloController.java": HELLO_CONTROLLER,
        "TestController.java": TEST_CONTROLLER,
        "GreetingService.java": PLAIN_SERVICE,
    }
    out = []
    for name, content in files.items():
        p = tmp_path / name
        p.write_text(content, encoding="utf-8")
        out.append(SourceFile(path=str(p)))
    return out


def test_fallback_recovers_when_primary_fails(tmp_path: Path):
    src = make_project(tmp_path)[0]
    primary = FailingStrategy(AstEngineError("boom"))
    analyzer = FileAnalyzer(primary=primary, fallback=RegexStrategy())

    ext = analyzer.analyze_file(src)

    assert primary.calls == 1
    assert ext is not None
    assert [e.path for e in ext.endpoints] == ["/api/hello", "/api/test"]


def test_file_is_skipped_when_both_engines_fail(tmp_path: Path, caplog):
    src = make_project(tmp_path)[0]
    analyzer = FileAnalyzer(
        primary=FailingStrategy(AstEngineError("boom")),
        fallback=FailingStrategy(ExtractionError("also boom")),
    )

    with caplog.at_level("WARNING"):
        assert analyzer.analyze_file(src) is None
    assert "skipping" in caplog.text


def test_no_primary_uses_fallback_only(tmp_path: Path):
    src = make_project(tmp_path)[0]
    ext = FileAnalyzer(primary=None, fallback=RegexStrategy()).analyze_file(src)
    assert ext is not None and len(ext.endpoints) == 2


def test_batch_analyzer_aggregates_in_file_order(tmp_path: Path):
    files = make_project(tmp_path)
    progress: list[tuple[int, int]] = []
    analyzer = BatchAnalyzer(
        FileAnalyzer(primary=InProcessAstStrategy(), fallback=RegexStrategy()),
        batch_size=2,
        progress=lambda done, total: progress.append((done, total)),
    )

    result = analyzer.analyze(files)

    assert [e.path for e in result.endpoints] == [
        "/api/hello",
        "/api/test",
        "/test/view",
        "/test/validateRoleName",
    ]
    assert result.controller_count == 2
    assert result.files_analyzed == 3
    assert result.files_failed == 0
    assert progress == [(2, 3), (3, 3)]


def test_batch_analyzer_counts_failed_files(tmp_path: Path):
    files = make_project(tmp_path) + [SourceFile(path=str(tmp_path / "Gone.java"))]
    analyzer = BatchAnalyzer(FileAnalyzer(primary=None, fallback=RegexStrategy()))

    result = analyzer.analyze(files)
    assert result.files_failed == 1
    assert result.files_analyzed == 3
    assert len(result.endpoints) == 4


def test_batch_cache_hits_skip_the_engine(tmp_path: Path):
    files = make_project(tmp_path)
    counting = CountingStrategy(RegexStrategy())
    analyzer = BatchAnalyzer(FileAnalyzer(primary=None, fallback=counting))

    first = analyzer.analyze(files)
    assert counting.calls == 3

    second = analyzer.analyze(files)
    assert counting.calls == 3
    # a cache hit still contributes its endpoints
    assert second.endpoints == first.endpoints

    hello = Path(files[0].path)
    st = hello.stat()
    os.utime(hello, ns=(st.st_atime_ns, st.st_mtime_ns + 1_000_000_000))
    analyzer.analyze(files)
    assert counting.calls == 4


def test_build_file_analyzer_respects_engine_setting(tmp_path: Path):
    sub = build_file_analyzer(Settings(ast_engine="subprocess", ast_timeout_s=5), tmp_path)
    assert isinstance(sub.primary, SubprocessAstStrategy)
    assert sub.primary.timeout_s == 5
    assert sub.primary.source_root == tmp_path

    inproc = build_file_analyzer(Settings(ast_engine="inprocess"), tmp_path)
    assert isinstance(inproc.primary, InProcessAstStrategy)

    off = build_file_analyzer(Settings(ast_engine="off", strict_method_names=False))
    assert off.primary is None
    assert isinstance(off.fallback, RegexStrategy)
    assert off.fallback.strict is False


def test_endpoints_are_value_objects():
    a = Endpoint(method="get", path="", class_name="A", file_path="/a.java")
    b = Endpoint(method="GET", path="/", class_name="A", file_path="/a.java")
    assert a == b
    assert a.method == "GET" and a.path == "/"
