import os
import textwrap
from pathlib import Path

import pytest

from java_fixtures import HELLO_CONTROLLER, PLAIN_SERVICE, TEST_CONTROLLER
from javacli.config import Settings
from javacli.errors import ProjectPathError
from javacli.orchestrator.pipeline import run_analyze
from javacli.store.index_store import IndexStore


def write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s), encoding="utf-8")


def settings(**kw) -> Settings:
    kw.setdefault("ast_engine", "inprocess")
    return Settings(**kw)


def make_project(tmp_path: Path) -> Path:
    project = tmp_path / "demo"
    pkg = project / "src" / "main" / "java" / "com" / "example" / "test"
    write(pkg / "HelloController.java", HELLO_CONTROLLER)
    write(pkg / "TestController.java", TEST_CONTROLLER)
    write(pkg / "GreetingService.java", PLAIN_SERVICE)
    write(project / "target" / "classes" / "Copied.java", HELLO_CONTROLLER)
    return project


def test_first_run_analyzes_and_second_run_is_served_from_index(tmp_path: Path):
    project = make_project(tmp_path)

    r1 = run_analyze(project, settings=settings())
    assert not r1.from_cache
    assert r1.files_scanned == 3
    assert r1.controller_count == 2
    assert [(e.method, e.path) for e in r1.endpoints] == [
        ("GET", "/api/hello"),
        ("GET", "/api/test"),
        ("GET", "/test/view"),
        ("POST", "/test/validateRoleName"),
    ]
    assert r1.stats.method_counts == {"GET": 3, "POST": 1}
    assert Path(r1.index_path) == project / ".javacli" / "index.db"

    r2 = run_analyze(project, settings=settings())
    assert r2.from_cache
    assert r2.endpoints == r1.endpoints
    assert r2.controller_count == r1.controller_count
    assert r2.stats == r1.stats


def test_changed_file_triggers_reanalysis(tmp_path: Path):
    project = make_project(tmp_path)
    run_analyze(project, settings=settings())

    hello = next(project.rglob("HelloController.java"))
    hello.write_text(HELLO_CONTROLLER.replace('"/hello"', '"/hi"'), encoding="utf-8")
    st = hello.stat()
    os.utime(hello, ns=(st.st_atime_ns, st.st_mtime_ns + 1_000_000_000))

    r = run_analyze(project, settings=settings())
    assert not r.from_cache
    assert "/api/hi" in {e.path for e in r.endpoints}
    assert "/api/hello" not in {e.path for e in r.endpoints}


def test_force_ignores_the_index(tmp_path: Path):
    project = make_project(tmp_path)
    r1 = run_analyze(project, settings=settings())

    r2 = run_analyze(project, force=True, settings=settings())
    assert not r2.from_cache
    assert r2.endpoints == r1.endpoints


def test_force_recovers_from_a_corrupt_index(tmp_path: Path):
    project = make_project(tmp_path)
    index = IndexStore(project).db_path
    index.parent.mkdir(parents=True)
    index.write_bytes(b"garbage" * 100)

    r = run_analyze(project, force=True, settings=settings())
    assert len(r.endpoints) == 4
    assert IndexStore(project).load() == r.endpoints


def test_queued_mode_matches_batch_mode(tmp_path: Path):
    project = make_project(tmp_path)
    batch = run_analyze(project, settings=settings())
    queued = run_analyze(project, force=True, mode="queued", settings=settings(max_workers=2))

    assert queued.endpoints == batch.endpoints
    assert (project / ".javacli" / "queue.db").exists()


def test_regex_only_engine(tmp_path: Path):
    project = make_project(tmp_path)
    r = run_analyze(project, settings=settings(ast_engine="off"))
    assert len(r.endpoints) == 4
    assert r.controller_count == 2


def test_empty_project(tmp_path: Path):
    project = tmp_path / "empty"
    project.mkdir()

    r = run_analyze(project, settings=settings())
    assert r.endpoints == []
    assert r.controller_count == 0
    assert r.files_scanned == 0
    assert IndexStore(project).exists()

    assert run_analyze(project, settings=settings()).from_cache


def test_modules_are_labelled(tmp_path: Path):
    project = tmp_path / "multi"
    write(
        project / "pom.xml",
        """
        <project xmlns="http://maven.apache.org/POM/4.0.0">
          <modules>
            <module>api</module>
            <module>admin</module>
          </modules>
        </project>
        """,
    )
    write(project / "api" / "src" / "HelloController.java", HELLO_CONTROLLER)
    write(project / "admin" / "src" / "TestController.java", TEST_CONTROLLER)

    r = run_analyze(project, settings=settings())
    assert {(e.class_name, e.module_name) for e in r.endpoints} == {
        ("HelloController", "api"),
        ("TestController", "admin"),
    }


def test_bad_project_path(tmp_path: Path):
    with pytest.raises(ProjectPathError):
        run_analyze(tmp_path / "nope", settings=settings())

    f = tmp_path / "file.txt"
    f.write_text("x", encoding="utf-8")
    with pytest.raises(ProjectPathError):
        run_analyze(f, settings=settings())


def test_unknown_mode(tmp_path: Path):
    with pytest.raises(ValueError):
        run_analyze(tmp_path, mode="turbo", settings=settings())
