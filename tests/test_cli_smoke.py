import json
import textwrap
from pathlib import Path

import pytest
from typer.testing import CliRunner

from java_fixtures import HELLO_CONTROLLER, TEST_CONTROLLER
from javacli.cli import app

runner = CliRunner()


def write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s), encoding="utf-8")


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.setenv("JAVACLI_AST_ENGINE", "inprocess")
    root = tmp_path / "demo"
    write(root / "src" / "HelloController.java", HELLO_CONTROLLER)
    write(root / "src" / "TestController.java", TEST_CONTROLLER)
    return root


def test_analyze_prints_table_then_serves_from_index(project: Path):
    r1 = runner.invoke(app, ["analyze", str(project)])
    assert r1.exit_code == 0, r1.output
    assert "Endpoints found: 4" in r1.output
    assert "/api/hello" in r1.output
    assert "fresh analysis" in r1.output

    r2 = runner.invoke(app, ["analyze", str(project)])
    assert r2.exit_code == 0, r2.output
    assert "index (unchanged)" in r2.output


def test_analyze_json(project: Path):
    r = runner.invoke(app, ["analyze", str(project), "--format", "json", "--quiet"])
    assert r.exit_code == 0, r.output

    payload = json.loads(r.stdout)
    assert {(d["method"], d["path"]) for d in payload} == {
        ("GET", "/api/hello"),
        ("GET", "/api/test"),
        ("GET", "/test/view"),
        ("POST", "/test/validateRoleName"),
    }


def test_endpoints_list_and_index_commands(project: Path):
    assert runner.invoke(app, ["analyze", str(project), "--quiet"]).exit_code == 0

    r = runner.invoke(app, ["endpoints", "list", str(project), "--method", "post", "--format", "json"])
    assert r.exit_code == 0, r.output
    payload = json.loads(r.stdout)
    assert [d["path"] for d in payload] == ["/test/validateRoleName"]
    assert payload[0]["parameters"] == ["roleName", "tenancyId", "id"]

    info = runner.invoke(app, ["index", "info", str(project)])
    assert info.exit_code == 0, info.output
    assert "Endpoints: 4" in info.output
    assert "Controllers: 2" in info.output

    cleared = runner.invoke(app, ["index", "clear", str(project)])
    assert cleared.exit_code == 0
    assert "Removed" in cleared.output
    assert not (project / ".javacli" / "index.db").exists()


def test_endpoints_list_without_index(project: Path):
    r = runner.invoke(app, ["endpoints", "list", str(project)])
    assert r.exit_code == 1
    assert "no index" in r.output


def test_bad_arguments(tmp_path: Path, project: Path):
    assert runner.invoke(app, ["analyze", str(tmp_path / "missing")]).exit_code == 2
    assert runner.invoke(app, ["analyze", str(project), "--format", "xml"]).exit_code == 2
    assert runner.invoke(app, ["analyze", str(project), "--mode", "turbo"]).exit_code == 2


def test_corrupt_index_exits_with_error(project: Path):
    index = project / ".javacli" / "index.db"
    index.parent.mkdir(parents=True)
    index.write_bytes(b"garbage" * 100)

    r = runner.invoke(app, ["analyze", str(project), "--quiet"])
    assert r.exit_code == 1
    assert "error" in r.output

    forced = runner.invoke(app, ["analyze", str(project), "--force", "--quiet"])
    assert forced.exit_code == 0, forced.output


def test_unusable_queue_store_exits_with_error(project: Path):
    # a directory where the queue database should be
    (project / ".javacli" / "queue.db").mkdir(parents=True)

    r = runner.invoke(app, ["analyze", str(project), "--mode", "queued", "--quiet"])
    assert r.exit_code == 1
    assert isinstance(r.exception, SystemExit)
    assert "error:" in r.output
