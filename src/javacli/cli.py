from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

import json
import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from javacli.config import load_settings
from javacli.domain.models import HTTP_METHODS, Endpoint
from javacli.errors import IndexStoreError, JavacliError, ProjectPathError
from javacli.logging_setup import setup_cli_logging
from javacli.orchestrator.pipeline import ANALYZE_MODES, resolve_project_path, run_analyze
from javacli.repo.scanner import is_spring_project
from javacli.store.index_store import IndexStore


app = typer.Typer(no_args_is_help=True, add_completion=False)

endpoints_app = typer.Typer(no_args_is_help=True)
app.add_typer(endpoints_app, name="endpoints")

index_app = typer.Typer(no_args_is_help=True)
app.add_typer(index_app, name="index")

console = Console()


def _project(path: str) -> Path:
    try:
        return resolve_project_path(Path(path))
    except ProjectPathError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _store(project_path: Path) -> IndexStore:
    return IndexStore(project_path, index_dir_name=load_settings().index_dir_name)


def _fail(message: str) -> None:
    console.print(f"[bold red]error:[/bold red] {message}")
    raise typer.Exit(code=1)


def _check_format(format: str) -> str:
    fmt = format.lower().strip()
    if fmt not in ("table", "json"):
        raise typer.BadParameter("format must be one of: table, json")
    return fmt


def _sorted_by_verb(endpoints: list[Endpoint]) -> list[Endpoint]:
    order = {m: i for i, m in enumerate(HTTP_METHODS)}
    return sorted(endpoints, key=lambda e: (order.get(e.method, len(order)), e.path, e.class_name))


def _endpoints_json(endpoints: list[Endpoint]) -> str:
    return json.dumps([e.model_dump(mode="json") for e in endpoints], indent=2)


def _endpoint_table(endpoints: list[Endpoint], project_path: Path) -> Table:
    show_module = any(e.module_name for e in endpoints)

    table = Table(show_header=True, header_style="bold")
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH", no_wrap=True)
    table.add_column("HANDLER")
    if show_module:
        table.add_column("MODULE", no_wrap=True)
    table.add_column("FILE:LINE", overflow="fold")

    for e in endpoints:
        try:
            rel = Path(e.file_path).relative_to(project_path)
        except ValueError:
            rel = Path(e.file_path)
        handler = f"{e.class_name}.{e.method_name}" if e.method_name else e.class_name
        row = [e.method, e.path, handler]
        if show_module:
            row.append(e.module_name or "")
        row.append(f"{rel}:{e.line_number}")
        table.add_row(*row)

    return table


@app.command()
def analyze(
    path: str = typer.Argument(".", help="Path to the Java project"),
    force: bool = typer.Option(False, "--force", help="Ignore the stored index and re-analyze"),
    mode: str = typer.Option("batch", help="Analysis mode: batch|queued"),
    format: str = typer.Option("table", help="Output format: table|json"),
    limit: int = typer.Option(200, help="Max endpoints to print"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only errors on stderr"),
) -> None:
    setup_cli_logging(verbose=verbose, quiet=quiet)
    project_path = _project(path)
    fmt = _check_format(format)
    mode = mode.lower().strip()
    if mode not in ANALYZE_MODES:
        raise typer.BadParameter(f"mode must be one of: {', '.join(ANALYZE_MODES)}")

    if fmt == "table" and not is_spring_project(project_path):
        console.print("[yellow]No Spring dependency found in pom.xml/build.gradle; scanning anyway.[/yellow]")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total} files"),
        console=Console(stderr=True),
        transient=True,
        disable=quiet or fmt == "json",
    ) as prog:
        task = prog.add_task("[cyan]Analyzing", total=None)

        def on_progress(done: int, total: int) -> None:
            prog.update(task, completed=done, total=total)

        try:
            result = run_analyze(project_path, force=force, mode=mode, progress=on_progress)
        except JavacliError as exc:
            prog.stop()
            _fail(str(exc))
            return

    endpoints = _sorted_by_verb(result.endpoints)

    if fmt == "json":
        typer.echo(_endpoints_json(endpoints[:limit]))
        return

    console.print(f"[bold green]javacli[/bold green] analyze: {project_path}")
    source = "[green]index (unchanged)[/green]" if result.from_cache else f"fresh analysis ({result.mode})"
    console.print(f"Source: {source}")
    console.print(f"Java files scanned: {result.files_scanned}")
    if result.files_failed:
        console.print(f"[yellow]Files skipped: {result.files_failed}[/yellow]")
    console.print(f"Controllers: {result.controller_count}")
    console.print("")
    console.print(f"Endpoints found: [bold]{len(endpoints)}[/bold]")
    counts = ", ".join(f"{m}={result.stats.method_counts[m]}" for m in HTTP_METHODS if result.stats.method_counts.get(m))
    if counts:
        console.print(f"  {counts}")

    if endpoints:
        console.print(_endpoint_table(endpoints[:limit], project_path))
        if len(endpoints) > limit:
            console.print(f"  … and {len(endpoints) - limit} more")

    console.print("")
    console.print(f"Index: {result.index_path}")
    console.print("Tip: run [bold]javacli endpoints list <path>[/bold] to query the index.")


@endpoints_app.command("list")
def endpoints_list(
    path: str = typer.Argument(".", help="Path to the Java project"),
    method: Optional[str] = typer.Option(None, help="Filter by HTTP method (GET/POST/...)"),
    path_contains: Optional[str] = typer.Option(None, help="Substring match on HTTP path"),
    class_contains: Optional[str] = typer.Option(None, help="Substring match on controller class"),
    module: Optional[str] = typer.Option(None, help="Exact build module name"),
    limit: int = typer.Option(200, help="Max rows to print"),
    format: str = typer.Option("table", help="Output format: table|json"),
) -> None:
    setup_cli_logging()
    project_path = _project(path)
    fmt = _check_format(format)
    store = _store(project_path)

    if not store.exists():
        _fail(f"no index at {store.db_path}; run `javacli analyze {path}` first")

    try:
        rows = store.list_endpoints(
            method=method,
            path_contains=path_contains,
            class_contains=class_contains,
            module=module,
            limit=limit,
        )
    except IndexStoreError as exc:
        _fail(str(exc))
        return

    if fmt == "json":
        typer.echo(_endpoints_json(rows))
        return

    console.print(f"[bold]Index:[/bold] {store.db_path}")
    console.print(f"[bold]Endpoints:[/bold] {len(rows)} (showing up to {limit})")
    console.print(_endpoint_table(rows, project_path))


@index_app.command("info")
def index_info(
    path: str = typer.Argument(".", help="Path to the Java project"),
) -> None:
    setup_cli_logging()
    project_path = _project(path)
    store = _store(project_path)

    try:
        meta = store.load_metadata()
    except IndexStoreError as exc:
        _fail(str(exc))
        return

    if meta is None:
        console.print(f"No index for {project_path}")
        return

    stats = meta.stats
    up_to_date = store.is_valid(meta.fingerprint)
    generated = datetime.fromtimestamp(meta.generated_at).isoformat(timespec="seconds")

    console.print(f"[bold]Index:[/bold] {store.db_path}")
    console.print(f"Version: {meta.version}")
    console.print(f"Generated at: {generated}")
    console.print(f"Up to date: {'[green]yes[/green]' if up_to_date else '[yellow]no[/yellow]'}")
    console.print(f"Java files: {stats.total_java_files}")
    console.print(f"Controllers: {stats.controller_count}")
    console.print(f"Endpoints: {stats.total_endpoints}")
    for m in HTTP_METHODS:
        if stats.method_counts.get(m):
            console.print(f"  {m:<6} {stats.method_counts[m]}")
    console.print(f"Last scan: {stats.scan_duration_ms} ms")


@index_app.command("clear")
def index_clear(
    path: str = typer.Argument(".", help="Path to the Java project"),
) -> None:
    setup_cli_logging()
    project_path = _project(path)
    store = _store(project_path)

    try:
        removed = store.clear()
    except IndexStoreError as exc:
        _fail(str(exc))
        return

    if removed:
        console.print(f"[bold green]Removed[/bold green] {store.db_path}")
    else:
        console.print(f"No index at {store.db_path}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
