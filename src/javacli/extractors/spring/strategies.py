from __future__ import annotations

import json
import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Optional, Protocol, Sequence

from pydantic import ValidationError

from javacli.domain.models import AstEndpointRecord, FileExtraction
from javacli.errors import AstEngineError, ExtractionError
from javacli.extractors.spring import ast_engine, regex_engine

logger = logging.getLogger(__name__)

AST_WORKER_MODULE = "javacli.extractors.spring.ast_engine"
# directory holding the javacli package, so the worker imports the same code
_PACKAGE_ROOT = Path(__file__).resolve().parents[3]
_FRAMING = {"", "[", "]", ","}


class ExtractionStrategy(Protocol):
    name: str

    def extract(self, path: Path, module_name: Optional[str] = None) -> FileExtraction:
        """Endpoints of one file; raises on failure."""
        ...


class RegexStrategy:
    name = "regex"

    def __init__(self, strict: bool = True, max_bytes: int = 2_000_000):
        self.strict = strict
        self.max_bytes = max_bytes

    def extract(self, path: Path, module_name: Optional[str] = None) -> FileExtraction:
        try:
            return regex_engine.extract_from_file(
                path, module_name=module_name, strict=self.strict, max_bytes=self.max_bytes
            )
        except OSError as exc:
            raise ExtractionError(f"cannot read {path}: {exc}") from exc


class InProcessAstStrategy:
    """javalang in the current interpreter (no isolation, no timeout)."""

    name = "ast"

    def __init__(self, source_root: Optional[Path] = None):
        self.source_root = source_root

    def extract(self, path: Path, module_name: Optional[str] = None) -> FileExtraction:
        records = ast_engine.extract_from_file(path, self.source_root)
        endpoints = [r.to_endpoint(str(path), module_name) for r in records]
        return FileExtraction(endpoints=endpoints, is_controller=bool(endpoints))


def parse_worker_output(stdout: str) -> list[AstEndpointRecord]:
    """
    Decode the worker's JSON lines. Lines that are not endpoint objects
    ("[", "]", trailing commas, log noise) are framing artifacts and skipped.
    """
    records: list[AstEndpointRecord] = []
    for line in stdout.splitlines():
        text = line.strip().rstrip(",").strip()
        if text in _FRAMING:
            continue
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("ignoring non-JSON worker line: %.80s", text)
            continue
        if not isinstance(data, dict):
            continue
        try:
            records.append(AstEndpointRecord.model_validate(data))
        except ValidationError as exc:
            logger.debug("ignoring malformed endpoint record: %s", exc.errors()[:1])
    return records


class SubprocessAstStrategy:
    """
    Runs the javalang engine in a child interpreter with a wall-clock timeout.

    Non-zero exit, timeout, empty stdout or stdout without a single valid
    endpoint record raise AstEngineError so the dispatcher falls back.
    """

    name = "ast-subprocess"

    def __init__(
        self,
        source_root: Optional[Path] = None,
        timeout_s: float = 30.0,
        command: Optional[Sequence[str]] = None,
    ):
        self.source_root = source_root
        self.timeout_s = timeout_s
        self.command = list(command) if command else [sys.executable, "-m", AST_WORKER_MODULE]

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        existing = env.get("PYTHONPATH")
        env["PYTHONPATH"] = os.pathsep.join(p for p in (str(_PACKAGE_ROOT), existing) if p)
        return env

    def _argv(self, path: Path) -> list[str]:
        argv = self.command + [str(path)]
        if self.source_root is not None:
            argv.append(str(self.source_root))
        return argv

    def extract(self, path: Path, module_name: Optional[str] = None) -> FileExtraction:
        try:
            proc = subprocess.run(
                self._argv(path),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout_s,
                env=self._env(),
            )
        except subprocess.TimeoutExpired as exc:
            raise AstEngineError(f"worker timed out after {self.timeout_s:g}s on {path}") from exc
        except OSError as exc:
            raise AstEngineError(f"cannot start worker: {exc}") from exc

        if proc.returncode != 0:
            detail = (proc.stderr or "").strip().splitlines()
            raise AstEngineError(
                f"worker exited with {proc.returncode}: {detail[-1] if detail else 'no stderr'}"
            )

        stdout = proc.stdout or ""
        if not stdout.strip():
            raise AstEngineError("worker produced no output")

        records = parse_worker_output(stdout)
        if not records:
            raise AstEngineError("worker output contained no endpoint records")

        endpoints = [r.to_endpoint(str(path), module_name) for r in records]
        return FileExtraction(endpoints=endpoints, is_controller=True)
