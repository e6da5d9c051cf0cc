from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional

logger = logging.getLogger(__name__)

ModuleKind = Literal["maven", "gradle"]

_GRADLE_INCLUDE = re.compile(r"\binclude\b\s*\(?([^\n)]*)\)?")
_QUOTED = re.compile(r"""['"]([^'"]+)['"]""")


@dataclass(frozen=True)
class BuildModule:
    name: str
    path: str
    kind: ModuleKind


@dataclass(frozen=True)
class ModuleInfo:
    modules: tuple[BuildModule, ...] = field(default_factory=tuple)

    @property
    def is_multi_module(self) -> bool:
        return bool(self.modules)

    def module_for_file(self, file_path: str) -> Optional[str]:
        """Longest module path containing file_path; None for single-module projects."""
        if not self.modules:
            return None
        target = Path(file_path).resolve()
        for module in sorted(self.modules, key=lambda m: len(m.path), reverse=True):
            try:
                target.relative_to(module.path)
            except ValueError:
                continue
            return module.name
        return None


def _maven_modules(project_path: Path, prefix: str = "", depth: int = 0) -> list[BuildModule]:
    pom = project_path / "pom.xml"
    if not pom.is_file() or depth > 3:
        return []
    try:
        root = ET.parse(pom).getroot()
    except (ET.ParseError, OSError) as exc:
        logger.warning("cannot parse %s: %s", pom, exc)
        return []

    out: list[BuildModule] = []
    for el in root.findall("{*}modules/{*}module"):
        name = (el.text or "").strip()
        if not name:
            continue
        module_path = (project_path / name).resolve()
        if not module_path.is_dir():
            continue
        label = f"{prefix}{name}"
        out.append(BuildModule(name=label, path=str(module_path), kind="maven"))
        # nested aggregator poms
        out.extend(_maven_modules(module_path, prefix=f"{label}/", depth=depth + 1))
    return out


def _gradle_modules(project_path: Path) -> list[BuildModule]:
    settings = next(
        (p for p in (project_path / "settings.gradle", project_path / "settings.gradle.kts") if p.is_file()),
        None,
    )
    if settings is None:
        return []
    try:
        content = settings.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.warning("cannot read %s: %s", settings, exc)
        return []

    names: list[str] = []
    for m in _GRADLE_INCLUDE.finditer(content):
        for q in _QUOTED.finditer(m.group(1)):
            if q.group(1) not in names:
                names.append(q.group(1))

    out: list[BuildModule] = []
    for name in names:
        module_path = (project_path / name.strip(":").replace(":", "/")).resolve()
        if module_path.is_dir():
            out.append(BuildModule(name=name, path=str(module_path), kind="gradle"))
    return out


def detect_modules(project_path: Path) -> ModuleInfo:
    """Maven `<modules>` first, then Gradle `include`; empty for single-module projects."""
    project_path = project_path.resolve()
    modules = _maven_modules(project_path) or _gradle_modules(project_path)
    if modules:
        logger.debug("detected %d build modules", len(modules))
    return ModuleInfo(modules=tuple(modules))
