from __future__ import annotations

import os
from pathlib import Path

from javacli.repo.ignore import should_ignore_dir


def scan_java_files(project_path: Path, max_files: int | None = None) -> list[str]:
    """
    Return absolute paths (as strings) of .java files under project_path,
    sorted so that downstream output and fingerprints are deterministic.
    """
    out: list[str] = []
    for root, dirs, files in _walk(project_path):
        root_p = Path(root)

        # prune ignored dirs
        dirs[:] = sorted(d for d in dirs if not should_ignore_dir(root_p / d))

        for f in sorted(files):
            if f.endswith(".java"):
                out.append(str((root_p / f).resolve()))
                if max_files is not None and len(out) >= max_files:
                    return sorted(out)
    return sorted(out)


def _walk(project_path: Path):
    # Separate helper to make unit testing easier (can be mocked)
    return os.walk(project_path)


def file_contains_any(path: str, needles: list[str], max_bytes: int = 200_000) -> bool:
    try:
        with open(path, "rb") as f:
            data = f.read(max_bytes)
    except OSError:
        return False
    text = data.decode("utf-8", errors="ignore")
    return any(n in text for n in needles)


def is_spring_project(project_path: Path) -> bool:
    """spring-boot / spring-web mentioned in a root build descriptor."""
    for name in ("pom.xml", "build.gradle", "build.gradle.kts"):
        p = project_path / name
        if p.is_file() and file_contains_any(str(p), ["spring-boot", "spring-web", "springframework"]):
            return True
    return False
