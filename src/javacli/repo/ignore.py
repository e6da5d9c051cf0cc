from __future__ import annotations

from pathlib import Path

DEFAULT_IGNORES = {
    "target",
    "build",
    "out",
    "bin",
    "node_modules",
    "__pycache__",
}


def should_ignore_dir(dir_path: Path) -> bool:
    # dot-directories cover .git, .idea, .gradle and the index directory
    return dir_path.name in DEFAULT_IGNORES or dir_path.name.startswith(".")
