"""Locate project and package roots around a skill manifest."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Iterator, Optional

PROJECT_MARKERS = (".git", "pnpm-workspace.yaml", ".skillpack.yml")
PACKAGE_MARKERS = ("package.json", "pyproject.toml")


def normalize_path(path: Path) -> Path:
    """Absolute, lexically normalised path (symlinks are not resolved)."""
    return Path(os.path.normpath(Path(path).expanduser().absolute()))


def _ancestors(start: Path) -> Iterator[Path]:
    current = start
    yield current
    yield from current.parents


def _find_upwards(start: Path, markers: Iterable[str]) -> Optional[Path]:
    names = tuple(markers)
    for candidate in _ancestors(start):
        if any((candidate / name).exists() for name in names):
            return candidate
    return None


def find_project_root(start: Path) -> Path:
    """Return the nearest ancestor that looks like a project root, or ``start`` itself."""
    start = normalize_path(start)
    if start.is_file():
        start = start.parent
    return _find_upwards(start, PROJECT_MARKERS) or start


def find_package_root(start: Path) -> Optional[Path]:
    """Return the nearest ancestor holding package.json or pyproject.toml."""
    start = normalize_path(start)
    if start.is_file():
        start = start.parent
    return _find_upwards(start, PACKAGE_MARKERS)


def is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


__all__ = [
    "PACKAGE_MARKERS",
    "PROJECT_MARKERS",
    "find_package_root",
    "find_project_root",
    "is_within",
    "normalize_path",
]
