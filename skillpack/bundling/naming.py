"""Output naming for bundled resources."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterator, Optional

from ..errors import NamingCollisionError
from ..models import NamingPlan, NamingStrategy, WalkResult
from ..project import is_within, normalize_path
from ..resource_index import ResourceIndex, generate_id_from_path


def normalize_strip_prefix(prefix: Optional[str]) -> str:
    if not prefix:
        return ""
    normalized = prefix.strip().replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.strip("/")


def strip_path_prefix(relative_path: str, prefix: Optional[str]) -> str:
    """Drop ``prefix`` from the front of ``relative_path`` at a segment boundary."""
    normalized = normalize_strip_prefix(prefix)
    if normalized and relative_path.startswith(f"{normalized}/"):
        return relative_path[len(normalized) + 1 :]
    return relative_path


def assign_names(
    walk: WalkResult,
    index: ResourceIndex,
    strategy: NamingStrategy = NamingStrategy.BASENAME,
    strip_prefix: Optional[str] = None,
    *,
    skill_root: Optional[Path] = None,
) -> NamingPlan:
    """Map every bundled file to a unique path under ``resources/``.

    Raises NamingCollisionError before anything is written when two sources
    would land on the same output path (compared case-insensitively so the
    bundle is portable to case-insensitive filesystems).
    """
    strategy = NamingStrategy(strategy)
    if skill_root is None and walk.root_path is not None:
        skill_root = walk.root_path.parent
    plan = NamingPlan(strategy=strategy)
    claimed: Dict[str, Path] = {}

    for source in _bundled_sources(walk, index):
        relative = strip_path_prefix(_relative_path(source, skill_root, index.base_dir), strip_prefix)
        output = _name_for(relative, source, strategy)
        key = output.casefold()
        if key in claimed:
            raise NamingCollisionError(output, [claimed[key], source], strategy.value)
        claimed[key] = source
        plan.entries[source] = output
    return plan


def _bundled_sources(walk: WalkResult, index: ResourceIndex) -> Iterator[Path]:
    for resource_id in walk.bundled_resources:
        resource = index.get(resource_id)
        if resource is not None:
            yield resource.file_path
    yield from walk.bundled_assets


def _relative_path(source: Path, skill_root: Optional[Path], base_dir: Path) -> str:
    for root in (skill_root, base_dir):
        if root is None:
            continue
        root = normalize_path(root)
        if is_within(source, root):
            return source.relative_to(root).as_posix()
    return source.name


def _name_for(relative: str, source: Path, strategy: NamingStrategy) -> str:
    if strategy is NamingStrategy.BASENAME:
        return source.name
    if strategy is NamingStrategy.PRESERVE_PATH:
        return relative
    stem = generate_id_from_path(relative) or "resource"
    return f"{stem}{Path(relative).suffix.lower()}"


__all__ = ["assign_names", "normalize_strip_prefix", "strip_path_prefix"]
