"""Skill manifest (SKILL.md) metadata."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional

from .logging import get_logger
from .markdown.parser import extract_h1_title, parse_markdown
from .models import SkillMetadata

logger = get_logger("manifest")


def _frontmatter_str(frontmatter: Mapping[str, Any], key: str) -> Optional[str]:
    value = frontmatter.get(key)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, Mapping) and key == "author":
        name = value.get("name")
        return str(name) if name else None
    return None


def load_skill_metadata(manifest_path: Path) -> SkillMetadata:
    """Read name, description, version, license, and author from a manifest.

    The name comes from frontmatter, then the first H1 heading, then the file
    stem (or the parent directory when the file is the conventional SKILL.md).
    """
    parsed = parse_markdown(manifest_path)
    if parsed.frontmatter_error:
        logger.warning("%s: %s", manifest_path, parsed.frontmatter_error)
    frontmatter = parsed.frontmatter or {}

    name = _frontmatter_str(frontmatter, "name") or extract_h1_title(parsed)
    if not name:
        name = manifest_path.parent.name if manifest_path.stem.upper() == "SKILL" else manifest_path.stem
    return SkillMetadata(
        name=name,
        description=_frontmatter_str(frontmatter, "description"),
        version=_frontmatter_str(frontmatter, "version"),
        license=_frontmatter_str(frontmatter, "license"),
        author=_frontmatter_str(frontmatter, "author"),
    )


__all__ = ["load_skill_metadata"]
