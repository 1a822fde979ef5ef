"""Rendering of replacement text for links to excluded targets."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Mapping, Optional

from ..models import ExcludeReason, ParsedLink

_TOKEN_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_.]+)\s*\}\}")

TEMPLATE_KEYS = (
    "link.text",
    "link.href",
    "link.fragment",
    "link.type",
    "link.resource.id",
    "link.resource.fileName",
    "link.resource.filePath",
    "link.resource.relativePath",
    "link.resource.extension",
    "skill.name",
    "excludeReason",
)


def render_template(template: str, context: Mapping[str, str]) -> str:
    """Substitute ``{{ key }}`` tokens from a fixed lookup table; unknown keys render empty."""
    return _TOKEN_PATTERN.sub(lambda match: context.get(match.group(1), ""), template)


def build_template_context(
    link: ParsedLink,
    *,
    skill_name: str,
    target_path: Optional[Path] = None,
    resource_id: Optional[str] = None,
    relative_path: Optional[str] = None,
    reason: Optional[ExcludeReason] = None,
) -> Dict[str, str]:
    href, _, fragment = link.href.strip().partition("#")
    context = {
        "link.text": link.text,
        "link.href": href,
        "link.fragment": f"#{fragment}" if fragment else "",
        "link.type": link.type.value,
        "link.resource.id": resource_id or "",
        "link.resource.fileName": target_path.name if target_path else "",
        "link.resource.filePath": str(target_path) if target_path else "",
        "link.resource.relativePath": relative_path or "",
        "link.resource.extension": target_path.suffix if target_path else "",
        "skill.name": skill_name,
        "excludeReason": reason.value if reason else "",
    }
    return context


__all__ = ["TEMPLATE_KEYS", "build_template_context", "render_template"]
