"""Span-based rewriting of links in bundled markdown."""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union
from urllib.parse import quote

from ..logging import get_logger
from ..markdown.parser import parse_markdown_text
from ..models import (
    ExcludeReason,
    ExcludedReference,
    ExclusionConfig,
    LinkKind,
    NamingPlan,
    ParsedLink,
    Resource,
    WalkResult,
)
from ..project import is_within
from ..resource_index import ResourceIndex
from .templates import build_template_context, render_template

MANIFEST_NAME = "SKILL.md"
RESOURCES_DIR = "resources"

_BLANK_RUN_PATTERN = re.compile(r"\n{3,}")
_UNSAFE_HREF_CHARS = set(" ()<>")

logger = get_logger("rewriter")


@dataclass(frozen=True)
class Keep:
    """Leave the link untouched."""


@dataclass(frozen=True)
class Retarget:
    """Point the link at a new href, keeping the surrounding syntax."""

    href: str


@dataclass(frozen=True)
class Replace:
    """Replace the whole link syntax with plain text."""

    text: str


Decision = Union[Keep, Retarget, Replace]


def rewrite_content(
    content: str,
    links: Iterable[ParsedLink],
    resolve: Callable[[ParsedLink], Decision],
) -> str:
    """Apply per-link decisions to ``content`` using the parsed spans.

    Edits are applied from the end of the document backwards so earlier
    offsets stay valid. An edit nested inside a replaced link (for example an
    image inside a stripped link) is dropped along with its parent.
    """
    edits: List[Tuple[int, int, str]] = []
    removed_definition = False
    for link in links:
        decision = resolve(link)
        if isinstance(decision, Retarget):
            if link.href_span is None:
                continue
            start, end = link.href_span
            edits.append((start, end, _escape_href(decision.href)))
        elif isinstance(decision, Replace):
            if link.kind is LinkKind.DEFINITION:
                start, end = _line_bounds(content, link.span)
                edits.append((start, end, ""))
                removed_definition = True
            else:
                start, end = link.span
                edits.append((start, end, decision.text))

    accepted: List[Tuple[int, int, str]] = []
    for start, end, text in sorted(edits, key=lambda edit: (edit[0], -edit[1])):
        if accepted and start < accepted[-1][1]:
            continue
        accepted.append((start, end, text))

    result = content
    for start, end, text in reversed(accepted):
        result = result[:start] + text + result[end:]
    if removed_definition:
        result = _BLANK_RUN_PATTERN.sub("\n\n", result)
    return result


def _line_bounds(content: str, span: Tuple[int, int]) -> Tuple[int, int]:
    start = content.rfind("\n", 0, span[0]) + 1
    end = content.find("\n", span[1])
    return start, len(content) if end == -1 else end + 1


def _escape_href(href: str) -> str:
    if any(char in _UNSAFE_HREF_CHARS for char in href):
        return quote(href, safe="/#.-_~")
    return href


class LinkRewriter:
    """Decides how every link in a bundled file is rewritten."""

    def __init__(
        self,
        walk: WalkResult,
        plan: NamingPlan,
        index: ResourceIndex,
        exclusion: ExclusionConfig,
        *,
        skill_name: str,
    ) -> None:
        self.walk = walk
        self.plan = plan
        self.index = index
        self.exclusion = exclusion
        self.skill_name = skill_name
        self._excluded: Dict[Path, ExcludedReference] = walk.excluded_by_path()
        self._outputs: Dict[Path, str] = {
            source: f"{RESOURCES_DIR}/{relative}" for source, relative in plan.entries.items()
        }
        if walk.root_path is not None:
            self._outputs[walk.root_path] = MANIFEST_NAME

    def output_path_for(self, source: Path) -> Optional[str]:
        """Output location of ``source`` relative to the bundle root."""
        return self._outputs.get(source)

    def rewrite(self, resource: Resource, content: str) -> str:
        """Return ``content`` (the current text of ``resource``) with links rewritten."""
        source_output = self.output_path_for(resource.file_path)
        if source_output is None:
            raise KeyError(f"{resource.file_path} is not part of this bundle")
        parsed = parse_markdown_text(content)
        source_dir = posixpath.dirname(source_output)

        def _decide(link: ParsedLink) -> Decision:
            resolved = self.index.resolve_link(resource, link)
            target = resolved.target_path
            if target is None:
                return Keep()

            target_output = self._outputs.get(target)
            if target_output is not None:
                if link.kind is LinkKind.REFERENCE:
                    return Keep()
                href = posixpath.relpath(target_output, source_dir or ".")
                if resolved.fragment:
                    href = f"{href}#{resolved.fragment}"
                return Retarget(href)

            excluded = self._excluded.get(target)
            if excluded is None:
                return Keep()
            if link.kind is LinkKind.DEFINITION:
                return Replace("")
            return Replace(self._render(link, excluded, resolved.target_resource_id))

        rewritten = rewrite_content(content, parsed.links, _decide)
        if rewritten != content:
            logger.debug("Rewrote links in %s", resource.relative_path)
        return rewritten

    def _render(self, link: ParsedLink, excluded: ExcludedReference, resource_id: Optional[str]) -> str:
        if excluded.reason is ExcludeReason.PATTERN_MATCHED and excluded.matched_rule is not None:
            rule = excluded.matched_rule
        else:
            rule = self.exclusion.default
        relative_path = None
        if is_within(excluded.path, self.index.base_dir):
            relative_path = excluded.path.relative_to(self.index.base_dir).as_posix()
        context = build_template_context(
            link,
            skill_name=self.skill_name,
            target_path=excluded.path,
            resource_id=resource_id,
            relative_path=relative_path,
            reason=excluded.reason,
        )
        return render_template(rule.effective_template(), context)


__all__ = [
    "Decision",
    "Keep",
    "LinkRewriter",
    "MANIFEST_NAME",
    "RESOURCES_DIR",
    "Replace",
    "Retarget",
    "rewrite_content",
]
