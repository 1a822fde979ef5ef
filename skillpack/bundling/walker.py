"""Breadth-first walk of the link graph rooted at a skill manifest."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Deque, List, Optional, Set, Tuple

from ..globs import matches_any
from ..logging import get_logger
from ..models import (
    ExcludeReason,
    ExcludedReference,
    ExclusionConfig,
    ExclusionRule,
    LinkType,
    Resource,
    ResolvedLink,
    WalkResult,
)
from ..project import is_within, normalize_path
from ..resource_index import ResourceIndex

NAVIGATION_FILES = (
    "README.md",
    "readme.md",
    "index.md",
    "INDEX.md",
    "toc.md",
    "TOC.md",
    "overview.md",
    "OVERVIEW.md",
)

logger = get_logger("walker")


@dataclass
class WalkOptions:
    """Controls which discovered targets are bundled."""

    project_root: Path
    max_depth: Optional[int] = 2
    exclusion: ExclusionConfig = field(default_factory=ExclusionConfig)
    exclude_navigation_files: bool = True
    navigation_files: Tuple[str, ...] = NAVIGATION_FILES
    skill_root: Optional[Path] = None


def walk_link_graph(root_id: str, index: ResourceIndex, options: WalkOptions) -> WalkResult:
    """Classify every local link reachable from ``root_id``.

    Each target path is classified exactly once, the first time it is discovered.
    Because the walk is breadth-first that is always along a shortest path, so a
    file linked from both a shallow and a deep document gets the shallow depth.
    Never raises for individual links and never touches the filesystem beyond
    existence checks.
    """
    root = index.get(root_id)
    if root is None:
        logger.warning("Root resource %s is not in the index; nothing to walk", root_id)
        return WalkResult(root_id=root_id)

    index.resolve_links()
    walker = _Walker(root, index, options)
    return walker.run()


class _Walker:
    def __init__(self, root: Resource, index: ResourceIndex, options: WalkOptions) -> None:
        self.root = root
        self.index = index
        self.options = options
        self.project_root = normalize_path(options.project_root)
        self.skill_root = normalize_path(options.skill_root or root.file_path.parent)
        self.result = WalkResult(root_id=root.id, root_path=root.file_path)
        self.result.depths[root.id] = 0
        self.classified: Set[Path] = {root.file_path}
        self.queue: Deque[Tuple[Resource, int]] = deque([(root, 0)])

    def run(self) -> WalkResult:
        while self.queue:
            resource, depth = self.queue.popleft()
            for resolved in self.index.resolved_links(resource.id):
                self._visit(resolved, depth)

        bundled_depths = [self.result.depths[rid] for rid in self.result.bundled_resources]
        self.result.max_bundled_depth = max(bundled_depths, default=0)
        logger.debug(
            "Walk from %s bundled %d resources, %d assets, excluded %d targets",
            self.root.id,
            len(self.result.bundled_resources),
            len(self.result.bundled_assets),
            len(self.result.excluded_references),
        )
        return self.result

    def _visit(self, resolved: ResolvedLink, depth: int) -> None:
        if resolved.link.type is not LinkType.LOCAL_FILE or resolved.target_path is None:
            return
        target = resolved.target_path
        if target in self.classified:
            return

        target_resource = self.index.get_by_path(target)
        exclusion = self._exclusion_for(target, target_resource, depth)
        if exclusion is None and target_resource is None and not target.exists():
            logger.debug("Skipping broken link %s -> %s", resolved.source_id, resolved.link.href)
            return

        self.classified.add(target)
        if exclusion is not None:
            reason, rule = exclusion
            logger.debug("Excluding %s (%s)", target, reason.value)
            self.result.excluded_references.append(
                ExcludedReference(
                    path=target,
                    reason=reason,
                    source_id=resolved.source_id,
                    link_text=resolved.link.text,
                    link_href=resolved.link.href,
                    depth=depth,
                    matched_rule=rule,
                )
            )
            return

        if target_resource is not None and target_resource.is_markdown:
            self.result.bundled_resources.append(target_resource.id)
            self.result.depths[target_resource.id] = depth + 1
            self.queue.append((target_resource, depth + 1))
        else:
            self.result.bundled_assets.append(target)
            self.result.depths[str(target)] = depth + 1

    def _exclusion_for(
        self, target: Path, resource: Optional[Resource], depth: int
    ) -> Optional[Tuple[ExcludeReason, Optional[ExclusionRule]]]:
        if not is_within(target, self.project_root):
            return ExcludeReason.OUTSIDE_PROJECT, None
        if target.is_dir():
            return ExcludeReason.DIRECTORY_TARGET, None
        if resource is None:
            if not target.exists():
                return None
            if self.index.is_ignored(target):
                return ExcludeReason.GIT_IGNORED, None
        if self.options.exclude_navigation_files and target.name in self.options.navigation_files:
            return ExcludeReason.NAVIGATION_FILE, None
        rule = self._matching_rule(target)
        if rule is not None:
            return ExcludeReason.PATTERN_MATCHED, rule
        max_depth = self.options.max_depth
        is_markdown = resource is not None and resource.is_markdown
        if is_markdown and max_depth is not None and depth + 1 > max_depth:
            return ExcludeReason.DEPTH_EXCEEDED, None
        return None

    def _matching_rule(self, target: Path) -> Optional[ExclusionRule]:
        candidates: List[str] = [target.relative_to(self.project_root).as_posix()]
        if is_within(target, self.skill_root):
            candidates.append(target.relative_to(self.skill_root).as_posix())
        for rule in self.options.exclusion.rules:
            if any(matches_any(candidate, rule.patterns) for candidate in candidates):
                return rule
        return None


__all__ = ["NAVIGATION_FILES", "WalkOptions", "walk_link_graph"]
