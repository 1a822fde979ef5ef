"""Core data models shared across skillpack components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple


class LinkType(str, Enum):
    """Classification of a link href."""

    LOCAL_FILE = "local_file"
    ANCHOR = "anchor"
    EXTERNAL = "external"
    EMAIL = "email"
    UNKNOWN = "unknown"


class LinkKind(str, Enum):
    """Markdown syntax a link was written in."""

    INLINE = "inline"
    IMAGE = "image"
    REFERENCE = "reference"
    DEFINITION = "definition"
    AUTOLINK = "autolink"


@dataclass
class ParsedLink:
    """A link occurrence with the character offsets needed to rewrite it."""

    text: str
    href: str
    type: LinkType
    kind: LinkKind
    line: int
    span: Tuple[int, int]
    href_span: Optional[Tuple[int, int]] = None
    label: Optional[str] = None


@dataclass
class HeadingNode:
    level: int
    text: str
    slug: str
    line: int


@dataclass
class ParsedMarkdown:
    """Result of parsing one markdown document."""

    content: str
    frontmatter: Optional[Dict[str, Any]] = None
    frontmatter_error: Optional[str] = None
    links: List[ParsedLink] = field(default_factory=list)
    headings: List[HeadingNode] = field(default_factory=list)
    size_bytes: int = 0
    estimated_token_count: int = 0


@dataclass
class ResolvedLink:
    """A parsed link bound to the file it points at, if any."""

    source_id: str
    link: ParsedLink
    target_path: Optional[Path] = None
    target_resource_id: Optional[str] = None
    fragment: Optional[str] = None


@dataclass
class Resource:
    """A crawled file. Never mutated after the crawl apart from link resolution."""

    id: str
    file_path: Path
    relative_path: str
    content_hash: str
    size_bytes: int
    is_markdown: bool = True
    links: List[ParsedLink] = field(default_factory=list)
    headings: List[HeadingNode] = field(default_factory=list)
    frontmatter: Optional[Dict[str, Any]] = None
    parse_error: Optional[str] = None
    resolved_links: List[ResolvedLink] = field(default_factory=list)

    @property
    def file_name(self) -> str:
        return self.file_path.name


class ExcludeReason(str, Enum):
    """Why a discovered link target was left out of the bundle."""

    DEPTH_EXCEEDED = "depth-exceeded"
    PATTERN_MATCHED = "pattern-matched"
    NAVIGATION_FILE = "navigation-file"
    DIRECTORY_TARGET = "directory-target"
    OUTSIDE_PROJECT = "outside-project"
    GIT_IGNORED = "git-ignored"


class LinkHandling(str, Enum):
    """How links to excluded targets are rewritten."""

    STRIP_TO_TEXT = "strip-to-text"
    TEMPLATE = "template"


DEFAULT_LINK_TEMPLATE = "{{link.text}}"


@dataclass(frozen=True)
class ExclusionRule:
    """Glob patterns plus the rewrite applied to links that match them."""

    patterns: Tuple[str, ...] = ()
    handling: LinkHandling = LinkHandling.STRIP_TO_TEXT
    template: Optional[str] = None

    def effective_template(self) -> str:
        if self.handling is LinkHandling.TEMPLATE and self.template:
            return self.template
        return DEFAULT_LINK_TEMPLATE


@dataclass(frozen=True)
class ExclusionConfig:
    """Ordered exclusion rules followed by the catch-all default rule."""

    rules: Tuple[ExclusionRule, ...] = ()
    default: ExclusionRule = field(default_factory=ExclusionRule)


@dataclass
class ExcludedReference:
    """A link target that was discovered but not bundled."""

    path: Path
    reason: ExcludeReason
    source_id: str
    link_text: str
    link_href: str
    depth: int
    matched_rule: Optional[ExclusionRule] = None


@dataclass
class WalkResult:
    """Partition of everything reachable from a skill manifest."""

    root_id: str
    root_path: Optional[Path] = None
    bundled_resources: List[str] = field(default_factory=list)
    bundled_assets: List[Path] = field(default_factory=list)
    excluded_references: List[ExcludedReference] = field(default_factory=list)
    max_bundled_depth: int = 0
    depths: Dict[str, int] = field(default_factory=dict)

    def excluded_by_path(self) -> Dict[Path, ExcludedReference]:
        return {ref.path: ref for ref in self.excluded_references}

    def is_bundled(self, resource_id: str) -> bool:
        return resource_id in self.bundled_resources


class NamingStrategy(str, Enum):
    """How bundled files are named under resources/."""

    BASENAME = "basename"
    RESOURCE_ID = "resource-id"
    PRESERVE_PATH = "preserve-path"


@dataclass
class NamingPlan:
    """Injective mapping from bundled source files to paths under resources/."""

    strategy: NamingStrategy
    entries: Dict[Path, str] = field(default_factory=dict)

    def path_for(self, source: Path) -> Optional[str]:
        return self.entries.get(source)

    def output_paths(self) -> List[str]:
        return list(self.entries.values())


@dataclass
class SkillMetadata:
    """Identity of a skill as declared in its manifest."""

    name: str
    description: Optional[str] = None
    version: Optional[str] = None
    license: Optional[str] = None
    author: Optional[str] = None


@dataclass
class BuildResult:
    """Summary of one packaging run."""

    output_path: Path
    skill: SkillMetadata
    walk: WalkResult
    plan: NamingPlan
    root: str = "SKILL.md"
    dependencies: List[str] = field(default_factory=list)
    excluded_references: List[str] = field(default_factory=list)
    excluded_details: List[Mapping[str, str]] = field(default_factory=list)
    max_bundled_depth: int = 0
    artifacts: Dict[str, Path] = field(default_factory=dict)

    @property
    def excluded_reference_count(self) -> int:
        return len(self.excluded_references)


__all__ = [
    "BuildResult",
    "DEFAULT_LINK_TEMPLATE",
    "ExcludeReason",
    "ExcludedReference",
    "ExclusionConfig",
    "ExclusionRule",
    "HeadingNode",
    "LinkHandling",
    "LinkKind",
    "LinkType",
    "NamingPlan",
    "NamingStrategy",
    "ParsedLink",
    "ParsedMarkdown",
    "Resource",
    "ResolvedLink",
    "SkillMetadata",
    "WalkResult",
]
