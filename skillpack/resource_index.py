"""Project crawling and the resource index the link walker traverses."""

from __future__ import annotations

import hashlib
import os
import re
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence
from urllib.parse import unquote

from .globs import matches_any
from .logging import get_logger
from .markdown.parser import parse_markdown
from .models import LinkType, ParsedLink, Resource, ResolvedLink
from .project import normalize_path

DEFAULT_INCLUDE = ("**/*.md",)
MARKDOWN_SUFFIXES = {".md", ".markdown"}

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "venv",
    "node_modules",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".idea",
    ".turbo",
}

_EXCLUDED_FILES = {
    ".DS_Store",
    "Thumbs.db",
}

logger = get_logger("resource_index")


@dataclass
class IgnoreRule:
    """Represents an ignore rule parsed from a .gitignore file."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool
    base: str = ""

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        target = rel_path
        if self.base:
            prefix = f"{self.base}/"
            if not target.startswith(prefix):
                return False
            target = target[len(prefix) :]

        if self.anchored or self.has_slash:
            if fnmatchcase(target, self.pattern):
                return True
            if "**" in self.pattern and fnmatchcase(target, self.pattern.replace("**/", "")):
                return True
            return False

        return fnmatchcase(target.rsplit("/", 1)[-1], self.pattern)


def _build_ignore_rule(pattern: str, negate: bool = False, base: str = "") -> IgnoreRule | None:
    pattern = pattern.strip()
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    has_slash = "/" in pattern
    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash=has_slash,
        base=base,
    )


def _parse_gitignore(path: Path, base: str = "") -> List[IgnoreRule]:
    if not path.is_file():
        return []

    rules: List[IgnoreRule] = []
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Could not read %s: %s", path, exc)
        return []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        rule = _build_ignore_rule(line, negate=negate, base=base)
        if rule is not None:
            rules.append(rule)
    return rules


def _should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


def _hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def generate_id_from_path(relative_path: str) -> str:
    """Derive a kebab-case resource id from a relative file path."""
    stem = relative_path.replace("\\", "/")
    suffix = Path(stem).suffix
    if suffix:
        stem = stem[: -len(suffix)]
    slug = stem.replace("/", "-")
    slug = re.sub(r"[_\s]+", "-", slug).lower()
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


class ResourceIndex:
    """Crawled view of a project: every included file parsed exactly once."""

    def __init__(
        self,
        base_dir: Path,
        *,
        include: Sequence[str] = DEFAULT_INCLUDE,
        exclude: Sequence[str] = (),
        exclude_dirs: Sequence[Path] = (),
        respect_gitignore: bool = True,
    ) -> None:
        self.base_dir = normalize_path(Path(base_dir))
        self.include = tuple(include) or DEFAULT_INCLUDE
        self.exclude = tuple(exclude)
        self.exclude_dirs = tuple(normalize_path(Path(path)) for path in exclude_dirs)
        self.respect_gitignore = respect_gitignore
        self._rules: List[IgnoreRule] = []
        self._by_id: Dict[str, Resource] = {}
        self._by_path: Dict[Path, str] = {}
        self._resolved: set[str] = set()

    @classmethod
    def crawl(
        cls,
        base_dir: Path,
        include: Sequence[str] = DEFAULT_INCLUDE,
        exclude: Sequence[str] = (),
        *,
        exclude_dirs: Sequence[Path] = (),
        respect_gitignore: bool = True,
    ) -> "ResourceIndex":
        """Crawl ``base_dir`` and return a populated index."""
        index = cls(
            base_dir,
            include=include,
            exclude=exclude,
            exclude_dirs=exclude_dirs,
            respect_gitignore=respect_gitignore,
        )
        if not index.base_dir.exists():
            raise FileNotFoundError(f"Project path not found: {base_dir}")
        if not index.base_dir.is_dir():
            raise NotADirectoryError(f"Project path is not a directory: {base_dir}")

        for path in index._iter_files():
            rel_path = path.relative_to(index.base_dir).as_posix()
            if not matches_any(rel_path, index.include):
                continue
            index._add(path, rel_path)
        logger.debug("Indexed %d resources under %s", len(index), index.base_dir)
        return index

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[Resource]:
        return iter(self._by_id.values())

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._by_id

    def get(self, resource_id: str) -> Optional[Resource]:
        return self._by_id.get(resource_id)

    def get_by_path(self, path: Path) -> Optional[Resource]:
        resource_id = self._by_path.get(normalize_path(Path(path)))
        return self._by_id.get(resource_id) if resource_id else None

    def by_name(self, file_name: str) -> List[Resource]:
        return [resource for resource in self if resource.file_name == file_name]

    def by_hash(self, content_hash: str) -> List[Resource]:
        return [resource for resource in self if resource.content_hash == content_hash]

    def add_resource(self, path: Path) -> Resource:
        """Index a single file outside the crawl (e.g. a manifest not matched by include globs)."""
        normalized = normalize_path(Path(path))
        existing = self.get_by_path(normalized)
        if existing is not None:
            return existing
        try:
            rel_path = normalized.relative_to(self.base_dir).as_posix()
        except ValueError:
            rel_path = normalized.name
        return self._add(normalized, rel_path)

    def resolve_links(self) -> None:
        """Bind every local link to its target path and, when crawled, its resource."""
        for resource in self:
            if resource.id in self._resolved:
                continue
            resource.resolved_links = [self.resolve_link(resource, link) for link in resource.links]
            self._resolved.add(resource.id)

    def resolved_links(self, resource_id: str) -> List[ResolvedLink]:
        resource = self._by_id[resource_id]
        if resource_id not in self._resolved:
            self.resolve_links()
        return resource.resolved_links

    def is_ignored(self, path: Path) -> bool:
        """Return True when ``path`` is excluded by ignore files, crawl excludes, or tooling dirs."""
        normalized = normalize_path(Path(path))
        if any(normalized == excluded or excluded in normalized.parents for excluded in self.exclude_dirs):
            return True
        try:
            rel_path = normalized.relative_to(self.base_dir).as_posix()
        except ValueError:
            return False
        parts = rel_path.split("/")
        if any(part in _EXCLUDED_DIRS for part in parts[:-1]):
            return True
        if self.exclude and matches_any(rel_path, self.exclude):
            return True
        for depth in range(1, len(parts)):
            if _should_ignore("/".join(parts[:depth]), True, self._rules):
                return True
        return _should_ignore(rel_path, normalized.is_dir(), self._rules)

    def _iter_files(self) -> Iterator[Path]:
        root = self.base_dir
        for dirpath, dirnames, filenames in os.walk(root):
            current_dir = Path(dirpath)
            rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""
            if self.respect_gitignore:
                self._rules.extend(_parse_gitignore(current_dir / ".gitignore", base=rel_dir))

            dirnames[:] = sorted(name for name in dirnames if name not in _EXCLUDED_DIRS)

            filtered_dirs = []
            for name in dirnames:
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if self._skip(current_dir / name, rel_path, True):
                    continue
                filtered_dirs.append(name)
            dirnames[:] = filtered_dirs

            for filename in sorted(filenames):
                if filename in _EXCLUDED_FILES:
                    continue
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if self._skip(current_dir / filename, rel_path, False):
                    continue
                yield current_dir / filename

    def _skip(self, path: Path, rel_path: str, is_dir: bool) -> bool:
        if any(path == excluded for excluded in self.exclude_dirs):
            return True
        if self.exclude and matches_any(rel_path, self.exclude):
            return True
        return _should_ignore(rel_path, is_dir, self._rules)

    def _add(self, path: Path, rel_path: str) -> Resource:
        path = normalize_path(path)
        is_markdown = path.suffix.lower() in MARKDOWN_SUFFIXES
        try:
            content_hash = _hash_file(path)
            size = path.stat().st_size
        except OSError as exc:
            logger.warning("Could not read %s: %s", path, exc)
            content_hash, size = "", 0

        resource = Resource(
            id=self._unique_id(generate_id_from_path(rel_path) or "resource"),
            file_path=path,
            relative_path=rel_path,
            content_hash=content_hash,
            size_bytes=size,
            is_markdown=is_markdown,
        )
        if is_markdown:
            try:
                parsed = parse_markdown(path)
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Failed to parse %s; indexing without links: %s", rel_path, exc)
                resource.parse_error = str(exc)
            else:
                resource.links = parsed.links
                resource.headings = parsed.headings
                resource.frontmatter = parsed.frontmatter
                if parsed.frontmatter_error:
                    logger.warning("%s: %s", rel_path, parsed.frontmatter_error)

        self._by_id[resource.id] = resource
        self._by_path[path] = resource.id
        return resource

    def _unique_id(self, base_id: str) -> str:
        if base_id not in self._by_id:
            return base_id
        counter = 2
        while f"{base_id}-{counter}" in self._by_id:
            counter += 1
        return f"{base_id}-{counter}"

    def resolve_link(self, resource: Resource, link: ParsedLink) -> ResolvedLink:
        """Bind one parsed link found in ``resource`` to its target."""
        resolved = ResolvedLink(source_id=resource.id, link=link)
        if link.type is not LinkType.LOCAL_FILE:
            return resolved

        path_part, _, fragment = link.href.strip().partition("#")
        resolved.fragment = fragment or None
        path_part = path_part.split("?", 1)[0]
        if not path_part:
            return resolved

        decoded = unquote(path_part).replace("\\", "/")
        if decoded.startswith("/"):
            target = self.base_dir / decoded.lstrip("/")
        else:
            target = resource.file_path.parent / decoded
        resolved.target_path = normalize_path(target)
        resolved.target_resource_id = self._by_path.get(resolved.target_path)
        return resolved


__all__ = [
    "DEFAULT_INCLUDE",
    "IgnoreRule",
    "ResourceIndex",
    "generate_id_from_path",
]
