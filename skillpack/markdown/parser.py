"""Markdown parsing for link, heading, and frontmatter extraction.

The parser works on a *masked* copy of the document in which frontmatter, fenced
code blocks, and inline code spans are blanked out (newlines preserved). Every
structural decision is made against the masked text while link text and hrefs
are sliced from the original, so reported offsets can be used to rewrite the
source file in place.
"""

from __future__ import annotations

import bisect
import math
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..models import HeadingNode, LinkKind, LinkType, ParsedLink, ParsedMarkdown

_FENCE_PATTERN = re.compile(r"^ {0,3}(`{3,}|~{3,})")
_INLINE_CODE_PATTERN = re.compile(r"(?<!`)(`+)(?!`)(.+?)(?<!`)\1(?!`)")
_DEFINITION_PATTERN = re.compile(
    r"^ {0,3}\[(?P<label>[^\]\n^][^\]\n]*)\]:[ \t]*"
    r"(?:<(?P<angle>[^>\n]*)>|(?P<bare>\S+))"
    r"(?:[ \t]+(?:\"[^\"\n]*\"|'[^'\n]*'|\([^)\n]*\)))?[ \t]*$",
    re.MULTILINE,
)
_AUTOLINK_PATTERN = re.compile(r"<((?:https?|mailto):[^\s<>]+)>", re.IGNORECASE)
_HEADING_PATTERN = re.compile(r"^ {0,3}(#{1,6})[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$", re.MULTILINE)
_SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")


def classify_link(href: str) -> LinkType:
    """Classify an href the way the bundler needs to treat it."""
    target = href.strip()
    lowered = target.lower()
    if lowered.startswith(("http://", "https://")):
        return LinkType.EXTERNAL
    if lowered.startswith("mailto:"):
        return LinkType.EMAIL
    if target.startswith("#"):
        return LinkType.ANCHOR
    if "#" in target:
        return LinkType.LOCAL_FILE
    if lowered.endswith(".md"):
        return LinkType.LOCAL_FILE
    if target.startswith(("./", "../", "/")):
        return LinkType.LOCAL_FILE
    if _SCHEME_PATTERN.match(target):
        return LinkType.UNKNOWN
    return LinkType.LOCAL_FILE


def normalize_label(label: str) -> str:
    return " ".join(label.split()).casefold()


def slugify_heading(title: str) -> str:
    slug = title.lower()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def parse_markdown(path: Path) -> ParsedMarkdown:
    """Read and parse a markdown file."""
    content = path.read_text(encoding="utf-8")
    parsed = parse_markdown_text(content)
    parsed.size_bytes = path.stat().st_size
    return parsed


def parse_markdown_text(content: str) -> ParsedMarkdown:
    """Parse markdown text into frontmatter, headings, and link spans."""
    chars = list(content)
    frontmatter, frontmatter_error, fm_end = _extract_frontmatter(content)
    _blank(chars, 0, fm_end)
    _mask_fenced_blocks(content, chars, fm_end)
    masked = "".join(chars)
    masked = _mask_inline_code(masked)

    line_starts = [0] + [match.end() for match in re.finditer(r"\n", content)]

    definitions, links = _collect_definitions(content, masked, line_starts)
    scanner = _LinkScanner(content, masked, line_starts, definitions)
    links.extend(scanner.scan(0, len(masked)))
    links.extend(_collect_autolinks(content, masked, line_starts, links))
    links.sort(key=lambda link: link.span[0])

    headings = _collect_headings(content, masked, line_starts)
    return ParsedMarkdown(
        content=content,
        frontmatter=frontmatter,
        frontmatter_error=frontmatter_error,
        links=links,
        headings=headings,
        size_bytes=len(content.encode("utf-8")),
        estimated_token_count=math.ceil(len(content) / 4),
    )


def extract_h1_title(parsed: ParsedMarkdown) -> Optional[str]:
    """Return the text of the first level-one heading, if any."""
    for heading in parsed.headings:
        if heading.level == 1 and heading.text:
            return heading.text
    return None


def _blank(chars: List[str], start: int, end: int) -> None:
    for index in range(start, end):
        if chars[index] != "\n":
            chars[index] = " "


def _extract_frontmatter(content: str) -> Tuple[Optional[Dict[str, Any]], Optional[str], int]:
    offset = 1 if content.startswith("\ufeff") else 0
    lines = content[offset:].split("\n")
    if not lines or lines[0].rstrip() != "---":
        return None, None, 0

    position = offset + len(lines[0]) + 1
    body: List[str] = []
    for line in lines[1:]:
        if line.rstrip() in {"---", "..."}:
            end = min(position + len(line) + 1, len(content))
            break
        body.append(line)
        position += len(line) + 1
    else:
        return None, None, 0

    try:
        loaded = yaml.safe_load("\n".join(body))
    except yaml.YAMLError as exc:
        return None, f"Invalid YAML frontmatter: {exc}", end
    if loaded is None:
        return {}, None, end
    if not isinstance(loaded, dict):
        return None, "Frontmatter must be a YAML mapping", end
    return loaded, None, end


def _mask_fenced_blocks(content: str, chars: List[str], start: int) -> None:
    fence: Optional[str] = None
    block_start = 0
    position = 0
    for line in content.split("\n"):
        line_end = position + len(line)
        if position >= start:
            if fence is None:
                match = _FENCE_PATTERN.match(line)
                if match:
                    fence = match.group(1)
                    block_start = position
            else:
                stripped = line.strip()
                if (
                    stripped
                    and stripped[0] == fence[0]
                    and set(stripped) == {fence[0]}
                    and len(stripped) >= len(fence)
                ):
                    _blank(chars, block_start, line_end)
                    fence = None
        position = line_end + 1
    if fence is not None:
        _blank(chars, block_start, len(content))


def _mask_inline_code(masked: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        return " " * len(match.group(0))

    return _INLINE_CODE_PATTERN.sub(_replace, masked)


def _line_for(line_starts: List[int], offset: int) -> int:
    return bisect.bisect_right(line_starts, offset)


def _collect_definitions(
    content: str, masked: str, line_starts: List[int]
) -> Tuple[Dict[str, str], List[ParsedLink]]:
    definitions: Dict[str, str] = {}
    links: List[ParsedLink] = []
    for match in _DEFINITION_PATTERN.finditer(masked):
        group = "angle" if match.group("angle") is not None else "bare"
        href_start, href_end = match.span(group)
        href = content[href_start:href_end]
        label = content[match.start("label") : match.end("label")]
        key = normalize_label(label)
        if key in definitions:
            continue
        definitions[key] = href
        links.append(
            ParsedLink(
                text=label,
                href=href,
                type=classify_link(href),
                kind=LinkKind.DEFINITION,
                line=_line_for(line_starts, match.start()),
                span=(match.start(), match.end()),
                href_span=(href_start, href_end),
                label=label,
            )
        )
    return definitions, links


def _collect_autolinks(
    content: str, masked: str, line_starts: List[int], existing: List[ParsedLink]
) -> List[ParsedLink]:
    occupied = [link.span for link in existing]
    found: List[ParsedLink] = []
    for match in _AUTOLINK_PATTERN.finditer(masked):
        start, end = match.span()
        if any(span_start <= start < span_end for span_start, span_end in occupied):
            continue
        href = content[match.start(1) : match.end(1)]
        found.append(
            ParsedLink(
                text=href,
                href=href,
                type=classify_link(href),
                kind=LinkKind.AUTOLINK,
                line=_line_for(line_starts, start),
                span=(start, end),
                href_span=match.span(1),
            )
        )
    return found


def _collect_headings(content: str, masked: str, line_starts: List[int]) -> List[HeadingNode]:
    headings: List[HeadingNode] = []
    for match in _HEADING_PATTERN.finditer(masked):
        line_end = content.find("\n", match.start())
        original = _HEADING_PATTERN.match(
            content, match.start(), line_end if line_end != -1 else len(content)
        )
        if original is None:
            continue
        text = original.group(2).strip()
        headings.append(
            HeadingNode(
                level=len(match.group(1)),
                text=text,
                slug=slugify_heading(text),
                line=_line_for(line_starts, match.start()),
            )
        )
    return headings


class _LinkScanner:
    """Finds inline links, images, and reference usages in masked markdown."""

    def __init__(
        self,
        content: str,
        masked: str,
        line_starts: List[int],
        definitions: Dict[str, str],
    ) -> None:
        self.content = content
        self.masked = masked
        self.line_starts = line_starts
        self.definitions = definitions
        self._definition_lines = {
            _line_for(line_starts, match.start()) for match in _DEFINITION_PATTERN.finditer(masked)
        }

    def scan(self, start: int, end: int) -> List[ParsedLink]:
        links: List[ParsedLink] = []
        masked = self.masked
        index = start
        while index < end:
            char = masked[index]
            if char == "\\":
                index += 2
                continue
            if char != "[":
                index += 1
                continue
            if _line_for(self.line_starts, index) in self._definition_lines:
                index += 1
                continue
            close = self._match_bracket(index, end)
            if close is None:
                index += 1
                continue
            is_image = index > 0 and masked[index - 1] == "!" and not self._escaped(index - 1)
            link_start = index - 1 if is_image else index
            text = self.content[index + 1 : close]

            inline = self._parse_inline_destination(close + 1, end)
            if inline is not None:
                href_span, link_end = inline
                href = self.content[href_span[0] : href_span[1]]
                links.append(
                    ParsedLink(
                        text=text,
                        href=href,
                        type=classify_link(href),
                        kind=LinkKind.IMAGE if is_image else LinkKind.INLINE,
                        line=_line_for(self.line_starts, link_start),
                        span=(link_start, link_end),
                        href_span=href_span,
                    )
                )
                links.extend(self.scan(index + 1, close))
                index = link_end
                continue

            reference = self._parse_reference(index, close, end)
            if reference is not None:
                label, link_end = reference
                href = self.definitions[normalize_label(label)]
                links.append(
                    ParsedLink(
                        text=text,
                        href=href,
                        type=classify_link(href),
                        kind=LinkKind.REFERENCE,
                        line=_line_for(self.line_starts, link_start),
                        span=(link_start, link_end),
                        label=label,
                    )
                )
                links.extend(self.scan(index + 1, close))
                index = link_end
                continue
            index += 1
        return links

    def _escaped(self, position: int) -> bool:
        backslashes = 0
        cursor = position - 1
        while cursor >= 0 and self.masked[cursor] == "\\":
            backslashes += 1
            cursor -= 1
        return backslashes % 2 == 1

    def _match_bracket(self, open_index: int, end: int) -> Optional[int]:
        masked = self.masked
        depth = 0
        index = open_index
        while index < end:
            char = masked[index]
            if char == "\\":
                index += 2
                continue
            if char == "\n" and masked[index + 1 : index + 2] == "\n":
                return None
            if char == "[":
                depth += 1
            elif char == "]":
                depth -= 1
                if depth == 0:
                    return index
            index += 1
        return None

    def _skip_spaces(self, index: int, end: int, *, allow_newline: bool = True) -> int:
        newline_seen = False
        while index < end and self.masked[index] in " \t\n":
            if self.masked[index] == "\n":
                if newline_seen or not allow_newline:
                    break
                newline_seen = True
            index += 1
        return index

    def _parse_inline_destination(
        self, index: int, end: int
    ) -> Optional[Tuple[Tuple[int, int], int]]:
        masked = self.masked
        if index >= end or masked[index] != "(":
            return None
        cursor = self._skip_spaces(index + 1, end)
        if cursor < end and masked[cursor] == "<":
            close = masked.find(">", cursor + 1, end)
            if close == -1 or "\n" in masked[cursor:close]:
                return None
            href_span = (cursor + 1, close)
            cursor = close + 1
        else:
            href_start = cursor
            depth = 0
            while cursor < end:
                char = masked[cursor]
                if char == "\\":
                    cursor += 2
                    continue
                if char in " \t\n":
                    break
                if char == "(":
                    depth += 1
                elif char == ")":
                    if depth == 0:
                        break
                    depth -= 1
                cursor += 1
            cursor = min(cursor, end)
            href_span = (href_start, cursor)

        cursor = self._skip_spaces(cursor, end)
        if cursor < end and masked[cursor] in "\"'(":
            closer = ")" if masked[cursor] == "(" else masked[cursor]
            title_end = masked.find(closer, cursor + 1, end)
            if title_end == -1 or "\n\n" in masked[cursor:title_end]:
                return None
            cursor = self._skip_spaces(title_end + 1, end)
        if cursor < end and masked[cursor] == ")":
            return href_span, cursor + 1
        return None

    def _parse_reference(self, open_index: int, close: int, end: int) -> Optional[Tuple[str, int]]:
        masked = self.masked
        following = close + 1
        if following < end and masked[following] == "[":
            label_close = masked.find("]", following + 1, end)
            if label_close == -1:
                return None
            label = self.content[following + 1 : label_close]
            if not label.strip():
                label = self.content[open_index + 1 : close]
            if normalize_label(label) in self.definitions:
                return label, label_close + 1
            return None
        if following < end and masked[following] in "(:":
            return None
        label = self.content[open_index + 1 : close]
        if normalize_label(label) in self.definitions:
            return label, close + 1
        return None


__all__ = [
    "classify_link",
    "extract_h1_title",
    "normalize_label",
    "parse_markdown",
    "parse_markdown_text",
    "slugify_heading",
]
