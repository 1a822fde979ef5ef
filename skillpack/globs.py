"""Glob matching for exclusion rules and crawl filters."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, Optional, Pattern


def normalize_pattern(pattern: str) -> str:
    """Return the pattern in the form matched against posix relative paths."""
    normalized = pattern.strip().replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    normalized = normalized.lstrip("/")
    if normalized.endswith("/"):
        normalized = normalized.rstrip("/") + "/**"
        if "/" not in normalized[:-3]:
            normalized = "**/" + normalized
    elif "/" not in normalized:
        normalized = "**/" + normalized
    return normalized


@lru_cache(maxsize=512)
def compile_glob(pattern: str) -> Pattern[str]:
    """Translate a glob into a regex where ``**`` spans path segments."""
    normalized = normalize_pattern(pattern)
    parts = []
    index = 0
    length = len(normalized)
    while index < length:
        char = normalized[index]
        if normalized.startswith("**/", index):
            parts.append("(?:.*/)?")
            index += 3
            continue
        if normalized.startswith("/**", index) and index + 3 == length:
            parts.append("(?:/.*)?")
            index += 3
            continue
        if normalized.startswith("**", index):
            parts.append(".*")
            index += 2
            continue
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        elif char == "[":
            end = normalized.find("]", index + 1)
            if end == -1:
                parts.append(re.escape(char))
            else:
                body = normalized[index + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                parts.append(f"[{body}]")
                index = end
        else:
            parts.append(re.escape(char))
        index += 1
    return re.compile("^" + "".join(parts) + "$")


def matches_glob(rel_path: str, pattern: str) -> bool:
    """Return True when a posix relative path matches the glob."""
    if not pattern.strip():
        return False
    return compile_glob(pattern).match(rel_path.replace("\\", "/")) is not None


def first_match(rel_path: str, patterns: Iterable[str]) -> Optional[str]:
    for pattern in patterns:
        if matches_glob(rel_path, pattern):
            return pattern
    return None


def matches_any(rel_path: str, patterns: Iterable[str]) -> bool:
    return first_match(rel_path, patterns) is not None


__all__ = ["compile_glob", "first_match", "matches_any", "matches_glob", "normalize_pattern"]
