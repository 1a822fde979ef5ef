"""Markdown parsing helpers."""

from .parser import (
    classify_link,
    extract_h1_title,
    normalize_label,
    parse_markdown,
    parse_markdown_text,
    slugify_heading,
)

__all__ = [
    "classify_link",
    "extract_h1_title",
    "normalize_label",
    "parse_markdown",
    "parse_markdown_text",
    "slugify_heading",
]
