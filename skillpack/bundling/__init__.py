"""Link-graph walking, naming, rewriting, and artifact output for skill bundles."""

from .artifacts import ARTIFACT_FORMATS, build_artifacts
from .naming import assign_names
from .rewriter import LinkRewriter, rewrite_content
from .templates import render_template
from .walker import NAVIGATION_FILES, WalkOptions, walk_link_graph

__all__ = [
    "ARTIFACT_FORMATS",
    "LinkRewriter",
    "NAVIGATION_FILES",
    "WalkOptions",
    "assign_names",
    "build_artifacts",
    "render_template",
    "rewrite_content",
    "walk_link_graph",
]
