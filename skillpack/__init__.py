"""Skill packaging toolkit: link-graph walking, bundling, and artifact generation."""

from .packager import PackagingOptions, SkillPackager, package_skill

__version__ = "0.1.0"

__all__ = ["PackagingOptions", "SkillPackager", "package_skill", "__version__"]
