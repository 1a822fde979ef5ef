"""Exception types raised by the packaging pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class SkillPackError(RuntimeError):
    """Base class for fatal packaging failures."""


class ManifestNotFoundError(FileNotFoundError, SkillPackError):
    """Raised when the SKILL.md manifest passed to the packager does not exist."""

    def __init__(self, manifest_path: Path) -> None:
        super().__init__(f"Skill manifest not found: {manifest_path}")
        self.manifest_path = manifest_path


class NamingCollisionError(SkillPackError):
    """Raised when two bundled files would be written to the same output path."""

    def __init__(self, output_path: str, sources: Sequence[Path], strategy: str) -> None:
        listed = ", ".join(str(source) for source in sources)
        super().__init__(
            f"Filename collision detected: {listed} would both be written to "
            f"resources/{output_path} (naming strategy '{strategy}'). "
            "Use the 'resource-id' or 'preserve-path' naming strategy to disambiguate."
        )
        self.output_path = output_path
        self.sources = list(sources)
        self.strategy = strategy


class PackageRootNotFoundError(SkillPackError):
    """Raised when no output path was given and no package root could be located."""

    def __init__(self, manifest_path: Path) -> None:
        super().__init__(
            f"Could not find a package root (package.json or pyproject.toml) above {manifest_path}; "
            "pass an explicit output path."
        )
        self.manifest_path = manifest_path


__all__ = [
    "ManifestNotFoundError",
    "NamingCollisionError",
    "PackageRootNotFoundError",
    "SkillPackError",
]
