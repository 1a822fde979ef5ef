"""Core validation data structures."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Protocol, Sequence

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from skillpack.config import PackagingOptions
    from skillpack.models import WalkResult
    from skillpack.resource_index import ResourceIndex

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"
SEVERITY_INFO = "info"


@dataclass
class ValidationIssue:
    """Represents a single packaging problem."""

    severity: str
    code: str
    message: str
    path: Optional[str] = None
    source: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.severity == SEVERITY_ERROR


class ValidationError(RuntimeError):
    """Raised when validation fails with one or more errors."""

    def __init__(self, message: str, issues: Sequence[ValidationIssue]) -> None:
        super().__init__(message)
        self.issues = list(issues)


@dataclass
class ValidationContext:
    """Everything a validator may inspect; produced without writing any output."""

    manifest_path: Path
    skill_root: Path
    index: "ResourceIndex"
    walk: "WalkResult"
    options: "PackagingOptions"

    def display(self, path: Path) -> str:
        for root in (self.skill_root, self.index.base_dir):
            try:
                return path.relative_to(root).as_posix()
            except ValueError:
                continue
        return str(path)


class Validator(Protocol):
    """Protocol implemented by packaging validators."""

    name: str

    def validate(self, context: ValidationContext) -> List[ValidationIssue]:
        """Run validation and return any issues."""
