"""Validation package for skill packaging."""

from .base import ValidationContext, ValidationError, ValidationIssue, Validator
from .packaging import (
    DEFAULT_VALIDATORS,
    BrokenLinkValidator,
    ExclusionValidator,
    FrontmatterValidator,
    NamingValidator,
    PackagingReport,
    validate_packaging,
)

__all__ = [
    "BrokenLinkValidator",
    "DEFAULT_VALIDATORS",
    "ExclusionValidator",
    "FrontmatterValidator",
    "NamingValidator",
    "PackagingReport",
    "ValidationContext",
    "ValidationError",
    "ValidationIssue",
    "Validator",
    "validate_packaging",
]
