"""Validators that report packaging problems before anything is written."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..bundling.naming import assign_names
from ..config import PackagingOptions
from ..errors import NamingCollisionError
from ..markdown.parser import parse_markdown
from ..models import ExcludeReason, LinkKind, LinkType
from ..packager import SkillPackager
from .base import (
    SEVERITY_ERROR,
    SEVERITY_INFO,
    SEVERITY_WARNING,
    ValidationContext,
    ValidationError,
    ValidationIssue,
    Validator,
)

_EXCLUSION_ISSUES: Dict[ExcludeReason, Tuple[str, str, str]] = {
    ExcludeReason.OUTSIDE_PROJECT: (
        SEVERITY_ERROR,
        "OUTSIDE_PROJECT_BOUNDARY",
        "links outside the project boundary",
    ),
    ExcludeReason.DIRECTORY_TARGET: (
        SEVERITY_ERROR,
        "LINK_TARGETS_DIRECTORY",
        "links to a directory instead of a file",
    ),
    ExcludeReason.GIT_IGNORED: (
        SEVERITY_ERROR,
        "LINK_TO_IGNORED_FILE",
        "links to a file excluded by ignore rules",
    ),
    ExcludeReason.NAVIGATION_FILE: (
        SEVERITY_WARNING,
        "LINKS_TO_NAVIGATION_FILES",
        "links to a navigation file",
    ),
    ExcludeReason.DEPTH_EXCEEDED: (
        SEVERITY_INFO,
        "REFERENCE_TOO_DEEP",
        "links beyond the link follow depth",
    ),
    ExcludeReason.PATTERN_MATCHED: (
        SEVERITY_INFO,
        "REFERENCE_EXCLUDED_BY_RULE",
        "links to a file matched by an exclusion rule",
    ),
}


class ExclusionValidator:
    """Turns walker exclusions into issues; structural ones cannot be overridden."""

    name = "exclusions"

    def validate(self, context: ValidationContext) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        for reference in context.walk.excluded_references:
            severity, code, summary = _EXCLUSION_ISSUES[reference.reason]
            source = context.index.get(reference.source_id)
            source_display = context.display(source.file_path) if source else reference.source_id
            issues.append(
                ValidationIssue(
                    severity=severity,
                    code=code,
                    message=f"{source_display} {summary}: {reference.link_href}",
                    path=context.display(reference.path),
                    source=source_display,
                )
            )
        return issues


class NamingValidator:
    """Reports output filename collisions for the configured naming strategy."""

    name = "naming"

    def validate(self, context: ValidationContext) -> List[ValidationIssue]:
        try:
            assign_names(
                context.walk,
                context.index,
                context.options.resource_naming,
                context.options.strip_prefix,
                skill_root=context.skill_root,
            )
        except NamingCollisionError as exc:
            return [
                ValidationIssue(
                    severity=SEVERITY_ERROR,
                    code="FILENAME_COLLISION",
                    message=str(exc),
                    path=f"resources/{exc.output_path}",
                )
            ]
        return []


class BrokenLinkValidator:
    """Flags local links in bundled files whose targets do not exist."""

    name = "broken_links"

    def validate(self, context: ValidationContext) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        excluded = context.walk.excluded_by_path()
        for resource_id in [context.walk.root_id, *context.walk.bundled_resources]:
            resource = context.index.get(resource_id)
            if resource is None:
                continue
            for resolved in context.index.resolved_links(resource_id):
                if resolved.link.type is not LinkType.LOCAL_FILE or resolved.target_path is None:
                    continue
                if resolved.target_path in excluded or resolved.link.kind is LinkKind.REFERENCE:
                    continue
                if resolved.target_resource_id or resolved.target_path.exists():
                    continue
                issues.append(
                    ValidationIssue(
                        severity=SEVERITY_WARNING,
                        code="BROKEN_INTERNAL_LINK",
                        message=(
                            f"{resource.relative_path}:{resolved.link.line} links to missing "
                            f"file {resolved.link.href}"
                        ),
                        path=context.display(resolved.target_path),
                        source=resource.relative_path,
                    )
                )
        return issues


class FrontmatterValidator:
    """Checks that the manifest frontmatter parses and names the skill."""

    name = "frontmatter"

    def validate(self, context: ValidationContext) -> List[ValidationIssue]:
        parsed = parse_markdown(context.manifest_path)
        display = context.display(context.manifest_path)
        if parsed.frontmatter_error:
            return [
                ValidationIssue(
                    severity=SEVERITY_ERROR,
                    code="INVALID_FRONTMATTER",
                    message=f"{display}: {parsed.frontmatter_error}",
                    path=display,
                )
            ]
        if parsed.frontmatter is None:
            return [
                ValidationIssue(
                    severity=SEVERITY_WARNING,
                    code="SKILL_MISSING_FRONTMATTER",
                    message=f"{display} has no frontmatter; the skill name falls back to the title",
                    path=display,
                )
            ]
        issues: List[ValidationIssue] = []
        for key, code in (("name", "SKILL_MISSING_NAME"), ("description", "SKILL_MISSING_DESCRIPTION")):
            value = parsed.frontmatter.get(key)
            if not isinstance(value, str) or not value.strip():
                issues.append(
                    ValidationIssue(
                        severity=SEVERITY_WARNING,
                        code=code,
                        message=f"{display} frontmatter has no '{key}'",
                        path=display,
                    )
                )
        return issues


DEFAULT_VALIDATORS: Tuple[Validator, ...] = (
    FrontmatterValidator(),
    ExclusionValidator(),
    NamingValidator(),
    BrokenLinkValidator(),
)


@dataclass
class PackagingReport:
    """Issues found for one skill, errors first."""

    manifest_path: Path
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.is_error]

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise ValidationError(
                f"Packaging validation failed for {self.manifest_path} "
                f"with {len(self.errors)} error(s)",
                self.errors,
            )


_SEVERITY_ORDER = {SEVERITY_ERROR: 0, SEVERITY_WARNING: 1, SEVERITY_INFO: 2}


def validate_packaging(
    manifest_path: Path | str,
    options: Optional[PackagingOptions] = None,
    *,
    validators: Optional[Iterable[Validator]] = None,
    packager: Optional[SkillPackager] = None,
) -> PackagingReport:
    """Index and walk a skill, then run validators over the result."""
    options = options or PackagingOptions()
    index, walk = (packager or SkillPackager()).walk(manifest_path, options)
    manifest = walk.root_path or Path(manifest_path)
    context = ValidationContext(
        manifest_path=manifest,
        skill_root=manifest.parent,
        index=index,
        walk=walk,
        options=options,
    )

    issues: List[ValidationIssue] = []
    for validator in validators if validators is not None else DEFAULT_VALIDATORS:
        issues.extend(validator.validate(context))
    issues.sort(key=lambda issue: _SEVERITY_ORDER.get(issue.severity, 3))
    return PackagingReport(manifest_path=manifest, issues=issues)


__all__ = [
    "BrokenLinkValidator",
    "DEFAULT_VALIDATORS",
    "ExclusionValidator",
    "FrontmatterValidator",
    "NamingValidator",
    "PackagingReport",
    "validate_packaging",
]
