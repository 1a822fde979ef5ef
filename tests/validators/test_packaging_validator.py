from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

from skillpack.config import PackagingOptions
from skillpack.validators import ValidationContext, ValidationError, ValidationIssue, validate_packaging
from skillpack.validators.base import SEVERITY_ERROR, SEVERITY_INFO, SEVERITY_WARNING
from tests._fixtures.skill_builder import SkillBuilder


def _codes(issues: List[ValidationIssue]) -> List[str]:
    return [issue.code for issue in issues]


def test_clean_skill_has_no_issues(skill_builder: SkillBuilder) -> None:
    skill_builder.write(
        {"SKILL.md": "---\nname: demo\ndescription: Demo\n---\n[Guide](guide.md)\n", "guide.md": "# Guide\n"}
    )

    report = validate_packaging(skill_builder.path("SKILL.md"))

    assert report.issues == []
    assert report.ok
    report.raise_for_errors()


def test_structural_exclusions_are_errors(skill_builder: SkillBuilder) -> None:
    (skill_builder.tmp_path / "outside.md").write_text("# Outside\n", encoding="utf-8")
    skill_builder.write(
        {
            ".gitignore": "secret.md\n",
            "SKILL.md": """
            ---
            name: demo
            description: Demo
            ---
            [Out](../outside.md) [Dir](docs/) [Secret](secret.md) [Readme](README.md) [Deep](deep.md)
            """,
            "docs/a.md": "# A\n",
            "secret.md": "# Secret\n",
            "README.md": "# Readme\n",
            "deep.md": "# Deep\n",
        }
    )

    report = validate_packaging(skill_builder.path("SKILL.md"), PackagingOptions(link_follow_depth=0))

    assert _codes(report.issues) == [
        "OUTSIDE_PROJECT_BOUNDARY",
        "LINK_TARGETS_DIRECTORY",
        "LINK_TO_IGNORED_FILE",
        "LINKS_TO_NAVIGATION_FILES",
        "REFERENCE_TOO_DEEP",
    ]
    assert [issue.severity for issue in report.issues] == [
        SEVERITY_ERROR,
        SEVERITY_ERROR,
        SEVERITY_ERROR,
        SEVERITY_WARNING,
        SEVERITY_INFO,
    ]
    assert not report.ok
    with pytest.raises(ValidationError) as excinfo:
        report.raise_for_errors()
    assert len(excinfo.value.issues) == 3


def test_filename_collisions_are_reported(skill_builder: SkillBuilder) -> None:
    skill_builder.write(
        {
            "SKILL.md": "---\nname: demo\ndescription: Demo\n---\n[A](alpha/notes.md) [B](beta/notes.md)\n",
            "alpha/notes.md": "# Alpha\n",
            "beta/notes.md": "# Beta\n",
        }
    )

    report = validate_packaging(skill_builder.path("SKILL.md"))

    [issue] = report.issues
    assert issue.code == "FILENAME_COLLISION"
    assert issue.path == "resources/notes.md"
    assert issue.is_error


def test_broken_links_are_warnings(skill_builder: SkillBuilder) -> None:
    skill_builder.write(
        {
            "SKILL.md": "---\nname: demo\ndescription: Demo\n---\n[Guide](guide.md)\n",
            "guide.md": "# Guide\n\nSee [gone](missing.md).\n",
        }
    )

    report = validate_packaging(skill_builder.path("SKILL.md"))

    [issue] = report.issues
    assert issue.code == "BROKEN_INTERNAL_LINK"
    assert issue.severity == SEVERITY_WARNING
    assert issue.message == "guide.md:3 links to missing file missing.md"
    assert report.ok


def test_frontmatter_problems(skill_builder: SkillBuilder) -> None:
    skill_builder.write({"skills/a/SKILL.md": "# A\n", "skills/b/SKILL.md": "---\nname: b\n---\n# B\n"})

    missing = validate_packaging(skill_builder.path("skills/a/SKILL.md"))
    partial = validate_packaging(skill_builder.path("skills/b/SKILL.md"))

    assert _codes(missing.issues) == ["SKILL_MISSING_FRONTMATTER"]
    assert _codes(partial.issues) == ["SKILL_MISSING_DESCRIPTION"]


def test_invalid_frontmatter_is_an_error(skill_builder: SkillBuilder) -> None:
    skill_builder.write({"SKILL.md": "---\nname: [broken\n---\n# Demo\n"})

    report = validate_packaging(skill_builder.path("SKILL.md"))

    assert _codes(report.errors) == ["INVALID_FRONTMATTER"]


def test_custom_validators_replace_the_defaults(skill_builder: SkillBuilder) -> None:
    skill_builder.write({"SKILL.md": "# Demo\n"})

    class _AlwaysInfo:
        name = "always"

        def validate(self, context: ValidationContext) -> List[ValidationIssue]:
            return [ValidationIssue(SEVERITY_INFO, "CUSTOM", context.display(context.manifest_path))]

    report = validate_packaging(skill_builder.path("SKILL.md"), validators=[_AlwaysInfo()])

    assert [(issue.code, issue.message) for issue in report.issues] == [("CUSTOM", "SKILL.md")]
    assert isinstance(report.manifest_path, Path)
