from __future__ import annotations

from typing import Iterable, Optional

import pytest

from skillpack.bundling.naming import assign_names, strip_path_prefix
from skillpack.errors import NamingCollisionError
from skillpack.models import NamingStrategy, WalkResult
from skillpack.resource_index import ResourceIndex
from tests._fixtures.skill_builder import SkillBuilder

_FILES = {
    "SKILL.md": "# Skill\n",
    "knowledge-base/guides/overview.md": "# Overview\n",
    "knowledge-base/guides/topics/quickstart/overview.md": "# Quickstart\n",
}


def _walk_for(builder: SkillBuilder, index: ResourceIndex, relatives: Iterable[str]) -> WalkResult:
    ids = [index.get_by_path(builder.path(relative)).id for relative in relatives]
    return WalkResult(root_id="skill", root_path=builder.path("SKILL.md"), bundled_resources=ids)


def _names(builder: SkillBuilder, strategy: NamingStrategy, strip_prefix: Optional[str] = None) -> list:
    builder.write(_FILES)
    index = builder.index()
    walk = _walk_for(builder, index, list(_FILES)[1:])
    plan = assign_names(walk, index, strategy, strip_prefix)
    return [plan.path_for(builder.path(relative)) for relative in list(_FILES)[1:]]


def test_resource_id_naming_flattens_the_path(skill_builder: SkillBuilder) -> None:
    assert _names(skill_builder, NamingStrategy.RESOURCE_ID) == [
        "knowledge-base-guides-overview.md",
        "knowledge-base-guides-topics-quickstart-overview.md",
    ]


@pytest.mark.parametrize(
    ("prefix", "expected"),
    [
        ("knowledge-base", ["guides-overview.md", "guides-topics-quickstart-overview.md"]),
        ("knowledge-base/guides", ["overview.md", "topics-quickstart-overview.md"]),
        ("./knowledge-base/guides/", ["overview.md", "topics-quickstart-overview.md"]),
        (
            "other",
            ["knowledge-base-guides-overview.md", "knowledge-base-guides-topics-quickstart-overview.md"],
        ),
    ],
)
def test_strip_prefix_applies_before_naming(skill_builder: SkillBuilder, prefix: str, expected: list) -> None:
    assert _names(skill_builder, NamingStrategy.RESOURCE_ID, prefix) == expected


def test_preserve_path_keeps_directories(skill_builder: SkillBuilder) -> None:
    assert _names(skill_builder, NamingStrategy.PRESERVE_PATH, "knowledge-base") == [
        "guides/overview.md",
        "guides/topics/quickstart/overview.md",
    ]


def test_basename_collision_is_reported_before_writing(skill_builder: SkillBuilder) -> None:
    with pytest.raises(NamingCollisionError) as excinfo:
        _names(skill_builder, NamingStrategy.BASENAME)

    error = excinfo.value
    assert str(error).startswith("Filename collision detected")
    assert error.output_path == "overview.md"
    assert error.strategy == "basename"
    assert error.sources == [
        skill_builder.path("knowledge-base/guides/overview.md"),
        skill_builder.path("knowledge-base/guides/topics/quickstart/overview.md"),
    ]


def test_collisions_are_case_insensitive(skill_builder: SkillBuilder) -> None:
    skill_builder.write({"SKILL.md": "# Skill\n", "a/Notes.md": "# A\n", "b/notes.md": "# B\n"})
    index = skill_builder.index()
    walk = _walk_for(skill_builder, index, ["a/Notes.md", "b/notes.md"])

    with pytest.raises(NamingCollisionError):
        assign_names(walk, index, NamingStrategy.BASENAME)


def test_assets_are_named_alongside_markdown(skill_builder: SkillBuilder) -> None:
    skill_builder.write({"SKILL.md": "# Skill\n", "docs/guide.md": "# Guide\n"})
    diagram = skill_builder.write_bytes("docs/img/Diagram.PNG", b"\x89PNG")
    index = skill_builder.index()
    walk = _walk_for(skill_builder, index, ["docs/guide.md"])
    walk.bundled_assets.append(diagram)

    plan = assign_names(walk, index, "resource-id")

    assert plan.strategy is NamingStrategy.RESOURCE_ID
    assert plan.output_paths() == ["docs-guide.md", "docs-img-diagram.png"]


def test_names_are_relative_to_the_skill_root(skill_builder: SkillBuilder) -> None:
    skill_builder.write({"skills/demo/SKILL.md": "# Demo\n", "skills/demo/refs/api.md": "# API\n"})
    index = skill_builder.index()
    walk = WalkResult(
        root_id="skills-demo-skill",
        root_path=skill_builder.path("skills/demo/SKILL.md"),
        bundled_resources=["skills-demo-refs-api"],
    )

    plan = assign_names(walk, index, NamingStrategy.PRESERVE_PATH)

    assert plan.output_paths() == ["refs/api.md"]


def test_strip_path_prefix_requires_a_segment_boundary() -> None:
    assert strip_path_prefix("docs/guide.md", "docs") == "guide.md"
    assert strip_path_prefix("docs-extra/guide.md", "docs") == "docs-extra/guide.md"
    assert strip_path_prefix("docs/guide.md", None) == "docs/guide.md"
