from __future__ import annotations

from pathlib import Path
from typing import Dict

import pytest

from skillpack.config import PackagingOptions
from skillpack.errors import ManifestNotFoundError, NamingCollisionError, PackageRootNotFoundError, SkillPackError
from skillpack.markdown.parser import parse_markdown
from skillpack.models import ExclusionConfig, ExclusionRule, LinkHandling, LinkType, NamingStrategy
from skillpack.packager import SkillPackager, package_skill
from tests._fixtures.skill_builder import SkillBuilder

DIAGRAM = b"\x89PNG\r\n\x1a\n\x00\x01binary"


def _write_demo(builder: SkillBuilder) -> None:
    builder.write(
        {
            "SKILL.md": """
            ---
            name: demo
            description: Demo skill
            ---
            # Demo

            Start with the [Guide](docs/guide.md#setup).

            ![Diagram](assets/diagram.png)

            Visit [the site](https://example.com) or read the [Readme](README.md).
            """,
            "docs/guide.md": """
            # Guide

            Back to [the skill](../SKILL.md). Next: [Topic](./topic.md).
            """,
            "docs/topic.md": "# Topic\n",
            "README.md": "# Readme\n",
        }
    )
    builder.write_bytes("assets/diagram.png", DIAGRAM)


def _snapshot(root: Path) -> Dict[str, bytes]:
    return {
        path.relative_to(root).as_posix(): path.read_bytes() for path in sorted(root.rglob("*")) if path.is_file()
    }


def test_package_writes_manifest_resources_and_assets(skill_builder: SkillBuilder, tmp_path: Path) -> None:
    _write_demo(skill_builder)
    output = tmp_path / "out" / "demo"

    result = SkillPackager().package(skill_builder.path("SKILL.md"), PackagingOptions(output_path=output))

    assert sorted(_snapshot(output)) == [
        "SKILL.md",
        "resources/diagram.png",
        "resources/guide.md",
        "resources/topic.md",
    ]
    assert result.output_path == output
    assert result.skill.name == "demo"
    assert result.root == "SKILL.md"
    assert result.dependencies == ["resources/guide.md", "resources/topic.md", "resources/diagram.png"]
    assert result.excluded_references == ["README.md"]
    assert result.excluded_details == [{"path": "README.md", "reason": "navigation-file"}]
    assert result.excluded_reference_count == 1
    assert result.max_bundled_depth == 2
    assert result.artifacts == {"directory": output}

    manifest = (output / "SKILL.md").read_text(encoding="utf-8")
    assert "name: demo" in manifest
    assert "[Guide](resources/guide.md#setup)" in manifest
    assert "![Diagram](resources/diagram.png)" in manifest
    assert "[the site](https://example.com)" in manifest
    assert "read the Readme." in manifest

    guide = (output / "resources" / "guide.md").read_text(encoding="utf-8")
    assert "[the skill](../SKILL.md)" in guide
    assert "[Topic](topic.md)" in guide
    assert (output / "resources" / "diagram.png").read_bytes() == DIAGRAM


def test_rewritten_links_resolve_inside_the_bundle(skill_builder: SkillBuilder, tmp_path: Path) -> None:
    _write_demo(skill_builder)
    output = tmp_path / "out" / "demo"

    SkillPackager().package(skill_builder.path("SKILL.md"), PackagingOptions(output_path=output))

    for path in output.rglob("*.md"):
        for link in parse_markdown(path).links:
            if link.type is LinkType.LOCAL_FILE:
                target = link.href.split("#", 1)[0]
                assert (path.parent / target).exists(), f"{path.name}: {link.href}"


def test_rebuild_is_idempotent_and_removes_stale_files(skill_builder: SkillBuilder, tmp_path: Path) -> None:
    _write_demo(skill_builder)
    output = tmp_path / "out" / "demo"
    options = PackagingOptions(output_path=output)
    packager = SkillPackager()

    packager.package(skill_builder.path("SKILL.md"), options)
    first = _snapshot(output)
    (output / "resources" / "stale.md").write_text("# Stale\n", encoding="utf-8")
    packager.package(skill_builder.path("SKILL.md"), options)

    assert _snapshot(output) == first


def test_default_output_lives_under_the_package_root(skill_builder: SkillBuilder) -> None:
    _write_demo(skill_builder)

    first = package_skill(skill_builder.path("SKILL.md"))
    second = package_skill(skill_builder.path("SKILL.md"))

    expected = skill_builder.path("dist/skills/demo")
    assert first.output_path == expected
    assert (expected / "SKILL.md").is_file()
    assert second.dependencies == first.dependencies


def test_missing_package_root_requires_an_output_path(tmp_path: Path) -> None:
    base = tmp_path / "isolated"
    base.mkdir()
    builder = SkillBuilder(base, package_json=False)
    builder.write({"SKILL.md": "# Lonely\n"})

    with pytest.raises(PackageRootNotFoundError):
        SkillPackager().package(builder.path("SKILL.md"))


def test_missing_manifest_raises(skill_builder: SkillBuilder) -> None:
    with pytest.raises(ManifestNotFoundError) as excinfo:
        SkillPackager().package(skill_builder.path("SKILL.md"))

    assert isinstance(excinfo.value, FileNotFoundError)


def test_refuses_to_overwrite_the_source_manifest(skill_builder: SkillBuilder) -> None:
    skill_builder.write({"SKILL.md": "# Demo\n"})

    with pytest.raises(SkillPackError):
        SkillPackager().package(skill_builder.path("SKILL.md"), PackagingOptions(output_path=skill_builder.root))


def test_depth_limited_links_are_stripped_to_text(skill_builder: SkillBuilder, tmp_path: Path) -> None:
    skill_builder.write(
        {
            "SKILL.md": "---\nname: demo\n---\n[Near](near.md)\n",
            "near.md": "See [Far](far.md) for more.\n",
            "far.md": "# Far\n",
        }
    )
    output = tmp_path / "out" / "demo"

    result = SkillPackager().package(
        skill_builder.path("SKILL.md"), PackagingOptions(output_path=output, link_follow_depth=1)
    )

    assert result.dependencies == ["resources/near.md"]
    assert result.excluded_references == ["far.md"]
    assert result.excluded_details == [{"path": "far.md", "reason": "depth-exceeded"}]
    assert (output / "resources" / "near.md").read_text(encoding="utf-8") == "See Far for more.\n"


def test_exclusion_rule_templates_replace_links(skill_builder: SkillBuilder, tmp_path: Path) -> None:
    skill_builder.write(
        {
            "SKILL.md": """
            ---
            name: demo
            ---
            Ask about [Secret][p] or [Runbook](private/runbook.md).
            Also see [Design](./arch/design.md) and [the guide][g].

            [p]: private/secret.md
            [g]: docs/guide.md
            """,
            "private/secret.md": "# Secret\n",
            "private/runbook.md": "# Runbook\n",
            "arch/design.md": "# Design\n",
            "docs/guide.md": "# Guide\n",
        }
    )
    rule = ExclusionRule(
        patterns=("private/**",),
        handling=LinkHandling.TEMPLATE,
        template="Search for: {{link.text}}",
    )
    exclusion = ExclusionConfig(
        rules=(rule,),
        default=ExclusionRule(
            handling=LinkHandling.TEMPLATE,
            template="{{link.resource.fileName}} ({{link.href}})",
        ),
    )
    output = tmp_path / "out" / "demo"
    options = PackagingOptions(
        output_path=output,
        exclusion=exclusion,
        exclude_paths=("arch/**",),
    )

    result = SkillPackager().package(skill_builder.path("SKILL.md"), options)

    manifest = (output / "SKILL.md").read_text(encoding="utf-8")
    assert "Ask about Search for: Secret or Search for: Runbook." in manifest
    assert "Also see design.md (./arch/design.md) and [the guide][g]." in manifest
    assert "[g]: resources/guide.md" in manifest
    assert "private/secret.md" not in manifest
    assert {detail["path"]: detail["reason"] for detail in result.excluded_details} == {
        "private/secret.md": "pattern-matched",
        "private/runbook.md": "pattern-matched",
        "arch/design.md": "git-ignored",
    }
    assert result.excluded_details[0]["rule"] == "private/**"


def test_basename_collision_aborts_before_writing(skill_builder: SkillBuilder, tmp_path: Path) -> None:
    skill_builder.write(
        {
            "SKILL.md": "[Alpha](alpha/notes.md) [Beta](beta/notes.md)\n",
            "alpha/notes.md": "# Alpha\n",
            "beta/notes.md": "# Beta\n",
        }
    )
    output = tmp_path / "out" / "demo"

    with pytest.raises(NamingCollisionError, match="Filename collision detected"):
        SkillPackager().package(skill_builder.path("SKILL.md"), PackagingOptions(output_path=output))
    assert not output.exists()

    result = SkillPackager().package(
        skill_builder.path("SKILL.md"),
        PackagingOptions(output_path=output, resource_naming=NamingStrategy.RESOURCE_ID),
    )
    assert result.dependencies == ["resources/alpha-notes.md", "resources/beta-notes.md"]
    assert "[Beta](resources/beta-notes.md)" in (output / "SKILL.md").read_text(encoding="utf-8")


def test_preserve_path_links_between_nested_resources(skill_builder: SkillBuilder, tmp_path: Path) -> None:
    skill_builder.write(
        {
            "skills/demo/SKILL.md": "[API](refs/api/index-of-calls.md)\n",
            "skills/demo/refs/api/index-of-calls.md": "[Shared](../../shared/terms.md)\n",
            "skills/demo/shared/terms.md": "# Terms\n",
        }
    )
    output = tmp_path / "out" / "demo"

    SkillPackager().package(
        skill_builder.path("skills/demo/SKILL.md"),
        PackagingOptions(output_path=output, resource_naming=NamingStrategy.PRESERVE_PATH),
    )

    api = (output / "resources" / "refs" / "api" / "index-of-calls.md").read_text(encoding="utf-8")
    assert api == "[Shared](../../shared/terms.md)\n"
    assert (output / "resources" / "shared" / "terms.md").is_file()
    assert "[API](resources/refs/api/index-of-calls.md)" in (output / "SKILL.md").read_text(encoding="utf-8")


def test_artifacts_are_written_beside_the_bundle(skill_builder: SkillBuilder, tmp_path: Path) -> None:
    skill_builder.write(
        {
            "SKILL.md": "---\nname: demo\nversion: 1.2.3\n---\n[Guide](guide.md)\n",
            "guide.md": "# Guide\n",
        }
    )
    output = tmp_path / "out" / "demo"

    result = SkillPackager().package(
        skill_builder.path("SKILL.md"),
        PackagingOptions(output_path=output, formats=("directory", "zip", "npm", "marketplace")),
    )

    assert result.artifacts == {
        "directory": output,
        "npm": tmp_path / "out" / "demo-1.2.3.tgz",
        "zip": tmp_path / "out" / "demo.zip",
        "marketplace": tmp_path / "out" / "demo.marketplace.json",
    }
    assert (output / "package.json").is_file()
    for path in result.artifacts.values():
        assert path.exists()


def test_skill_name_with_a_slash_maps_to_one_output_directory(skill_builder: SkillBuilder) -> None:
    skill_builder.write({"SKILL.md": "# Input/Output Guide\n"})

    result = package_skill(skill_builder.path("SKILL.md"), PackagingOptions(formats=("directory", "zip")))

    skills_dir = skill_builder.path("dist/skills")
    assert result.skill.name == "Input/Output Guide"
    assert result.output_path == skills_dir / "input-output-guide"
    assert result.artifacts["zip"] == skills_dir / "input-output-guide.zip"
    assert result.artifacts["zip"].is_file()


def test_skill_name_cannot_escape_the_default_output_root(skill_builder: SkillBuilder) -> None:
    skill_builder.write(
        {
            "SKILL.md": "---\nname: ../../victim\n---\n# Victim\n",
            "victim/keep.md": "# Keep\n",
        }
    )

    package_skill(skill_builder.path("SKILL.md"))
    result = package_skill(skill_builder.path("SKILL.md"))

    assert result.output_path == skill_builder.path("dist/skills/victim")
    assert skill_builder.path("victim/keep.md").read_text(encoding="utf-8") == "# Keep\n"


def test_output_containing_the_skill_is_written_in_place(skill_builder: SkillBuilder) -> None:
    skill_builder.write(
        {
            "skill/SKILL.md": "---\nname: demo\n---\nSee [Guide](guide.md).\n",
            "skill/guide.md": "# Guide\n",
            "notes.txt": "keep me\n",
        }
    )
    manifest = skill_builder.path("skill/SKILL.md")
    source = manifest.read_bytes()
    options = PackagingOptions(output_path=skill_builder.root)

    SkillPackager().package(manifest, options)
    SkillPackager().package(manifest, options)

    assert manifest.read_bytes() == source
    assert skill_builder.path("notes.txt").read_text(encoding="utf-8") == "keep me\n"
    assert skill_builder.path("resources/guide.md").read_text(encoding="utf-8") == "# Guide\n"
    assert "[Guide](resources/guide.md)" in skill_builder.path("SKILL.md").read_text(encoding="utf-8")


def test_crlf_line_endings_are_preserved(skill_builder: SkillBuilder, tmp_path: Path) -> None:
    manifest = b"---\r\nname: demo\r\n---\r\n# Demo\r\n\r\nSee [Guide](docs/guide.md).\r\n"
    guide = b"# Guide\r\n\r\nNo links here.\r\n"
    skill_builder.write_bytes("SKILL.md", manifest)
    skill_builder.write_bytes("docs/guide.md", guide)
    output = tmp_path / "out" / "demo"

    SkillPackager().package(skill_builder.path("SKILL.md"), PackagingOptions(output_path=output))

    assert (output / "resources" / "guide.md").read_bytes() == guide
    assert (output / "SKILL.md").read_bytes() == manifest.replace(b"docs/guide.md", b"resources/guide.md")
