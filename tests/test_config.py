"""Tests for skillpack.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from skillpack.config import (
    ConfigError,
    PackagingOptions,
    SkillPackConfig,
    discover_config,
    load_config,
    options_for_manifest,
    parse_exclusion_config,
    parse_link_follow_depth,
)
from skillpack.models import LinkHandling, NamingStrategy


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert isinstance(config, SkillPackConfig)
    assert config.root == tmp_path.resolve()
    assert config.path is None
    assert config.skills == []
    assert config.packaging == PackagingOptions()
    assert config.packaging.link_follow_depth == 2
    assert config.packaging.resource_naming is NamingStrategy.BASENAME
    assert config.packaging.formats == ("directory",)


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".skillpack.yml"
    config_file.write_text(
        """
crawl:
  include:
    - "**/*.md"
    - "**/*.txt"
  exclude:
    - "archive/"
packaging:
  formats: [directory, zip]
  linkFollowDepth: full
  resourceNaming: resource-id
  stripPrefix: knowledge-base
  excludeNavigationFiles: false
  excludeReferencesFromBundle:
    rules:
      - patterns: ["private/**", "**/*.secret.md"]
        template: "Search for: {{link.text}}"
      - patterns: ["drafts/**"]
    default:
      handling: template
      template: "{{link.resource.fileName}} ({{link.href}})"
skills:
  - name: demo
    source: skills/demo/SKILL.md
    path: dist/demo
    packaging:
      link_follow_depth: 1
""",
        encoding="utf-8",
    )

    config = load_config(config_file)

    packaging = config.packaging
    assert config.path == config_file.resolve()
    assert packaging.include_globs == ("**/*.md", "**/*.txt")
    assert packaging.exclude_paths == ("archive/",)
    assert packaging.formats == ("directory", "zip")
    assert packaging.link_follow_depth is None
    assert packaging.resource_naming is NamingStrategy.RESOURCE_ID
    assert packaging.strip_prefix == "knowledge-base"
    assert packaging.exclude_navigation_files is False

    first, second = packaging.exclusion.rules
    assert first.patterns == ("private/**", "**/*.secret.md")
    assert first.handling is LinkHandling.TEMPLATE
    assert first.effective_template() == "Search for: {{link.text}}"
    assert second.handling is LinkHandling.STRIP_TO_TEXT
    assert second.effective_template() == "{{link.text}}"
    assert packaging.exclusion.default.effective_template() == "{{link.resource.fileName}} ({{link.href}})"

    [entry] = config.skills
    assert entry.name == "demo"
    assert entry.source == (tmp_path / "skills/demo/SKILL.md").resolve()
    options = entry.options(packaging, base_dir=config.root)
    assert options.output_path == (tmp_path / "dist/demo").resolve()
    assert options.link_follow_depth == 1
    assert options.resource_naming is NamingStrategy.RESOURCE_ID
    assert config.skill("demo") is entry
    assert config.skill("other") is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [(0, 0), (3, 3), ("2", 2), ("full", None), ("FULL", None)],
)
def test_parse_link_follow_depth(value: object, expected: object) -> None:
    assert parse_link_follow_depth(value) == expected


@pytest.mark.parametrize("value", [-1, "deep", True, 1.5])
def test_parse_link_follow_depth_rejects_invalid_values(value: object) -> None:
    with pytest.raises(ConfigError):
        parse_link_follow_depth(value)


def test_template_handling_requires_a_template() -> None:
    with pytest.raises(ConfigError, match="requires a template"):
        parse_exclusion_config({"rules": [{"patterns": ["x/**"], "handling": "template"}]})


def test_rules_require_patterns() -> None:
    with pytest.raises(ConfigError, match="requires 'patterns'"):
        parse_exclusion_config({"rules": [{"template": "{{link.text}}"}]})


def test_default_accepts_a_handling_string() -> None:
    config = parse_exclusion_config({"default": "template", "defaultTemplate": "See {{link.text}}"})

    assert config.rules == ()
    assert config.default.effective_template() == "See {{link.text}}"


def test_invalid_values_raise_config_error(tmp_path: Path) -> None:
    (tmp_path / ".skillpack.yml").write_text("packaging:\n  resourceNaming: random\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Unknown resource naming strategy"):
        load_config(tmp_path)


def test_root_must_be_a_mapping(tmp_path: Path) -> None:
    (tmp_path / ".skillpack.yml").write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_unknown_formats_are_rejected() -> None:
    with pytest.raises(ConfigError, match="Unknown artifact format"):
        PackagingOptions.from_mapping({"formats": ["rar"]})


def test_discover_config_walks_upwards(tmp_path: Path) -> None:
    (tmp_path / ".skillpack.yml").write_text("packaging:\n  linkFollowDepth: 5\n", encoding="utf-8")
    manifest = tmp_path / "skills" / "demo" / "SKILL.md"
    manifest.parent.mkdir(parents=True)
    manifest.write_text("# Demo\n", encoding="utf-8")

    assert discover_config(manifest) == (tmp_path / ".skillpack.yml").resolve()
    options = options_for_manifest(manifest, {"naming": "preserve-path"})
    assert options.link_follow_depth == 5
    assert options.resource_naming is NamingStrategy.PRESERVE_PATH


def test_merged_only_overrides_present_keys() -> None:
    base = PackagingOptions(link_follow_depth=4, strip_prefix="docs")

    merged = base.merged({"excludeNavigationFiles": "no"})

    assert merged.link_follow_depth == 4
    assert merged.strip_prefix == "docs"
    assert merged.exclude_navigation_files is False
