"""Configuration loading for skillpack (.skillpack.yml) and packaging options."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import yaml

from .bundling.artifacts import ARTIFACT_FORMATS
from .models import (
    DEFAULT_LINK_TEMPLATE,
    ExclusionConfig,
    ExclusionRule,
    LinkHandling,
    NamingStrategy,
)
from .resource_index import DEFAULT_INCLUDE

CONFIG_FILENAME = ".skillpack.yml"
DEFAULT_LINK_FOLLOW_DEPTH = 2


class ConfigError(RuntimeError):
    """Raised when the configuration file or packaging options cannot be parsed."""


@dataclass
class PackagingOptions:
    """Effective settings for packaging one skill."""

    output_path: Optional[Path] = None
    formats: Tuple[str, ...] = ("directory",)
    link_follow_depth: Optional[int] = DEFAULT_LINK_FOLLOW_DEPTH
    resource_naming: NamingStrategy = NamingStrategy.BASENAME
    strip_prefix: Optional[str] = None
    exclusion: ExclusionConfig = field(default_factory=ExclusionConfig)
    exclude_navigation_files: bool = True
    include_globs: Tuple[str, ...] = DEFAULT_INCLUDE
    exclude_paths: Tuple[str, ...] = ()
    project_root: Optional[Path] = None

    @classmethod
    def from_mapping(
        cls, data: Mapping[str, Any], *, base_dir: Optional[Path] = None
    ) -> "PackagingOptions":
        """Build options from a config mapping (snake_case or camelCase keys)."""
        return cls(**_packaging_fields(data, base_dir))

    def merged(
        self, overrides: Mapping[str, Any], *, base_dir: Optional[Path] = None
    ) -> "PackagingOptions":
        """Return a copy with the keys present in ``overrides`` applied."""
        return replace(self, **_packaging_fields(overrides, base_dir))


@dataclass
class SkillEntry:
    """A skill declared in the config file."""

    name: str
    source: Path
    output_path: Optional[Path] = None
    overrides: Dict[str, Any] = field(default_factory=dict)

    def options(self, defaults: PackagingOptions, *, base_dir: Optional[Path] = None) -> PackagingOptions:
        options = defaults.merged(self.overrides, base_dir=base_dir)
        if self.output_path is not None:
            options = replace(options, output_path=self.output_path)
        return options


@dataclass
class SkillPackConfig:
    """Represents the settings defined in .skillpack.yml."""

    root: Path
    packaging: PackagingOptions = field(default_factory=PackagingOptions)
    skills: List[SkillEntry] = field(default_factory=list)
    path: Optional[Path] = None

    def skill(self, name: str) -> Optional[SkillEntry]:
        for entry in self.skills:
            if entry.name == name:
                return entry
        return None


def load_config(config_path: Path) -> SkillPackConfig:
    """Load configuration from disk; a missing file yields defaults."""
    config_file = _resolve_config_path(Path(config_path))
    root = config_file.parent.resolve()

    if not config_file.exists():
        return SkillPackConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file.name} must contain a mapping at the root")

    crawl_data = _as_dict(data.get("crawl"))
    packaging_data: Dict[str, Any] = {}
    if crawl_data:
        if "include" in crawl_data:
            packaging_data["include_globs"] = crawl_data["include"]
        exclude = _get(crawl_data, "exclude_paths", "excludePaths", "exclude")
        if exclude is not None:
            packaging_data["exclude_paths"] = exclude
    packaging_data.update(_as_dict(data.get("packaging")))
    packaging = PackagingOptions.from_mapping(packaging_data, base_dir=root)

    skills: List[SkillEntry] = []
    raw_skills = data.get("skills") or []
    if not isinstance(raw_skills, list):
        raise ConfigError("'skills' must be a list")
    for position, raw in enumerate(raw_skills):
        entry = _as_dict(raw)
        name = _as_str(entry.get("name"))
        source = _as_str(entry.get("source"))
        if not name or not source:
            raise ConfigError(f"skills[{position}] requires 'name' and 'source'")
        output = _as_str(_get(entry, "path", "output_path", "outputPath"))
        skills.append(
            SkillEntry(
                name=name,
                source=(root / source).resolve(),
                output_path=(root / output).resolve() if output else None,
                overrides=_as_dict(entry.get("packaging")),
            )
        )

    return SkillPackConfig(root=root, packaging=packaging, skills=skills, path=config_file)


def discover_config(start: Path) -> Optional[Path]:
    """Return the nearest .skillpack.yml at or above ``start``."""
    current = Path(start).expanduser().resolve()
    if current.is_file():
        current = current.parent
    for candidate in (current, *current.parents):
        config_file = candidate / CONFIG_FILENAME
        if config_file.is_file():
            return config_file
    return None


def options_for_manifest(
    manifest_path: Path, overrides: Optional[Mapping[str, Any]] = None
) -> PackagingOptions:
    """Packaging defaults from the nearest .skillpack.yml with ``overrides`` applied."""
    config_file = discover_config(manifest_path)
    options = load_config(config_file).packaging if config_file else PackagingOptions()
    return options.merged(overrides or {})


def parse_link_follow_depth(value: Any) -> Optional[int]:
    """Return the depth limit, or None for ``"full"`` (unbounded)."""
    if isinstance(value, bool):
        raise ConfigError(f"Invalid link follow depth: {value!r}")
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "full":
            return None
        try:
            value = int(lowered)
        except ValueError as exc:
            raise ConfigError(f"Invalid link follow depth: {value!r}") from exc
    if not isinstance(value, int) or value < 0:
        raise ConfigError(f"Invalid link follow depth: {value!r} (expected an integer >= 0 or 'full')")
    return value


def parse_naming_strategy(value: Any) -> NamingStrategy:
    try:
        return NamingStrategy(str(value))
    except ValueError as exc:
        choices = ", ".join(strategy.value for strategy in NamingStrategy)
        raise ConfigError(f"Unknown resource naming strategy {value!r}; expected one of {choices}") from exc


def parse_formats(value: Any) -> Tuple[str, ...]:
    formats = _as_str_list(value)
    unknown = [fmt for fmt in formats if fmt not in ARTIFACT_FORMATS]
    if unknown:
        raise ConfigError(
            f"Unknown artifact format(s): {', '.join(unknown)}; expected {', '.join(ARTIFACT_FORMATS)}"
        )
    return tuple(dict.fromkeys(formats)) or ("directory",)


def parse_exclusion_config(value: Any) -> ExclusionConfig:
    """Parse the excludeReferencesFromBundle block."""
    data = _as_dict(value)
    raw_rules = data.get("rules") or []
    if not isinstance(raw_rules, list):
        raise ConfigError("excludeReferencesFromBundle.rules must be a list")

    rules: List[ExclusionRule] = []
    for position, raw in enumerate(raw_rules):
        rule_data = _as_dict(raw)
        patterns = tuple(_as_str_list(rule_data.get("patterns")))
        if not patterns:
            raise ConfigError(f"excludeReferencesFromBundle.rules[{position}] requires 'patterns'")
        rules.append(
            _build_rule(
                patterns,
                _as_str(rule_data.get("handling")),
                _as_str(rule_data.get("template")),
                f"excludeReferencesFromBundle.rules[{position}]",
            )
        )

    raw_default = data.get("default")
    default_template = _as_str(_get(data, "defaultTemplate", "default_template"))
    if isinstance(raw_default, dict):
        handling = _as_str(raw_default.get("handling"))
        default_template = _as_str(raw_default.get("template")) or default_template
    else:
        handling = _as_str(raw_default)
    default = _build_rule((), handling, default_template, "excludeReferencesFromBundle.default")
    return ExclusionConfig(rules=tuple(rules), default=default)


def _build_rule(
    patterns: Tuple[str, ...], handling: Optional[str], template: Optional[str], where: str
) -> ExclusionRule:
    if handling is None:
        resolved = LinkHandling.TEMPLATE if template else LinkHandling.STRIP_TO_TEXT
    else:
        try:
            resolved = LinkHandling(handling)
        except ValueError as exc:
            raise ConfigError(f"{where}: unknown handling {handling!r}") from exc
    if resolved is LinkHandling.TEMPLATE and not template:
        raise ConfigError(f"{where}: handling 'template' requires a template")
    if resolved is LinkHandling.STRIP_TO_TEXT:
        template = DEFAULT_LINK_TEMPLATE
    return ExclusionRule(patterns=patterns, handling=resolved, template=template)


def _packaging_fields(data: Mapping[str, Any], base_dir: Optional[Path]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}

    output = _as_str(_get(data, "output_path", "outputPath", "output"))
    if output:
        fields["output_path"] = _resolve_path(output, base_dir)

    formats = _get(data, "formats", "format")
    if formats is not None:
        fields["formats"] = parse_formats(formats)

    depth = _get(data, "link_follow_depth", "linkFollowDepth", "depth")
    if depth is not None:
        fields["link_follow_depth"] = parse_link_follow_depth(depth)

    naming = _get(data, "resource_naming", "resourceNaming", "naming")
    if naming is not None:
        fields["resource_naming"] = parse_naming_strategy(naming)

    strip_prefix = _get(data, "strip_prefix", "stripPrefix")
    if strip_prefix is not None:
        fields["strip_prefix"] = _as_str(strip_prefix) or None

    exclusion = _get(data, "exclude_references", "excludeReferencesFromBundle")
    if exclusion is not None:
        fields["exclusion"] = parse_exclusion_config(exclusion)

    navigation = _as_bool(_get(data, "exclude_navigation_files", "excludeNavigationFiles"))
    if navigation is not None:
        fields["exclude_navigation_files"] = navigation

    include = _get(data, "include_globs", "includeGlobs", "include")
    if include is not None:
        fields["include_globs"] = tuple(_as_str_list(include)) or DEFAULT_INCLUDE

    exclude_paths = _get(data, "exclude_paths", "excludePaths")
    if exclude_paths is not None:
        fields["exclude_paths"] = tuple(_as_str_list(exclude_paths))

    project_root = _as_str(_get(data, "project_root", "projectRoot"))
    if project_root:
        fields["project_root"] = _resolve_path(project_root, base_dir)

    return fields


def _resolve_path(value: str, base_dir: Optional[Path]) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return path.resolve()


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.suffix in {".yml", ".yaml"}:
        return config_path.resolve()
    return (config_path.parent / CONFIG_FILENAME).resolve()


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return {} if loaded is None else loaded


def _get(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "DEFAULT_LINK_FOLLOW_DEPTH",
    "PackagingOptions",
    "SkillEntry",
    "SkillPackConfig",
    "discover_config",
    "load_config",
    "options_for_manifest",
    "parse_exclusion_config",
    "parse_formats",
    "parse_link_follow_depth",
    "parse_naming_strategy",
]
