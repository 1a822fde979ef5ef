"""CLI entrypoints for skillpack commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List

import yaml

from .bundling.artifacts import ARTIFACT_FORMATS
from .config import ConfigError, PackagingOptions, discover_config, load_config, options_for_manifest
from .errors import NamingCollisionError, PackageRootNotFoundError, SkillPackError
from .logging import configure_logging
from .models import BuildResult, NamingStrategy
from .packager import SkillPackager
from .validators import PackagingReport, ValidationError, validate_packaging


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_packaging_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--depth",
        help="Link follow depth: a non-negative integer or 'full' (default from config, else 2).",
    )
    parser.add_argument(
        "--naming",
        choices=[strategy.value for strategy in NamingStrategy],
        help="Output naming strategy for bundled resources.",
    )
    parser.add_argument(
        "--strip-prefix",
        help="Path prefix removed before naming bundled resources.",
    )
    parser.add_argument(
        "--include-navigation-files",
        action="store_true",
        help="Bundle README/index/toc/overview files instead of excluding them.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="skillpack",
        description="Bundle markdown skills and the resources they link to.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only log warnings and errors.",
    )
    parser.add_argument("--log-file", help="Also write debug logs to this file.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    package_parser = subparsers.add_parser(
        "package",
        help="Package one skill manifest (SKILL.md) into a distributable bundle.",
    )
    _add_verbose_option(package_parser, suppress_default=True)
    package_parser.add_argument("manifest", help="Path to the skill's SKILL.md.")
    package_parser.add_argument(
        "-o",
        "--output",
        help="Output directory (defaults to <package root>/dist/skills/<name>).",
    )
    package_parser.add_argument(
        "--format",
        dest="formats",
        action="append",
        choices=list(ARTIFACT_FORMATS),
        help="Artifact format to produce; repeat for several.",
    )
    package_parser.add_argument(
        "--strict",
        action="store_true",
        help="Validate first and refuse to package when errors are found.",
    )
    _add_packaging_options(package_parser)

    build_parser = subparsers.add_parser(
        "build",
        help="Package every skill declared in .skillpack.yml.",
    )
    _add_verbose_option(build_parser, suppress_default=True)
    build_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Directory containing .skillpack.yml (defaults to current directory).",
    )
    build_parser.add_argument(
        "--skill",
        action="append",
        dest="skills",
        help="Only build the named skill; repeat for several.",
    )
    build_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate the declared skills without writing output.",
    )

    validate_parser = subparsers.add_parser(
        "validate",
        help="Report packaging problems for a skill without writing output.",
    )
    _add_verbose_option(validate_parser, suppress_default=True)
    validate_parser.add_argument("manifest", help="Path to the skill's SKILL.md.")
    _add_packaging_options(validate_parser)

    walk_parser = subparsers.add_parser(
        "walk",
        help="Print what a skill bundle would contain.",
    )
    _add_verbose_option(walk_parser, suppress_default=True)
    walk_parser.add_argument("manifest", help="Path to the skill's SKILL.md.")
    _add_packaging_options(walk_parser)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for skillpack commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    log_file = Path(args.log_file) if getattr(args, "log_file", None) else None
    configure_logging(verbose=bool(args.verbose), quiet=bool(args.quiet), log_file=log_file)

    packager = SkillPackager()

    try:
        if args.command == "package":
            _run_package(parser, args, packager)
        elif args.command == "build":
            _run_build(parser, args, packager)
        elif args.command == "validate":
            _run_validate(parser, args, packager)
        elif args.command == "walk":
            _run_walk(args, packager)
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except (FileNotFoundError, NamingCollisionError, PackageRootNotFoundError) as exc:
        parser.exit(1, f"{exc}\n")
    except ConfigError as exc:
        parser.exit(1, f"Invalid configuration: {exc}\n")
    except SkillPackError as exc:
        parser.exit(1, f"skillpack {args.command} failed: {exc}\nRun with --verbose for more details.\n")


def _options_for(args: argparse.Namespace, manifest: Path) -> PackagingOptions:
    overrides: Dict[str, Any] = {}
    if getattr(args, "output", None):
        overrides["output_path"] = str(Path(args.output).expanduser().resolve())
    if getattr(args, "formats", None):
        overrides["formats"] = args.formats
    if getattr(args, "depth", None) is not None:
        overrides["link_follow_depth"] = args.depth
    if getattr(args, "naming", None):
        overrides["resource_naming"] = args.naming
    if getattr(args, "strip_prefix", None):
        overrides["strip_prefix"] = args.strip_prefix
    if getattr(args, "include_navigation_files", False):
        overrides["exclude_navigation_files"] = False
    return options_for_manifest(manifest, overrides)


def _run_package(
    parser: argparse.ArgumentParser, args: argparse.Namespace, packager: SkillPackager
) -> None:
    manifest = Path(args.manifest).expanduser()
    options = _options_for(args, manifest)
    if args.strict:
        report = validate_packaging(manifest, options, packager=packager)
        try:
            report.raise_for_errors()
        except ValidationError as exc:
            _print_report(report)
            parser.exit(1, f"{exc}\n")
    result = packager.package(manifest, options)
    _print_result(result)


def _run_build(
    parser: argparse.ArgumentParser, args: argparse.Namespace, packager: SkillPackager
) -> None:
    config_file = discover_config(Path(args.path))
    if config_file is None:
        parser.exit(1, f"No .skillpack.yml found at or above {args.path}\n")
    config = load_config(config_file)
    entries = config.skills
    if args.skills:
        missing = [name for name in args.skills if config.skill(name) is None]
        if missing:
            parser.exit(1, f"Unknown skill(s): {', '.join(missing)}\n")
        entries = [entry for entry in entries if entry.name in args.skills]
    if not entries:
        parser.exit(1, f"No skills declared in {config_file}\n")

    summary: List[Dict[str, Any]] = []
    failed = False
    for entry in entries:
        options = entry.options(config.packaging, base_dir=config.root)
        if args.dry_run:
            report = validate_packaging(entry.source, options, packager=packager)
            failed = failed or not report.ok
            summary.append(
                {
                    "name": entry.name,
                    "ok": report.ok,
                    "issues": [f"[{issue.severity}] {issue.code} {issue.message}" for issue in report.issues],
                }
            )
            continue
        result = packager.package(entry.source, options)
        summary.append(_result_summary(result, name=entry.name))

    sys.stdout.write(yaml.safe_dump({"skills": summary}, sort_keys=False))
    if failed:
        parser.exit(1, "One or more skills failed validation\n")


def _run_validate(
    parser: argparse.ArgumentParser, args: argparse.Namespace, packager: SkillPackager
) -> None:
    manifest = Path(args.manifest).expanduser()
    report = validate_packaging(manifest, _options_for(args, manifest), packager=packager)
    _print_report(report)
    if not report.ok:
        parser.exit(1, f"{len(report.errors)} packaging error(s) found\n")


def _run_walk(args: argparse.Namespace, packager: SkillPackager) -> None:
    manifest = Path(args.manifest).expanduser()
    index, walk = packager.walk(manifest, _options_for(args, manifest))
    skill_root = walk.root_path.parent if walk.root_path else manifest.parent
    bundled = []
    for resource_id in walk.bundled_resources:
        resource = index.get(resource_id)
        if resource is not None:
            bundled.append({"path": _relativize(resource.file_path, skill_root), "depth": walk.depths[resource_id]})
    payload = {
        "root": _relativize(walk.root_path or manifest, skill_root),
        "bundled": bundled,
        "assets": [_relativize(asset, skill_root) for asset in walk.bundled_assets],
        "excluded": [
            {"path": _relativize(reference.path, skill_root), "reason": reference.reason.value}
            for reference in walk.excluded_references
        ],
        "max_bundled_depth": walk.max_bundled_depth,
    }
    sys.stdout.write(yaml.safe_dump(payload, sort_keys=False))


def _print_result(result: BuildResult) -> None:
    print(f"Skill {result.skill.name} packaged at {_relativize(result.output_path)}")
    print(
        f"  {len(result.dependencies)} file(s) bundled, "
        f"{result.excluded_reference_count} reference(s) excluded, "
        f"max depth {result.max_bundled_depth}"
    )
    for detail in result.excluded_details:
        print(f"  excluded {detail['path']} ({detail['reason']})")
    for fmt, path in result.artifacts.items():
        if fmt != "directory":
            print(f"  {fmt}: {_relativize(path)}")


def _print_report(report: PackagingReport) -> None:
    if not report.issues:
        print(f"No packaging issues found for {_relativize(report.manifest_path)}")
        return
    for issue in report.issues:
        print(f"[{issue.severity}] {issue.code} {issue.message}")


def _result_summary(result: BuildResult, *, name: str) -> Dict[str, Any]:
    return {
        "name": name,
        "output": str(result.output_path),
        "dependencies": list(result.dependencies),
        "excluded": [dict(detail) for detail in result.excluded_details],
        "max_bundled_depth": result.max_bundled_depth,
        "artifacts": {fmt: str(path) for fmt, path in result.artifacts.items()},
    }


def _relativize(path: Path, base: Path | None = None) -> str:
    try:
        return path.relative_to(base or Path.cwd()).as_posix()
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
