"""Pipeline orchestration: index, walk, name, rewrite, write, and archive a skill."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .bundling.artifacts import build_artifacts, bundle_name
from .bundling.naming import assign_names
from .bundling.rewriter import MANIFEST_NAME, RESOURCES_DIR, LinkRewriter
from .bundling.walker import WalkOptions, walk_link_graph
from .config import PackagingOptions
from .errors import ManifestNotFoundError, PackageRootNotFoundError, SkillPackError
from .logging import get_logger
from .manifest import load_skill_metadata
from .models import BuildResult, ExcludedReference, NamingPlan, Resource, SkillMetadata, WalkResult
from .project import find_package_root, find_project_root, is_within, normalize_path
from .resource_index import ResourceIndex


class SkillPackager:
    """Coordinates the packaging pipeline for one skill manifest at a time."""

    def __init__(
        self,
        index_factory: Optional[Callable[[Path, PackagingOptions, List[Path]], ResourceIndex]] = None,
    ) -> None:
        self._index_factory = index_factory or _crawl_index
        self.logger = get_logger("packager")

    def package(
        self,
        manifest_path: Path | str,
        options: Optional[PackagingOptions] = None,
        *,
        index: Optional[ResourceIndex] = None,
    ) -> BuildResult:
        """Bundle the skill rooted at ``manifest_path`` and return a build summary."""
        options = options or PackagingOptions()
        manifest = normalize_path(Path(manifest_path))
        if not manifest.is_file():
            raise ManifestNotFoundError(manifest)

        skill_root = manifest.parent
        metadata = load_skill_metadata(manifest)
        output_dir = self._resolve_output_path(manifest, metadata, options)
        if output_dir / MANIFEST_NAME == manifest:
            raise SkillPackError(f"Output path {output_dir} would overwrite the source manifest")
        self.logger.info("Packaging skill %s from %s", metadata.name, manifest)

        index, walk = self._walk(manifest, output_dir, options, index)
        plan = assign_names(
            walk,
            index,
            options.resource_naming,
            options.strip_prefix,
            skill_root=skill_root,
        )

        self._prepare_output(output_dir, manifest)
        rewriter = LinkRewriter(walk, plan, index, options.exclusion, skill_name=metadata.name)

        root = index.get(walk.root_id)
        if root is None:
            raise SkillPackError(f"Manifest {manifest} could not be indexed")
        _write_text(output_dir / MANIFEST_NAME, _rewrite_file(rewriter, root))

        resources_dir = output_dir / RESOURCES_DIR
        for resource_id in walk.bundled_resources:
            resource = index.get(resource_id)
            if resource is None:
                continue
            target = resources_dir / plan.entries[resource.file_path]
            target.parent.mkdir(parents=True, exist_ok=True)
            try:
                content = _rewrite_file(rewriter, resource)
            except (OSError, UnicodeDecodeError) as exc:
                self.logger.warning("Could not read %s for rewriting: %s", resource.relative_path, exc)
                self._copy(resource.file_path, target)
                continue
            _write_text(target, content)

        for asset in walk.bundled_assets:
            target = resources_dir / plan.entries[asset]
            target.parent.mkdir(parents=True, exist_ok=True)
            self._copy(asset, target)

        artifacts = build_artifacts(output_dir, metadata, options.formats)
        result = self._build_result(output_dir, metadata, walk, plan, artifacts, skill_root, index)
        self.logger.info(
            "Skill %s packaged to %s (%d files bundled, %d references excluded)",
            metadata.name,
            output_dir,
            len(result.dependencies),
            result.excluded_reference_count,
        )
        return result

    def walk(
        self,
        manifest_path: Path | str,
        options: Optional[PackagingOptions] = None,
        *,
        index: Optional[ResourceIndex] = None,
    ) -> tuple[ResourceIndex, WalkResult]:
        """Index and walk a skill without writing anything."""
        options = options or PackagingOptions()
        manifest = normalize_path(Path(manifest_path))
        if not manifest.is_file():
            raise ManifestNotFoundError(manifest)
        try:
            output_dir: Optional[Path] = self._resolve_output_path(
                manifest, load_skill_metadata(manifest), options
            )
        except PackageRootNotFoundError:
            output_dir = None
        return self._walk(manifest, output_dir, options, index)

    def _walk(
        self,
        manifest: Path,
        output_dir: Optional[Path],
        options: PackagingOptions,
        index: Optional[ResourceIndex],
    ) -> tuple[ResourceIndex, WalkResult]:
        skill_root = manifest.parent
        project_root = (
            normalize_path(options.project_root) if options.project_root else find_project_root(skill_root)
        )
        if index is None:
            exclude_dirs: List[Path] = []
            if output_dir is not None and not is_within(manifest, output_dir):
                exclude_dirs.append(output_dir)
            index = self._index_factory(project_root, options, exclude_dirs)
        root = index.add_resource(manifest)
        index.resolve_links()

        walk = walk_link_graph(
            root.id,
            index,
            WalkOptions(
                project_root=project_root,
                max_depth=options.link_follow_depth,
                exclusion=options.exclusion,
                exclude_navigation_files=options.exclude_navigation_files,
                skill_root=skill_root,
            ),
        )
        return index, walk

    def _resolve_output_path(
        self, manifest: Path, metadata: SkillMetadata, options: PackagingOptions
    ) -> Path:
        if options.output_path is not None:
            return normalize_path(options.output_path)
        package_root = find_package_root(manifest.parent)
        if package_root is None:
            raise PackageRootNotFoundError(manifest)
        skills_dir = normalize_path(package_root / "dist" / "skills")
        output_dir = normalize_path(skills_dir / bundle_name(metadata.name))
        if output_dir == skills_dir or not is_within(output_dir, skills_dir):
            raise SkillPackError(f"Skill name {metadata.name!r} does not map to a directory under {skills_dir}")
        return output_dir

    def _prepare_output(self, output_dir: Path, manifest: Path) -> None:
        if output_dir.is_file():
            raise SkillPackError(f"Output path {output_dir} is a file")
        if output_dir.exists():
            if is_within(manifest, output_dir):
                self.logger.info("Output %s contains the skill source; writing in place", output_dir)
            else:
                self.logger.debug("Removing stale output %s", output_dir)
                shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

    def _copy(self, source: Path, target: Path) -> None:
        try:
            shutil.copyfile(source, target)
        except OSError as exc:
            self.logger.warning("Could not copy %s: %s", source, exc)

    def _build_result(
        self,
        output_dir: Path,
        metadata: SkillMetadata,
        walk: WalkResult,
        plan: NamingPlan,
        artifacts: Dict[str, Path],
        skill_root: Path,
        index: ResourceIndex,
    ) -> BuildResult:
        excluded_paths: List[str] = []
        details: List[Dict[str, str]] = []
        for reference in walk.excluded_references:
            display = _display_path(reference.path, skill_root, index.base_dir)
            if display in excluded_paths:
                continue
            excluded_paths.append(display)
            details.append(_exclusion_detail(display, reference))
        return BuildResult(
            output_path=output_dir,
            skill=metadata,
            walk=walk,
            plan=plan,
            root=MANIFEST_NAME,
            dependencies=[f"{RESOURCES_DIR}/{relative}" for relative in plan.entries.values()],
            excluded_references=excluded_paths,
            excluded_details=details,
            max_bundled_depth=walk.max_bundled_depth,
            artifacts=artifacts,
        )


def _crawl_index(project_root: Path, options: PackagingOptions, exclude_dirs: List[Path]) -> ResourceIndex:
    return ResourceIndex.crawl(
        project_root,
        include=options.include_globs,
        exclude=options.exclude_paths,
        exclude_dirs=exclude_dirs,
    )


def _rewrite_file(rewriter: LinkRewriter, resource: Resource) -> str:
    with resource.file_path.open(encoding="utf-8", newline="") as handle:
        raw = handle.read()
    text = raw.replace("\r\n", "\n")
    rewritten = rewriter.rewrite(resource, text)
    if rewritten == text:
        return raw
    if "\r\n" in raw:
        return rewritten.replace("\n", "\r\n")
    return rewritten


def _write_text(path: Path, content: str) -> None:
    with path.open("w", encoding="utf-8", newline="") as handle:
        handle.write(content)


def _display_path(path: Path, skill_root: Path, base_dir: Path) -> str:
    for root in (skill_root, base_dir):
        if is_within(path, root):
            return path.relative_to(root).as_posix()
    return str(path)


def _exclusion_detail(display: str, reference: ExcludedReference) -> Dict[str, str]:
    detail = {"path": display, "reason": reference.reason.value}
    if reference.matched_rule is not None:
        detail["rule"] = ", ".join(reference.matched_rule.patterns)
    return detail


def package_skill(
    manifest_path: Path | str,
    options: Optional[PackagingOptions] = None,
    *,
    index: Optional[ResourceIndex] = None,
) -> BuildResult:
    """Package one skill with a default packager."""
    return SkillPackager().package(manifest_path, options, index=index)


__all__ = ["PackagingOptions", "SkillPackager", "package_skill"]
