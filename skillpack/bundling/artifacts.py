"""Secondary artifacts built from a written skill bundle."""

from __future__ import annotations

import gzip
import io
import json
import os
import re
import tarfile
import zipfile
from pathlib import Path
from typing import Dict, Iterator, List, Sequence, Tuple

from ..logging import get_logger
from ..models import SkillMetadata

ARTIFACT_FORMATS = ("directory", "zip", "npm", "marketplace")
NPM_SCOPE = "@skillpack"
DEFAULT_VERSION = "1.0.0"
DEFAULT_LICENSE = "MIT"

# Fixed entry timestamp: archives of an unchanged bundle are byte-identical.
_FIXED_ZIP_TIME = (1980, 1, 1, 0, 0, 0)

logger = get_logger("artifacts")


def _iter_bundle_files(output_dir: Path) -> Iterator[Tuple[str, Path]]:
    entries: List[Tuple[str, Path]] = []
    for dirpath, _dirnames, filenames in os.walk(output_dir):
        for filename in filenames:
            path = Path(dirpath) / filename
            entries.append((path.relative_to(output_dir).as_posix(), path))
    yield from sorted(entries)


def bundle_name(name: str) -> str:
    """Reduce a skill name to one path segment usable for output and archive names."""
    slug = re.sub(r"[^a-z0-9._-]+", "-", name.lower())
    return re.sub(r"-+", "-", slug).strip("-._") or "skill"


def build_package_json(metadata: SkillMetadata) -> Dict[str, object]:
    payload: Dict[str, object] = {
        "name": f"{NPM_SCOPE}/{bundle_name(metadata.name)}",
        "version": metadata.version or DEFAULT_VERSION,
        "description": metadata.description or f"{metadata.name} skill",
        "license": metadata.license or DEFAULT_LICENSE,
        "keywords": ["skillpack", "skill", "agent"],
        "files": ["**/*"],
    }
    if metadata.author:
        payload["author"] = metadata.author
    return payload


def build_marketplace_manifest(metadata: SkillMetadata) -> Dict[str, object]:
    payload: Dict[str, object] = {
        "name": metadata.name,
        "type": "skill",
        "entrypoint": "SKILL.md",
        "version": metadata.version or DEFAULT_VERSION,
    }
    for key in ("description", "license", "author"):
        value = getattr(metadata, key)
        if value:
            payload[key] = value
    return payload


def _write_json(path: Path, payload: Dict[str, object]) -> None:
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def write_npm_package(output_dir: Path, metadata: SkillMetadata) -> Tuple[Path, Path]:
    """Write package.json into the bundle and an npm-pack style tarball beside it."""
    package_json = output_dir / "package.json"
    _write_json(package_json, build_package_json(metadata))

    version = metadata.version or DEFAULT_VERSION
    tarball = output_dir.parent / f"{bundle_name(metadata.name)}-{version}.tgz"
    with tarball.open("wb") as raw, gzip.GzipFile(fileobj=raw, mode="wb", mtime=0) as compressed:
        with tarfile.open(fileobj=compressed, mode="w") as archive:
            for arcname, path in _iter_bundle_files(output_dir):
                data = path.read_bytes()
                info = tarfile.TarInfo(name=f"package/{arcname}")
                info.size = len(data)
                info.mode = 0o644
                info.mtime = 0
                archive.addfile(info, io.BytesIO(data))
    logger.debug("Wrote npm tarball %s", tarball)
    return package_json, tarball


def write_zip(output_dir: Path, name: str) -> Path:
    """Archive the bundle as ``<parent>/<name>.zip`` with bundle-relative entries."""
    archive_path = output_dir.parent / f"{bundle_name(name)}.zip"
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for arcname, path in _iter_bundle_files(output_dir):
            info = zipfile.ZipInfo(arcname, date_time=_FIXED_ZIP_TIME)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = 0o644 << 16
            archive.writestr(info, path.read_bytes())
    logger.debug("Wrote zip archive %s", archive_path)
    return archive_path


def write_marketplace_manifest(output_dir: Path, metadata: SkillMetadata) -> Path:
    manifest_path = output_dir.parent / f"{bundle_name(metadata.name)}.marketplace.json"
    _write_json(manifest_path, build_marketplace_manifest(metadata))
    return manifest_path


def build_artifacts(
    output_dir: Path, metadata: SkillMetadata, formats: Sequence[str]
) -> Dict[str, Path]:
    """Produce the requested artifacts. npm runs first so its package.json lands in the zip."""
    unknown = [fmt for fmt in formats if fmt not in ARTIFACT_FORMATS]
    if unknown:
        raise ValueError(f"Unknown artifact format(s): {', '.join(unknown)}")

    artifacts: Dict[str, Path] = {"directory": output_dir}
    if "npm" in formats:
        _, artifacts["npm"] = write_npm_package(output_dir, metadata)
    if "zip" in formats:
        artifacts["zip"] = write_zip(output_dir, metadata.name)
    if "marketplace" in formats:
        artifacts["marketplace"] = write_marketplace_manifest(output_dir, metadata)
    return artifacts


__all__ = [
    "ARTIFACT_FORMATS",
    "build_artifacts",
    "build_marketplace_manifest",
    "build_package_json",
    "bundle_name",
    "write_marketplace_manifest",
    "write_npm_package",
    "write_zip",
]
