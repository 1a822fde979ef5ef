"""FastAPI application entrypoint for skillpack service mode."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import ConfigError, PackagingOptions, options_for_manifest
from ..errors import NamingCollisionError, PackageRootNotFoundError, SkillPackError
from ..models import BuildResult
from ..packager import SkillPackager
from ..validators import PackagingReport, validate_packaging


class PackagingRequest(BaseModel):
    manifest_path: str
    link_follow_depth: Optional[Union[int, str]] = None
    resource_naming: Optional[str] = None
    strip_prefix: Optional[str] = None
    exclude_navigation_files: Optional[bool] = None


class PackageRequest(PackagingRequest):
    output_path: Optional[str] = None
    formats: Optional[List[str]] = None


class ExcludedReferenceModel(BaseModel):
    path: str
    reason: str
    rule: Optional[str] = None


class PackageResponse(BaseModel):
    name: str
    output_path: str
    root: str
    dependencies: List[str]
    excluded_references: List[ExcludedReferenceModel]
    excluded_reference_count: int
    max_bundled_depth: int
    artifacts: Dict[str, str]


class IssueModel(BaseModel):
    severity: str
    code: str
    message: str
    path: Optional[str] = None


class ValidateResponse(BaseModel):
    ok: bool
    issues: List[IssueModel]


class HealthResponse(BaseModel):
    status: str


def _default_packager() -> SkillPackager:
    return SkillPackager()


def _options(payload: PackagingRequest) -> PackagingOptions:
    overrides = payload.model_dump(exclude_none=True, exclude={"manifest_path"})
    return options_for_manifest(Path(payload.manifest_path), overrides)


async def _run_blocking(func: Callable[[], Any]) -> Any:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func)


def _package_response(result: BuildResult) -> PackageResponse:
    return PackageResponse(
        name=result.skill.name,
        output_path=str(result.output_path),
        root=result.root,
        dependencies=list(result.dependencies),
        excluded_references=[ExcludedReferenceModel(**detail) for detail in result.excluded_details],
        excluded_reference_count=result.excluded_reference_count,
        max_bundled_depth=result.max_bundled_depth,
        artifacts={fmt: str(path) for fmt, path in result.artifacts.items()},
    )


def _validate_response(report: PackagingReport) -> ValidateResponse:
    return ValidateResponse(
        ok=report.ok,
        issues=[
            IssueModel(severity=issue.severity, code=issue.code, message=issue.message, path=issue.path)
            for issue in report.issues
        ],
    )


def create_app(
    packager_factory: Callable[[], SkillPackager] = _default_packager,
) -> FastAPI:
    """Create the FastAPI application exposing skillpack operations."""
    app = FastAPI(title="skillpack service", version="1.0.0")

    async def get_packager() -> SkillPackager:
        # Fresh per request: resource indexes are never shared between builds.
        return packager_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/package", response_model=PackageResponse)
    async def package_skill(
        payload: PackageRequest,
        packager: SkillPackager = Depends(get_packager),
    ) -> PackageResponse:
        result = await _run_blocking(lambda: packager.package(payload.manifest_path, _options(payload)))
        return _package_response(result)

    @app.post("/validate", response_model=ValidateResponse)
    async def validate_skill(
        payload: PackagingRequest,
        packager: SkillPackager = Depends(get_packager),
    ) -> ValidateResponse:
        report = await _run_blocking(
            lambda: validate_packaging(payload.manifest_path, _options(payload), packager=packager)
        )
        return _validate_response(report)

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(_: Any, exc: FileNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(NamingCollisionError)
    async def collision_handler(_: Any, exc: NamingCollisionError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"detail": str(exc), "sources": [str(source) for source in exc.sources]},
        )

    @app.exception_handler(ConfigError)
    async def config_error_handler(_: Any, exc: ConfigError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(PackageRootNotFoundError)
    async def package_root_handler(_: Any, exc: PackageRootNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(SkillPackError)
    async def skillpack_error_handler(_: Any, exc: SkillPackError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port)
