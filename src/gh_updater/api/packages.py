"""Package status, sync, install and rollback endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from gh_updater.api.deps import get_package_service
from gh_updater.api.response_envelope import success_response
from gh_updater.schemas.packages import ChannelRequest, VersionRequest, normalize_repo_slug
from gh_updater.services.package_service import PackageService

router = APIRouter(prefix="/packages", tags=["packages"])


def _repo_slug(owner: str, repo: str) -> str:
    slug = normalize_repo_slug(f"{owner}/{repo}")
    if slug is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid repository: {owner}/{repo}",
        )
    return slug


@router.get("")
async def list_packages(service: PackageService = Depends(get_package_service)) -> dict:
    """Installed GitHub-managed packages with their update status."""
    views = await service.list_packages()
    return success_response([view.model_dump(mode="json") for view in views])


@router.post("/sync")
async def sync_packages(service: PackageService = Depends(get_package_service)) -> dict:
    """Refresh cached release data and return the updated package list."""
    views = await service.sync()
    return success_response([view.model_dump(mode="json") for view in views])


@router.get("/operations")
async def list_operations(
    limit: int = Query(50, ge=1, le=200),
    repo: str | None = None,
    service: PackageService = Depends(get_package_service),
) -> dict:
    records = service.operations(limit=limit, repo_slug=normalize_repo_slug(repo) if repo else None)
    return success_response([record.to_dict() for record in records])


@router.post("/{owner}/{repo}/install")
async def install_package(
    owner: str,
    repo: str,
    request: VersionRequest,
    service: PackageService = Depends(get_package_service),
) -> dict:
    record = await service.install(_repo_slug(owner, repo), request.version)
    return success_response(record.to_dict())


@router.post("/{owner}/{repo}/rollback")
async def rollback_package(
    owner: str,
    repo: str,
    request: VersionRequest,
    service: PackageService = Depends(get_package_service),
) -> dict:
    record = await service.rollback(_repo_slug(owner, repo), request.version)
    return success_response(record.to_dict())


@router.put("/{owner}/{repo}/channel")
async def set_release_channel(
    owner: str,
    repo: str,
    request: ChannelRequest,
    service: PackageService = Depends(get_package_service),
) -> dict:
    package = await service.set_channel(_repo_slug(owner, repo), request.channel, request.kind)
    return success_response(package.model_dump(mode="json"))


@router.get("/{owner}/{repo}/releases")
async def release_notes(
    owner: str,
    repo: str,
    service: PackageService = Depends(get_package_service),
) -> dict:
    notes = await service.release_notes(_repo_slug(owner, repo))
    return success_response([note.model_dump(mode="json") for note in notes])
