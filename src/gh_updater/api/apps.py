"""GitHub App connection endpoints. Secrets are never returned."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from gh_updater.api.deps import get_package_service
from gh_updater.api.response_envelope import success_response
from gh_updater.schemas.apps import AppCreate, AppSummary, AssignRequest
from gh_updater.services.package_service import PackageService

router = APIRouter(prefix="/apps", tags=["apps"])


@router.get("")
async def list_apps(service: PackageService = Depends(get_package_service)) -> dict:
    apps = await service.list_apps()
    return success_response([AppSummary.from_app(app).model_dump(mode="json") for app in apps])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_app(
    request: AppCreate,
    service: PackageService = Depends(get_package_service),
) -> dict:
    app = await service.create_app(request)
    return success_response(AppSummary.from_app(app).model_dump(mode="json"))


@router.delete("/{app_id}")
async def disconnect_app(
    app_id: str,
    service: PackageService = Depends(get_package_service),
) -> dict:
    await service.disconnect(app_id)
    return success_response({"id": app_id, "deleted": True})


@router.post("/{app_id}/assign")
async def assign_repository(
    app_id: str,
    request: AssignRequest,
    service: PackageService = Depends(get_package_service),
) -> dict:
    app = await service.assign(app_id, request.repo)
    return success_response(AppSummary.from_app(app).model_dump(mode="json"))


@router.post("/{app_id}/health")
async def check_app_health(
    app_id: str,
    service: PackageService = Depends(get_package_service),
) -> dict:
    report = await service.check_app(app_id)
    return success_response(report.model_dump(mode="json"))
