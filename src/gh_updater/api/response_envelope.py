"""Standardized {success, data, error} response payloads."""

from __future__ import annotations

from typing import Any

from fastapi import status

from gh_updater.core.exceptions import (
    ApiError,
    AppNotFoundError,
    AuthError,
    OperationTimeoutError,
    OpError,
    OpErrorKind,
    PackageNotFoundError,
    RateLimitError,
    ResolveError,
    UpdaterError,
)

_OP_ERROR_STATUS = {
    OpErrorKind.VERSION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    OpErrorKind.OPERATION_IN_PROGRESS: status.HTTP_409_CONFLICT,
    OpErrorKind.UNMANAGED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    OpErrorKind.UNAUTHORIZED: status.HTTP_502_BAD_GATEWAY,
    OpErrorKind.DOWNLOAD_FAILED: status.HTTP_502_BAD_GATEWAY,
    OpErrorKind.INSTALL_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    OpErrorKind.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
}


def success_response(data: Any) -> dict[str, Any]:
    """Create standardized success payload."""
    return {"success": True, "data": data, "error": None}


def error_response(message: str, code: str | None = None) -> dict[str, Any]:
    """Create standardized error payload."""
    return {
        "success": False,
        "data": None,
        "error": {"message": message, "code": code},
    }


def error_status(exc: UpdaterError) -> tuple[int, str]:
    """HTTP status and error code for an updater exception."""
    if isinstance(exc, OpError):
        return _OP_ERROR_STATUS.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR), exc.kind.value
    if isinstance(exc, AppNotFoundError):
        return status.HTTP_404_NOT_FOUND, "app_not_found"
    if isinstance(exc, PackageNotFoundError):
        return status.HTTP_404_NOT_FOUND, "package_not_found"
    if isinstance(exc, OperationTimeoutError):
        return status.HTTP_504_GATEWAY_TIMEOUT, "timeout"
    if isinstance(exc, RateLimitError):
        return status.HTTP_503_SERVICE_UNAVAILABLE, "rate_limited"
    if isinstance(exc, AuthError):
        return status.HTTP_502_BAD_GATEWAY, exc.kind.value
    if isinstance(exc, (ApiError, ResolveError)):
        return status.HTTP_502_BAD_GATEWAY, "github_error"
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error"
