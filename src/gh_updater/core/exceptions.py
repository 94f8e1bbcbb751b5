"""Error taxonomy for credential, GitHub, resolution and package operations."""

from __future__ import annotations

from enum import Enum


class UpdaterError(Exception):
    """Base exception for all updater errors."""


class AuthErrorKind(str, Enum):
    MISSING_CREDENTIALS = "missing_credentials"
    INVALID_KEY = "invalid_key"
    GITHUB_REJECTED = "github_rejected"
    NETWORK_ERROR = "network_error"


class AuthError(UpdaterError):
    """Raised when an installation access token cannot be obtained."""

    def __init__(
        self,
        kind: AuthErrorKind,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.body = body


class ApiError(UpdaterError):
    """Base exception for GitHub HTTP-layer failures."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class RateLimitError(ApiError):
    """Raised on 403/429 rate limiting or while a backoff marker is active."""


class NotFoundError(ApiError):
    """Raised when a repository or release does not exist."""


class ResolveError(UpdaterError):
    """Raised when releases for a repository could not be fetched."""

    def __init__(self, repo: str, cause: Exception):
        super().__init__(f"Could not resolve releases for {repo}: {cause}")
        self.repo = repo
        self.cause = cause


class OpErrorKind(str, Enum):
    VERSION_NOT_FOUND = "version_not_found"
    DOWNLOAD_FAILED = "download_failed"
    INSTALL_FAILED = "install_failed"
    UNAUTHORIZED = "unauthorized"
    OPERATION_IN_PROGRESS = "operation_in_progress"
    UNMANAGED = "unmanaged"
    TIMEOUT = "timeout"


class OpError(UpdaterError):
    """Raised when an install or rollback cannot be completed."""

    def __init__(self, kind: OpErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class OperationTimeoutError(UpdaterError, TimeoutError):
    """Raised when an external call or pass exceeds its deadline."""

    def __init__(self, operation: str, seconds: float):
        super().__init__(f"{operation} exceeded its {seconds:g}s deadline")
        self.operation = operation
        self.seconds = seconds


class ConfigError(UpdaterError):
    """Malformed host metadata. Logged and skipped, never propagated."""


class AppNotFoundError(UpdaterError):
    """Raised when an app id does not match any stored app."""

    def __init__(self, app_id: str):
        super().__init__(f"App not found: {app_id}")
        self.app_id = app_id


class PackageNotFoundError(UpdaterError):
    """Raised when no discovered package points at the repository."""

    def __init__(self, repo_slug: str):
        super().__init__(f"No installed package updates from {repo_slug}")
        self.repo_slug = repo_slug
