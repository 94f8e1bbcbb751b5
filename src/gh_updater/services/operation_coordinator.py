"""Install and rollback of packages from verified GitHub releases."""

from __future__ import annotations

import asyncio
import logging

from gh_updater.config import Settings
from gh_updater.core.exceptions import (
    ApiError,
    AuthError,
    OperationTimeoutError,
    OpError,
    OpErrorKind,
    ResolveError,
)
from gh_updater.core.logging import repo_ctx
from gh_updater.host.base import HostPlatform, InstallError
from gh_updater.observability.tracing import start_span
from gh_updater.ops.deadlines import deadline
from gh_updater.ops.metrics import inc
from gh_updater.ops.retry_policy import AUTH_FAILURE_STATUSES
from gh_updater.schemas.packages import Package
from gh_updater.services.audit_log import AuditLog, OperationAction, OperationRecord, OperationState
from gh_updater.services.github_client import RepositoryClient
from gh_updater.services.operation_locks import OperationLockManager
from gh_updater.services.release_resolver import ReleaseResolver

logger = logging.getLogger(__name__)


def _is_unauthorized(error: Exception) -> bool:
    if isinstance(error, ResolveError):
        error = error.cause
    if isinstance(error, AuthError):
        return True
    return isinstance(error, ApiError) and error.status_code in AUTH_FAILURE_STATUSES


class PackageOperationCoordinator:
    """
    Runs install and rollback operations, one at a time per repository.

    Steps: resolve the exact release tag, download its archive, hand the
    archive to the host. Only tags present in GitHub's release list are
    installable. A second request for a repository with an operation in
    flight is rejected rather than queued.
    """

    def __init__(
        self,
        resolver: ReleaseResolver,
        client: RepositoryClient,
        host: HostPlatform,
        locks: OperationLockManager,
        settings: Settings,
        audit: AuditLog | None = None,
    ):
        self.resolver = resolver
        self.client = client
        self.host = host
        self.locks = locks
        self.settings = settings
        self.audit = audit or AuditLog()

    async def install(self, package: Package, target_version: str) -> OperationRecord:
        return await self._run(OperationAction.INSTALL, package, target_version)

    async def rollback(self, package: Package, target_version: str) -> OperationRecord:
        # Reinstalling the installed version is allowed
        return await self._run(OperationAction.ROLLBACK, package, target_version)

    async def _run(
        self,
        action: OperationAction,
        package: Package,
        target_version: str,
    ) -> OperationRecord:
        app_id = package.app_id
        if app_id is None:
            raise OpError(
                OpErrorKind.UNMANAGED,
                f"{package.repo_slug} is not managed by any GitHub app",
            )

        lock_name = f"package-op:{package.repo_slug}"
        seconds = self.settings.operation_deadline_seconds
        # The lease outlives the deadline: a started host install is never abandoned
        lease = seconds + self.settings.install_lease_seconds
        token = repo_ctx.set(package.repo_slug)
        try:
            async with self.locks.hold(lock_name, lease) as acquired:
                if not acquired:
                    inc("package_operation", attributes={"action": action.value, "outcome": "in_progress"})
                    raise OpError(
                        OpErrorKind.OPERATION_IN_PROGRESS,
                        f"An operation for {package.repo_slug} is already running",
                    )

                record = OperationRecord(
                    repo_slug=package.repo_slug,
                    kind=package.kind,
                    slug=package.slug,
                    action=action,
                    version=target_version,
                    app_id=app_id,
                )
                self.audit.record(record)

                try:
                    with start_span(
                        f"package.{action.value}",
                        attributes={"repo": package.repo_slug, "version": target_version},
                    ):
                        async with deadline(f"package {action.value}", seconds):
                            archive = await self._fetch(record, package, app_id)
                        await self._install(record, package, archive)
                except OperationTimeoutError as e:
                    self._fail(record, OpErrorKind.TIMEOUT, str(e))
                    raise OpError(OpErrorKind.TIMEOUT, str(e)) from e
                except OpError as e:
                    self._fail(record, e.kind, str(e))
                    raise
                except asyncio.CancelledError:
                    self._fail(record, OpErrorKind.TIMEOUT, "Operation cancelled")
                    raise

                record.advance(OperationState.DONE)
                inc("package_operation", attributes={"action": action.value, "outcome": "done"})
                logger.info(
                    "Package operation completed",
                    extra={"operation": record.id, "action": action.value, "version": target_version},
                )
                return record
        finally:
            repo_ctx.reset(token)

    async def _fetch(self, record: OperationRecord, package: Package, app_id: str) -> bytes:
        """Resolve the exact release tag and download its archive in full."""
        record.advance(OperationState.RESOLVING)
        try:
            release = await self.resolver.find_release(package.repo_slug, record.version, app_id)
        except ResolveError as e:
            kind = OpErrorKind.UNAUTHORIZED if _is_unauthorized(e) else OpErrorKind.DOWNLOAD_FAILED
            raise OpError(kind, f"Could not fetch releases: {e.cause}") from e
        if release is None:
            raise OpError(
                OpErrorKind.VERSION_NOT_FOUND,
                f"{record.version} is not a release of {package.repo_slug}",
            )

        record.advance(OperationState.DOWNLOADING)
        try:
            return await self.client.download_asset(app_id, release)
        except (ApiError, AuthError) as e:
            kind = OpErrorKind.UNAUTHORIZED if _is_unauthorized(e) else OpErrorKind.DOWNLOAD_FAILED
            raise OpError(kind, f"Download of {release.tag_name} failed: {e}") from e

    async def _install(self, record: OperationRecord, package: Package, archive: bytes) -> None:
        """Hand the archive to the host and wait for it, even if the caller is cancelled.

        Host installers run in worker threads that cannot be interrupted, so
        the lock stays held until the host call has returned.
        """
        record.advance(OperationState.INSTALLING)
        install = asyncio.ensure_future(
            self.host.install_package_archive(package.kind, package.slug, archive)
        )
        try:
            await asyncio.shield(install)
        except InstallError as e:
            raise OpError(OpErrorKind.INSTALL_FAILED, f"Host rejected the package: {e}") from e
        except asyncio.CancelledError:
            await asyncio.wait({install})
            if not install.cancelled() and install.exception() is not None:
                logger.warning(
                    "Host install failed after cancellation",
                    extra={"operation": record.id, "error": str(install.exception())},
                )
            raise

        await self.resolver.invalidate(package.repo_slug)

    def _fail(self, record: OperationRecord, kind: OpErrorKind, message: str) -> None:
        record.error_kind = kind.value
        record.error = message
        record.advance(OperationState.FAILED)
        inc("package_operation", attributes={"action": record.action.value, "outcome": kind.value})
        logger.warning(
            "Package operation failed",
            extra={"operation": record.id, "action": record.action.value, "error_kind": kind.value, "error": message},
        )
