"""Bounded in-process record of package operations."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from gh_updater.schemas.packages import PackageKind


class OperationAction(str, Enum):
    INSTALL = "install"
    ROLLBACK = "rollback"


class OperationState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    DOWNLOADING = "downloading"
    INSTALLING = "installing"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({OperationState.DONE, OperationState.FAILED})


@dataclass
class OperationRecord:
    repo_slug: str
    kind: PackageKind
    slug: str
    action: OperationAction
    version: str
    app_id: str | None = None
    id: str = field(default_factory=lambda: uuid4().hex)
    state: OperationState = OperationState.IDLE
    error_kind: str | None = None
    error: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    def advance(self, state: OperationState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Operation {self.id} already {self.state.value}")
        self.state = state
        if state in TERMINAL_STATES:
            self.finished_at = datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["action"] = self.action.value
        data["state"] = self.state.value
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


class AuditLog:
    def __init__(self, max_entries: int = 200):
        self._entries: deque[OperationRecord] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def record(self, operation: OperationRecord) -> None:
        with self._lock:
            self._entries.append(operation)

    def recent(self, limit: int = 50, repo_slug: str | None = None) -> list[OperationRecord]:
        """Most recent operations first."""
        with self._lock:
            entries = list(self._entries)
        if repo_slug:
            entries = [e for e in entries if e.repo_slug == repo_slug]
        return list(reversed(entries))[:limit]
