import pytest

from gh_updater.schemas.packages import PackageKind
from gh_updater.services.audit_log import AuditLog, OperationAction, OperationRecord, OperationState


def _record(repo: str = "acme/widget") -> OperationRecord:
    return OperationRecord(
        repo_slug=repo,
        kind=PackageKind.THEME,
        slug="widget",
        action=OperationAction.INSTALL,
        version="v1.0.0",
    )


def test_terminal_state_cannot_be_left() -> None:
    record = _record()
    record.advance(OperationState.RESOLVING)
    record.advance(OperationState.FAILED)

    with pytest.raises(RuntimeError):
        record.advance(OperationState.INSTALLING)


def test_to_dict_is_json_friendly() -> None:
    record = _record()
    record.advance(OperationState.DONE)

    data = record.to_dict()

    assert data["kind"] == "theme"
    assert data["state"] == "done"
    assert isinstance(data["finished_at"], str)


def test_log_is_bounded() -> None:
    log = AuditLog(max_entries=2)
    records = [_record(f"acme/r{i}") for i in range(3)]
    for record in records:
        log.record(record)

    assert log.recent() == [records[2], records[1]]
