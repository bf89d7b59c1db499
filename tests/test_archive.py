import time
from datetime import datetime, timezone
from unittest import mock

import pytest

from klserver.app import Config, Handlers
from klserver.archive import (
    backup_is_successful,
    restoring_is_successful,
    service_archive,
    service_unarchive,
    unarchive_service,
)
from klserver.models import Error
from klserver.store import (
    BACKUP_RESTORE_SERVICE_FIELD,
    BackupStore,
    EventType,
    KuberlogicService,
    NotFoundError,
    ObjectMeta,
    RestoreStore,
    ServiceBackup,
    ServiceRestore,
    ServiceStore,
    WatchEvent,
)

SERVICE_ID = "one"


def _eventually(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        result = predicate()
        if result:
            return result
        time.sleep(0.05)
    raise AssertionError("condition was not met in time")


def _handlers(services=(), backups=(), restores=()):
    return Handlers(
        config=Config(domain="kuberlogic.local"),
        services=ServiceStore(services),
        backups=BackupStore(backups),
        restores=RestoreStore(restores),
    )


def _service(archived=False):
    return KuberlogicService(
        meta=ObjectMeta(name=SERVICE_ID),
        type="docker-compose",
        replicas=1,
        archive_requested=archived,
        archived_status=archived,
    )


def _backup(name, service, labelled_with=None, phase="", day=None):
    labels = {BACKUP_RESTORE_SERVICE_FIELD: labelled_with} if labelled_with else {}
    stamp = datetime(2022, 1, day, tzinfo=timezone.utc) if day else None
    return ServiceBackup(
        meta=ObjectMeta(name=name, labels=labels, creation_timestamp=stamp),
        service_name=service,
        phase=phase,
    )


# --- archive -----------------------------------------------------------------


def test_archive_ok():
    h = _handlers(
        services=[_service()],
        backups=[
            _backup("should-removed", SERVICE_ID),
            _backup("backup-from-another-service", "another-service"),
            _backup("previous", SERVICE_ID, labelled_with=SERVICE_ID),
        ],
    )
    response = service_archive(h, SERVICE_ID)
    assert response.status == 200
    assert response.payload is None

    selector = {BACKUP_RESTORE_SERVICE_FIELD: SERVICE_ID}
    new_backups = _eventually(
        lambda: [b for b in h.backups.list(selector) if b.name.startswith(SERVICE_ID + "-")]
    )
    for backup in new_backups:
        backup.mark_successful()
        h.backups.update(backup)

    _eventually(lambda: h.services.get(SERVICE_ID).archive_requested)
    assert h.services.get(SERVICE_ID).archive_requested is True

    remaining = h.backups.list(selector)
    assert [b.name for b in remaining] == [b.name for b in new_backups]
    assert all(b.name.startswith(SERVICE_ID) for b in remaining)
    assert h.backups.get("backup-from-another-service").service_name == "another-service"
    assert h.backups.get("should-removed").name == "should-removed"


def test_archive_already_archived():
    h = _handlers(services=[_service(archived=True)])
    response = service_archive(h, SERVICE_ID)
    assert response.status == 503
    assert response.payload == Error("service already is in archive state: one")


def test_archive_service_not_found():
    response = service_archive(_handlers(), SERVICE_ID)
    assert response.status == 404
    assert response.payload == Error("kuberlogic service not found: one")


def test_backup_condition_matches_only_successful_named_backup():
    condition = backup_is_successful("b1")
    pending = _backup("b1", SERVICE_ID)
    done = _backup("b1", SERVICE_ID, phase="Successful")
    other = _backup("b2", SERVICE_ID, phase="Successful")
    assert condition(WatchEvent(EventType.ADDED, pending)) is False
    assert condition(WatchEvent(EventType.ADDED, other)) is False
    assert condition(WatchEvent(EventType.MODIFIED, done)) is True
    assert condition(WatchEvent(EventType.DELETED, done)) is False


def test_backup_condition_rejects_other_types():
    condition = backup_is_successful("b1")
    with pytest.raises(TypeError, match="unexpected object type"):
        condition(WatchEvent(EventType.ADDED, ServiceRestore(meta=ObjectMeta(name="b1"))))


# --- unarchive ---------------------------------------------------------------


def _unarchive_backups():
    return [
        _backup("target", SERVICE_ID, SERVICE_ID, "Successful", day=2),
        _backup("earlier", SERVICE_ID, SERVICE_ID, "Successful", day=1),
        _backup("not-successful", SERVICE_ID, SERVICE_ID, "Failed", day=3),
        _backup(
            "from-another-service",
            "another-service",
            "from-another-service",
            "Successful",
            day=4,
        ),
    ]


def test_unarchive_ok():
    h = _handlers(services=[_service(archived=True)], backups=_unarchive_backups())
    response = service_unarchive(h, SERVICE_ID)
    assert response.status == 200
    assert response.payload is None

    restores = _eventually(lambda: h.restores.list())
    assert [r.backup_name for r in restores] == ["target"]
    for restore in restores:
        restore.mark_successful()
        h.restores.update(restore)

    _eventually(lambda: not h.services.get(SERVICE_ID).archive_requested)
    assert h.services.get(SERVICE_ID).archive_requested is False


def test_unarchive_not_archived():
    h = _handlers(services=[_service()])
    response = service_unarchive(h, SERVICE_ID)
    assert response.status == 503
    assert response.payload == Error("service is not in archive state: one")


def test_unarchive_service_not_found():
    response = service_unarchive(_handlers(), SERVICE_ID)
    assert response.status == 404
    assert response.payload == Error("kuberlogic service not found: one")


def test_unarchive_without_successful_backup_fails():
    h = _handlers(
        services=[_service(archived=True)],
        backups=[_backup("failed", SERVICE_ID, SERVICE_ID, "Failed", day=1)],
    )
    with pytest.raises(RuntimeError, match="error finding successful backup") as info:
        unarchive_service(h, SERVICE_ID)
    assert isinstance(info.value.__cause__, NotFoundError)
    assert h.restores.list() == []


def test_unarchive_restore_already_exists():
    existing = ServiceRestore(meta=ObjectMeta(name="target-1000"), backup_name="target")
    h = _handlers(
        services=[_service(archived=True)],
        backups=_unarchive_backups(),
        restores=[existing],
    )
    with mock.patch("time.time", return_value=1000.0):
        with pytest.raises(RuntimeError, match="restore already exists"):
            unarchive_service(h, SERVICE_ID)
    assert h.services.get(SERVICE_ID).archive_requested is True


def test_restore_condition_matches_only_successful_named_restore():
    condition = restoring_is_successful("r1")
    pending = ServiceRestore(meta=ObjectMeta(name="r1"), backup_name="b")
    done = ServiceRestore(meta=ObjectMeta(name="r1"), backup_name="b", phase="Successful")
    other = ServiceRestore(meta=ObjectMeta(name="r2"), backup_name="b", phase="Successful")
    assert condition(WatchEvent(EventType.ADDED, pending)) is False
    assert condition(WatchEvent(EventType.MODIFIED, other)) is False
    assert condition(WatchEvent(EventType.MODIFIED, done)) is True
    assert condition(WatchEvent(EventType.DELETED, done)) is False


def test_restore_condition_rejects_other_types():
    condition = restoring_is_successful("r1")
    with pytest.raises(TypeError, match="unexpected object type"):
        condition(WatchEvent(EventType.ADDED, _backup("r1", SERVICE_ID)))