"""Archiving and unarchiving of services through backups and restores."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from .app import Handlers
from .models import Error, Response
from .store import (
    BACKUP_RESTORE_SERVICE_FIELD,
    AlreadyExistsError,
    EventType,
    NotFoundError,
    ServiceBackup,
    ServiceRestore,
    WatchEvent,
)

ARCHIVE_WAIT_TIMEOUT = 2 * 60 * 60.0
UNARCHIVE_WAIT_TIMEOUT = 2 * 60 * 60.0

_log = logging.getLogger(__name__)


def _in_background(handlers: Handlers, task: Callable[[Handlers, str], None], name: str, failure: str) -> None:
    def run() -> None:
        try:
            task(handlers, name)
        except Exception as exc:
            handlers.log.error("%s: %s", failure, exc)

    threading.Thread(target=run, name=f"{task.__name__}-{name}", daemon=True).start()


def service_archive(handlers: Handlers, service_id: str) -> Response:
    """Check the service and archive it in the background."""
    try:
        service = handlers.services.get(service_id)
    except NotFoundError as exc:
        message = f"kuberlogic service not found: {service_id}"
        handlers.log.error("%s (%s)", message, exc)
        return Response(404, Error(message))
    except Exception as exc:
        message = "error finding service"
        handlers.log.error("%s: %s", message, exc)
        return Response(503, Error(message))

    if service.archived():
        message = f"service already is in archive state: {service.name}"
        handlers.log.error(message)
        return Response(503, Error(message))

    _in_background(handlers, archive_service, service.name, "error archiving service")
    return Response(200)


def archive_service(handlers: Handlers, service_name: str) -> None:
    """Take a backup, wait for it, drop older backups and mark the service archived."""
    handlers.log.info("taking backup of the service %s", service_name)
    try:
        backup = handlers.backups.create_by_service_name(service_name)
    except Exception as exc:
        raise RuntimeError(f"error creating service backup: {exc}") from exc

    handlers.log.info("waiting for backup %s of %s to be ready", backup.name, service_name)
    try:
        handlers.backups.wait(backup, backup_is_successful(backup.name), ARCHIVE_WAIT_TIMEOUT)
    except Exception as exc:
        raise RuntimeError(f"error waiting for service backup: {exc}") from exc

    handlers.log.info("deleting previous backups of %s", service_name)
    selector = handlers.list_options_by_key_value(BACKUP_RESTORE_SERVICE_FIELD, service_name)
    try:
        previous = handlers.backups.list(selector)
    except Exception as exc:
        raise RuntimeError(f"error listing service backups: {exc}") from exc
    for item in previous:
        if item.name == backup.name:
            continue
        handlers.log.info("deleting backup %s of %s", item.name, service_name)
        try:
            handlers.backups.delete(item.name)
        except Exception as exc:
            raise RuntimeError(f"error deleting service backup: {exc}") from exc

    handlers.log.info("archive service %s", service_name)
    try:
        handlers.services.patch(service_name, {"spec": {"archived": True}})
    except Exception as exc:
        raise RuntimeError(f"error set backup to service: {exc}") from exc


def backup_is_successful(name: str) -> Callable[[WatchEvent], bool]:
    """Return a wait condition that holds once backup ``name`` is successful."""

    def condition(event: WatchEvent) -> bool:
        if event.type not in (EventType.ADDED, EventType.MODIFIED):
            _log.debug("unknown event %s", event.type)
            return False
        obj = event.object
        if not isinstance(obj, ServiceBackup):
            _log.info("event is not a KuberlogicServiceBackup: %r", event)
            raise TypeError("unexpected object type")
        if obj.name != name:
            _log.info("skipping event for %s, waiting for %s", obj.name, name)
            return False
        if not obj.is_successful():
            _log.info("backup still is not successful: %s", obj.phase)
            return False
        _log.info("backup finally is successful: %s", obj.phase)
        return True

    return condition


def service_unarchive(handlers: Handlers, service_id: str) -> Response:
    """Check the service and restore it from its latest backup in the background."""
    try:
        service = handlers.services.get(service_id)
    except NotFoundError as exc:
        message = f"kuberlogic service not found: {service_id}"
        handlers.log.error("%s (%s)", message, exc)
        return Response(404, Error(message))
    except Exception as exc:
        message = "error finding service"
        handlers.log.error("%s: %s", message, exc)
        return Response(503, Error(message))

    if not service.archived():
        message = f"service is not in archive state: {service.name}"
        handlers.log.error(message)
        return Response(503, Error(message))

    _in_background(handlers, unarchive_service, service.name, "error unarchiving service")
    return Response(200)


def unarchive_service(handlers: Handlers, service_name: str) -> None:
    """Restore from the latest successful backup, wait for it and unset archived."""
    handlers.log.info("searching successful backup of %s", service_name)
    selector = handlers.list_options_by_key_value(BACKUP_RESTORE_SERVICE_FIELD, service_name)
    try:
        backup = handlers.backups.first_successful(selector, reverse=True)
    except Exception as exc:
        raise RuntimeError(f"error finding successful backup: {exc}") from exc

    handlers.log.info("restore %s from backup %s", service_name, backup.name)
    try:
        restore = handlers.restores.create_by_backup_name(backup.name)
    except AlreadyExistsError as exc:
        raise RuntimeError(f"restore already exists: {exc}") from exc
    except Exception as exc:
        raise RuntimeError(f"error creating restore: {exc}") from exc

    handlers.log.info("waiting for restore %s of %s", restore.name, service_name)
    try:
        handlers.restores.wait(restore, restoring_is_successful(restore.name), UNARCHIVE_WAIT_TIMEOUT)
    except Exception as exc:
        raise RuntimeError(f"error waiting for service backup: {exc}") from exc

    handlers.log.info("unarchive service %s", service_name)
    try:
        handlers.services.patch(service_name, {"spec": {"archived": False}})
    except Exception as exc:
        raise RuntimeError(f"error set archive to service: {exc}") from exc


def restoring_is_successful(name: str) -> Callable[[WatchEvent], bool]:
    """Return a wait condition that holds once restore ``name`` is successful."""

    def condition(event: WatchEvent) -> bool:
        if event.type not in (EventType.ADDED, EventType.MODIFIED):
            _log.debug("unknown event %s", event.type)
            return False
        obj = event.object
        if not isinstance(obj, ServiceRestore):
            _log.info("event is not a KuberlogicServiceRestore: %r", event)
            raise TypeError("unexpected object type")
        if obj.name != name:
            _log.info("skipping event for %s, waiting for %s", obj.name, name)
            return False
        if not obj.is_successful():
            _log.info("restoring still is not successful: %s", obj.phase)
            return False
        _log.info("restoring finally is successful: %s", obj.phase)
        return True

    return condition