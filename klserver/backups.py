"""Request handlers for service backups."""

from __future__ import annotations

from .app import Handlers
from .models import Backup, Error, Response, backup_from_resource
from .store import BACKUP_RESTORE_SERVICE_FIELD, AlreadyExistsError, NotFoundError


def backup_add(handlers: Handlers, item: Backup) -> Response:
    """Take a new backup of the service named by ``item.service_id``."""
    service_name = item.service_id
    try:
        handlers.services.get(service_name)
    except NotFoundError:
        return Response(400, Error(f"service `{service_name}` not found"))
    except Exception as exc:
        handlers.log.error("error getting kuberlogicservice for backup: %s", exc)
        return Response(
            503, Error(f"error getting coresponding service {service_name}: {exc}")
        )

    try:
        created = handlers.backups.create_by_service_name(service_name)
    except AlreadyExistsError:
        handlers.log.error("klb already exists for service %s", service_name)
        return Response(409)
    except Exception as exc:
        handlers.log.error("error creating klb for service %s: %s", service_name, exc)
        return Response(503, Error(str(exc)))
    return Response(201, backup_from_resource(created))


def backup_delete(handlers: Handlers, backup_id: str) -> Response:
    """Delete the named backup."""
    try:
        handlers.backups.delete(backup_id)
    except NotFoundError:
        return Response(404, Error(f"backup not found: {backup_id}"))
    except Exception as exc:
        handlers.log.error("error deleting klb %s: %s", backup_id, exc)
        return Response(503, Error("error deleting backup"))
    return Response(200)


def backup_list(handlers: Handlers, service_id: str | None = None) -> Response:
    """List backups, only those of ``service_id`` when it is given."""
    selector = handlers.list_options_by_key_value(BACKUP_RESTORE_SERVICE_FIELD, service_id)
    try:
        found = handlers.backups.list(selector)
    except Exception:
        message = "error listing backups"
        handlers.log.error(message)
        return Response(503, Error(message))
    handlers.log.debug("found kuberlogicservicebackups objects: %d", len(found))
    return Response(200, [backup_from_resource(backup) for backup in found])