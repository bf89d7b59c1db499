"""Request handlers for service restores."""

from __future__ import annotations

from .app import Handlers
from .models import Error, Response, Restore, restore_from_resource, restore_to_resource
from .store import BACKUP_RESTORE_SERVICE_FIELD, AlreadyExistsError, NotFoundError


def restore_add(handlers: Handlers, item: Restore) -> Response:
    """Start a restore from the backup named by ``item.backup_id``."""
    backup_name = item.backup_id
    try:
        backup = handlers.backups.get(backup_name)
    except NotFoundError:
        return Response(400, Error(f"backup `{backup_name}` not found"))
    except Exception as exc:
        handlers.log.error("error getting kuberlogicservicebackup for restore: %s", exc)
        return Response(
            503, Error(f"error getting coresponding backup {backup_name}: {exc}")
        )

    resource = restore_to_resource(item, backup)
    resource.meta.name = backup.name
    try:
        created = handlers.restores.create(resource)
    except AlreadyExistsError:
        handlers.log.error("klr already exists: %s", resource.name)
        return Response(409)
    except Exception as exc:
        handlers.log.error("error creating klr %s: %s", resource.name, exc)
        return Response(503, Error(str(exc)))
    return Response(201, restore_from_resource(created))


def restore_delete(handlers: Handlers, restore_id: str) -> Response:
    """Delete the named restore."""
    try:
        handlers.restores.delete(restore_id)
    except NotFoundError:
        return Response(404)
    except Exception as exc:
        handlers.log.error("error deleting klr %s: %s", restore_id, exc)
        return Response(503, Error("error deleting restore"))
    return Response(200)


def restore_list(handlers: Handlers, service_id: str | None = None) -> Response:
    """List restores, only those of ``service_id`` when it is given."""
    selector = handlers.list_options_by_key_value(BACKUP_RESTORE_SERVICE_FIELD, service_id)
    try:
        found = handlers.restores.list(selector)
    except Exception:
        message = "error listing result"
        handlers.log.error(message)
        return Response(503, Error(message))
    handlers.log.debug("found kuberlogicservicerestores objects: %d", len(found))
    return Response(200, [restore_from_resource(restore) for restore in found])