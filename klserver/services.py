"""Request handlers for managed services."""

from __future__ import annotations

from .app import Handlers
from .models import (
    ConversionError,
    Error,
    Response,
    Service,
    service_from_resource,
    service_to_resource,
)
from .store import SUBSCRIPTION_FIELD, AlreadyExistsError, NotFoundError


def service_add(handlers: Handlers, item: Service) -> Response:
    """Create a service; a subscription may be used by one service only."""
    if item.subscription:
        selector = handlers.list_options_by_key_value(SUBSCRIPTION_FIELD, item.subscription)
        try:
            found = handlers.services.exists(selector)
        except Exception as exc:
            return Response(503, Error(str(exc)))
        if found:
            return Response(
                400,
                Error(f"service with subscription '{item.subscription}' already exist"),
            )

    try:
        resource = service_to_resource(item, handlers.config.domain)
    except ConversionError as exc:
        handlers.log.error("error converting service model to kuberlogic: %s", exc)
        return Response(400, Error(str(exc)))

    try:
        created = handlers.services.create(resource)
    except AlreadyExistsError as exc:
        handlers.log.warning("kuberlogic service already exists: %s (%s)", item.id, exc)
        return Response(409)
    except Exception as exc:
        handlers.log.error("error creating kuberlogicservice: %s", exc)
        return Response(503, Error(str(exc)))

    try:
        service = service_from_resource(created)
    except ConversionError as exc:
        handlers.log.error("error converting kuberlogicservice to model: %s", exc)
        return Response(400, Error(str(exc)))
    return Response(201, service)


def service_delete(handlers: Handlers, service_id: str) -> Response:
    """Delete the named service."""
    try:
        handlers.services.get(service_id)
    except NotFoundError as exc:
        message = f"kuberlogic service not found: {service_id}"
        handlers.log.warning("%s (%s)", message, exc)
        return Response(404, Error(message))
    except Exception as exc:
        message = "error finding service"
        handlers.log.error("%s: %s", message, exc)
        return Response(503, Error(message))

    try:
        handlers.services.delete(service_id)
    except Exception as exc:
        message = "error deleting service"
        handlers.log.error("%s: %s", message, exc)
        return Response(503, Error(message))
    return Response(200)


def service_edit(handlers: Handlers, service_id: str, item: Service) -> Response:
    """Apply the fields of ``item`` to an existing service as a merge patch."""
    if item.subscription:
        return Response(400, Error("subscription cannot be changed"))

    try:
        resource = service_to_resource(item, handlers.config.domain)
    except ConversionError as exc:
        handlers.log.error("error converting service model to kuberlogic: %s", exc)
        return Response(400, Error(str(exc)))

    try:
        handlers.services.patch(resource.name, resource.to_dict())
    except NotFoundError as exc:
        message = f"kuberlogic service not found: {service_id}"
        handlers.log.warning("%s (%s)", message, exc)
        return Response(404, Error(message))
    except Exception as exc:
        handlers.log.error("error patching kuberlogicservice: %s", exc)
        return Response(400, Error(str(exc)))
    return Response(200)


def service_get(handlers: Handlers, service_id: str) -> Response:
    """Return the named service."""
    try:
        resource = handlers.services.get(service_id)
    except NotFoundError as exc:
        message = f"kuberlogic service not found: {service_id}"
        handlers.log.warning("%s (%s)", message, exc)
        return Response(404, Error(message))
    except Exception as exc:
        message = "error finding service"
        handlers.log.error("%s: %s", message, exc)
        return Response(503, Error(message))

    try:
        service = service_from_resource(resource)
    except ConversionError as exc:
        message = "error converting kuberlogicservice"
        handlers.log.error("%s: %s", message, exc)
        return Response(503, Error(f"{message}: {exc}"))
    return Response(200, service)


def service_list(handlers: Handlers, subscription_id: str | None = None) -> Response:
    """List services, only those of ``subscription_id`` when it is given."""
    selector = handlers.list_options_by_key_value(SUBSCRIPTION_FIELD, subscription_id)
    try:
        found = handlers.services.list(selector)
    except Exception:
        message = "error listing service"
        handlers.log.error(message)
        return Response(503, Error(message))
    handlers.log.debug("found kuberlogicservice objects: %d", len(found))

    result = []
    for resource in found:
        try:
            result.append(service_from_resource(resource))
        except ConversionError:
            message = "error converting service object"
            handlers.log.error(message)
            return Response(503, Error(message))
    return Response(200, result)