"""Request handlers that inspect a running service: state, logs, secrets and credentials."""

from __future__ import annotations

import time
from typing import Any, Mapping

from .app import Handlers
from .cluster import ContainerState, Secret
from .models import Error, Response
from .store import NotFoundError, ObjectMeta

SERVICE_NAME_LABEL = "docker-compose.service/name"
CREDS_UPDATE_SECRET_NAME = "credentials-update-request"
SERVICE_API_VERSION = "kuberlogic.com/v1alpha1"
SERVICE_KIND = "KuberLogicService"

CREDENTIALS_UPDATE_TIMEOUT = 15.0
CREDENTIALS_UPDATE_STEP = 0.1


def container_status(state: ContainerState) -> str:
    """Name the state a container is in."""
    if state.waiting is not None:
        return "waiting"
    if state.running is not None:
        return "running"
    if state.terminated is not None:
        return "terminated"
    return "unknown"


def _first(objects: list[Any], what: str) -> Any:
    if not objects:
        raise NotFoundError(f"no {what} is available")
    return objects[0]


def _explain_pod(handlers: Handlers, namespace: str, selector: Mapping[str, str]) -> dict[str, Any]:
    try:
        try:
            pods = handlers.cluster.list_pods(namespace, selector)
        except Exception as exc:
            raise RuntimeError(f"error listing pod objects: {exc}") from exc
        pod = _first(pods, "pod")
    except Exception as exc:
        return {"error": f"failed to get pod: {exc}"}
    return {
        "containers": [
            {
                "name": status.name,
                "restart_count": status.restart_count,
                "status": container_status(status.state),
            }
            for status in pod.container_statuses
        ]
    }


def _explain_pvc(handlers: Handlers, namespace: str, selector: Mapping[str, str]) -> dict[str, Any]:
    try:
        try:
            claims = handlers.cluster.list_pvcs(namespace, selector)
        except Exception as exc:
            raise RuntimeError(f"error listing pvc objects: {exc}") from exc
        claim = _first(claims, "pvc")
    except Exception as exc:
        return {"error": f"failed to get pvc: {exc}"}
    return {
        "storage_class": claim.storage_class_name or "",
        "phase": claim.phase,
        "size": claim.capacity if claim.capacity is not None else "0",
    }


def _explain_ingress(
    handlers: Handlers, namespace: str, selector: Mapping[str, str]
) -> dict[str, Any]:
    try:
        try:
            ingresses = handlers.cluster.list_ingresses(namespace, selector)
        except Exception as exc:
            raise RuntimeError(f"error listing ingresses objects: {exc}") from exc
        ingress = _first(ingresses, "ingress")
    except Exception as exc:
        return {"error": f"failed to get ingress: {exc}"}
    return {
        "hosts": list(ingress.hosts),
        "ingress_class": ingress.ingress_class_name or "",
    }


def _get_service_or_response(handlers: Handlers, service_id: str):
    """Return (service, None) or (None, error response) for the usual lookup failures."""
    try:
        return handlers.services.get(service_id), None
    except NotFoundError:
        return None, Response(400, Error("service does not exist"))
    except Exception as exc:
        message = f"failed to get service: {exc}"
        handlers.log.error(message)
        return None, Response(503, Error(message))


def service_explain(handlers: Handlers, service_id: str) -> Response:
    """Report the pod, volume claim and ingress state of a service."""
    service, failure = _get_service_or_response(handlers, service_id)
    if failure is not None:
        return failure

    namespace = service.target_namespace
    selector = handlers.list_options_by_key_value(SERVICE_NAME_LABEL, service_id)
    result = {
        "pod": _explain_pod(handlers, namespace, selector),
        "pvc": _explain_pvc(handlers, namespace, selector),
        "ingress": _explain_ingress(handlers, namespace, selector),
    }
    return Response(200, result)


def service_logs(
    handlers: Handlers, service_id: str, container_name: str | None = None
) -> Response:
    """Return the logs of the service's containers, or of one container when named."""
    service, failure = _get_service_or_response(handlers, service_id)
    if failure is not None:
        return failure

    namespace = service.target_namespace
    selector = handlers.list_options_by_key_value(SERVICE_NAME_LABEL, service_id)
    try:
        pods = handlers.cluster.list_pods(namespace, selector)
    except Exception as exc:
        message = f"error getting service pods: {exc}"
        handlers.log.error(message)
        return Response(503, Error(message))
    if not pods:
        message = "error listing service pods, no pod is available"
        handlers.log.error(message)
        return Response(503, Error(message))

    pod = pods[0]
    result = []
    for container in pod.containers:
        if container_name is not None and container != container_name:
            continue
        try:
            logs = handlers.cluster.pod_logs(namespace, pod.meta.name, container)
        except Exception as exc:
            message = f"error listing container '{container}' logs: {exc}"
            handlers.log.error(message)
            return Response(503, Error(message))
        result.append({"container_name": container, "logs": logs})
    return Response(200, result)


def service_secrets_list(handlers: Handlers, service_id: str) -> Response:
    """Return the service's secrets sorted by id."""
    service, failure = _get_service_or_response(handlers, service_id)
    if failure is not None:
        return failure

    try:
        storage = handlers.cluster.get_secret(service.target_namespace, service.name)
    except Exception as exc:
        handlers.log.error("failed to get service secret object: %s", exc)
        return Response(503, Error("failed to retrieve service secrets"))

    secrets = [
        {"id": secret_id, "value": value.decode("utf-8", errors="replace")}
        for secret_id, value in sorted(storage.data.items())
    ]
    return Response(200, secrets)


def service_credentials_update(
    handlers: Handlers,
    service_id: str,
    credentials: Mapping[str, str],
    timeout: float = CREDENTIALS_UPDATE_TIMEOUT,
    step: float = CREDENTIALS_UPDATE_STEP,
) -> Response:
    """Submit a credentials update request and wait until it is consumed (deleted)."""
    try:
        service = handlers.services.get(service_id)
    except NotFoundError:
        return Response(400, Error("service does not exist"))
    except Exception as exc:
        handlers.log.error("failed to get service: %s", exc)
        return Response(503)

    namespace = service.target_namespace
    request = Secret(
        meta=ObjectMeta(name=CREDS_UPDATE_SECRET_NAME, namespace=namespace),
        string_data=dict(credentials),
        owner_references=[
            {
                "apiVersion": SERVICE_API_VERSION,
                "kind": SERVICE_KIND,
                "name": service.name,
                "uid": service.meta.uid,
                "blockOwnerDeletion": True,
                "controller": True,
            }
        ],
    )
    try:
        created = handlers.cluster.create_secret(request)
    except Exception as exc:
        handlers.log.error("failed to create a credentials update request secret: %s", exc)
        return Response(503, Error("failed to submit a credentials update request"))

    # The request is fulfilled once the secret has been deleted.
    elapsed = 0.0
    while elapsed < timeout:
        time.sleep(step)
        elapsed += step
        try:
            handlers.cluster.get_secret(namespace, created.meta.name)
        except NotFoundError:
            return Response(200)
        except Exception as exc:
            handlers.log.error("failed to get credentials update request secret: %s", exc)
            return Response(
                503, Error("error waiting for a credentials update request fulfillment")
            )

    try:
        handlers.cluster.delete_secret(namespace, created.meta.name)
    except Exception as exc:
        handlers.log.error("failed to delete credentials update request secret: %s", exc)
    return Response(503, Error("failed to update credentials"))