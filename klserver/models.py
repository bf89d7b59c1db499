"""API models and their conversion to and from stored resources."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from .store import (
    BACKUP_RESTORE_SERVICE_FIELD,
    SUBSCRIPTION_FIELD,
    KuberlogicService,
    ObjectMeta,
    ServiceBackup,
    ServiceRestore,
)


class ConversionError(ValueError):
    """A model or resource cannot be converted."""


@dataclass
class Response:
    """An HTTP status with an optional payload."""

    status: int
    payload: Any = None


@dataclass
class Error:
    message: str


@dataclass
class Limits:
    cpu: str = ""
    memory: str = ""
    storage: str = ""


@dataclass
class Service:
    id: str | None = None
    type: str | None = None
    replicas: int | None = None
    version: str = ""
    domain: str = ""
    backup_schedule: str = ""
    limits: Limits | None = None
    insecure: bool = False
    advanced: dict[str, Any] | None = None
    subscription: str = ""
    status: str = ""


@dataclass
class Backup:
    id: str = ""
    service_id: str = ""
    status: str = ""


@dataclass
class Restore:
    id: str = ""
    backup_id: str = ""
    status: str = ""


def backup_from_resource(resource: ServiceBackup) -> Backup:
    return Backup(id=resource.name, service_id=resource.service_name, status=resource.phase)


def restore_from_resource(resource: ServiceRestore) -> Restore:
    return Restore(id=resource.name, backup_id=resource.backup_name, status=resource.phase)


def restore_to_resource(item: Restore, backup: ServiceBackup) -> ServiceRestore:
    """Build an unnamed restore of ``backup``, labelled with the backup's service."""
    return ServiceRestore(
        meta=ObjectMeta(labels={BACKUP_RESTORE_SERVICE_FIELD: backup.service_name}),
        backup_name=item.backup_id,
    )


def service_to_resource(service: Service, domain: str) -> KuberlogicService:
    """Build a service resource; an empty domain becomes ``<id>.<domain>``."""
    if not service.id:
        raise ConversionError("service id is required")
    advanced = ""
    if service.advanced is not None:
        try:
            advanced = json.dumps(service.advanced)
        except (TypeError, ValueError) as exc:
            raise ConversionError(f"cannot deserialize advanced parameter: {exc}") from exc
    limits: dict[str, str] = {}
    if service.limits is not None:
        pairs = (
            ("cpu", service.limits.cpu),
            ("memory", service.limits.memory),
            ("storage", service.limits.storage),
        )
        limits = {name: value for name, value in pairs if value}
    labels = {SUBSCRIPTION_FIELD: service.subscription} if service.subscription else {}
    default_domain = f"{service.id}.{domain}" if domain else ""
    return KuberlogicService(
        meta=ObjectMeta(name=service.id, labels=labels),
        type=service.type or "",
        replicas=service.replicas or 0,
        version=service.version,
        domain=service.domain or default_domain,
        backup_schedule=service.backup_schedule,
        limits=limits,
        advanced=advanced,
        insecure=service.insecure,
    )


def service_from_resource(resource: KuberlogicService) -> Service:
    advanced = None
    if resource.advanced:
        try:
            advanced = json.loads(resource.advanced)
        except ValueError as exc:
            raise ConversionError(str(exc)) from exc
        if not isinstance(advanced, dict):
            raise ConversionError("advanced parameter is not an object")
    limits = None
    if resource.limits:
        limits = Limits(
            cpu=resource.limits.get("cpu", ""),
            memory=resource.limits.get("memory", ""),
            storage=resource.limits.get("storage", ""),
        )
    return Service(
        id=resource.name,
        type=resource.type,
        replicas=resource.replicas,
        version=resource.version,
        domain=resource.domain,
        backup_schedule=resource.backup_schedule,
        limits=limits,
        insecure=resource.insecure,
        advanced=advanced,
        subscription=resource.meta.labels.get(SUBSCRIPTION_FIELD, ""),
        status=resource.phase,
    )