"""In-memory view of the core cluster objects a service runs on."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from .store import AlreadyExistsError, NotFoundError, ObjectMeta, _matches


@dataclass
class ContainerState:
    """At most one of the three states is set; each holds its details."""

    waiting: dict[str, str] | None = None
    running: dict[str, str] | None = None
    terminated: dict[str, str] | None = None


@dataclass
class ContainerStatus:
    name: str = ""
    restart_count: int = 0
    state: ContainerState = field(default_factory=ContainerState)


@dataclass
class Pod:
    meta: ObjectMeta = field(default_factory=ObjectMeta)
    containers: list[str] = field(default_factory=list)
    container_statuses: list[ContainerStatus] = field(default_factory=list)
    logs: dict[str, str] = field(default_factory=dict)


@dataclass
class PersistentVolumeClaim:
    meta: ObjectMeta = field(default_factory=ObjectMeta)
    storage_class_name: str | None = None
    phase: str = ""
    capacity: str | None = None


@dataclass
class Ingress:
    meta: ObjectMeta = field(default_factory=ObjectMeta)
    ingress_class_name: str | None = None
    hosts: list[str] = field(default_factory=list)


@dataclass
class Secret:
    meta: ObjectMeta = field(default_factory=ObjectMeta)
    data: dict[str, bytes] = field(default_factory=dict)
    string_data: dict[str, str] = field(default_factory=dict)
    owner_references: list[dict[str, Any]] = field(default_factory=list)


_KINDS: dict[type, str] = {
    Pod: "pods",
    PersistentVolumeClaim: "persistentvolumeclaims",
    Ingress: "ingresses",
    Secret: "secrets",
}


class Cluster:
    """Thread-safe store of pods, volume claims, ingresses and secrets by namespace."""

    def __init__(self, objects: Iterable[Any] = ()) -> None:
        self._lock = threading.RLock()
        self._objects: dict[tuple[type, str, str], Any] = {}
        for obj in objects:
            self.add(obj)

    def add(self, obj: Any) -> None:
        kind = _KINDS.get(type(obj))
        if kind is None:
            raise TypeError(f"unsupported object type: {type(obj).__name__}")
        key = (type(obj), obj.meta.namespace, obj.meta.name)
        with self._lock:
            if key in self._objects:
                raise AlreadyExistsError(f'{kind} "{obj.meta.name}" already exists')
            self._objects[key] = copy.deepcopy(obj)

    def _get(self, kind: type, namespace: str, name: str) -> Any:
        with self._lock:
            try:
                return copy.deepcopy(self._objects[(kind, namespace, name)])
            except KeyError:
                raise NotFoundError(f'{_KINDS[kind]} "{name}" not found') from None

    def _list(self, kind: type, namespace: str, selector: Mapping[str, str] | None) -> list[Any]:
        with self._lock:
            found = [
                copy.deepcopy(obj)
                for (obj_kind, obj_namespace, _), obj in self._objects.items()
                if obj_kind is kind
                and obj_namespace == namespace
                and _matches(obj.meta.labels, selector)
            ]
        return sorted(found, key=lambda obj: obj.meta.name)

    def list_pods(self, namespace: str, selector: Mapping[str, str] | None = None) -> list[Pod]:
        return self._list(Pod, namespace, selector)

    def list_pvcs(
        self, namespace: str, selector: Mapping[str, str] | None = None
    ) -> list[PersistentVolumeClaim]:
        return self._list(PersistentVolumeClaim, namespace, selector)

    def list_ingresses(
        self, namespace: str, selector: Mapping[str, str] | None = None
    ) -> list[Ingress]:
        return self._list(Ingress, namespace, selector)

    def pod_logs(self, namespace: str, pod_name: str, container: str) -> str:
        pod = self._get(Pod, namespace, pod_name)
        if container not in pod.containers:
            raise NotFoundError(f'container "{container}" not found in pod "{pod_name}"')
        return pod.logs.get(container, "")

    def create_secret(self, secret: Secret) -> Secret:
        """Store a secret, folding its string data into its data."""
        stored = copy.deepcopy(secret)
        stored.data.update({key: value.encode() for key, value in stored.string_data.items()})
        stored.string_data = {}
        self.add(stored)
        return copy.deepcopy(stored)

    def get_secret(self, namespace: str, name: str) -> Secret:
        return self._get(Secret, namespace, name)

    def delete_secret(self, namespace: str, name: str) -> None:
        with self._lock:
            try:
                del self._objects[(Secret, namespace, name)]
            except KeyError:
                raise NotFoundError(f'secrets "{name}" not found') from None