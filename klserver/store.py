"""In-memory storage of Kuberlogic custom resources with list and watch support."""

from __future__ import annotations

import copy
import json
import queue
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, Mapping

SUBSCRIPTION_FIELD = "subscription-id"
BACKUP_RESTORE_SERVICE_FIELD = "kls-id"
PHASE_SUCCESSFUL = "Successful"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class NotFoundError(LookupError):
    """The requested object does not exist."""


class AlreadyExistsError(Exception):
    """An object with the same name already exists."""


def label_selector(key: str, value: str | None) -> dict[str, str]:
    """Return a selector matching label ``key`` equal to ``value``; None matches everything."""
    if value is None:
        return {}
    return {key: value}


def _matches(labels: Mapping[str, str], selector: Mapping[str, str] | None) -> bool:
    return all(labels.get(key) == value for key, value in (selector or {}).items())


def _merge_patch(target: Any, patch: Any) -> Any:
    """Apply a JSON merge patch to ``target`` and return the result."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = dict(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = _merge_patch(result.get(key), value)
    return result


def _compact(data: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value}


@dataclass
class ObjectMeta:
    """Name, labels and bookkeeping data of a stored object."""

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    creation_timestamp: datetime | None = None
    uid: str = ""

    def to_dict(self) -> dict[str, Any]:
        stamp = self.creation_timestamp.isoformat() if self.creation_timestamp else None
        return _compact(
            {
                "name": self.name,
                "namespace": self.namespace,
                "labels": dict(self.labels),
                "creationTimestamp": stamp,
                "uid": self.uid,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ObjectMeta:
        stamp = data.get("creationTimestamp")
        return cls(
            name=data.get("name", ""),
            namespace=data.get("namespace", ""),
            labels=dict(data.get("labels") or {}),
            creation_timestamp=datetime.fromisoformat(stamp) if stamp else None,
            uid=data.get("uid", ""),
        )


class _Resource:
    meta: ObjectMeta

    @property
    def name(self) -> str:
        return self.meta.name


@dataclass
class KuberlogicService(_Resource):
    """A managed service; ``advanced`` holds raw JSON text."""

    meta: ObjectMeta = field(default_factory=ObjectMeta)
    type: str = ""
    replicas: int = 0
    version: str = ""
    domain: str = ""
    backup_schedule: str = ""
    limits: dict[str, str] = field(default_factory=dict)
    advanced: str = ""
    insecure: bool = False
    archive_requested: bool = False
    phase: str = ""
    target_namespace: str = ""
    archived_status: bool = False

    def archived(self) -> bool:
        return self.archived_status

    def to_dict(self) -> dict[str, Any]:
        spec = _compact(
            {
                "type": self.type,
                "replicas": self.replicas,
                "version": self.version,
                "domain": self.domain,
                "backupSchedule": self.backup_schedule,
                "limits": dict(self.limits),
                "advanced": self.advanced,
                "insecure": self.insecure,
                "archived": self.archive_requested,
            }
        )
        status = _compact(
            {
                "phase": self.phase,
                "namespace": self.target_namespace,
                "archived": self.archived_status,
            }
        )
        return {"metadata": self.meta.to_dict(), "spec": spec, "status": status}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> KuberlogicService:
        spec = data.get("spec") or {}
        status = data.get("status") or {}
        return cls(
            meta=ObjectMeta.from_dict(data.get("metadata") or {}),
            type=spec.get("type", ""),
            replicas=spec.get("replicas", 0),
            version=spec.get("version", ""),
            domain=spec.get("domain", ""),
            backup_schedule=spec.get("backupSchedule", ""),
            limits=dict(spec.get("limits") or {}),
            advanced=spec.get("advanced", ""),
            insecure=spec.get("insecure", False),
            archive_requested=spec.get("archived", False),
            phase=status.get("phase", ""),
            target_namespace=status.get("namespace", ""),
            archived_status=status.get("archived", False),
        )


@dataclass
class ServiceBackup(_Resource):
    """A backup of one service."""

    meta: ObjectMeta = field(default_factory=ObjectMeta)
    service_name: str = ""
    phase: str = ""

    def is_successful(self) -> bool:
        return self.phase == PHASE_SUCCESSFUL

    def mark_successful(self) -> None:
        self.phase = PHASE_SUCCESSFUL

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": self.meta.to_dict(),
            "spec": _compact({"kuberlogicServiceName": self.service_name}),
            "status": _compact({"phase": self.phase}),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ServiceBackup:
        return cls(
            meta=ObjectMeta.from_dict(data.get("metadata") or {}),
            service_name=(data.get("spec") or {}).get("kuberlogicServiceName", ""),
            phase=(data.get("status") or {}).get("phase", ""),
        )


@dataclass
class ServiceRestore(_Resource):
    """A restore of a service from one backup."""

    meta: ObjectMeta = field(default_factory=ObjectMeta)
    backup_name: str = ""
    phase: str = ""

    def is_successful(self) -> bool:
        return self.phase == PHASE_SUCCESSFUL

    def mark_successful(self) -> None:
        self.phase = PHASE_SUCCESSFUL

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": self.meta.to_dict(),
            "spec": _compact({"kuberlogicServiceBackup": self.backup_name}),
            "status": _compact({"phase": self.phase}),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ServiceRestore:
        return cls(
            meta=ObjectMeta.from_dict(data.get("metadata") or {}),
            backup_name=(data.get("spec") or {}).get("kuberlogicServiceBackup", ""),
            phase=(data.get("status") or {}).get("phase", ""),
        )


class EventType(Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class WatchEvent:
    type: EventType
    object: Any


class _Watcher:
    """A subscription to the changes of one store."""

    def __init__(self, store: ResourceStore) -> None:
        self._store = store
        self._queue: queue.Queue[WatchEvent] = queue.Queue()

    def next(self, timeout: float | None = None) -> WatchEvent | None:
        """Return the next event, or None if none arrives within ``timeout`` seconds."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def stop(self) -> None:
        self._store._unsubscribe(self)

    def __iter__(self) -> Iterator[WatchEvent]:
        while True:
            yield self._queue.get()

    def __enter__(self) -> _Watcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


class ResourceStore:
    """Thread-safe named collection of resources of one type."""

    resource_type: type = object
    kind = "resources"

    def __init__(self, objects: Iterable[Any] = ()) -> None:
        self._lock = threading.RLock()
        self._items: dict[str, Any] = {}
        self._watchers: list[_Watcher] = []
        for obj in objects:
            self.create(obj)

    def _check_type(self, obj: Any) -> None:
        if not isinstance(obj, self.resource_type):
            raise TypeError(f"{self.kind} store cannot hold {type(obj).__name__}")

    def _not_found(self, name: str) -> NotFoundError:
        return NotFoundError(f'{self.kind} "{name}" not found')

    def _notify(self, event_type: EventType, obj: Any) -> None:
        for watcher in self._watchers:
            watcher._queue.put(WatchEvent(event_type, copy.deepcopy(obj)))

    def _unsubscribe(self, watcher: _Watcher) -> None:
        with self._lock:
            if watcher in self._watchers:
                self._watchers.remove(watcher)

    def get(self, name: str) -> Any:
        with self._lock:
            try:
                return copy.deepcopy(self._items[name])
            except KeyError:
                raise self._not_found(name) from None

    def list(self, selector: Mapping[str, str] | None = None) -> list[Any]:
        """Return copies of the objects whose labels match ``selector``, ordered by name."""
        with self._lock:
            return [
                copy.deepcopy(self._items[name])
                for name in sorted(self._items)
                if _matches(self._items[name].meta.labels, selector)
            ]

    def create(self, obj: Any) -> Any:
        self._check_type(obj)
        if not obj.meta.name:
            raise ValueError(f"{self.kind}: name may not be empty")
        stored = copy.deepcopy(obj)
        if stored.meta.creation_timestamp is None:
            stored.meta.creation_timestamp = datetime.now(timezone.utc)
        if not stored.meta.uid:
            stored.meta.uid = str(uuid.uuid4())
        with self._lock:
            if stored.meta.name in self._items:
                raise AlreadyExistsError(f'{self.kind} "{stored.meta.name}" already exists')
            self._items[stored.meta.name] = stored
            self._notify(EventType.ADDED, stored)
        return copy.deepcopy(stored)

    def update(self, obj: Any) -> Any:
        self._check_type(obj)
        stored = copy.deepcopy(obj)
        with self._lock:
            if stored.meta.name not in self._items:
                raise self._not_found(stored.meta.name)
            self._items[stored.meta.name] = stored
            self._notify(EventType.MODIFIED, stored)
        return copy.deepcopy(stored)

    def delete(self, name: str) -> None:
        with self._lock:
            try:
                removed = self._items.pop(name)
            except KeyError:
                raise self._not_found(name) from None
            self._notify(EventType.DELETED, removed)

    def patch(self, name: str, patch: Mapping[str, Any] | str | bytes) -> Any:
        """Apply a JSON merge patch to the named object and return the result."""
        if isinstance(patch, (str, bytes)):
            patch = json.loads(patch)
        if not isinstance(patch, dict):
            raise ValueError("merge patch must be a JSON object")
        with self._lock:
            current = self.get(name)
            updated = self.resource_type.from_dict(_merge_patch(current.to_dict(), patch))
            updated.meta.name = name
            self._items[name] = updated
            self._notify(EventType.MODIFIED, updated)
            return copy.deepcopy(updated)

    def watch(self) -> _Watcher:
        """Subscribe to changes made from now on."""
        watcher = _Watcher(self)
        with self._lock:
            self._watchers.append(watcher)
        return watcher

    def _wait(
        self,
        condition: Callable[[WatchEvent], bool],
        timeout: float | None,
    ) -> Any:
        deadline = None if not timeout or timeout <= 0 else time.monotonic() + timeout
        watcher = _Watcher(self)
        with self._lock:
            self._watchers.append(watcher)
            initial = self.list()
        with watcher:
            for obj in initial:
                if condition(WatchEvent(EventType.ADDED, obj)):
                    return obj
            while True:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    raise TimeoutError("error waiting condition: timed out waiting for the condition")
                event = watcher.next(remaining)
                if event is not None and condition(event):
                    return event.object


class ServiceStore(ResourceStore):
    resource_type = KuberlogicService
    kind = "kuberlogicservices"

    def exists(self, selector: Mapping[str, str] | None = None) -> bool:
        return bool(self.list(selector))


def _by_creation(backup: ServiceBackup) -> datetime:
    return backup.meta.creation_timestamp or _EPOCH


class BackupStore(ResourceStore):
    resource_type = ServiceBackup
    kind = "kuberlogicservicebackups"

    def create_by_service_name(self, name: str) -> ServiceBackup:
        backup = ServiceBackup(
            meta=ObjectMeta(
                name=f"{name}-{int(time.time())}",
                labels={BACKUP_RESTORE_SERVICE_FIELD: name},
            ),
            service_name=name,
        )
        return self.create(backup)

    def first_successful(
        self,
        selector: Mapping[str, str] | None = None,
        key: Callable[[ServiceBackup], Any] | None = None,
        reverse: bool = False,
    ) -> ServiceBackup:
        """Return the first successful backup in the given order (creation time by default)."""
        ordered = sorted(self.list(selector), key=key or _by_creation, reverse=reverse)
        for backup in ordered:
            if backup.is_successful():
                return backup
        raise NotFoundError("No successful backup found")

    def wait(
        self,
        resource: ServiceBackup,
        condition: Callable[[WatchEvent], bool],
        timeout: float | None = None,
    ) -> ServiceBackup:
        """Block until ``condition`` holds for an event; a timeout of None or <= 0 waits forever."""
        self._check_type(resource)
        return self._wait(condition, timeout)


class RestoreStore(ResourceStore):
    resource_type = ServiceRestore
    kind = "kuberlogicservicerestores"

    def create_by_backup_name(self, name: str) -> ServiceRestore:
        restore = ServiceRestore(
            meta=ObjectMeta(
                name=f"{name}-{int(time.time())}",
                labels={BACKUP_RESTORE_SERVICE_FIELD: name},
            ),
            backup_name=name,
        )
        return self.create(restore)

    def wait(
        self,
        resource: ServiceRestore,
        condition: Callable[[WatchEvent], bool],
        timeout: float | None = None,
    ) -> ServiceRestore:
        """Block until ``condition`` holds for an event; a timeout of None or <= 0 waits forever."""
        self._check_type(resource)
        return self._wait(condition, timeout)