# klserver

`klserver` holds the request handlers of a small management API for
application services on a cluster. The handlers can create, edit, list and
delete services. They can back services up, restore them, and archive or
unarchive them. They can also report on a service's pod, volume claim and
ingress, return container logs, list the service's secrets and submit
credential updates.

All state is kept in in-memory, thread-safe stores. Every handler is a plain
function that takes a `Handlers` object and returns a `Response`. You can call
the handlers from any web framework or straight from tests.

## Installation

```
pip install klserver
```

The `test` extra installs pytest for the test suite:

```
pip install "klserver[test]"
```

## Modules

- `klserver.store` defines the resources `KuberlogicService`, `ServiceBackup`
  and `ServiceRestore`, each with an `ObjectMeta` (name, namespace, labels,
  creation timestamp, uid). They are held in `ServiceStore`, `BackupStore` and
  `RestoreStore`.
  - Each store offers `get`, `list`, `create`, `update`, `delete`, `patch` and
    `watch`. `list` takes a label selector and returns objects ordered by name.
    `patch` takes a JSON merge patch given as a dict, string or bytes. `watch`
    returns a subscription that yields `WatchEvent`s whose `EventType` is
    `ADDED`, `MODIFIED` or `DELETED`.
  - A missing object raises `NotFoundError` and a duplicate name raises
    `AlreadyExistsError`.
  - `ServiceStore.exists` tells whether any service matches a selector.
  - `BackupStore.create_by_service_name` and `RestoreStore.create_by_backup_name`
    create objects named `<name>-<unix time>`.
  - `BackupStore.first_successful` returns the first successful backup in a
    given order, by creation time unless you pass another key.
  - `wait` blocks until a condition holds for an event. It raises
    `TimeoutError` if the timeout passes first.
  - `label_selector(key, value)` builds a selector. A value of `None` selects
    everything.
- `klserver.cluster` provides `Cluster`, an in-memory store of `Pod`,
  `PersistentVolumeClaim`, `Ingress` and `Secret` objects kept by namespace.
  - Pods carry their container names, `ContainerStatus` entries and a fixed
    log text per container, which `pod_logs` returns.
  - `create_secret` folds a secret's `string_data` into its byte `data`.
- `klserver.models` holds the API payloads `Service`, `Limits`, `Backup`,
  `Restore` and `Error`, and the `Response` (status and payload) returned by
  every handler.
  - It converts payloads to and from resources with `service_to_resource`,
    `service_from_resource`, `backup_from_resource`, `restore_from_resource`
    and `restore_to_resource`.
  - A failed conversion raises `ConversionError`. One example is an `advanced`
    value that cannot be serialised as JSON.
- `klserver.app` defines `Config` (the default `domain`) and `Handlers`, which
  bundles the config, the cluster, the three stores and a logger.
- Handlers:
  - `klserver.services`: `service_add`, `service_edit`, `service_get`,
    `service_list`, `service_delete`.
  - `klserver.backups`: `backup_add`, `backup_delete`, `backup_list`.
  - `klserver.restores`: `restore_add`, `restore_delete`, `restore_list`.
  - `klserver.archive`: `service_archive`, `service_unarchive`, and the
    background steps `archive_service` and `unarchive_service`.
  - `klserver.diagnostics`: `service_explain`, `service_logs`,
    `service_secrets_list`, `service_credentials_update`.

## Example

```python
from klserver.app import Config, Handlers
from klserver.models import Service
from klserver.services import service_add, service_get

handlers = Handlers(config=Config(domain="kuberlogic.local"))

created = service_add(handlers, Service(id="simple", type="postgresql", replicas=1))
print(created.status)            # 201
print(created.payload.domain)    # simple.kuberlogic.local

missing = service_get(handlers, "other")
print(missing.status)            # 404
print(missing.payload.message)   # kuberlogic service not found: other
```

## Payloads

Service, backup and restore handlers return models, lists of models or an
`Error` as their payload. The diagnostics handlers return plain dicts and
lists of dicts:

- `service_explain` returns a dict with `pod`, `pvc` and `ingress` entries.
  Each entry holds either its details or an `error` string.
- `service_logs` returns a list of `{"container_name", "logs"}` dicts.
- `service_secrets_list` returns a list of `{"id", "value"}` dicts, sorted by id.

## Service behaviour

- A subscription may belong to one service only. The subscription cannot be
  changed through `service_edit`.
- When no domain is given, a new service's domain is `<id>.<Config.domain>`.
- A restore created by `restore_add` takes the name of its backup.

## Background work

`service_archive` and `service_unarchive` answer at once. The rest of the work
runs in a daemon thread:

- Archiving takes a new backup and waits up to two hours for it to succeed. It
  then deletes the service's other backups and patches `spec.archived` to true.
- Unarchiving restores from the latest successful backup, waits up to two hours
  for the restore to succeed, and then patches `spec.archived` to false.

Errors in the background thread are only logged.

## Credential updates

`service_credentials_update` writes a `credentials-update-request` secret into
the service's namespace. It polls until the secret has been deleted, which
counts as success, for up to `timeout` seconds (15 by default) in steps of
`step` seconds (0.1 by default). If the secret is still there at the end, the
handler removes it itself and answers 503.

## What this package does not do

- It has no HTTP server, no routing and no command-line program. You call the
  handler functions yourself.
- It does not talk to a real cluster. All stores are in memory and are empty
  when a process starts.
- Nothing in the package changes a backup's or restore's phase. Another
  component, or your own code calling `mark_successful` and `update`, must do
  that before an archive or unarchive can finish.
- Nothing in the package consumes credential update requests.