"""Shared state of the API request handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .cluster import Cluster
from .store import BackupStore, RestoreStore, ServiceStore, label_selector


@dataclass
class Config:
    """Server settings used by the handlers."""

    domain: str = ""


@dataclass
class Handlers:
    """Everything a request handler needs: settings, resource stores and a logger."""

    config: Config = field(default_factory=Config)
    cluster: Cluster = field(default_factory=Cluster)
    services: ServiceStore = field(default_factory=ServiceStore)
    backups: BackupStore = field(default_factory=BackupStore)
    restores: RestoreStore = field(default_factory=RestoreStore)
    log: logging.Logger = field(default_factory=lambda: logging.getLogger("klserver"))

    def list_options_by_key_value(self, key: str, value: str | None) -> dict[str, str]:
        """Return a label selector for ``key=value``; None selects everything."""
        return label_selector(key, value)

    def on_shutdown(self) -> None:
        """Flush pending log output."""
        for handler in self.log.handlers:
            handler.flush()