"""Host daemon: runs one watcher per service and owns the reconfiguration hook."""

from __future__ import annotations

import json
import logging
import os
import signal
import tempfile
import threading
from pathlib import Path
from types import FrameType

from .config import AppConfig
from .discovery import ECSInventory
from .discovery.ecs_watcher import EcsWatcher
from .discovery.models import Backend, BackendTable

logger = logging.getLogger(__name__)

STOP_TIMEOUT_SECONDS = 30.0


class Daemon:
    """Watcher host: start watchers -> collect published backends on reconfigure -> stop."""

    def __init__(self, config: AppConfig, inventory: ECSInventory | None = None):
        self._config = config
        self._state_file = config.output.state_file
        self._lock = threading.RLock()
        self._table = BackendTable()
        self._shutdown = threading.Event()
        self.reconfigure_count = 0
        self.watchers: list[EcsWatcher] = [
            EcsWatcher(service, self.reconfigure, inventory=inventory)
            for service in config.services.values()
        ]
        for watcher in self.watchers:
            watcher.validate_config()

    def backends(self) -> BackendTable:
        with self._lock:
            return BackendTable(services=dict(self._table.services))

    def reconfigure(self, service: str, backends: list[Backend]) -> None:
        """Called by a watcher, under its own lock, whenever it publishes a new list.

        Never reaches back into a watcher: lock order is always watcher -> daemon.
        """
        with self._lock:
            services = dict(self._table.services)
            services[service] = list(backends)
            self._table = BackendTable(services=services)
            self.reconfigure_count += 1
            logger.info(
                "Reconfiguring with %d backends across %d services",
                self._table.total, len(self._table.services),
                extra={"backend_count": self._table.total},
            )
            if self._state_file:
                self._write_state(self._table)

    def run_once(self) -> None:
        """Execute a single discovery cycle for every watcher on this thread."""
        for watcher in self.watchers:
            watcher.run_once()

    def run(self) -> None:
        """Start every watcher and block until a shutdown signal."""
        # Every client is built before any thread starts, so a bad region fails cleanly
        for watcher in self.watchers:
            watcher.connect()
        self._install_signal_handlers()
        for watcher in self.watchers:
            watcher.start()
        logger.info("Daemon started with %d watchers", len(self.watchers))

        self._shutdown.wait()

        for watcher in self.watchers:
            watcher.stop(STOP_TIMEOUT_SECONDS)
        logger.info("Daemon stopped")

    def shutdown(self) -> None:
        self._shutdown.set()

    def _write_state(self, table: BackendTable) -> None:
        """Atomically replace the state file with the current backend table."""
        path = Path(self._state_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(table.as_dict(), f, indent=2, sort_keys=True)
            os.replace(tmp, path)
        except OSError:
            logger.exception("Could not write state file %s", path)
            Path(tmp).unlink(missing_ok=True)

    def _install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)
        signal.signal(signal.SIGHUP, self._handle_reload)

    def _handle_shutdown(self, signum: int, frame: FrameType | None) -> None:
        sig_name = signal.Signals(signum).name
        logger.info("Received %s, shutting down", sig_name)
        self.shutdown()

    def _handle_reload(self, signum: int, frame: FrameType | None) -> None:
        logger.info("Received SIGHUP, resetting change detector state")
        for watcher in self.watchers:
            watcher.reset()
