"""Watcher that polls one ECS cluster/family and publishes its backends."""

from __future__ import annotations

import time
from collections.abc import Callable

from ..config import DISCOVERY_METHOD, DiscoveryConfig, ServiceConfig
from ..exceptions import ConfigError
from ..logging_config import watcher_logger
from ..scheduler import PollScheduler
from . import ECSInventory
from .change_detector import ChangeDetector
from .models import Backend
from .resolver import TaskResolver

VALID_INTERFACES = ("public", "private")


class EcsWatcher:
    """Discovers the running tasks of one ECS task family.

    Each cycle resolves the family's RUNNING tasks to EC2 host/port pairs and
    hands them to the change detector, which calls ``reconfigure`` whenever the
    published list changes. The host daemon owns ``reconfigure``.
    """

    def __init__(
        self,
        service: ServiceConfig,
        reconfigure: Callable[[str, list[Backend]], None],
        inventory: ECSInventory | None = None,
    ):
        self.name = service.name
        self._discovery: DiscoveryConfig = service.discovery
        self._inventory = inventory
        self._log = watcher_logger(__name__, self.name, cluster=service.discovery.aws_ecs_cluster)
        self._detector = ChangeDetector(self.name, service.default_servers, reconfigure)
        self._scheduler: PollScheduler | None = None

    @property
    def discovery(self) -> DiscoveryConfig:
        return self._discovery

    @property
    def backends(self) -> list[Backend]:
        return self._detector.snapshot()

    def validate_config(self) -> None:
        d = self._discovery
        if d.method != DISCOVERY_METHOD:
            raise ConfigError(f"invalid discovery method {d.method!r} for service {self.name}")
        if not d.aws_ecs_cluster:
            raise ConfigError(f"aws_ecs_cluster is required for service {self.name}")
        if not d.aws_ecs_family:
            raise ConfigError(f"aws_ecs_family is required for service {self.name}")
        if d.aws_ec2_interface is not None and d.aws_ec2_interface not in VALID_INTERFACES:
            raise ConfigError("aws_ec2_interface must be either 'public' or 'private'")
        if isinstance(d.container_port, bool) or not isinstance(d.container_port, int) or d.container_port < 0:
            raise ConfigError(f"container_port must be a non-negative integer for service {self.name}")
        if isinstance(d.check_interval, bool) or not isinstance(d.check_interval, (int, float)) \
                or d.check_interval <= 0:
            raise ConfigError(f"check_interval must be a positive number for service {self.name}")

    def connect(self) -> None:
        """Build the AWS clients now. Raises ConfigError if that is impossible (e.g. no region)."""
        self._ensure_inventory()

    def start(self) -> None:
        self._ensure_inventory()
        self._log.info(
            "Looking for tasks in cluster %s in family %s",
            self._discovery.aws_ecs_cluster, self._discovery.aws_ecs_family,
        )
        self._scheduler = PollScheduler(self.run_once, float(self._discovery.check_interval), self.name)
        self._scheduler.start()

    def stop(self, timeout: float | None = None) -> None:
        """Ask the poll loop to exit and wait for the in-flight cycle to finish."""
        if self._scheduler is None:
            return
        self._scheduler.stop()
        self._scheduler.join(timeout)

    def reset(self) -> None:
        self._detector.reset()

    def run_once(self) -> bool:
        """Run one discover-and-reconcile cycle. Returns True if backends were published."""
        start = time.monotonic()
        resolver = TaskResolver(self._ensure_inventory(), self.name)
        current = resolver.resolve(
            self._discovery.aws_ecs_cluster,
            self._discovery.aws_ecs_family,
            self._discovery.interface,
            self._discovery.container_port,
        )
        changed = self._detector.apply(current)
        self._log.debug(
            "Cycle complete for %s", self.name,
            extra={"elapsed_seconds": round(time.monotonic() - start, 2), "backend_count": len(current)},
        )
        return changed

    def _ensure_inventory(self) -> ECSInventory:
        if self._inventory is None:
            from .ecs_client import ECSInventoryClient  # lazy import keeps boto3 out of --validate
            self._inventory = ECSInventoryClient(self._discovery)
            self._log.bind(region=self._inventory.region)
            self._log.info("Connecting to ECS region: %s", self._inventory.region)
        return self._inventory
