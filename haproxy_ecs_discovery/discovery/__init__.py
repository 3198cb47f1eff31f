"""ECS discovery package: watcher and inventory Protocols."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .models import Backend, ComputeInstance, ContainerInstance, Task


@runtime_checkable
class ServiceWatcher(Protocol):
    """Lifecycle every watcher exposes to the host daemon."""

    def validate_config(self) -> None:
        """Raise ConfigError if the discovery block is unusable."""
        ...

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...

    @property
    def backends(self) -> list[Backend]:
        """Snapshot of the currently published backends."""
        ...


@runtime_checkable
class ECSInventory(Protocol):
    """Read-only queries against the ECS cluster and EC2 inventory."""

    def list_task_ids(self, cluster: str, family: str) -> list[list[str]]:
        ...

    def describe_tasks(self, cluster: str, task_ids: list[str]) -> list[Task]:
        ...

    def describe_container_instances(self, cluster: str, arns: list[str]) -> list[ContainerInstance]:
        ...

    def describe_compute_instances(self, instance_ids: list[str]) -> dict[str, ComputeInstance]:
        ...
