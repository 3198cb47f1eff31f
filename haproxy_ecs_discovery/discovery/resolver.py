"""Turns ECS task inventory into backends, one host port per running task."""

from __future__ import annotations

import logging

from ..exceptions import AmbiguousPortError, NoMatchingPortError, ResolutionError
from . import ECSInventory
from .models import Backend, ComputeInstance, ContainerInstance, NetworkBinding, Task

logger = logging.getLogger(__name__)


class TaskResolver:
    """Resolves the running tasks of one cluster/family to host/port backends.

    Port selection fails fast instead of guessing: a task exposing several
    host ports needs an explicit container_port, and a container_port bound
    more than once in a single task is rejected outright.
    """

    def __init__(self, inventory: ECSInventory, service_name: str):
        self._inventory = inventory
        self._service = service_name

    def resolve(self, cluster: str, family: str, interface: str = "private", container_port: int = 0) -> list[Backend]:
        backends: list[Backend] = []
        for task_ids in self._inventory.list_task_ids(cluster, family):
            if not task_ids:
                continue
            backends.extend(self._resolve_batch(cluster, task_ids, interface, container_port))
        logger.debug("Resolved %d backends for service %s", len(backends), self._service)
        return backends

    def _resolve_batch(
        self,
        cluster: str,
        task_ids: list[str],
        interface: str,
        container_port: int,
    ) -> list[Backend]:
        tasks = self._inventory.describe_tasks(cluster, task_ids)

        container_instances = self._inventory.describe_container_instances(
            cluster, [t.container_instance_arn for t in tasks if t.container_instance_arn]
        )
        ci_map: dict[str, ContainerInstance] = {}
        for ci in container_instances:
            ci_map.setdefault(ci.arn, ci)

        compute_ids = list(dict.fromkeys(ci.compute_instance_id for ci in ci_map.values()))
        compute_map = self._inventory.describe_compute_instances(compute_ids)

        backends: list[Backend] = []
        for task in tasks:
            logger.debug("Found task %s (%s)", task.task_id, task.status)
            if not task.is_running:
                continue
            bindings = task.host_bindings
            if not bindings:
                continue
            host_port = self._select_host_port(bindings, container_port)
            instance = self._locate(task, ci_map, compute_map)
            name, host = instance.address(interface)
            if not host:
                raise ResolutionError(
                    f"EC2 instance {instance.instance_id} has no {interface} address "
                    f"for service {self._service}"
                )
            backends.append(Backend(name=name, host=host, port=host_port))
        return backends

    def _select_host_port(self, bindings: list[NetworkBinding], container_port: int) -> int:
        if container_port == 0:
            if len(bindings) != 1:
                raise AmbiguousPortError(
                    f"container_port needs to be specified for service {self._service}, "
                    f"which has {len(bindings)} container ports exposed"
                )
            return bindings[0].host_port

        matches = [nb for nb in bindings if nb.container_port == container_port]
        if len(matches) > 1:
            raise AmbiguousPortError(
                f"container_port {container_port} matches multiple containers in a single task "
                f"for service {self._service}"
            )
        if not matches:
            raise NoMatchingPortError(
                f"container_port {container_port} does not match any ports for service {self._service}"
            )
        return matches[0].host_port

    def _locate(
        self,
        task: Task,
        ci_map: dict[str, ContainerInstance],
        compute_map: dict[str, ComputeInstance],
    ) -> ComputeInstance:
        """Follow task -> container instance -> EC2 instance."""
        ci = ci_map.get(task.container_instance_arn or "")
        if ci is None:
            raise ResolutionError(
                f"task {task.task_id} references unknown container instance {task.container_instance_arn}"
            )
        instance = compute_map.get(ci.compute_instance_id)
        if instance is None:
            raise ResolutionError(
                f"container instance {ci.arn} references unknown EC2 instance {ci.compute_instance_id}"
            )
        return instance
