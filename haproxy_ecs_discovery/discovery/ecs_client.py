"""AWS boto3 client for querying ECS tasks, container instances and EC2 instances."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoRegionError

from ..config import DiscoveryConfig
from ..exceptions import ConfigError, TransportError
from .models import ComputeInstance, ContainerInstance, Task

logger = logging.getLogger(__name__)


class ECSInventoryClient:
    """Thin wrapper around the four read-only ECS/EC2 calls discovery needs.

    Pagination and SDK response shapes stop here; callers get model objects.
    Nothing is retried: botocore failures surface as TransportError and the
    poll loop decides when to try again.
    """

    def __init__(self, config: DiscoveryConfig):
        self.region = config.aws_region or os.environ.get("AWS_REGION") or None

        session_kwargs: dict[str, Any] = {"region_name": self.region}
        if config.aws_access_key_id and config.aws_secret_access_key:
            session_kwargs["aws_access_key_id"] = config.aws_access_key_id
            session_kwargs["aws_secret_access_key"] = config.aws_secret_access_key

        try:
            session = boto3.Session(**session_kwargs)
            self._ecs = session.client("ecs")
            self._ec2 = session.client("ec2")
        except NoRegionError as exc:
            raise ConfigError(
                f"no AWS region for cluster {config.aws_ecs_cluster}: set aws_region or $AWS_REGION"
            ) from exc
        except BotoCoreError as exc:
            raise ConfigError(f"cannot build AWS clients for cluster {config.aws_ecs_cluster}: {exc}") from exc

    # ── ECS ─────────────────────────────────────────────────────────

    def list_task_ids(self, cluster: str, family: str) -> list[list[str]]:
        """Return task ARNs in the batches the API pages them in (up to 100 each)."""
        with _translate_errors("list_tasks"):
            paginator = self._ecs.get_paginator("list_tasks")
            pages = paginator.paginate(cluster=cluster, family=family)
            batches = [page.get("taskArns", []) for page in pages]
        logger.debug("list_tasks returned %d batches for %s/%s", len(batches), cluster, family)
        return batches

    def describe_tasks(self, cluster: str, task_ids: list[str]) -> list[Task]:
        if not task_ids:
            return []
        with _translate_errors("describe_tasks"):
            response = self._ecs.describe_tasks(cluster=cluster, tasks=task_ids)
        _log_failures("describe_tasks", response)
        return [Task.from_api(raw) for raw in response.get("tasks", [])]

    def describe_container_instances(self, cluster: str, arns: list[str]) -> list[ContainerInstance]:
        arns = list(dict.fromkeys(a for a in arns if a))
        if not arns:
            return []
        with _translate_errors("describe_container_instances"):
            response = self._ecs.describe_container_instances(cluster=cluster, containerInstances=arns)
        _log_failures("describe_container_instances", response)
        return [ContainerInstance.from_api(raw) for raw in response.get("containerInstances", [])]

    # ── EC2 ─────────────────────────────────────────────────────────

    def describe_compute_instances(self, instance_ids: list[str]) -> dict[str, ComputeInstance]:
        """Describe EC2 instances, flattening reservations into one map keyed by instance id."""
        instance_ids = list(dict.fromkeys(i for i in instance_ids if i))
        if not instance_ids:
            return {}

        instances: dict[str, ComputeInstance] = {}
        with _translate_errors("describe_instances"):
            paginator = self._ec2.get_paginator("describe_instances")
            for page in paginator.paginate(InstanceIds=instance_ids):
                for reservation in page.get("Reservations", []):
                    for raw in reservation.get("Instances", []):
                        inst = ComputeInstance.from_api(raw)
                        instances[inst.instance_id] = inst
        return instances


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except (BotoCoreError, ClientError) as exc:
        raise TransportError(f"{operation} failed: {exc}", operation=operation) from exc


def _log_failures(operation: str, response: dict[str, Any]) -> None:
    """ECS reports per-item misses in 'failures' instead of raising."""
    for failure in response.get("failures", []):
        logger.warning(
            "%s reported failure for %s: %s",
            operation, failure.get("arn", "?"), failure.get("reason", "unknown"),
        )
