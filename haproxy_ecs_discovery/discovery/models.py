"""Data models for ECS task inventory and the backends resolved from it."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

RUNNING = "RUNNING"


@dataclass(frozen=True, order=True)
class Backend:
    """A reachable endpoint published to the reconfiguration hook."""

    name: str
    host: str
    port: int

    def as_dict(self) -> dict[str, Any]:
        return {"name": self.name, "host": self.host, "port": self.port}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Backend:
        return cls(name=str(data["name"]), host=str(data["host"]), port=int(data["port"]))


@dataclass(frozen=True)
class NetworkBinding:
    container_port: int
    host_port: int | None = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> NetworkBinding:
        return cls(container_port=raw.get("containerPort", 0), host_port=raw.get("hostPort"))


@dataclass(frozen=True)
class Container:
    network_bindings: tuple[NetworkBinding, ...] = ()

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> Container:
        bindings = raw.get("networkBindings") or []
        return cls(network_bindings=tuple(NetworkBinding.from_api(nb) for nb in bindings))


@dataclass(frozen=True)
class Task:
    """An ECS task as returned by describe_tasks."""

    task_id: str
    status: str
    containers: tuple[Container, ...] = ()
    container_instance_arn: str | None = None

    @property
    def is_running(self) -> bool:
        return self.status == RUNNING

    @property
    def host_bindings(self) -> list[NetworkBinding]:
        """All bindings across the task's containers that have a host port mapped."""
        return [
            nb
            for container in self.containers
            for nb in container.network_bindings
            if nb.host_port is not None
        ]

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> Task:
        return cls(
            task_id=raw.get("taskArn", ""),
            status=raw.get("lastStatus", ""),
            containers=tuple(Container.from_api(c) for c in raw.get("containers", [])),
            container_instance_arn=raw.get("containerInstanceArn"),
        )


@dataclass(frozen=True)
class ContainerInstance:
    arn: str
    compute_instance_id: str

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> ContainerInstance:
        return cls(arn=raw["containerInstanceArn"], compute_instance_id=raw.get("ec2InstanceId", ""))


@dataclass(frozen=True)
class ComputeInstance:
    """The EC2 instance a container instance runs on."""

    instance_id: str
    public_dns_name: str = ""
    public_ip: str = ""
    private_dns_name: str = ""
    private_ip: str = ""

    def address(self, interface: str) -> tuple[str, str]:
        """Return (name, host) for the "public" or "private" interface."""
        if interface == "public":
            return self.public_dns_name, self.public_ip
        return self.private_dns_name, self.private_ip

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> ComputeInstance:
        return cls(
            instance_id=raw["InstanceId"],
            public_dns_name=raw.get("PublicDnsName") or "",
            public_ip=raw.get("PublicIpAddress") or "",
            private_dns_name=raw.get("PrivateDnsName") or "",
            private_ip=raw.get("PrivateIpAddress") or "",
        )


def backends_from_dicts(entries: list[dict[str, Any]]) -> list[Backend]:
    return [Backend.from_dict(e) for e in entries]


@dataclass
class BackendTable:
    """Published backends of every watcher, keyed by service name."""

    services: dict[str, list[Backend]] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(len(b) for b in self.services.values())

    def as_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {name: [b.as_dict() for b in backends] for name, backends in sorted(self.services.items())}
