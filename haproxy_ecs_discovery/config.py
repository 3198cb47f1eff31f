"""Frozen dataclasses for configuration and YAML loader with env-var interpolation."""

from __future__ import annotations

import os
import re
import types
import typing
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .discovery.models import Backend
from .exceptions import ConfigError

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")

DISCOVERY_METHOD = "aws_ecs"


def _interpolate_env(value: str) -> str:
    """Replace ${ENV_VAR} placeholders with environment variable values."""

    def _replace(match: re.Match) -> str:
        env_key = match.group(1)
        env_val = os.environ.get(env_key)
        if env_val is None:
            raise ConfigError(f"Environment variable '{env_key}' is not set")
        return env_val

    return _ENV_PATTERN.sub(_replace, value)


def _walk_and_interpolate(obj: Any) -> Any:
    """Recursively interpolate env vars in strings throughout a nested structure."""
    if isinstance(obj, str):
        return _interpolate_env(obj)
    if isinstance(obj, dict):
        return {k: _walk_and_interpolate(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_interpolate(v) for v in obj]
    return obj


@dataclass(frozen=True)
class DiscoveryConfig:
    """The per-service discovery block. Validated by the watcher, not the loader."""

    method: str = ""
    aws_region: str = ""  # empty = $AWS_REGION, then the boto3 default chain
    aws_ecs_cluster: str = ""
    aws_ecs_family: str = ""
    aws_ec2_interface: str | None = None  # None behaves as "private"
    container_port: int = 0  # 0 = auto-detect the single exposed port
    check_interval: float = 15.0
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""

    @property
    def interface(self) -> str:
        return self.aws_ec2_interface or "private"


@dataclass(frozen=True)
class ServiceConfig:
    name: str = ""
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    default_servers: list[Backend] = field(default_factory=list)


@dataclass(frozen=True)
class OutputConfig:
    state_file: str = ""  # empty = only log the backend table


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "json"  # "json" or "text"


@dataclass(frozen=True)
class AppConfig:
    services: dict[str, ServiceConfig] = field(default_factory=dict)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _get_dataclass_type(ft: Any) -> type | None:
    """Return the underlying dataclass type from a type annotation (handles Optional/X|None)."""
    if isinstance(ft, type) and hasattr(ft, "__dataclass_fields__"):
        return ft
    # X | None is a types.UnionType; typing.Optional[X] has Union as its origin
    if isinstance(ft, types.UnionType) or getattr(ft, "__origin__", None) is typing.Union:
        args = [a for a in ft.__args__ if a is not type(None)]
        if len(args) == 1 and isinstance(args[0], type) and hasattr(args[0], "__dataclass_fields__"):
            return args[0]
    return None


def _build_nested(cls: type, data: dict[str, Any]) -> Any:
    """Construct a frozen dataclass, recursively building nested dataclass fields."""
    if not isinstance(data, dict):
        return data
    field_types = {f.name: f.type for f in cls.__dataclass_fields__.values()}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in field_types:
            continue
        ft = field_types[key]
        # Resolve string annotations to actual types in the module scope
        if isinstance(ft, str):
            ft = eval(ft, globals(), {cls.__name__: cls})  # noqa: S307
        dc_type = _get_dataclass_type(ft)
        if dc_type is not None and isinstance(value, dict):
            kwargs[key] = _build_nested(dc_type, value)
        else:
            kwargs[key] = value
    return cls(**kwargs)


def _build_default_servers(service: str, entries: Any) -> list[Backend]:
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise ConfigError(f"services.{service}.default_servers must be a list")
    servers: list[Backend] = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict) or not all(entry.get(k) for k in ("name", "host", "port")):
            raise ConfigError(f"services.{service}.default_servers[{i}] needs name, host and port")
        try:
            servers.append(Backend.from_dict(entry))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"services.{service}.default_servers[{i}] has an invalid port") from exc
    return servers


_NUMERIC_DISCOVERY_FIELDS = {"container_port": int, "check_interval": float}


def _coerce_numbers(service: str, discovery: DiscoveryConfig) -> DiscoveryConfig:
    """Convert numeric fields given as strings, as ${ENV} interpolation always yields strings."""
    changes: dict[str, Any] = {}
    for key, convert in _NUMERIC_DISCOVERY_FIELDS.items():
        value = getattr(discovery, key)
        if isinstance(value, str):
            try:
                changes[key] = convert(value.strip())
            except ValueError as exc:
                raise ConfigError(f"services.{service}.discovery.{key} is not a number: {value!r}") from exc
    return replace(discovery, **changes) if changes else discovery


def _build_service(name: str, data: Any) -> ServiceConfig:
    if not isinstance(data, dict):
        raise ConfigError(f"services.{name} must be a mapping")
    discovery = data.get("discovery")
    if not isinstance(discovery, dict):
        raise ConfigError(f"services.{name}.discovery must be a mapping")
    return ServiceConfig(
        name=name,
        discovery=_coerce_numbers(name, _build_nested(DiscoveryConfig, discovery)),
        default_servers=_build_default_servers(name, data.get("default_servers")),
    )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate configuration from a YAML file."""
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ConfigError("Configuration file must be a YAML mapping")

    raw = _walk_and_interpolate(raw)
    services_raw = raw.pop("services", None)
    if not isinstance(services_raw, dict) or not services_raw:
        raise ConfigError("At least one entry under 'services' is required")

    config = _build_nested(AppConfig, raw)
    config = AppConfig(
        services={name: _build_service(name, svc) for name, svc in services_raw.items()},
        output=config.output,
        logging=config.logging,
    )
    _validate(config)
    return config


def _validate(config: AppConfig) -> None:
    """Validate file-level values. Discovery blocks are checked by each watcher."""
    if config.logging.format not in ("json", "text"):
        raise ConfigError("logging.format must be 'json' or 'text'")
