"""Process environment loaded from ``application.toml``."""

from __future__ import annotations

import logging
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, fields, is_dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

MEDIA_PATH = "./media"
CAPTURE_PATH = "./captures"
DEFAULT_PATH = "application.toml"

_PORT_MAX = 65535

_env: Env | None = None


class EnvError(Exception):
    """Raised when the environment configuration is missing or invalid."""


def _check_port(port: int, section: str) -> None:
    if not 0 <= port <= _PORT_MAX:
        raise EnvError(f"invalid value for `{section}.port`: {port} is out of range")


@dataclass(frozen=True)
class AxumEnv:
    host: str
    port: int

    def __post_init__(self) -> None:
        _check_port(self.port, "axum")


@dataclass(frozen=True)
class DbEnv:
    host: str
    port: int
    dbname: str
    username: str
    password: str
    sslmode: str

    def __post_init__(self) -> None:
        _check_port(self.port, "db")

    def url(self) -> str:
        """Connection URL for the PostgreSQL database."""
        return (
            f"postgres://{self.username}:{self.password}"
            f"@{self.host}:{self.port}/{self.dbname}"
        )


@dataclass(frozen=True)
class QueueEnv:
    host: str
    port: int
    user: str
    password: str
    token: str
    tls: bool

    def __post_init__(self) -> None:
        _check_port(self.port, "queue")


@dataclass(frozen=True)
class CacheEnv:
    url: str


@dataclass(frozen=True)
class MetricEnv:
    enabled: bool
    namespace: str


@dataclass(frozen=True)
class ProxyEnv:
    enabled: bool
    traffic_capture: bool


@dataclass(frozen=True)
class ClusterEnv:
    namespace: str
    proxy: ProxyEnv


@dataclass(frozen=True)
class Env:
    axum: AxumEnv
    db: DbEnv
    queue: QueueEnv
    cache: CacheEnv
    metric: MetricEnv
    cluster: ClusterEnv

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Env:
        """Build the environment from parsed TOML tables."""
        return _build(cls, data, "")


def _build(cls: type, data: Any, where: str) -> Any:
    if not isinstance(data, Mapping):
        raise EnvError(f"invalid type for `{where or 'root'}`: expected a table")
    values = {}
    for field in fields(cls):
        name = f"{where}.{field.name}" if where else field.name
        if field.name not in data:
            raise EnvError(f"missing field `{name}`")
        values[field.name] = _convert(field.type, data[field.name], name)
    return cls(**values)


def _convert(kind: Any, value: Any, name: str) -> Any:
    if isinstance(kind, str):
        kind = _TYPES[kind]
    if is_dataclass(kind):
        return _build(kind, value, name)
    if kind is bool:
        valid = isinstance(value, bool)
    elif kind is int:
        valid = isinstance(value, int) and not isinstance(value, bool)
    else:
        valid = isinstance(value, kind)
    if not valid:
        raise EnvError(f"invalid type for `{name}`: expected {kind.__name__}")
    return value


_TYPES: dict[str, type] = {
    "str": str,
    "int": int,
    "bool": bool,
    "AxumEnv": AxumEnv,
    "DbEnv": DbEnv,
    "QueueEnv": QueueEnv,
    "CacheEnv": CacheEnv,
    "MetricEnv": MetricEnv,
    "ProxyEnv": ProxyEnv,
    "ClusterEnv": ClusterEnv,
}


def load_env(path: str | Path = DEFAULT_PATH) -> Env:
    """Read and validate the environment file at ``path``."""
    target = Path(path)
    if not target.exists():
        raise EnvError(f"Environment configuration {target} not found.")
    try:
        data = tomllib.loads(target.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise EnvError(f"invalid TOML in {target}: {exc}") from exc
    return Env.from_dict(data)


def init(path: str | Path = DEFAULT_PATH) -> Env:
    """Load the environment and make it available through :func:`get_env`."""
    global _env
    try:
        _env = load_env(path)
    except EnvError:
        logger.error("Environment configuration %s could not be loaded.", path)
        raise
    return _env


def get_env() -> Env:
    """Return the environment loaded by :func:`init`."""
    if _env is None:
        raise EnvError("environment is not initialised")
    return _env