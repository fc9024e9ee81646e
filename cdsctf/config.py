"""Site-wide configuration stored in the database and mirrored in the cache."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from typing import Any, get_args, get_origin

from cdsctf.cache import CacheError

logger = logging.getLogger(__name__)

CACHE_KEY = "config"


@dataclass
class SiteConfig:
    title: str = ""
    description: str = ""
    color: str = ""
    favicon: str = ""


@dataclass
class JwtConfig:
    secret_key: str = ""
    expiration: int = 0


@dataclass
class EmailConfig:
    enabled: bool = False
    domains: list[str] = field(default_factory=list)


@dataclass
class RegistrationConfig:
    enabled: bool = False
    captcha: bool = False
    email: EmailConfig = field(default_factory=EmailConfig)


@dataclass
class AuthConfig:
    jwt: JwtConfig = field(default_factory=JwtConfig)
    registration: RegistrationConfig = field(default_factory=RegistrationConfig)


@dataclass
class ProxyConfig:
    enabled: bool = False
    traffic_capture: bool = False


@dataclass
class StrategyConfig:
    parallel_limit: int = 0
    request_limit: int = 0


@dataclass
class ClusterConfig:
    entry: str = ""
    strategy: StrategyConfig = field(default_factory=StrategyConfig)


@dataclass
class Config:
    site: SiteConfig = field(default_factory=SiteConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    cluster: ClusterConfig = field(default_factory=ClusterConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Config:
        """Build a configuration from its JSON form; every field is required."""
        return _build(cls, data, "")

    def to_dict(self) -> dict[str, Any]:
        """The JSON form of this configuration."""
        return asdict(self)


_UNSIGNED = {"parallel_limit", "request_limit"}


def _build(cls: type, data: Any, where: str) -> Any:
    if not isinstance(data, Mapping):
        raise ValueError(f"invalid type for `{where or 'config'}`: expected an object")
    values = {}
    for f in fields(cls):
        name = f"{where}.{f.name}" if where else f.name
        if f.name not in data:
            raise ValueError(f"missing field `{name}`")
        values[f.name] = _convert(f.type, data[f.name], name)
        if f.name in _UNSIGNED and values[f.name] < 0:
            raise ValueError(f"invalid value for `{name}`: must not be negative")
    return cls(**values)


def _convert(kind: Any, value: Any, name: str) -> Any:
    if isinstance(kind, str):
        kind = _TYPES[kind]
    if is_dataclass(kind):
        return _build(kind, value, name)
    if get_origin(kind) is list:
        if not isinstance(value, list):
            raise ValueError(f"invalid type for `{name}`: expected a list")
        (item_kind,) = get_args(kind)
        return [_convert(item_kind, item, f"{name}[]") for item in value]
    if kind is bool:
        valid = isinstance(value, bool)
    elif kind is int:
        valid = isinstance(value, int) and not isinstance(value, bool)
    else:
        valid = isinstance(value, kind)
    if not valid:
        raise ValueError(f"invalid type for `{name}`: expected {kind.__name__}")
    return value


_TYPES: dict[str, Any] = {
    "str": str,
    "int": int,
    "bool": bool,
    "list[str]": list[str],
    "SiteConfig": SiteConfig,
    "JwtConfig": JwtConfig,
    "EmailConfig": EmailConfig,
    "RegistrationConfig": RegistrationConfig,
    "AuthConfig": AuthConfig,
    "ProxyConfig": ProxyConfig,
    "StrategyConfig": StrategyConfig,
    "ClusterConfig": ClusterConfig,
}


def init(cache: Any, fetch_stored: Callable[[], Any]) -> Config | None:
    """Make sure the cache holds the configuration.

    When the cache is empty, ``fetch_stored`` is called for the stored JSON
    value; if there is one, it is written to the cache. Failures writing the
    cache are ignored.
    """
    cached = cache.get(CACHE_KEY)
    if cached is not None:
        return Config.from_dict(cached)
    stored = fetch_stored()
    if stored is None:
        return None
    config = Config.from_dict(stored)
    try:
        cache.set(CACHE_KEY, config.to_dict())
    except CacheError as exc:
        logger.warning("Could not cache configuration: %s", exc)
    return config


def get_config(cache: Any) -> Config:
    """Return the configuration held in the cache."""
    cached = cache.get(CACHE_KEY)
    if cached is None:
        raise LookupError("configuration is not cached")
    return Config.from_dict(cached)