"""JSON values kept in Redis."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import redis

logger = logging.getLogger(__name__)

_cache: Cache | None = None


class CacheError(Exception):
    """Raised when Redis fails or a value cannot be (de)serialised."""


@dataclass(frozen=True)
class Cache:
    """A Redis client storing values as JSON text."""

    client: Any

    def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return getattr(self.client, method)(*args, **kwargs)
        except redis.RedisError as exc:
            raise CacheError(f"redis error: {exc}") from exc

    @staticmethod
    def _decode(raw: Any) -> Any:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (ValueError, TypeError) as exc:
            raise CacheError(f"serde_json error: {exc}") from exc

    @staticmethod
    def _encode(value: Any) -> str:
        try:
            return json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise CacheError(f"serde_json error: {exc}") from exc

    def get(self, key: str) -> Any:
        """Return the decoded value at ``key``, or ``None``."""
        return self._decode(self._call("get", key))

    def get_del(self, key: str) -> Any:
        """Return the decoded value at ``key`` and remove it."""
        return self._decode(self._call("getdel", key))

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` as JSON at ``key`` without expiry."""
        self._call("set", key, self._encode(value))

    def set_ex(self, key: str, value: Any, expire: int) -> None:
        """Store ``value`` as JSON at ``key`` for ``expire`` seconds."""
        self._call("set", key, self._encode(value), ex=int(expire))

    def flush(self) -> None:
        """Remove every key from every database."""
        self._call("flushall", asynchronous=False)


def init(url: str) -> Cache:
    """Create the shared cache for the Redis server at ``url``."""
    global _cache
    try:
        client = redis.Redis.from_url(url)
    except (ValueError, redis.RedisError) as exc:
        raise CacheError(f"redis error: {exc}") from exc
    _cache = Cache(client)
    logger.info("Cache initialized successfully.")
    return _cache


def get_cache() -> Cache:
    """Return the cache created by :func:`init`."""
    if _cache is None:
        raise CacheError("cache is not initialised")
    return _cache