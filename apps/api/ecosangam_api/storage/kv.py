"""Key-value store for sessions and offline measurement queues.

Values are JSON blobs under named keys. Redis backs it in deployments;
``MemoryKeyValueStore`` is the in-process implementation used by tests and
single-process development.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import redis

from ecosangam_api.settings import get_settings

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """JSON blob store keyed by name."""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    @abstractmethod
    def get_raw(self, key: str) -> Optional[str]:
        """Return the stored string or None."""

    @abstractmethod
    def set_raw(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Store a string, optionally expiring after ``ttl_seconds``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""

    @abstractmethod
    def ping(self) -> bool:
        """Check the backend is reachable."""

    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get_raw(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt JSON blob under {key}: {e}")
            raise

    def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        self.set_raw(key, json.dumps(value, sort_keys=True, default=str), ttl_seconds)


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store."""

    def __init__(self, client: redis.Redis, prefix: str = ""):
        super().__init__(prefix)
        self.client = client

    def get_raw(self, key: str) -> Optional[str]:
        value = self.client.get(self._key(key))
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set_raw(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        if ttl_seconds:
            self.client.setex(self._key(key), ttl_seconds, value)
        else:
            self.client.set(self._key(key), value)

    def delete(self, key: str) -> None:
        self.client.delete(self._key(key))

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.error(f"Redis ping failed: {e}")
            return False


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store with TTL support."""

    def __init__(self, prefix: str = ""):
        super().__init__(prefix)
        self._data: dict[str, tuple[str, Optional[float]]] = {}

    def get_raw(self, key: str) -> Optional[str]:
        entry = self._data.get(self._key(key))
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._data[self._key(key)]
            return None
        return value

    def set_raw(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds else None
        self._data[self._key(key)] = (value, expires_at)

    def delete(self, key: str) -> None:
        self._data.pop(self._key(key), None)

    def ping(self) -> bool:
        return True


_store: Optional[KeyValueStore] = None


def get_kv_store() -> KeyValueStore:
    """Get the process-wide store for the configured backend."""
    global _store

    if _store is None:
        settings = get_settings()
        if settings.kv_backend == "memory":
            _store = MemoryKeyValueStore(prefix=settings.kv_key_prefix)
        elif settings.kv_backend == "redis":
            _store = RedisKeyValueStore(
                redis.from_url(settings.redis_url, decode_responses=True),
                prefix=settings.kv_key_prefix,
            )
        else:
            raise ValueError(f"Unknown KV_BACKEND: {settings.kv_backend}")
        logger.info(f"Initialized {settings.kv_backend} key-value store")

    return _store
