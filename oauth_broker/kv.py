"""
Key/value backends with per-key TTL. Redis for deployments; an in-process store for dev and tests.
`take` is read-then-delete; both backends perform it atomically.
"""
import threading
import time
from typing import Protocol

import redis


class KVStore(Protocol):
    def put(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def get(self, key: str) -> str | None: ...

    def delete(self, key: str) -> None: ...

    def take(self, key: str) -> str | None: ...


class RedisKVStore:
    """Redis backend. `take` uses GETDEL (Redis >= 6.2); store errors propagate to the caller."""

    def __init__(self, client: redis.Redis):
        self.client = client

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        self.client.set(key, value, ex=ttl_seconds)

    def get(self, key: str) -> str | None:
        return self.client.get(key)

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def take(self, key: str) -> str | None:
        return self.client.getdel(key)


class MemoryKVStore:
    """
    Process-local store. Not shared between workers.
    Expired entries are dropped when read and swept on every put, so keys that are never read again do not pile up.
    """

    def __init__(self) -> None:
        self._data: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._data[key]
            return None
        return value

    def _sweep(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._data.items() if now >= expires_at]
        for k in expired:
            del self._data[k]

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            now = time.monotonic()
            self._sweep(now)
            self._data[key] = (value, now + ttl_seconds)

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._live(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def take(self, key: str) -> str | None:
        with self._lock:
            value = self._live(key)
            self._data.pop(key, None)
            return value


def kv_store_from_url(url: str, *, socket_timeout: float | None = 5.0) -> KVStore:
    """memory:// -> MemoryKVStore; redis:// or rediss:// -> RedisKVStore."""
    if url.startswith("memory://"):
        return MemoryKVStore()
    if url.startswith(("redis://", "rediss://", "unix://")):
        client = redis.Redis.from_url(url, decode_responses=True, socket_timeout=socket_timeout)
        return RedisKVStore(client)
    raise ValueError(f"Unsupported key/value store URL: {url}")
