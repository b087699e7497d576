"""Cache layer for the short-link service.

This module defines the cache contract used by the core (``CacheBackend``)
and its Redis implementation (``RedisCache``).

Key Layout
==========
::
    <prefix>:url:<code>       destination string    TTL 24h
    <prefix>:clicks:<code>    integer counter       TTL 30d (rolling)
    <prefix>:reserve:<code>   creation reservation  TTL 30s

How to Use
===========
**Step 1 — Build on a shared client**::
    client = create_redis_client(settings)
    cache = RedisCache(client, prefix="shortlinks", timeout=0.5)

**Step 2 — Read and write opaque string values**::
    await cache.set("url:abc123", "https://example.com", ttl=86400)
    await cache.get("url:abc123")

**Step 3 — Give other domains their own namespace**::
    sessions = cache.with_prefix("sessions")

Key Behaviours
===============
- Every key is namespaced by the instance prefix. Prefixes may not contain
  SCAN glob characters, so ``clear`` never reaches another namespace.
- Values are opaque strings; callers serialize structured values themselves.
- ``get`` returns ``None`` for a missing key. A miss never means "does not
  exist", only "consult the durable store".
- Every call runs under a deadline and raises ``OperationTimeoutError`` when
  it expires; Redis failures raise ``CacheUnavailableError``.
- ``increment`` and ``set_many`` run inside MULTI/EXEC transactions.

Classes:
    CacheBackend:  Abstract cache contract.
    RedisCache:  Redis-backed implementation.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Iterable, Mapping
from typing import TypeVar

import redis.asyncio as redis
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from shortlinks.exceptions import CacheUnavailableError, OperationTimeoutError

__all__ = ["CacheBackend", "RedisCache"]

T = TypeVar("T")

CLEAR_BATCH_SIZE = 500
GLOB_CHARACTERS = frozenset("*?[]\\")


class CacheBackend(ABC):
    """Key-value cache with TTL support.

    Every method accepts an optional ``timeout`` (seconds) overriding the
    backend's default deadline.
    """

    @abstractmethod
    async def get(self, key: str, *, timeout: float | None = None) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int, *, timeout: float | None = None) -> None: ...

    @abstractmethod
    async def set_if_absent(self, key: str, value: str, ttl: int, *, timeout: float | None = None) -> bool:
        """Atomically create ``key`` if missing. Returns whether the write happened."""

    @abstractmethod
    async def delete(self, key: str, *, timeout: float | None = None) -> None: ...

    @abstractmethod
    async def delete_many(self, keys: Iterable[str], *, timeout: float | None = None) -> None: ...

    @abstractmethod
    async def exists(self, key: str, *, timeout: float | None = None) -> bool: ...

    @abstractmethod
    async def get_many(self, keys: Iterable[str], *, timeout: float | None = None) -> dict[str, str]:
        """Return cached values by key; keys without a value are absent from the result."""

    @abstractmethod
    async def set_many(self, items: Mapping[str, str], ttl: int, *, timeout: float | None = None) -> None:
        """Upsert every item or none of them."""

    @abstractmethod
    async def increment(self, key: str, ttl: int, *, timeout: float | None = None) -> int:
        """Increment a counter and (re)apply its TTL in the same step."""

    @abstractmethod
    async def set_expiry(self, key: str, ttl: int, *, timeout: float | None = None) -> bool: ...

    @abstractmethod
    async def clear(self, *, timeout: float | None = None) -> int:
        """Delete every key in this cache's namespace. Returns the number removed."""

    @abstractmethod
    async def ping(self, *, timeout: float | None = None) -> bool: ...


class RedisCache(CacheBackend):
    """Redis implementation of ``CacheBackend``.

    Args:
        client: Shared ``redis.asyncio`` client (``decode_responses=True``)
        prefix: Namespace for every key written through this instance
        timeout: Default per-call deadline in seconds
    """

    def __init__(self, client: redis.Redis, prefix: str, timeout: float = 0.5):
        if not isinstance(prefix, str) or not prefix:
            raise ValueError(f"prefix must be a non-empty string, got {prefix!r}")
        if GLOB_CHARACTERS & set(prefix):
            raise ValueError(f"prefix must not contain glob characters, got {prefix!r}")
        self._client = client
        self._prefix = prefix
        self._timeout = timeout

    @property
    def prefix(self) -> str:
        return self._prefix

    def with_prefix(self, prefix: str) -> "RedisCache":
        """Return a cache sharing this client under a different namespace."""
        return RedisCache(self._client, prefix, timeout=self._timeout)

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def _run(self, operation: str, awaitable: Awaitable[T], timeout: float | None) -> T:
        deadline = self._timeout if timeout is None else timeout
        try:
            async with asyncio.timeout(deadline):
                return await awaitable
        except (TimeoutError, RedisTimeoutError) as exc:
            raise OperationTimeoutError(f"Cache {operation} timed out after {deadline}s") from exc
        except RedisError as exc:
            raise CacheUnavailableError(f"Cache {operation} failed: {exc}") from exc

    async def get(self, key: str, *, timeout: float | None = None) -> str | None:
        return await self._run("get", self._client.get(self._key(key)), timeout)

    async def set(self, key: str, value: str, ttl: int, *, timeout: float | None = None) -> None:
        await self._run("set", self._client.set(self._key(key), value, ex=ttl), timeout)

    async def set_if_absent(self, key: str, value: str, ttl: int, *, timeout: float | None = None) -> bool:
        created = await self._run("set_if_absent", self._client.set(self._key(key), value, ex=ttl, nx=True), timeout)
        return bool(created)

    async def delete(self, key: str, *, timeout: float | None = None) -> None:
        await self._run("delete", self._client.delete(self._key(key)), timeout)

    async def delete_many(self, keys: Iterable[str], *, timeout: float | None = None) -> None:
        prefixed = [self._key(key) for key in keys]
        if not prefixed:
            return
        await self._run("delete_many", self._client.delete(*prefixed), timeout)

    async def exists(self, key: str, *, timeout: float | None = None) -> bool:
        count = await self._run("exists", self._client.exists(self._key(key)), timeout)
        return count > 0

    async def get_many(self, keys: Iterable[str], *, timeout: float | None = None) -> dict[str, str]:
        keys = list(keys)
        if not keys:
            return {}
        values = await self._run("get_many", self._client.mget([self._key(key) for key in keys]), timeout)
        return {key: value for key, value in zip(keys, values) if value is not None}

    async def set_many(self, items: Mapping[str, str], ttl: int, *, timeout: float | None = None) -> None:
        if not items:
            return

        async def _execute() -> None:
            pipe = self._client.pipeline(transaction=True)
            for key, value in items.items():
                pipe.set(self._key(key), value, ex=ttl)
            await pipe.execute()

        await self._run("set_many", _execute(), timeout)

    async def increment(self, key: str, ttl: int, *, timeout: float | None = None) -> int:
        async def _execute() -> int:
            pipe = self._client.pipeline(transaction=True)
            pipe.incr(self._key(key))
            pipe.expire(self._key(key), ttl)
            value, _ = await pipe.execute()
            return int(value)

        return await self._run("increment", _execute(), timeout)

    async def set_expiry(self, key: str, ttl: int, *, timeout: float | None = None) -> bool:
        applied = await self._run("set_expiry", self._client.expire(self._key(key), ttl), timeout)
        return bool(applied)

    async def clear(self, *, timeout: float | None = None) -> int:
        async def _execute() -> int:
            removed = 0
            batch: list[str] = []
            async for key in self._client.scan_iter(match=self._key("*"), count=CLEAR_BATCH_SIZE):
                batch.append(key)
                if len(batch) >= CLEAR_BATCH_SIZE:
                    removed += await self._client.delete(*batch)
                    batch = []
            if batch:
                removed += await self._client.delete(*batch)
            return removed

        return await self._run("clear", _execute(), timeout)

    async def ping(self, *, timeout: float | None = None) -> bool:
        return bool(await self._run("ping", self._client.ping(), timeout))
