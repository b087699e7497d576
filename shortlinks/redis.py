"""Redis client construction for the short-link service.

Unlike a module-level singleton, the client is created by the application's
service manager at startup and injected into ``RedisCache``.

How to Use
===========
**Step 1 — Create on startup**::
    client = create_redis_client(settings)
    cache = RedisCache(client, prefix=settings.CACHE_KEY_PREFIX)

**Step 2 — Close on shutdown**::
    await close_redis_client(client)

Key Behaviours
===============
- UTF-8 encoding with decode_responses, so cached values come back as ``str``.
- Socket timeouts are aligned with the cache deadline so a dead server
  fails fast instead of hanging the connection pool.
"""

import redis.asyncio as redis

from shortlinks.config import Settings

__all__ = ["create_redis_client", "close_redis_client"]


def create_redis_client(settings: Settings) -> redis.Redis:
    return redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.CACHE_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.CACHE_TIMEOUT_SECONDS,
    )


async def close_redis_client(client: redis.Redis) -> None:
    await client.aclose()
