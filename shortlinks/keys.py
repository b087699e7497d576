"""Logical cache key names for short links.

These are the keys *inside* a cache namespace; ``RedisCache`` adds its
instance prefix on top, so ``url:abc123`` is stored as
``shortlinks:url:abc123`` with the default prefix.
"""

__all__ = ["link_key", "clicks_key", "reservation_key"]


def link_key(code: str) -> str:
    return f"url:{code}"


def clicks_key(code: str) -> str:
    return f"clicks:{code}"


def reservation_key(code: str) -> str:
    return f"reserve:{code}"
