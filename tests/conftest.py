"""Shared pytest fixtures: in-memory cache and store, wired service, API client."""

import asyncio
import datetime
from collections.abc import AsyncGenerator, Iterable, Mapping

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from shortlinks.cache import CacheBackend
from shortlinks.config import Settings
from shortlinks.dependencies import ServiceManager
from shortlinks.exceptions import (
    CacheUnavailableError,
    CodeTakenError,
    LinkNotFoundError,
    StoreUnavailableError,
)
from shortlinks.main import app
from shortlinks.schemas import ShortLink
from shortlinks.service import LinkService
from shortlinks.store import LinkStore

EPOCH = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)


# ============================================================================
# IN-MEMORY BACKENDS
# ============================================================================


class InMemoryCache(CacheBackend):
    """Dict-backed cache. Add operation names (or "*") to ``failing`` to make them raise."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.failing: set[str] = set()
        self.calls: list[str] = []

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failing or "*" in self.failing:
            raise CacheUnavailableError(f"cache {operation} down")

    async def get(self, key, *, timeout=None):
        self._check("get")
        return self.data.get(key)

    async def set(self, key, value, ttl, *, timeout=None):
        self._check("set")
        self.data[key] = value
        self.ttls[key] = ttl

    async def set_if_absent(self, key, value, ttl, *, timeout=None):
        self._check("set_if_absent")
        if key in self.data:
            return False
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, key, *, timeout=None):
        self._check("delete")
        self.data.pop(key, None)
        self.ttls.pop(key, None)

    async def delete_many(self, keys: Iterable[str], *, timeout=None):
        self._check("delete_many")
        for key in keys:
            self.data.pop(key, None)
            self.ttls.pop(key, None)

    async def exists(self, key, *, timeout=None):
        self._check("exists")
        return key in self.data

    async def get_many(self, keys: Iterable[str], *, timeout=None):
        self._check("get_many")
        return {key: self.data[key] for key in keys if key in self.data}

    async def set_many(self, items: Mapping[str, str], ttl, *, timeout=None):
        self._check("set_many")
        for key, value in items.items():
            self.data[key] = value
            self.ttls[key] = ttl

    async def increment(self, key, ttl, *, timeout=None):
        self._check("increment")
        value = int(self.data.get(key, "0")) + 1
        self.data[key] = str(value)
        self.ttls[key] = ttl
        return value

    async def set_expiry(self, key, ttl, *, timeout=None):
        self._check("set_expiry")
        if key not in self.data:
            return False
        self.ttls[key] = ttl
        return True

    async def clear(self, *, timeout=None):
        self._check("clear")
        removed = len(self.data)
        self.data.clear()
        self.ttls.clear()
        return removed

    async def ping(self, *, timeout=None):
        self._check("ping")
        return True


class InMemoryLinkStore(LinkStore):
    """Dict-backed store enforcing code uniqueness like the database index."""

    def __init__(self) -> None:
        self.links: dict[str, ShortLink] = {}
        self.failing: set[str] = set()
        self._sequence = 0

    async def _check(self, operation: str) -> None:
        # Yield so concurrent callers interleave the way they do against a real database.
        await asyncio.sleep(0)
        if operation in self.failing or "*" in self.failing:
            raise StoreUnavailableError(f"store {operation} down")

    async def create(self, code, owner_id, destination, *, timeout=None):
        await self._check("create")
        if code in self.links:
            raise CodeTakenError(code)
        self._sequence += 1
        created_at = EPOCH + datetime.timedelta(seconds=self._sequence)
        link = ShortLink(
            code=code,
            owner_id=owner_id,
            destination=destination,
            clicks=0,
            created_at=created_at,
            updated_at=created_at,
        )
        self.links[code] = link
        return link

    async def find_by_code(self, code, *, timeout=None):
        await self._check("find_by_code")
        if code not in self.links:
            raise LinkNotFoundError(code)
        return self.links[code]

    async def exists(self, code, *, timeout=None):
        await self._check("exists")
        return code in self.links

    async def find_by_owner_paginated(self, owner_id, page, page_size, *, timeout=None):
        await self._check("find_by_owner_paginated")
        owned = sorted(
            (link for link in self.links.values() if link.owner_id == owner_id),
            key=lambda link: link.created_at,
            reverse=True,
        )
        start = (page - 1) * page_size
        return owned[start : start + page_size], len(owned)

    async def update_destination(self, code, destination, *, timeout=None):
        await self._check("update_destination")
        if code not in self.links:
            raise LinkNotFoundError(code)
        link = self.links[code].model_copy(
            update={"destination": destination, "updated_at": self.links[code].updated_at + datetime.timedelta(hours=1)}
        )
        self.links[code] = link
        return link

    async def increment_clicks(self, code, *, timeout=None):
        await self._check("increment_clicks")
        if code in self.links:
            self.links[code] = self.links[code].model_copy(update={"clicks": self.links[code].clicks + 1})

    async def delete(self, code, owner_id, *, timeout=None):
        await self._check("delete")
        link = self.links.get(code)
        if link is None or link.owner_id != owner_id:
            raise LinkNotFoundError(code)
        del self.links[code]

    async def ping(self, *, timeout=None):
        await self._check("ping")
        return True


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        BASE_URL="http://sho.rt",
        CLICK_WORKER_COUNT=2,
        CLICK_QUEUE_MAX_SIZE=1000,
        CLICK_DRAIN_TIMEOUT_SECONDS=2.0,
    )


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def store() -> InMemoryLinkStore:
    return InMemoryLinkStore()


@pytest_asyncio.fixture
async def manager(settings, cache, store) -> AsyncGenerator[ServiceManager, None]:
    manager = ServiceManager(settings)
    manager.bind(cache, store)
    yield manager
    await manager.clicks.aclose()


@pytest.fixture
def service(manager: ServiceManager) -> LinkService:
    return manager.service


@pytest_asyncio.fixture
async def client(manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    app.state.service_manager = manager
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
