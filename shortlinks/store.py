"""Durable store for short links.

This module defines the durable-store contract consumed by the core
(``LinkStore``) and its SQLAlchemy/PostgreSQL implementation
(``SQLAlchemyLinkStore``).

How to Use
===========
**Step 1 — Build from a session factory**::
    store = SQLAlchemyLinkStore(create_session_factory(engine), timeout=3.0)

**Step 2 — Call the operations**::
    link = await store.create("abc123", owner_id="u-1", destination="https://example.com")
    link = await store.find_by_code("abc123")
    links, total = await store.find_by_owner_paginated("u-1", page=1, page_size=10)

Key Behaviours
===============
- Each call opens its own session, so the store is safe for concurrent use
  by request tasks and background click workers.
- Every call runs under a deadline (``OperationTimeoutError`` on expiry).
- The unique index on ``code`` turns a lost creation race into
  ``CodeTakenError``.
- Driver and connection failures surface as ``StoreUnavailableError``.

Classes:
    LinkStore:  Abstract durable-store contract.
    SQLAlchemyLinkStore:  SQLAlchemy async implementation.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlinks.exceptions import (
    CodeTakenError,
    LinkNotFoundError,
    OperationTimeoutError,
    StoreUnavailableError,
)
from shortlinks.models import LinkRecord
from shortlinks.schemas import ShortLink

__all__ = ["LinkStore", "SQLAlchemyLinkStore"]


class LinkStore(ABC):
    """Authoritative mapping of short code to destination plus a click counter.

    Every method accepts an optional ``timeout`` (seconds) overriding the
    store's default deadline.
    """

    @abstractmethod
    async def create(self, code: str, owner_id: str, destination: str, *, timeout: float | None = None) -> ShortLink:
        """Persist a new link.

        Raises:
            CodeTakenError: If a link with the same code already exists
        """

    @abstractmethod
    async def find_by_code(self, code: str, *, timeout: float | None = None) -> ShortLink:
        """Raises LinkNotFoundError when no link has this code."""

    @abstractmethod
    async def exists(self, code: str, *, timeout: float | None = None) -> bool: ...

    @abstractmethod
    async def find_by_owner_paginated(
        self, owner_id: str, page: int, page_size: int, *, timeout: float | None = None
    ) -> tuple[list[ShortLink], int]:
        """Return one page of the owner's links (newest first) and the owner's total link count."""

    @abstractmethod
    async def update_destination(self, code: str, destination: str, *, timeout: float | None = None) -> ShortLink: ...

    @abstractmethod
    async def increment_clicks(self, code: str, *, timeout: float | None = None) -> None: ...

    @abstractmethod
    async def delete(self, code: str, owner_id: str, *, timeout: float | None = None) -> None:
        """Raises LinkNotFoundError when no link with this code belongs to ``owner_id``."""

    @abstractmethod
    async def ping(self, *, timeout: float | None = None) -> bool: ...


class SQLAlchemyLinkStore(LinkStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], timeout: float = 3.0):
        self._session_factory = session_factory
        self._timeout = timeout

    @asynccontextmanager
    async def _session(self, operation: str, timeout: float | None) -> AsyncIterator[AsyncSession]:
        deadline = self._timeout if timeout is None else timeout
        try:
            async with asyncio.timeout(deadline):
                async with self._session_factory() as session:
                    yield session
        except TimeoutError as exc:
            raise OperationTimeoutError(f"Store {operation} timed out after {deadline}s") from exc
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Store {operation} failed: {exc}") from exc

    async def create(self, code: str, owner_id: str, destination: str, *, timeout: float | None = None) -> ShortLink:
        async with self._session("create", timeout) as session:
            record = LinkRecord(code=code, owner_id=owner_id, destination=destination, clicks=0)
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise CodeTakenError(code) from exc
            await session.refresh(record)
            return ShortLink.model_validate(record)

    async def find_by_code(self, code: str, *, timeout: float | None = None) -> ShortLink:
        async with self._session("find_by_code", timeout) as session:
            result = await session.execute(select(LinkRecord).where(LinkRecord.code == code))
            record = result.scalar_one_or_none()
            if record is None:
                raise LinkNotFoundError(code)
            return ShortLink.model_validate(record)

    async def exists(self, code: str, *, timeout: float | None = None) -> bool:
        async with self._session("exists", timeout) as session:
            result = await session.execute(select(LinkRecord.id).where(LinkRecord.code == code).limit(1))
            return result.scalar_one_or_none() is not None

    async def find_by_owner_paginated(
        self, owner_id: str, page: int, page_size: int, *, timeout: float | None = None
    ) -> tuple[list[ShortLink], int]:
        async with self._session("find_by_owner_paginated", timeout) as session:
            total = (
                await session.execute(
                    select(func.count()).select_from(LinkRecord).where(LinkRecord.owner_id == owner_id)
                )
            ).scalar_one()
            result = await session.execute(
                select(LinkRecord)
                .where(LinkRecord.owner_id == owner_id)
                .order_by(LinkRecord.created_at.desc(), LinkRecord.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            return [ShortLink.model_validate(record) for record in result.scalars().all()], int(total)

    async def update_destination(self, code: str, destination: str, *, timeout: float | None = None) -> ShortLink:
        async with self._session("update_destination", timeout) as session:
            result = await session.execute(select(LinkRecord).where(LinkRecord.code == code))
            record = result.scalar_one_or_none()
            if record is None:
                raise LinkNotFoundError(code)
            record.destination = destination
            await session.commit()
            await session.refresh(record)
            return ShortLink.model_validate(record)

    async def increment_clicks(self, code: str, *, timeout: float | None = None) -> None:
        async with self._session("increment_clicks", timeout) as session:
            # updated_at is pinned so click traffic does not count as an edit.
            await session.execute(
                update(LinkRecord)
                .where(LinkRecord.code == code)
                .values(clicks=LinkRecord.clicks + 1, updated_at=LinkRecord.updated_at)
            )
            await session.commit()

    async def delete(self, code: str, owner_id: str, *, timeout: float | None = None) -> None:
        async with self._session("delete", timeout) as session:
            result = await session.execute(
                delete(LinkRecord).where(LinkRecord.code == code, LinkRecord.owner_id == owner_id)
            )
            await session.commit()
            if result.rowcount == 0:
                raise LinkNotFoundError(code)

    async def ping(self, *, timeout: float | None = None) -> bool:
        async with self._session("ping", timeout) as session:
            await session.execute(text("SELECT 1"))
            return True
