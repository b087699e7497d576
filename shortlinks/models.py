"""SQLAlchemy ORM models for the short-link service.

Data Model Layout
=================
::
    short_links table
    ├─ id (BIGSERIAL PRIMARY KEY)
    ├─ code (VARCHAR(32) UNIQUE, INDEXED)
    ├─ owner_id (VARCHAR(64), INDEXED)
    ├─ destination (TEXT NOT NULL)
    ├─ clicks (BIGINT DEFAULT 0)
    ├─ created_at (TIMESTAMPTZ, DEFAULT NOW())
    └─ updated_at (TIMESTAMPTZ, DEFAULT NOW(), ON UPDATE)

Key Behaviours
===============
- The unique index on ``code`` is the final arbiter of creation races.
- ``owner_id`` is indexed for the paginated owner listing.
- ``clicks`` is the durable, periodically-behind counter; the cache holds
  the near-real-time one.

Classes:
    LinkRecord:  Row of the short_links table.
"""

import datetime

from sqlalchemy import BigInteger, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from shortlinks.database import Base

__all__ = ["LinkRecord"]


class LinkRecord(Base):
    __tablename__ = "short_links"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    owner_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    destination: Mapped[str] = mapped_column(Text, nullable=False)
    clicks: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0", nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<LinkRecord(id={self.id}, code='{self.code}', clicks={self.clicks})>"
