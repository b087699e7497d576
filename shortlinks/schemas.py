"""Pydantic schemas for the short-link service.

This module defines the domain values returned by the core (``ShortLink``,
``LinkStats``, ``LinkPage``) and the request/response models used by the
HTTP adapter.

Schema Hierarchy
=================
::
    ShortLink (Domain, built from LinkRecord rows)
    ├─ code: str
    ├─ owner_id: str
    ├─ destination: str
    ├─ clicks: int
    ├─ created_at: datetime
    └─ updated_at: datetime

    LinkStats (Domain)
    ├─ code: str
    ├─ clicks: int
    ├─ source: ClickSource (cache | store)
    └─ updated_at: datetime

    LinkPage (Domain)
    ├─ items: list[ShortLink]
    ├─ page / page_size / total
    └─ total_pages (computed)

    LinkCreate / LinkUpdate (Input)
    LinkResponse / LinkStatsResponse / LinkPageResponse / HealthResponse (Output)

Key Behaviours
===============
- Destination URLs are validated with the validators library.
- Custom codes are checked for shape by the core, not here, so that every
  caller gets the same ``InvalidCodeError``.
- Domain models are immutable and configured for ORM attribute mapping.
"""

import datetime
import math

import validators
from pydantic import BaseModel, Field, computed_field, field_validator

from shortlinks.enums import ClickSource, HealthStatus

__all__ = [
    "ShortLink",
    "LinkStats",
    "LinkPage",
    "LinkCreate",
    "LinkUpdate",
    "LinkResponse",
    "LinkStatsResponse",
    "LinkPageResponse",
    "HealthResponse",
]


class ShortLink(BaseModel):
    code: str
    owner_id: str
    destination: str
    clicks: int = 0
    created_at: datetime.datetime
    updated_at: datetime.datetime

    model_config = {"from_attributes": True, "frozen": True}


class LinkStats(BaseModel):
    code: str
    clicks: int
    source: ClickSource
    updated_at: datetime.datetime

    model_config = {"frozen": True}


class LinkPage(BaseModel):
    items: list[ShortLink]
    page: int
    page_size: int
    total: int

    @computed_field
    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


def _validate_destination(v: str) -> str:
    if not validators.url(v):
        raise ValueError("Invalid URL provided")
    return v


class LinkCreate(BaseModel):
    url: str
    custom_code: str | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _validate_destination(v)


class LinkUpdate(BaseModel):
    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _validate_destination(v)


class LinkResponse(BaseModel):
    code: str
    short_url: str
    destination: str
    clicks: int
    created_at: datetime.datetime
    updated_at: datetime.datetime

    @classmethod
    def from_link(cls, link: ShortLink, base_url: str) -> "LinkResponse":
        return cls(
            code=link.code,
            short_url=f"{base_url.rstrip('/')}/{link.code}",
            destination=link.destination,
            clicks=link.clicks,
            created_at=link.created_at,
            updated_at=link.updated_at,
        )


class LinkStatsResponse(BaseModel):
    code: str
    total_clicks: int
    source: ClickSource
    updated_at: datetime.datetime


class LinkPageResponse(BaseModel):
    items: list[LinkResponse]
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    total: int
    total_pages: int


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus
