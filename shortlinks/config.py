"""Configuration management for the short-link service.

This module provides centralized configuration using Pydantic BaseSettings
with environment variable support and caching for performance.

How to Use
===========
**Step 1 — Import**::
    from shortlinks.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    ttl = settings.LINK_CACHE_TTL_SECONDS

**Step 3 — Hand them to components explicitly**::
    generator = CodeGenerator(cache, store, settings)

Key Behaviours
===============
- Settings are cached after first access.
- Environment variables (and ``.env``) override defaults automatically.
- Components never call ``get_settings()`` themselves; the application wires
  the settings object in at construction time.

Classes:
    Settings:  Pydantic model for all configuration values.
"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "shortlinks"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://shortlinks:shortlinks@db:5432/shortlinks"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_KEY_PREFIX: str = "shortlinks"

    # Deadlines for every blocking call against cache or store
    CACHE_TIMEOUT_SECONDS: float = 0.5
    STORE_TIMEOUT_SECONDS: float = 3.0

    # Short code policy
    SHORT_CODE_LENGTH: int = 6
    CODE_GENERATION_MAX_ATTEMPTS: int = 3
    CUSTOM_CODE_MIN_LENGTH: int = 3
    CUSTOM_CODE_MAX_LENGTH: int = 20
    CODE_RESERVATION_TTL_SECONDS: int = 30

    # Cache lifetimes
    LINK_CACHE_TTL_SECONDS: int = 86_400  # 24h
    CLICK_COUNTER_TTL_SECONDS: int = 2_592_000  # 30 days

    # Background click accounting
    CLICK_WORKER_COUNT: int = 4
    CLICK_QUEUE_MAX_SIZE: int = 10_000
    CLICK_PERSIST_TIMEOUT_SECONDS: float = 5.0
    CLICK_DRAIN_TIMEOUT_SECONDS: float = 10.0

    # Pagination
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
