"""Short code normalization, validation and generation.

Collision Check Flow
====================
::
    ┌─────────────┐
    │ draw() or   │
    │ custom code │
    └──────┬──────┘
           ▼
    ┌─────────────┐   EXISTS    ┌─────────────┐
    │ Cache EXISTS├────────────►│  collision  │
    │ url:<code>  │             └─────────────┘
    └──────┬──────┘                    ▲
    MISS/ERROR                         │ FOUND
           ▼                           │
    ┌─────────────┐                    │
    │ Store       ├────────────────────┘
    │ exists()    │
    └──────┬──────┘
      ABSENT
           ▼
    ┌─────────────┐   LOST      ┌─────────────┐
    │ SET NX      ├────────────►│  collision  │
    │ reserve:<c> │             └─────────────┘
    └──────┬──────┘
       WON
           ▼
        claimed

Key Behaviours
===============
- Generated codes are drawn from ``os.urandom`` (via nanoid) over the
  lowercase URL-safe alphabet, so they are already normalized.
- Generation retries with fresh entropy at most ``CODE_GENERATION_MAX_ATTEMPTS``
  times, then raises ``CodeGenerationExhaustedError``.
- A custom code collision raises ``CodeTakenError``.
- A cache failure never blocks a claim: the durable unique index still
  decides the race.
"""

import logging
import re

from nanoid import generate
from prometheus_client import Counter

from shortlinks.cache import CacheBackend
from shortlinks.config import Settings
from shortlinks.exceptions import (
    CacheUnavailableError,
    CodeGenerationExhaustedError,
    CodeTakenError,
    InvalidCodeError,
    OperationTimeoutError,
)
from shortlinks.keys import link_key, reservation_key
from shortlinks.store import LinkStore

__all__ = ["ALPHABET", "CodeGenerator", "normalize_code", "validate_code"]

ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz_-"
CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

CODE_COLLISIONS_TOTAL = Counter(
    "shortlinks_code_collisions_total",
    "Short code collisions detected while generating or claiming codes",
    ["kind"],
)


def normalize_code(raw: str) -> str:
    """Strip any path prefix and fold to lowercase.

    >>> normalize_code("/urls/MyLink1")
    'mylink1'
    """
    return raw.strip().strip("/").rsplit("/", 1)[-1].lower()


def validate_code(code: str, min_length: int = 1, max_length: int = 32) -> None:
    if not code or not CODE_PATTERN.match(code):
        raise InvalidCodeError("Short code can only contain letters, numbers, hyphens, and underscores")
    if not min_length <= len(code) <= max_length:
        raise InvalidCodeError(f"Short code must be between {min_length} and {max_length} characters")


class CodeGenerator:
    """Produces collision-checked short codes.

    Args:
        cache: Cache used for the fast existence check and reservations
        store: Durable store used for the authoritative existence check
        settings: Code length, attempt bound and reservation TTL
        logger: Optional logger (defaults to ``shortlinks.codes``)
    """

    def __init__(self, cache: CacheBackend, store: LinkStore, settings: Settings, logger: logging.Logger | None = None):
        self._cache = cache
        self._store = store
        self._length = settings.SHORT_CODE_LENGTH
        self._max_attempts = settings.CODE_GENERATION_MAX_ATTEMPTS
        self._reservation_ttl = settings.CODE_RESERVATION_TTL_SECONDS
        self._logger = logger or logging.getLogger(__name__)

    def draw(self) -> str:
        return generate(ALPHABET, self._length)

    async def is_taken(self, code: str) -> bool:
        try:
            if await self._cache.exists(link_key(code)):
                return True
        except (CacheUnavailableError, OperationTimeoutError) as exc:
            self._logger.warning(f"Cache existence check failed for {code}, asking store: {exc}")
        return await self._store.exists(code)

    async def reserve(self, code: str) -> bool:
        try:
            return await self._cache.set_if_absent(reservation_key(code), "1", self._reservation_ttl)
        except (CacheUnavailableError, OperationTimeoutError) as exc:
            self._logger.warning(f"Cache reservation failed for {code}, relying on store uniqueness: {exc}")
            return True

    async def release(self, code: str) -> None:
        try:
            await self._cache.delete(reservation_key(code))
        except (CacheUnavailableError, OperationTimeoutError) as exc:
            self._logger.warning(f"Failed to release reservation for {code}: {exc}")

    async def generate(self) -> str:
        for attempt in range(1, self._max_attempts + 1):
            code = self.draw()
            if not await self.is_taken(code) and await self.reserve(code):
                self._logger.debug(f"Generated short code {code} on attempt {attempt}")
                return code
            CODE_COLLISIONS_TOTAL.labels(kind="generated").inc()
            self._logger.info(f"Short code collision on attempt {attempt}: {code}")
        raise CodeGenerationExhaustedError(self._max_attempts)

    async def claim(self, custom_code: str, min_length: int, max_length: int) -> str:
        """Validate, normalize and reserve a caller-supplied code.

        Raises:
            InvalidCodeError: Charset or length violation (checked before any I/O)
            CodeTakenError: The code exists or another creator holds it
        """
        validate_code(custom_code, min_length, max_length)
        code = normalize_code(custom_code)
        if await self.is_taken(code) or not await self.reserve(code):
            CODE_COLLISIONS_TOTAL.labels(kind="custom").inc()
            raise CodeTakenError(code)
        return code
