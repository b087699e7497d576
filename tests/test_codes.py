"""Unit tests for short code normalization, validation and generation."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from shortlinks.codes import ALPHABET, CodeGenerator, normalize_code, validate_code
from shortlinks.exceptions import (
    CodeGenerationExhaustedError,
    CodeTakenError,
    InvalidCodeError,
    StoreUnavailableError,
)
from shortlinks.keys import link_key, reservation_key

# ============================================================================
# NORMALIZATION AND VALIDATION
# ============================================================================


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("abc123", "abc123"),
        ("ABC123", "abc123"),
        ("  MyLink  ", "mylink"),
        ("/urls/MyLink1", "mylink1"),
        ("urls/nested/Code_9/", "code_9"),
    ],
)
def test_normalize_code(raw, expected):
    assert normalize_code(raw) == expected


def test_normalize_code_is_idempotent():
    once = normalize_code("/urls/Mixed-Case_1")
    assert normalize_code(once) == once


@pytest.mark.parametrize("code", ["abc", "A-b_9", "x" * 20])
def test_validate_code_accepts(code):
    validate_code(code, 3, 20)


@pytest.mark.parametrize("code", ["", "ab", "x" * 21, "with space", "semi;colon", "dot.ted", "ünï"])
def test_validate_code_rejects(code):
    with pytest.raises(InvalidCodeError):
        validate_code(code, 3, 20)


# ============================================================================
# GENERATION
# ============================================================================


def test_draw_uses_lowercase_alphabet(cache, store, settings):
    generator = CodeGenerator(cache, store, settings)
    for _ in range(200):
        code = generator.draw()
        assert len(code) == settings.SHORT_CODE_LENGTH
        assert set(code) <= set(ALPHABET)
        assert normalize_code(code) == code


@pytest.mark.asyncio
async def test_generate_reserves_code(manager, cache, settings):
    code = await manager.generator.generate()

    assert cache.data[reservation_key(code)] == "1"
    assert cache.ttls[reservation_key(code)] == settings.CODE_RESERVATION_TTL_SECONDS


@pytest.mark.asyncio
async def test_generate_skips_cached_code(manager, cache, store):
    cache.data[link_key("aaaaaa")] = "https://example.com"
    manager.generator.draw = MagicMock(side_effect=["aaaaaa", "bbbbbb"])

    assert await manager.generator.generate() == "bbbbbb"


@pytest.mark.asyncio
async def test_generate_skips_reserved_code(manager, cache):
    cache.data[reservation_key("aaaaaa")] = "1"
    manager.generator.draw = MagicMock(side_effect=["aaaaaa", "cccccc"])

    assert await manager.generator.generate() == "cccccc"


@pytest.mark.asyncio
async def test_generate_exhausts(manager, store, settings):
    await store.create("aaaaaa", "someone", "https://example.com")
    manager.generator.draw = MagicMock(return_value="aaaaaa")

    with pytest.raises(CodeGenerationExhaustedError) as exc_info:
        await manager.generator.generate()

    assert exc_info.value.attempts == settings.CODE_GENERATION_MAX_ATTEMPTS


@pytest.mark.asyncio
async def test_is_taken_falls_back_to_store_when_cache_down(manager, cache, store):
    cache.failing.add("exists")
    await store.create("abc123", "someone", "https://example.com")

    assert await manager.generator.is_taken("abc123") is True
    assert await manager.generator.is_taken("zzz999") is False


@pytest.mark.asyncio
async def test_is_taken_propagates_store_failure(manager, store):
    store.failing.add("exists")

    with pytest.raises(StoreUnavailableError):
        await manager.generator.is_taken("abc123")


@pytest.mark.asyncio
async def test_reserve_treats_cache_failure_as_reserved(manager, cache):
    cache.failing.add("set_if_absent")

    assert await manager.generator.reserve("abc123") is True


@pytest.mark.asyncio
async def test_release_swallows_cache_failure(manager, cache):
    cache.data[reservation_key("abc123")] = "1"
    cache.failing.add("delete")

    await manager.generator.release("abc123")

    assert reservation_key("abc123") in cache.data


# ============================================================================
# CUSTOM CODES
# ============================================================================


@pytest.mark.asyncio
async def test_claim_normalizes_and_reserves(manager, cache):
    code = await manager.generator.claim("MyBrand", 3, 20)

    assert code == "mybrand"
    assert reservation_key("mybrand") in cache.data


@pytest.mark.asyncio
async def test_claim_existing_code(manager, store):
    await store.create("mybrand", "someone", "https://example.com")

    with pytest.raises(CodeTakenError) as exc_info:
        await manager.generator.claim("MYBRAND", 3, 20)

    assert exc_info.value.code == "mybrand"


@pytest.mark.asyncio
async def test_claim_validates_before_io(settings):
    cache = AsyncMock()
    store = AsyncMock()
    generator = CodeGenerator(cache, store, settings)

    with pytest.raises(InvalidCodeError):
        await generator.claim("no way!", 3, 20)

    cache.exists.assert_not_awaited()
    cache.set_if_absent.assert_not_awaited()
    store.exists.assert_not_awaited()
