# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Tests for the image search service flow."""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import ValidationError as PydanticValidationError

from reverse_lens.common.dedupe import RequestDeduplicator
from reverse_lens.common.errors import (
    BlockedHostError,
    CacheError,
    ProviderError,
    RateLimitError,
    ValidationError,
)
from reverse_lens.common.kv import MemoryKVStore
from reverse_lens.common.security import UrlValidator
from reverse_lens.search.cache import build_cache_key, get_cached_result, store_cached_result
from reverse_lens.search.models import MAX_IMAGE_URL_LENGTH, CachedSearchResult, SearchRequest, SearchResult
from reverse_lens.search.provider import ProviderOutcome
from reverse_lens.search.service import ImageSearchService

IMAGE_URL = "https://example.com/a.jpg"
HASH = "ab" * 32
RESULTS = [SearchResult(title="Match", page_url="https://a.com/page", domain="a.com")]
READY = ProviderOutcome(task_id="task-1", results=RESULTS, check_url="https://dfs/check", status="ready")
PENDING = ProviderOutcome(task_id="task-2", results=[], check_url="https://dfs/check", status="pending")

TASK_PAYLOAD = {
    "tasks": [{
        "id": "task-2",
        "result": [{"check_url": "https://dfs/check", "items": [
            {"type": "images", "items": [{"title": "Late", "url": "https://late.com/p"}]}
        ]}],
    }]
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def service_settings():
    """Patch service settings with real values; tests override what they need."""
    with patch("reverse_lens.search.service.settings") as mock_settings:
        from reverse_lens.config import settings as real_settings
        for attr in dir(real_settings):
            if attr.isupper():
                setattr(mock_settings, attr, getattr(real_settings, attr))
        mock_settings.RATE_LIMIT_ENABLED = True
        mock_settings.RATE_LIMIT_DAILY = 10
        mock_settings.RATE_LIMIT_BUCKET = "limit"
        mock_settings.CACHE_ENABLED = True
        mock_settings.CACHE_TTL = 172800
        mock_settings.TASK_TTL = 3600
        yield mock_settings


@pytest.fixture()
def store():
    return MemoryKVStore()


@pytest.fixture()
def provider():
    mock_provider = MagicMock()
    mock_provider.resolve = AsyncMock(return_value=READY)
    mock_provider.get_task = AsyncMock(return_value=TASK_PAYLOAD)
    return mock_provider


@pytest.fixture()
def service(service_settings, store, provider):
    return ImageSearchService(
        store,
        provider,
        validator=UrlValidator(),
        deduplicator=RequestDeduplicator(cooldown=0),
    )


# ---------------------------------------------------------------------------
# search: admission
# ---------------------------------------------------------------------------


class TestSearchAdmission:
    """Tests for validation and rate limiting before any provider call."""

    @pytest.mark.asyncio
    async def test_blocked_url(self, service, provider):
        with pytest.raises(BlockedHostError):
            await service.search("https://169.254.169.254/latest/meta-data/")
        provider.resolve.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_too_long_url(self, service, provider):
        url = "https://example.com/" + "a" * MAX_IMAGE_URL_LENGTH
        with pytest.raises(ValidationError) as exc_info:
            await service.search(url)
        assert exc_info.value.field == "image_url"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("image_hash", ["abc", "z" * 64, "a" * 63, "a" * 65])
    async def test_invalid_hash(self, service, provider, image_hash):
        with pytest.raises(ValidationError) as exc_info:
            await service.search(IMAGE_URL, image_hash=image_hash)
        assert exc_info.value.field == "image_hash"
        provider.resolve.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("image_url", ["", "   ", None])
    async def test_missing_url(self, service, provider, image_url):
        with pytest.raises(ValidationError) as exc_info:
            await service.search(image_url)
        assert exc_info.value.field == "image_url"
        provider.resolve.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_hash_uses_url_key(self, service, store):
        await service.search(IMAGE_URL, image_hash="")
        assert await get_cached_result(store, build_cache_key(IMAGE_URL)) is not None

    @pytest.mark.asyncio
    async def test_invalid_url_does_not_consume_quota(self, service, store):
        with pytest.raises(BlockedHostError):
            await service.search("https://localhost/a.jpg", client_ip="1.2.3.4")
        page = await store.list(prefix="limit:")
        assert page.keys == []

    @pytest.mark.asyncio
    async def test_rate_limit(self, service, service_settings, provider):
        service_settings.RATE_LIMIT_DAILY = 2
        await service.search(IMAGE_URL, client_ip="1.2.3.4")
        await service.search("https://example.com/b.jpg", client_ip="1.2.3.4")

        with pytest.raises(RateLimitError) as exc_info:
            await service.search("https://example.com/c.jpg", client_ip="1.2.3.4")

        assert exc_info.value.limit == 2
        assert exc_info.value.remaining == 0
        assert exc_info.value.message == "Daily limit reached. Please try again tomorrow."
        assert provider.resolve.await_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_disabled(self, service, service_settings):
        service_settings.RATE_LIMIT_ENABLED = False
        response = await service.search(IMAGE_URL)
        assert response.rate_limit_remaining is None

    @pytest.mark.asyncio
    async def test_remaining_reported(self, service):
        response = await service.search(IMAGE_URL, client_ip="1.2.3.4")
        assert response.rate_limit_remaining == 9


# ---------------------------------------------------------------------------
# search: caching
# ---------------------------------------------------------------------------


class TestSearchCaching:
    """Tests for result cache use during search."""

    @pytest.mark.asyncio
    async def test_miss_calls_provider_with_canonical_url(self, service, provider):
        response = await service.search("https://EXAMPLE.com:443/a.jpg")

        provider.resolve.assert_awaited_once_with(IMAGE_URL)
        assert response.status == "ready"
        assert response.cached is False
        assert response.task_id == "task-1"
        assert response.results == RESULTS

    @pytest.mark.asyncio
    async def test_ready_results_stored(self, service, store):
        await service.search(IMAGE_URL, image_hash=HASH)

        cached = await get_cached_result(store, f"cache:img:hash:{HASH}")
        assert cached is not None
        assert cached.task_id == "task-1"
        assert await store.get("task:img:task-1") == f"cache:img:hash:{HASH}"

    @pytest.mark.asyncio
    async def test_second_search_is_cached(self, service, provider):
        await service.search(IMAGE_URL)
        response = await service.search(IMAGE_URL)

        assert provider.resolve.await_count == 1
        assert response.cached is True
        assert response.status == "ready"
        assert response.results == RESULTS

    @pytest.mark.asyncio
    async def test_hash_shares_cache_across_urls(self, service, provider):
        await service.search(IMAGE_URL, image_hash=HASH)
        response = await service.search("https://mirror.example.org/copy.jpg", image_hash=HASH.upper())
        assert response.cached is True
        assert provider.resolve.await_count == 1

    @pytest.mark.asyncio
    async def test_pending_not_cached(self, service, provider, store):
        provider.resolve.return_value = PENDING

        response = await service.search(IMAGE_URL)

        assert response.status == "pending"
        assert response.task_id == "task-2"
        assert await get_cached_result(store, build_cache_key(IMAGE_URL)) is None
        assert await store.get("task:img:task-2") == build_cache_key(IMAGE_URL)

    @pytest.mark.asyncio
    async def test_cache_disabled(self, service, service_settings, provider, store):
        service_settings.CACHE_ENABLED = False
        await service.search(IMAGE_URL)
        await service.search(IMAGE_URL)
        assert provider.resolve.await_count == 2
        assert (await store.list(prefix="cache:")).keys == []

    @pytest.mark.asyncio
    async def test_cached_empty_results_served(self, service, provider, store):
        entry = CachedSearchResult(task_id="old", results=[], cached_at=datetime.now(timezone.utc))
        await store_cached_result(store, build_cache_key(IMAGE_URL), entry, 3600)

        response = await service.search(IMAGE_URL)

        assert response.cached is True
        assert response.results == []
        provider.resolve.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_read_failure_falls_through(self, service_settings, provider):
        failing_store = MemoryKVStore()
        real_get = failing_store.get

        async def flaky_get(key, type="text"):
            if key.startswith("cache:"):
                raise ConnectionError("kv unavailable")
            return await real_get(key, type=type)

        failing_store.get = flaky_get
        service = ImageSearchService(failing_store, provider, validator=UrlValidator())

        response = await service.search(IMAGE_URL)

        assert response.status == "ready"
        provider.resolve.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cache_write_failure_surfaces(self, service_settings, provider):
        store = MemoryKVStore()
        real_put = store.put

        async def failing_put(key, value, expiration_ttl=None):
            if key.startswith("cache:"):
                raise ConnectionError("kv unavailable")
            await real_put(key, value, expiration_ttl=expiration_ttl)

        store.put = failing_put
        service = ImageSearchService(store, provider, validator=UrlValidator())

        with pytest.raises(CacheError) as exc_info:
            await service.search(IMAGE_URL)
        assert exc_info.value.operation == "write"

    @pytest.mark.asyncio
    async def test_provider_error_propagates(self, service, provider):
        provider.resolve.side_effect = ProviderError("upstream", "http_error", 502)
        with pytest.raises(ProviderError):
            await service.search(IMAGE_URL)


# ---------------------------------------------------------------------------
# poll
# ---------------------------------------------------------------------------


class TestPoll:
    """Tests for polling a pending task."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("task_id", ["", "   "])
    async def test_missing_task_id(self, service, task_id):
        with pytest.raises(ValidationError, match="Missing task_id."):
            await service.poll(task_id)

    @pytest.mark.asyncio
    async def test_poll_fills_cache(self, service, provider, store):
        provider.resolve.return_value = PENDING
        await service.search(IMAGE_URL)

        response = await service.poll("task-2")

        assert response.status == "ready"
        assert response.cached is False
        assert [r.page_url for r in response.results] == ["https://late.com/p"]
        provider.get_task.assert_awaited_once_with("task-2")

        cached = await get_cached_result(store, build_cache_key(IMAGE_URL))
        assert cached is not None
        assert cached.task_id == "task-2"

    @pytest.mark.asyncio
    async def test_poll_served_from_cache(self, service, provider):
        provider.resolve.return_value = PENDING
        await service.search(IMAGE_URL)
        await service.poll("task-2")

        response = await service.poll("task-2")

        assert response.cached is True
        assert provider.get_task.await_count == 1

    @pytest.mark.asyncio
    async def test_poll_still_pending(self, service, provider):
        provider.get_task.return_value = {"tasks": [{"id": "task-9", "result": None}]}

        response = await service.poll("task-9")

        assert response.status == "pending"
        assert response.results == []

    @pytest.mark.asyncio
    async def test_poll_unknown_task_not_cached(self, service, store):
        response = await service.poll("task-unmapped")
        assert response.status == "ready"
        assert (await store.list(prefix="cache:")).keys == []


# ---------------------------------------------------------------------------
# SearchRequest
# ---------------------------------------------------------------------------


class TestSearchRequest:
    """Tests for the search argument model."""

    def test_hash_lowercased(self):
        request = SearchRequest(image_url=IMAGE_URL, image_hash="AB" * 32)
        assert request.image_hash == "ab" * 32

    def test_empty_hash_is_none(self):
        assert SearchRequest(image_url=IMAGE_URL, image_hash="").image_hash is None

    def test_url_length_limit(self):
        url = "https://example.com/" + "a" * (MAX_IMAGE_URL_LENGTH - len("https://example.com/"))
        assert SearchRequest(image_url=url).image_url == url
        with pytest.raises(PydanticValidationError):
            SearchRequest(image_url=url + "a")

    @pytest.mark.parametrize("image_hash", ["abc", "g" * 64, 42])
    def test_invalid_hash(self, image_hash):
        with pytest.raises(PydanticValidationError):
            SearchRequest(image_url=IMAGE_URL, image_hash=image_hash)
