# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Request admission and response memoization for reverse image search.

A search passes the URL validator and the rate limiter before the result
cache is consulted; only a miss reaches the provider. Polls resolve the
provider task id back to its cache slot.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from reverse_lens.common.dedupe import RequestDeduplicator
from reverse_lens.common.errors import RateLimitError, ValidationError
from reverse_lens.common.kv import KVStore
from reverse_lens.common.ratelimit import check_rate_limit
from reverse_lens.common.request import LOCALHOST_IP
from reverse_lens.common.security import UrlValidator, default_validator, validate_url_async
from reverse_lens.config import settings
from reverse_lens.search.cache import (
    build_cache_key,
    get_cache_key_for_task,
    get_cached_result,
    store_cached_result,
    store_task_mapping,
)
from reverse_lens.search.extract import extract_check_url, extract_search_results
from reverse_lens.search.models import CachedSearchResult, SearchRequest, SearchResponse
from reverse_lens.search.provider import DataForSEOClient

logger = logging.getLogger(__name__)

_INVALID_INPUT_MESSAGES = {
    "image_url": "Invalid input: image_url is missing or too long",
    "image_hash": "Invalid input: image_hash must be a 64-character hex SHA-256 digest",
}


def _parse_request(image_url: str, image_hash: Optional[str]) -> SearchRequest:
    """Check the raw arguments against ``SearchRequest``.

    Raises:
        ValidationError: Naming the first offending field.
    """
    try:
        return SearchRequest(image_url=image_url, image_hash=image_hash)
    except PydanticValidationError as e:
        loc = e.errors()[0]["loc"]
        field = str(loc[0]) if loc else "image_url"
        raise ValidationError(
            _INVALID_INPUT_MESSAGES.get(field, "Invalid input"), field=field,
        ) from None


class ImageSearchService:
    """Admission, caching, and provider orchestration for image searches."""

    def __init__(
        self,
        store: KVStore,
        provider: DataForSEOClient,
        validator: Optional[UrlValidator] = None,
        deduplicator: Optional[RequestDeduplicator] = None,
    ) -> None:
        """Initialize the service.

        Args:
            store (KVStore): Store holding rate-limit counters and cached results.
            provider (DataForSEOClient): Reverse-image-search provider client.
            validator (UrlValidator | None): URL validator; defaults to the
                settings-derived one.
            deduplicator (RequestDeduplicator | None): In-flight deduplicator;
                defaults to one built from settings.
        """
        self._store = store
        self._provider = provider
        self._validator = validator or default_validator()
        self._deduplicator = deduplicator or RequestDeduplicator(
            cooldown=settings.DEDUPE_COOLDOWN,
            max_pending_age=settings.DEDUPE_MAX_PENDING_AGE,
        )

    async def search(
        self,
        image_url: str,
        image_hash: Optional[str] = None,
        client_ip: str = LOCALHOST_IP,
    ) -> SearchResponse:
        """Run a reverse image search for ``image_url``.

        Args:
            image_url (str): Untrusted image URL supplied by the client.
            image_hash (str | None): Hex SHA-256 of the image bytes, if known.
            client_ip (str): Validated client address used for rate limiting.

        Returns:
            SearchResponse: Cached or fresh results, or a pending task to poll.

        Raises:
            ValidationError: If the URL or hash is rejected.
            RateLimitError: If the client exhausted today's quota.
            ProviderError: If the provider call fails.
            NetworkError: If the provider cannot be reached.
        """
        start = time.monotonic()

        request = _parse_request(image_url, image_hash)
        url = await validate_url_async(request.image_url, validator=self._validator)

        remaining: Optional[int] = None
        if settings.RATE_LIMIT_ENABLED:
            rate = await check_rate_limit(
                self._store,
                client_ip,
                limit=settings.RATE_LIMIT_DAILY,
                bucket=settings.RATE_LIMIT_BUCKET,
            )
            if not rate.allowed:
                raise RateLimitError(
                    "Daily limit reached. Please try again tomorrow.",
                    limit=rate.limit,
                    remaining=rate.remaining,
                    reset_at=rate.reset_at,
                )
            remaining = rate.remaining

        cache_key = build_cache_key(url, request.image_hash)

        if settings.CACHE_ENABLED:
            cached = await get_cached_result(self._store, cache_key)
            if cached is not None:
                logger.info(
                    "Cache hit for %s (%d results, %dms)",
                    cache_key, len(cached.results), int((time.monotonic() - start) * 1000),
                )
                return SearchResponse(
                    status="ready",
                    task_id=cached.task_id,
                    results=cached.results,
                    check_url=cached.check_url,
                    cached=True,
                    rate_limit_remaining=remaining,
                )
            logger.debug("Cache miss for %s", cache_key)

        outcome = await self._deduplicator.execute(
            cache_key, lambda: self._provider.resolve(url),
        )

        if settings.CACHE_ENABLED:
            await store_task_mapping(self._store, outcome.task_id, cache_key, settings.TASK_TTL)
            if outcome.status == "ready" and outcome.results:
                await store_cached_result(
                    self._store,
                    cache_key,
                    CachedSearchResult(
                        task_id=outcome.task_id,
                        results=outcome.results,
                        check_url=outcome.check_url,
                        cached_at=datetime.now(timezone.utc),
                    ),
                    settings.CACHE_TTL,
                )

        logger.info(
            "Search %s finished: status=%s results=%d took=%dms",
            outcome.task_id, outcome.status, len(outcome.results),
            int((time.monotonic() - start) * 1000),
        )
        return SearchResponse(
            status=outcome.status,
            task_id=outcome.task_id,
            results=outcome.results,
            check_url=outcome.check_url,
            cached=False,
            rate_limit_remaining=remaining,
        )

    async def poll(self, task_id: str) -> SearchResponse:
        """Return the current results of a previously created search task.

        Args:
            task_id (str): Provider task id returned by ``search``.

        Returns:
            SearchResponse: Cached or fresh results, or still pending.

        Raises:
            ValidationError: If ``task_id`` is empty.
            ProviderError: If the provider call fails.
            NetworkError: If the provider cannot be reached.
        """
        if not isinstance(task_id, str) or not task_id.strip():
            raise ValidationError("Missing task_id.", field="task_id")
        task_id = task_id.strip()

        cache_key: Optional[str] = None
        if settings.CACHE_ENABLED:
            cache_key = await get_cache_key_for_task(self._store, task_id)
            if cache_key:
                cached = await get_cached_result(self._store, cache_key)
                if cached is not None:
                    return SearchResponse(
                        status="ready",
                        task_id=task_id,
                        results=cached.results,
                        check_url=cached.check_url,
                        cached=True,
                    )

        payload = await self._provider.get_task(task_id)
        results = extract_search_results(payload)
        check_url = extract_check_url(payload)

        if cache_key and results:
            await store_cached_result(
                self._store,
                cache_key,
                CachedSearchResult(
                    task_id=task_id,
                    results=results,
                    check_url=check_url,
                    cached_at=datetime.now(timezone.utc),
                ),
                settings.CACHE_TTL,
            )

        return SearchResponse(
            status="ready" if results else "pending",
            task_id=task_id,
            results=results,
            check_url=check_url,
            cached=False,
        )
