# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Content-addressed cache of reverse-image-search results.

Two independent tables live in the key-value store, each with its own TTL:

- ``cache:img:{hash|url}:{digest}`` -> serialized ``CachedSearchResult``
- ``task:img:{task_id}`` -> cache key, so a later poll carrying only the
  provider task id can find the slot to fill.

Reads fail open: a missing entry, a malformed entry and a store failure all
come back as None. Store failures on writes surface as ``CacheError``.
"""
from __future__ import annotations

import json
import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from reverse_lens.common.errors import CacheError
from reverse_lens.common.hashing import sha256_hex
from reverse_lens.common.kv import KVStore
from reverse_lens.search.models import CachedSearchResult

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache:img"
TASK_PREFIX = "task:img"


def build_cache_key(image_url: str, image_hash: Optional[str] = None) -> str:
    """Build the cache key for an image search.

    A supplied content hash wins, so the same image uploaded twice shares one
    entry. Without it the URL string itself is digested.

    Args:
        image_url (str): Canonical image URL.
        image_hash (str | None): Hex SHA-256 of the image bytes.

    Returns:
        str: ``cache:img:hash:{hash}`` or ``cache:img:url:{sha256(url)}``.
    """
    if image_hash:
        return f"{CACHE_PREFIX}:hash:{image_hash.lower()}"
    return f"{CACHE_PREFIX}:url:{sha256_hex(image_url)}"


def task_key(task_id: str) -> str:
    return f"{TASK_PREFIX}:{task_id}"


async def _write(store: KVStore, key: str, value: str, ttl_seconds: int) -> None:
    try:
        await store.put(key, value, expiration_ttl=ttl_seconds)
    except Exception as e:
        raise CacheError(f"Cache write failed: {e}", "write", context={"key": key}) from e


async def _read_cached(store: KVStore, cache_key: str) -> Optional[CachedSearchResult]:
    """Read and validate an entry.

    Returns None for a missing or malformed entry.

    Raises:
        CacheError: If the store itself fails.
    """
    try:
        raw = await store.get(cache_key, type="text")
    except Exception as e:
        raise CacheError(f"Cache read failed: {e}", "read", context={"key": cache_key}) from e
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Discarding non-JSON cache entry %s", cache_key)
        return None
    if not isinstance(data, dict) or not isinstance(data.get("results"), list):
        logger.warning("Discarding malformed cache entry %s", cache_key)
        return None
    try:
        return CachedSearchResult.model_validate(data)
    except PydanticValidationError:
        logger.warning("Discarding cache entry %s that fails validation", cache_key)
        return None


async def get_cached_result(store: KVStore, cache_key: str) -> Optional[CachedSearchResult]:
    """Return the cached result for ``cache_key``, or None.

    Store failures are logged and treated as a miss so a cache outage never
    fails the search.

    Args:
        store (KVStore): Backing store.
        cache_key (str): Key from ``build_cache_key``.

    Returns:
        CachedSearchResult | None: The entry, or None on miss or error.
    """
    try:
        return await _read_cached(store, cache_key)
    except CacheError as e:
        logger.warning("Cache read failed for %s, treating as miss: %s", cache_key, e)
        return None


async def store_cached_result(
    store: KVStore,
    cache_key: str,
    payload: CachedSearchResult,
    ttl_seconds: int,
) -> None:
    """Write an entry, replacing any existing one (last writer wins).

    Args:
        store (KVStore): Backing store.
        cache_key (str): Key from ``build_cache_key``.
        payload (CachedSearchResult): Entry to store.
        ttl_seconds (int): Entry lifetime.

    Raises:
        CacheError: If the store rejects the write.
    """
    await _write(
        store,
        cache_key,
        payload.model_dump_json(by_alias=True, exclude_none=True),
        ttl_seconds,
    )


async def store_task_mapping(
    store: KVStore,
    task_id: str,
    cache_key: str,
    ttl_seconds: int,
) -> None:
    """Record which cache slot a provider task should eventually fill.

    Raises:
        CacheError: If the store rejects the write.
    """
    await _write(store, task_key(task_id), cache_key, ttl_seconds)


async def get_cache_key_for_task(store: KVStore, task_id: str) -> Optional[str]:
    """Return the cache key mapped to ``task_id``, or None.

    Like cache reads, store failures are treated as a missing mapping.
    """
    try:
        value = await store.get(task_key(task_id), type="text")
    except Exception as e:
        logger.warning("Task mapping read failed for %s: %s", task_id, e)
        return None
    return value if isinstance(value, str) and value else None
