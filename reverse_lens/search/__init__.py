# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Reverse image search: result models, extraction, caching, provider, service."""

from reverse_lens.search.cache import (
    build_cache_key,
    get_cache_key_for_task,
    get_cached_result,
    store_cached_result,
    store_task_mapping,
)
from reverse_lens.search.extract import extract_check_url, extract_search_results
from reverse_lens.search.models import CachedSearchResult, SearchResponse, SearchResult
from reverse_lens.search.provider import DataForSEOClient, ProviderOutcome
from reverse_lens.search.service import ImageSearchService

__all__ = [
    "build_cache_key",
    "get_cache_key_for_task",
    "get_cached_result",
    "store_cached_result",
    "store_task_mapping",
    "extract_check_url",
    "extract_search_results",
    "CachedSearchResult",
    "SearchResponse",
    "SearchResult",
    "DataForSEOClient",
    "ProviderOutcome",
    "ImageSearchService",
]
