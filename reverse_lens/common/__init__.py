# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Shared infrastructure: hashing, key-value store, errors, rate limiting, security."""

from reverse_lens.common.dedupe import RequestDeduplicator
from reverse_lens.common.errors import AppError, error_to_response, format_error
from reverse_lens.common.hashing import sha256_hex
from reverse_lens.common.kv import KVListResult, KVStore, MemoryKVStore, kv_store
from reverse_lens.common.ratelimit import RateLimitStatus, build_key, check, check_rate_limit
from reverse_lens.common.request import get_client_ip
from reverse_lens.common.security import UrlPolicy, UrlValidator, validate_url, validate_url_async

__all__ = [
    "RequestDeduplicator",
    "AppError",
    "error_to_response",
    "format_error",
    "sha256_hex",
    "KVListResult",
    "KVStore",
    "MemoryKVStore",
    "kv_store",
    "RateLimitStatus",
    "build_key",
    "check",
    "check_rate_limit",
    "get_client_ip",
    "UrlPolicy",
    "UrlValidator",
    "validate_url",
    "validate_url_async",
]
