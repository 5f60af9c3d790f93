# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Key-value store used for rate-limit counters, cached results and task mappings.

The store is eventually consistent from the caller's point of view: there is
no compare-and-set, only per-key get/put/delete with an optional TTL.
``MemoryKVStore`` keeps everything in a dict with ``time.monotonic`` expiry.
"""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Optional, Protocol

ValueType = Literal["text", "json"]


@dataclass
class KVListResult:
    """One page of keys returned by ``KVStore.list``.

    Attributes:
        keys (list[str]): Keys in insertion order.
        cursor (str | None): Opaque cursor for the next page, or None.
        list_complete (bool): True when no further pages exist.
    """

    keys: list[str] = field(default_factory=list)
    cursor: Optional[str] = None
    list_complete: bool = True


class KVStore(Protocol):
    """Interface of the key-value store collaborator."""

    async def get(self, key: str, type: ValueType = "text") -> Any: ...

    async def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def list(
        self,
        prefix: Optional[str] = None,
        limit: int = 1000,
        cursor: Optional[str] = None,
    ) -> KVListResult: ...


class MemoryKVStore:
    """In-process key-value store with per-key TTL and max-size eviction (FIFO)."""

    def __init__(
        self,
        max_size: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the store.

        Args:
            max_size (int): Maximum number of entries before FIFO eviction.
            clock (Callable[[], float]): Monotonic time source in seconds.
        """
        self._max_size = max_size
        self._clock = clock
        self._store: dict[str, tuple[str, Optional[float]]] = {}

    async def get(self, key: str, type: ValueType = "text") -> Any:
        """Return the stored value, or None if missing or expired.

        Args:
            key (str): The key to look up.
            type (ValueType): "text" returns the raw string, "json" decodes it.

        Returns:
            Any: The stored string, the decoded JSON value, or None.

        Raises:
            json.JSONDecodeError: If ``type`` is "json" and the value is not JSON.
        """
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expire_time = entry
        if expire_time is not None and self._clock() >= expire_time:
            del self._store[key]
            return None
        if type == "json":
            return json.loads(value)
        return value

    async def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        """Store a string value, replacing any existing entry.

        Args:
            key (str): The key under which to store the value.
            value (str): The value to store.
            expiration_ttl (int | None): Seconds until the entry expires;
                None keeps it until evicted.

        Raises:
            TypeError: If ``value`` is not a string.
            ValueError: If ``expiration_ttl`` is not positive.
        """
        if not isinstance(value, str):
            raise TypeError("MemoryKVStore only stores strings")
        if expiration_ttl is not None and expiration_ttl <= 0:
            raise ValueError("expiration_ttl must be positive")
        self._evict_expired()
        self._store.pop(key, None)
        while len(self._store) >= self._max_size:
            oldest_key = next(iter(self._store))
            del self._store[oldest_key]
        expire_time = self._clock() + expiration_ttl if expiration_ttl is not None else None
        self._store[key] = (value, expire_time)

    async def delete(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""
        self._store.pop(key, None)

    async def list(
        self,
        prefix: Optional[str] = None,
        limit: int = 1000,
        cursor: Optional[str] = None,
    ) -> KVListResult:
        """List live keys, optionally filtered by prefix, one page at a time.

        Args:
            prefix (str | None): Only keys starting with this prefix.
            limit (int): Maximum keys per page.
            cursor (str | None): Cursor returned by the previous page.

        Returns:
            KVListResult: The page of keys and the cursor for the next one.
        """
        self._evict_expired()
        keys = [k for k in self._store if prefix is None or k.startswith(prefix)]
        start = int(cursor) if cursor else 0
        page = keys[start:start + limit]
        end = start + len(page)
        if end < len(keys):
            return KVListResult(keys=page, cursor=str(end), list_complete=False)
        return KVListResult(keys=page, cursor=None, list_complete=True)

    def clear(self) -> None:
        """Remove all entries."""
        self._store.clear()

    def _evict_expired(self) -> None:
        """Remove all expired entries."""
        now = self._clock()
        expired = [
            k for k, (_, exp) in self._store.items() if exp is not None and now >= exp
        ]
        for k in expired:
            del self._store[k]


def _create_store() -> MemoryKVStore:
    """Create the shared store using configured settings (lazy import to avoid circular deps)."""
    from reverse_lens.config import settings
    return MemoryKVStore(max_size=settings.KV_MAX_SIZE)


kv_store = _create_store()
