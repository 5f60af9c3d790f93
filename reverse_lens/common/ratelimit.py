# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Fixed daily rate limiting on top of the key-value store.

Keys are ``{bucket}:{identity}:{YYYY-MM-DD}`` in UTC, so the quota resets at
UTC midnight. The check is read-then-write without an atomic increment:
concurrent requests from one identity may under-count, which is acceptable
for an abuse deterrent.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional

from reverse_lens.common.kv import KVStore

logger = logging.getLogger(__name__)

ONE_DAY_SECONDS = 60 * 60 * 24
DEFAULT_BUCKET = "limit"


@dataclass(frozen=True)
class RateLimitStatus:
    """Outcome of a rate-limit check.

    Attributes:
        allowed (bool): Whether the request is admitted.
        remaining (int): Admissions left in the current window.
        limit (int): Window quota.
        reset_at (datetime): Next UTC midnight, when the window resets.
    """

    allowed: bool
    remaining: int
    limit: int
    reset_at: datetime


def _utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def build_key(identity: str, now: Optional[datetime] = None, bucket: Optional[str] = None) -> str:
    """Build the rate-limit key for an identity and calendar day.

    Args:
        identity (str): Validated client identifier.
        now (datetime | None): Reference time; naive values are taken as UTC.
        bucket (str | None): Key namespace, defaults to "limit".

    Returns:
        str: The key, e.g. ``limit:127.0.0.1:2026-01-14``.
    """
    day = _utc(now).date().isoformat()
    return f"{bucket or DEFAULT_BUCKET}:{identity}:{day}"


def next_reset(now: Optional[datetime] = None) -> datetime:
    """Return the UTC midnight that ends the window containing ``now``."""
    today = _utc(now).date()
    return datetime.combine(today + timedelta(days=1), time.min, tzinfo=timezone.utc)


async def check(
    store: KVStore,
    key: str,
    limit: int,
    now: Optional[datetime] = None,
) -> RateLimitStatus:
    """Admit or reject one request against the counter stored under ``key``.

    A rejected request does not touch the counter. An admitted one
    increments it with a one-day TTL.

    Args:
        store (KVStore): Backing store.
        key (str): Key from ``build_key``.
        limit (int): Window quota.
        now (datetime | None): Reference time for ``reset_at``.

    Returns:
        RateLimitStatus: The decision and remaining quota.

    Raises:
        Exception: Store errors propagate to the caller.
    """
    reset_at = next_reset(now)
    current = await store.get(key, type="text")
    try:
        count = int(current) if current is not None else 0
    except ValueError:
        logger.warning("Ignoring malformed rate-limit counter under %s", key)
        count = 0

    if count >= limit:
        return RateLimitStatus(allowed=False, remaining=0, limit=limit, reset_at=reset_at)

    new_count = count + 1
    await store.put(key, str(new_count), expiration_ttl=ONE_DAY_SECONDS)
    return RateLimitStatus(
        allowed=True,
        remaining=max(0, limit - new_count),
        limit=limit,
        reset_at=reset_at,
    )


async def check_rate_limit(
    store: KVStore,
    identity: str,
    limit: int = 10,
    bucket: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RateLimitStatus:
    """Build the key for ``identity`` and run ``check`` against it."""
    now = _utc(now)
    status = await check(store, build_key(identity, now, bucket), limit, now=now)
    if not status.allowed:
        logger.info("Rate limit reached for %s (limit %d)", identity, limit)
    return status
