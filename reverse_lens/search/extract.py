# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Provider payload extraction.

The provider response is loosely specified, so every accessor tolerates
missing or mistyped levels and returns None or an empty list instead of
raising. Expected shape::

    {"tasks": [{"id": ..., "result": [{"check_url": ..., "items": [
        {"type": "images", "items": [{"title", "url", "image_url"}]}]}]}]}
"""
from typing import Any, Optional
from urllib.parse import urlsplit

from reverse_lens.search.models import SearchResult

_PAGE_URL_KEYS = ("url", "page_url", "source_url", "link")
_TITLE_KEYS = ("title", "source_title", "alt")
_IMAGE_URL_KEYS = ("image_url", "thumbnail_url", "thumbnail")


def _first(value: Any) -> Any:
    """Return the first element of a non-empty list, else None."""
    if isinstance(value, list) and value:
        return value[0]
    return None


def _first_task(payload: Any) -> Optional[dict]:
    if not isinstance(payload, dict):
        return None
    task = _first(payload.get("tasks"))
    return task if isinstance(task, dict) else None


def _first_result(payload: Any) -> Optional[dict]:
    task = _first_task(payload)
    if task is None:
        return None
    result = _first(task.get("result"))
    return result if isinstance(result, dict) else None


def _first_str(item: dict, keys: tuple[str, ...]) -> Optional[str]:
    for key in keys:
        value = item.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def safe_hostname(url: Optional[str]) -> Optional[str]:
    """Return the host of ``url``, or None if it has none or does not parse."""
    if not url:
        return None
    try:
        return urlsplit(url).hostname or None
    except ValueError:
        return None


def extract_task_id(payload: Any) -> Optional[str]:
    """Return the first task's id."""
    task = _first_task(payload)
    if task is None:
        return None
    task_id = task.get("id")
    return task_id if isinstance(task_id, str) and task_id else None


def extract_status_message(payload: Any) -> Optional[str]:
    """Return the first task's status message."""
    task = _first_task(payload)
    if task is None:
        return None
    message = task.get("status_message")
    return message if isinstance(message, str) else None


def extract_check_url(payload: Any) -> Optional[str]:
    """Return ``tasks[0].result[0].check_url`` when present."""
    result = _first_result(payload)
    if result is None:
        return None
    check_url = result.get("check_url")
    return check_url if isinstance(check_url, str) else None


def _raw_items(payload: Any) -> list:
    result = _first_result(payload)
    if result is None:
        return []
    items = result.get("items")
    if not isinstance(items, list):
        return []

    nested = [
        inner
        for group in items
        if isinstance(group, dict) and isinstance(group.get("items"), list)
        for inner in group["items"]
    ]
    return nested or items


def _normalize(item: dict) -> Optional[SearchResult]:
    page_url = _first_str(item, _PAGE_URL_KEYS)
    if not page_url:
        return None
    domain = safe_hostname(page_url)
    return SearchResult(
        title=_first_str(item, _TITLE_KEYS) or domain or "Source",
        page_url=page_url,
        image_url=_first_str(item, _IMAGE_URL_KEYS),
        domain=domain,
    )


def extract_search_results(payload: Any) -> list[SearchResult]:
    """Flatten the provider's grouped items into normalized results.

    Groups carrying a nested ``items`` list are flattened; when no group
    has one, the top-level items are used directly. Items without a page
    URL are skipped and duplicates by page URL keep the first occurrence.

    Args:
        payload (Any): Decoded provider response.

    Returns:
        list[SearchResult]: Normalized matches, possibly empty.
    """
    seen: set[str] = set()
    results: list[SearchResult] = []
    for raw in _raw_items(payload):
        if not isinstance(raw, dict):
            continue
        normalized = _normalize(raw)
        if normalized is None or normalized.page_url in seen:
            continue
        seen.add(normalized.page_url)
        results.append(normalized)
    return results
