# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Reverse image search tools.

``image_search`` admits a client image URL (SSRF validation and the daily
rate limit), answers from the result cache when possible, and otherwise
creates a DataForSEO task. ``image_search_status`` polls a pending task.
"""
import json
import logging
import time
from typing import Any, Optional

from mcp.server.fastmcp import Context, FastMCP

from reverse_lens.common.errors import AppError, error_to_response, format_error
from reverse_lens.common.kv import kv_store
from reverse_lens.common.request import get_client_ip
from reverse_lens.config import settings
from reverse_lens.search.models import SearchResponse
from reverse_lens.search.provider import DataForSEOClient
from reverse_lens.search.service import ImageSearchService

logger = logging.getLogger(__name__)


def _request_headers(ctx: Context) -> dict[str, str]:
    """Return the HTTP headers of the current MCP request, if any."""
    try:
        request = ctx.request_context.request
    except (AttributeError, ValueError):
        return {}
    headers = getattr(request, "headers", None)
    return dict(headers) if headers else {}


def _dump(response: SearchResponse, start: float) -> str:
    result: dict[str, Any] = response.model_dump(mode="json")
    result["count"] = len(response.results)
    result["took_ms"] = int((time.monotonic() - start) * 1000)
    return json.dumps(result, ensure_ascii=False)


def _dump_error(exc: Exception) -> str:
    if isinstance(exc, AppError):
        logger.info("Image search rejected: %s", exc.to_dict())
        payload = {**error_to_response(exc), "status_code": exc.status_code}
    else:
        logger.error("Image search failed: %s", format_error(exc))
        payload = {**error_to_response(exc), "status_code": 500}
    return json.dumps(payload, ensure_ascii=False)


def register_image_search(mcp: FastMCP) -> None:
    """Register the image_search and image_search_status tools.

    Args:
        mcp (FastMCP): The MCP server instance to register the tools with.
    """

    service = ImageSearchService(kv_store, DataForSEOClient())

    @mcp.tool()
    async def image_search(
        image_url: str,
        ctx: Context,
        image_hash: Optional[str] = None,
    ) -> str:
        """Find web pages that contain the given image (reverse image search).

        Args:
            image_url: Public https URL of the image. Local, private, and
                cloud-metadata hosts are rejected.
            image_hash: Optional hex SHA-256 of the image bytes. Lets the same
                image share cached results across different URLs.

        Returns:
            str: JSON string with status ("ready" or "pending"), task_id,
                results (title, page_url, image_url, domain), check_url,
                and whether the answer came from cache. When pending, call
                image_search_status with the task_id. On error, returns a
                JSON string with error, code, and status_code.
        """
        start = time.monotonic()
        client_ip = get_client_ip(_request_headers(ctx), settings.TRUSTED_IP_HEADER)
        try:
            response = await service.search(image_url, image_hash=image_hash, client_ip=client_ip)
        except Exception as e:
            return _dump_error(e)
        return _dump(response, start)

    @mcp.tool()
    async def image_search_status(task_id: str) -> str:
        """Check a pending reverse image search.

        Args:
            task_id: Task id returned by image_search.

        Returns:
            str: JSON string in the same shape as image_search.
        """
        start = time.monotonic()
        try:
            response = await service.poll(task_id)
        except Exception as e:
            return _dump_error(e)
        return _dump(response, start)
