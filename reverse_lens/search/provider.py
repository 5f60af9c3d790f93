# Copyright (c) 2026 Heureum AI. All rights reserved.

"""DataForSEO search-by-image client.

Creates a search task for an image URL, then polls the task for results.
Transient failures (5xx, 429, timeouts, transport errors) are retried with
exponential backoff and jitter; other 4xx responses are not.
"""
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import quote

import anyio
import httpx

from reverse_lens.common.errors import NetworkError, ProviderError
from reverse_lens.config import settings
from reverse_lens.search.extract import (
    extract_check_url,
    extract_search_results,
    extract_status_message,
    extract_task_id,
)
from reverse_lens.search.models import SearchResult, SearchStatus

logger = logging.getLogger(__name__)


@dataclass
class ProviderOutcome:
    """Result of creating a search task and polling it inline.

    Attributes:
        task_id (str): Provider task id; poll with it while pending.
        results (list[SearchResult]): Matches found so far.
        check_url (str | None): Provider URL for checking the search manually.
        status (SearchStatus): "ready" when results are non-empty, else "pending".
    """

    task_id: str
    results: list[SearchResult] = field(default_factory=list)
    check_url: Optional[str] = None
    status: SearchStatus = "pending"


class DataForSEOClient:
    """Async client for the DataForSEO search-by-image task API."""

    def __init__(
        self,
        login: Optional[str] = None,
        password: Optional[str] = None,
        endpoint_post: Optional[str] = None,
        endpoint_get: Optional[str] = None,
    ) -> None:
        """Initialize the client. Unset arguments fall back to settings.

        Args:
            login (str | None): Account login.
            password (str | None): Account password.
            endpoint_post (str | None): Task creation endpoint.
            endpoint_get (str | None): Task result endpoint.
        """
        self._login = settings.DFS_LOGIN if login is None else login
        self._password = settings.DFS_PASSWORD if password is None else password
        self._endpoint_post = settings.DFS_ENDPOINT_POST if endpoint_post is None else endpoint_post
        self._endpoint_get = settings.DFS_ENDPOINT_GET if endpoint_get is None else endpoint_get

    def _auth(self) -> httpx.BasicAuth:
        if not self._login or not self._password:
            raise ProviderError("Missing DataForSEO credentials", "missing_credentials", 401)
        return httpx.BasicAuth(self._login, self._password)

    @staticmethod
    def _retry_delay(attempt: int) -> float:
        """Exponential backoff with up to one base delay of jitter."""
        base = settings.DFS_RETRY_BASE_DELAY
        return base * (2 ** attempt) + random.random() * base

    async def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        json_body: Any = None,
        context: Optional[dict[str, Any]] = None,
    ) -> dict:
        """Send a request with retries and return the decoded JSON body.

        Raises:
            ProviderError: On a non-retryable response, missing credentials,
                or when retries are exhausted on a provider error.
            NetworkError: When retries are exhausted on timeouts or transport errors.
        """
        auth = self._auth()
        attempts = max(1, settings.DFS_MAX_RETRIES)
        last_error: Exception | None = None

        for attempt in range(attempts):
            ctx = {**(context or {}), "attempt": attempt}
            try:
                async with httpx.AsyncClient(timeout=settings.DFS_TIMEOUT) as client:
                    response = await client.request(method, url, json=json_body, auth=auth)
            except httpx.TimeoutException:
                last_error = NetworkError(
                    f"Request timeout after {settings.DFS_TIMEOUT}s", timeout=True, context=ctx,
                )
            except httpx.TransportError as e:
                last_error = NetworkError(f"DataForSEO {operation} request failed: {e}", context=ctx)
            else:
                if response.is_success:
                    try:
                        data = response.json()
                    except ValueError:
                        raise ProviderError(
                            f"DataForSEO {operation} returned invalid JSON",
                            "invalid_response",
                            response.status_code,
                            context=ctx,
                        )
                    if not isinstance(data, dict):
                        raise ProviderError(
                            f"DataForSEO {operation} returned an unexpected payload",
                            "invalid_response",
                            response.status_code,
                            context=ctx,
                        )
                    return data

                error = ProviderError(
                    f"DataForSEO {operation} failed: {response.text[:500]}",
                    "http_error",
                    response.status_code,
                    context=ctx,
                )
                if error.is_client_error:
                    logger.error("DataForSEO %s rejected (HTTP %d)", operation, response.status_code)
                    raise error
                last_error = error

            if attempt < attempts - 1:
                delay = self._retry_delay(attempt)
                logger.warning(
                    "DataForSEO %s attempt %d failed (%s), retrying in %.2fs",
                    operation, attempt + 1, last_error, delay,
                )
                await anyio.sleep(delay)

        logger.error("DataForSEO %s failed after %d attempts: %s", operation, attempts, last_error)
        raise last_error or ProviderError("Max retries exceeded", "max_retries")

    async def post_task(self, image_url: str) -> dict:
        """Create a search-by-image task.

        Args:
            image_url (str): Validated, canonical image URL.

        Returns:
            dict: Decoded provider response.
        """
        if not self._endpoint_post:
            raise ProviderError("Missing DFS_ENDPOINT_POST", "missing_endpoint")
        body = [{
            "image_url": image_url,
            "location_code": settings.DFS_LOCATION_CODE,
            "language_code": settings.DFS_LANGUAGE_CODE,
        }]
        return await self._request(
            "POST", self._endpoint_post, operation="task_post", json_body=body,
        )

    async def get_task(self, task_id: str) -> dict:
        """Fetch the current state of a search task.

        Args:
            task_id (str): Provider task id.

        Returns:
            dict: Decoded provider response.
        """
        if not self._endpoint_get:
            raise ProviderError("Missing DFS_ENDPOINT_GET", "missing_endpoint")
        url = f"{self._endpoint_get.rstrip('/')}/{quote(task_id, safe='')}"
        return await self._request(
            "GET", url, operation="task_get", context={"task_id": task_id},
        )

    async def poll_results(
        self,
        task_id: str,
        attempts: Optional[int] = None,
        delay: Optional[float] = None,
    ) -> tuple[Optional[dict], list[SearchResult]]:
        """Poll a task until it yields results or attempts run out.

        Returns:
            tuple[dict | None, list[SearchResult]]: The last payload that had
                results and those results, or ``(None, [])``.
        """
        attempts = settings.DFS_POLL_ATTEMPTS if attempts is None else attempts
        delay = settings.DFS_POLL_DELAY if delay is None else delay
        for _ in range(attempts):
            await anyio.sleep(delay)
            data = await self.get_task(task_id)
            results = extract_search_results(data)
            if results:
                return data, results
        return None, []

    async def resolve(self, image_url: str) -> ProviderOutcome:
        """Create a task for ``image_url`` and poll it briefly.

        Args:
            image_url (str): Validated, canonical image URL.

        Returns:
            ProviderOutcome: Results when the task finished in time, otherwise
                a pending outcome carrying the task id.

        Raises:
            ProviderError: If the provider returned no task id.
        """
        post_data = await self.post_task(image_url)
        task_id = extract_task_id(post_data)
        if not task_id:
            raise ProviderError(
                extract_status_message(post_data) or "No task id returned",
                "missing_task_id",
            )

        poll_data, results = await self.poll_results(task_id)
        return ProviderOutcome(
            task_id=task_id,
            results=results,
            check_url=extract_check_url(poll_data if poll_data is not None else post_data),
            status="ready" if results else "pending",
        )
