"""
Search Console Search Analytics client with authentication and retry logic.

This module provides robust API access with:
- Application Default Credentials via google-auth
- Exponential backoff retry logic for transient failures
- Rate limiting protection (HTTP 429, Retry-After)
- Timeout handling with configurable limits
"""

import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import google.auth
import httpx
from google.auth.transport.requests import Request

from core.exceptions import (
    APIExtractionError,
    AuthenticationError,
    NetworkError,
    RateLimitError,
)
from ingestion.base import PageSource

logger = logging.getLogger(__name__)

API_ROOT = "https://searchconsole.googleapis.com/webmasters/v3"
SCOPES = ["https://www.googleapis.com/auth/webmasters.readonly"]


class SearchConsoleClient(PageSource):
    """
    Query the Search Analytics endpoint for one site.

    Use as an async context manager so the underlying HTTP connection pool
    is closed after the run:

        async with SearchConsoleClient(site_url="sc-domain:example.com") as client:
            rows = await client.query_page(day, ["page"], 25000, 0)

    Attributes:
        max_retries: Maximum number of attempts per page (default: 3)
        retry_delay: Initial retry delay in seconds (default: 1.0)
        timeout: Request timeout in seconds (default: 60.0)
    """

    def __init__(
        self,
        site_url: str,
        search_type: str = "web",
        data_state: str = "final",
        aggregation_type: str = "auto",
        credentials=None,
        http_client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 60.0
    ):
        self.site_url = site_url
        self.search_type = search_type
        self.data_state = data_state
        self.aggregation_type = aggregation_type
        self.credentials = credentials
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None
        self._token_lock = asyncio.Lock()

    @property
    def query_url(self) -> str:
        return f"{API_ROOT}/sites/{quote(self.site_url, safe='')}/searchAnalytics/query"

    async def __aenter__(self) -> "SearchConsoleClient":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def _auth_headers(self) -> Dict[str, str]:
        """Bearer token from Application Default Credentials, refreshed when stale"""
        async with self._token_lock:
            if self.credentials is None:
                self.credentials, _ = await asyncio.to_thread(google.auth.default, scopes=SCOPES)
            if not self.credentials.valid:
                logger.debug("Refreshing Search Console access token")
                await asyncio.to_thread(self.credentials.refresh, Request())
            return {
                "Authorization": f"Bearer {self.credentials.token}",
                "Content-Type": "application/json"
            }

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def build_request_body(
        self,
        day: date,
        dimensions: Sequence[str],
        row_limit: int,
        start_row: int
    ) -> Dict[str, Any]:
        return {
            "startDate": day.isoformat(),
            "endDate": day.isoformat(),
            "dimensions": list(dimensions),
            "type": self.search_type,
            "aggregationType": self.aggregation_type,
            "dataState": self.data_state,
            "rowLimit": row_limit,
            "startRow": start_row,
        }

    async def _post_with_retry(self, body: Dict[str, Any]) -> httpx.Response:
        """
        POST the query with retry logic and exponential backoff.

        Raises:
            AuthenticationError: For 401/403, never retried
            RateLimitError: When still rate limited after max retries
            NetworkError: For server errors, timeouts and connection errors after max retries
            APIExtractionError: For any other non-success status
        """
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)

        url = self.query_url
        context = {"api_url": url, "start_row": body["startRow"], "date": body["startDate"]}

        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1
            delay = self.retry_delay * (2 ** attempt)

            try:
                headers = await self._auth_headers()
                response = await self._client.post(url, headers=headers, json=body, timeout=self.timeout)
            except httpx.TimeoutException as e:
                if last_attempt:
                    raise NetworkError(
                        f"Request timeout after {self.max_retries} attempts",
                        context={**context, "timeout": self.timeout, "retry_count": attempt + 1},
                        original_exception=e
                    )
                logger.warning(f"Request timeout. Retrying in {delay} seconds")
                await asyncio.sleep(delay)
                continue
            except httpx.TransportError as e:
                if last_attempt:
                    raise NetworkError(
                        f"Network error after {self.max_retries} attempts",
                        context={**context, "retry_count": attempt + 1},
                        original_exception=e
                    )
                logger.warning(f"Network error. Retrying in {delay} seconds: {e}")
                await asyncio.sleep(delay)
                continue

            if response.status_code in (401, 403):
                raise AuthenticationError(
                    f"Search Console rejected credentials for {self.site_url}",
                    context={**context, "status_code": response.status_code,
                             "response_body": response.text[:500]}
                )

            if response.status_code == 429:
                retry_after = _retry_after(response, delay)
                if last_attempt:
                    raise RateLimitError(
                        "Search Console rate limit exceeded",
                        context={**context, "status_code": 429, "retry_count": attempt + 1},
                        retry_after=retry_after
                    )
                logger.warning(f"Rate limited. Retrying after {retry_after} seconds")
                await asyncio.sleep(retry_after)
                continue

            if response.status_code >= 500:
                if last_attempt:
                    raise NetworkError(
                        f"Server error after {self.max_retries} attempts",
                        context={**context, "status_code": response.status_code,
                                 "retry_count": attempt + 1,
                                 "response_body": response.text[:500]}
                    )
                logger.warning(
                    f"Server error {response.status_code}. "
                    f"Retrying in {delay} seconds (attempt {attempt + 1}/{self.max_retries})"
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 400:
                raise APIExtractionError(
                    f"Search Console request failed with status {response.status_code}",
                    context={**context, "status_code": response.status_code,
                             "response_body": response.text[:500]}
                )

            return response

        # max_retries is at least 1, every path above returns or raises
        raise APIExtractionError("Max retries exceeded", context=context)

    async def query_page(
        self,
        day: date,
        dimensions: Sequence[str],
        row_limit: int,
        start_row: int
    ) -> List[Dict[str, Any]]:
        body = self.build_request_body(day, dimensions, row_limit, start_row)
        response = await self._post_with_retry(body)

        try:
            data = response.json()
        except ValueError as e:
            raise APIExtractionError(
                "Failed to parse JSON response",
                context={"api_url": self.query_url, "date": day.isoformat(),
                         "start_row": start_row, "response_body": response.text[:500]},
                original_exception=e
            )

        rows = data.get("rows", []) if isinstance(data, dict) else []
        logger.debug(f"Fetched {len(rows)} rows for {day} from row {start_row}")
        return rows


def _retry_after(response: httpx.Response, default: float) -> float:
    try:
        return float(response.headers.get("Retry-After", default))
    except (TypeError, ValueError):
        return default
