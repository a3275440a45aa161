"""
Async admin API client base — retry, throttling, and safety enforcement
shared by the Exchange Online and Graph clients.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

import httpx

from ..config import (
    MAX_RETRIES,
    INITIAL_BACKOFF_SECONDS,
    MAX_BACKOFF_SECONDS,
    BACKOFF_MULTIPLIER,
    MAX_CONCURRENT_REQUESTS,
)
from ..safety.guardian import ChangeGuardian, SafetyViolation

logger = logging.getLogger("m365_compliance_engine.api")


class APIError(Exception):
    """Raised when a remote admin API returns a non-recoverable error."""
    def __init__(self, status_code: int, message: str, url: str):
        self.status_code = status_code
        self.url = url
        self.message = message
        super().__init__(f"API Error {status_code} for {url}: {message}")


def extract_error_message(body: object, fallback: str = "Unknown error") -> str:
    """Pull the human-readable message out of an OData-style error body."""
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict):
            details = error.get("details") or []
            if details and isinstance(details[0], dict) and details[0].get("message"):
                return str(details[0]["message"])
            if error.get("message"):
                return str(error["message"])
        elif error:
            return str(error)
    elif isinstance(body, str) and body.strip():
        return body.strip()
    return fallback


def parse_retry_after(value: Optional[str], default: float) -> float:
    """
    Seconds to wait from a Retry-After header, which is either a delay in
    seconds or an HTTP date. Falls back to `default` when unparseable.
    """
    if not value:
        return default
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return default
    if when is None:
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


class BaseAPIClient:
    """
    Async HTTP client for Microsoft admin endpoints.
    Features:
      - Guardian-validated requests
      - Exponential backoff on 429/503/504
      - Concurrent request semaphore
    """

    def __init__(
        self,
        access_token: str,
        guardian: ChangeGuardian,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.guardian = guardian
        self._transport = transport
        self._semaphore = asyncio.Semaphore(MAX_CONCURRENT_REQUESTS)
        self._request_count = 0
        self._throttle_count = 0
        self._client: Optional[httpx.AsyncClient] = None

    def _default_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(60.0, connect=30.0),
            limits=httpx.Limits(
                max_connections=MAX_CONCURRENT_REQUESTS * 2,
                max_keepalive_connections=MAX_CONCURRENT_REQUESTS,
            ),
            headers=self._default_headers(),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> dict:
        """Validate, then execute under the concurrency semaphore."""
        self.guardian.validate_request(method, url)
        async with self._semaphore:
            return await self._execute_with_retry(
                method, url, params=params, json_body=json_body, headers=headers
            )

    async def _execute_with_retry(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> dict:
        """Execute request with exponential backoff on throttling."""
        backoff = INITIAL_BACKOFF_SECONDS

        for attempt in range(MAX_RETRIES + 1):
            try:
                response = await self._execute_raw(
                    method, url, params=params, json_body=json_body, headers=headers
                )
                self._request_count += 1

                if response.status_code == 200:
                    if not response.content or not response.content.strip():
                        return {"value": []}
                    try:
                        return response.json()
                    except ValueError:
                        logger.debug(f"200 response with non-JSON body from {url}")
                        return {"value": []}

                if response.status_code == 204:
                    return {}

                if response.status_code in (429, 503, 504):
                    self._throttle_count += 1
                    if attempt == MAX_RETRIES:
                        break
                    retry_after = parse_retry_after(
                        response.headers.get("Retry-After"), backoff
                    )
                    wait_time = max(retry_after, backoff)
                    logger.warning(
                        f"Throttled ({response.status_code}) on {url}. "
                        f"Retry {attempt + 1}/{MAX_RETRIES} in {wait_time:.1f}s"
                    )
                    await asyncio.sleep(wait_time)
                    backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)
                    continue

                try:
                    error_body = response.json() if response.content else {}
                except ValueError:
                    error_body = response.text[:200]
                error_msg = extract_error_message(error_body, response.reason_phrase or "Error")
                raise APIError(response.status_code, error_msg, url)

            except httpx.TimeoutException:
                logger.warning(f"Timeout on {url}, attempt {attempt + 1}/{MAX_RETRIES}")
                if attempt == MAX_RETRIES:
                    raise
                await asyncio.sleep(backoff)
                backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)

            except httpx.ConnectError as e:
                logger.warning(f"Connection error on {url}: {e}")
                if attempt == MAX_RETRIES:
                    raise
                await asyncio.sleep(backoff)
                backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)

        raise APIError(429, "Maximum retries exceeded while throttled", url)

    async def _execute_raw(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> httpx.Response:
        """Execute raw HTTP request."""
        if not self._client:
            raise RuntimeError(f"{type(self).__name__} not initialized. Use 'async with' context.")

        if method == "GET":
            return await self._client.get(url, params=params, headers=headers)
        elif method == "POST":
            return await self._client.post(url, json=json_body, params=params, headers=headers)
        else:
            raise SafetyViolation(f"Unsupported method at raw level: {method}")

    def get_stats(self) -> dict:
        """Return client statistics."""
        return {
            "total_requests": self._request_count,
            "throttle_events": self._throttle_count,
        }
