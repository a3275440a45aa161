"""
Microsoft Graph client — read-only GETs with @odata.nextLink pagination.
Used for tenant-wide lookups such as subscribed SKUs.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import GRAPH_BASE_URL, GRAPH_API_VERSION, MAX_PAGES_PER_ENDPOINT
from .base import BaseAPIClient

logger = logging.getLogger("m365_compliance_engine.api.graph")


class GraphClient(BaseAPIClient):
    """Async Microsoft Graph client (GET only)."""

    def _build_url(self, endpoint: str) -> str:
        """Build full Graph URL from relative endpoint."""
        if endpoint.startswith("http"):
            return endpoint
        return f"{GRAPH_BASE_URL}/{GRAPH_API_VERSION}/{endpoint.lstrip('/')}"

    async def get(self, endpoint: str, params: Optional[dict] = None) -> dict:
        """Execute a single GET request with retry/throttle handling."""
        return await self._request("GET", self._build_url(endpoint), params=params)

    async def get_all_pages(self, endpoint: str, params: Optional[dict] = None) -> list[dict]:
        """Fetch all pages of a paginated endpoint into a list."""
        url: Optional[str] = self._build_url(endpoint)
        items: list[dict] = []
        pages = 0

        while url and pages < MAX_PAGES_PER_ENDPOINT:
            data = await self._request("GET", url, params=params)
            items.extend(data.get("value", []))
            url = data.get("@odata.nextLink")
            params = None  # nextLink contains all params
            pages += 1

        if pages >= MAX_PAGES_PER_ENDPOINT:
            logger.warning(
                f"Pagination safety cap reached ({MAX_PAGES_PER_ENDPOINT} pages) "
                f"for endpoint: {endpoint}"
            )
        return items
