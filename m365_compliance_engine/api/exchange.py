"""
Exchange Online admin API client.
Runs cmdlets through the InvokeCommand endpoint, singly or as $batch
requests whose sub-requests succeed or fail independently.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from ..config import (
    EXCHANGE_BASE_URL,
    EXCHANGE_API_PATH,
    EXCHANGE_BATCH_SIZE,
    MAX_PAGES_PER_ENDPOINT,
    SYSTEM_MAILBOX,
)
from ..safety.guardian import SafetyViolation
from .base import APIError, BaseAPIClient

logger = logging.getLogger("m365_compliance_engine.api.exchange")


def cmdlet_input(cmdlet: str, parameters: Optional[dict] = None) -> dict:
    """Build the request body the InvokeCommand endpoint expects."""
    return {
        "CmdletInput": {
            "CmdletName": cmdlet,
            "Parameters": dict(parameters or {}),
        }
    }


class ExchangeClient(BaseAPIClient):
    """
    Async Exchange Online admin API client.
    Features:
      - Single cmdlet invocation with @odata.nextLink paging
      - Bulk invocation via $batch, chunked and sent concurrently
      - Per-item results aligned with the submitted order
    """

    def _tenant_url(self, tenant: str, leaf: str) -> str:
        return f"{EXCHANGE_BASE_URL}/{EXCHANGE_API_PATH}/{tenant}/{leaf}"

    def _anchor_headers(self, tenant: str, anchor_mailbox: bool) -> dict[str, str]:
        if anchor_mailbox:
            return {"X-AnchorMailbox": f"UPN:{SYSTEM_MAILBOX}@{tenant}"}
        return {}

    async def invoke(
        self,
        tenant: str,
        cmdlet: str,
        parameters: Optional[dict] = None,
        select: Optional[list[str]] = None,
        anchor_mailbox: bool = False,
    ) -> list[dict]:
        """
        Run one cmdlet and return every result object across all pages.
        Raises APIError on a non-recoverable remote error.
        """
        self.guardian.validate_cmdlet(cmdlet)
        body = cmdlet_input(cmdlet, parameters)
        headers = self._anchor_headers(tenant, anchor_mailbox)
        params = {"$select": ",".join(select)} if select else None

        url: Optional[str] = self._tenant_url(tenant, "InvokeCommand")
        items: list[dict] = []
        pages = 0

        while url and pages < MAX_PAGES_PER_ENDPOINT:
            data = await self._request("POST", url, params=params, json_body=body, headers=headers)
            value = data.get("value", [])
            if isinstance(value, dict):
                value = [value]
            items.extend(value)

            url = data.get("@odata.nextLink")
            params = None  # nextLink carries the query
            pages += 1

        if pages >= MAX_PAGES_PER_ENDPOINT:
            logger.warning(
                f"Pagination safety cap reached ({MAX_PAGES_PER_ENDPOINT} pages) "
                f"for cmdlet: {cmdlet}"
            )
        logger.debug(f"[{tenant}] {cmdlet} returned {len(items)} objects")
        return items

    async def invoke_bulk(
        self,
        tenant: str,
        requests: list[dict],
        anchor_mailbox: bool = False,
    ) -> list[dict]:
        """
        Run many independent cmdlets via $batch.

        Each request is {"cmdlet": str, "parameters": dict}. Returns one
        {"target", "error"} entry per request, in submission order; "error"
        is None on success, otherwise whatever the remote side reported.
        """
        if not requests:
            return []

        results: list[Optional[dict]] = [None] * len(requests)
        sendable: list[int] = []

        for idx, req in enumerate(requests):
            try:
                self.guardian.validate_cmdlet(req["cmdlet"])
                sendable.append(idx)
            except SafetyViolation as e:
                results[idx] = {"target": self._target_of(req), "error": str(e)}

        chunks = [
            sendable[i:i + EXCHANGE_BATCH_SIZE]
            for i in range(0, len(sendable), EXCHANGE_BATCH_SIZE)
        ]
        chunk_results = await asyncio.gather(
            *(self._send_chunk(tenant, requests, chunk, anchor_mailbox) for chunk in chunks),
            return_exceptions=True,
        )
        for chunk, entries in zip(chunks, chunk_results):
            if isinstance(entries, BaseException):
                if not isinstance(entries, Exception):
                    raise entries
                logger.warning(f"[{tenant}] Batch of {len(chunk)} requests failed: {entries!r}")
                entries = [
                    {"target": self._target_of(requests[idx]), "error": str(entries) or type(entries).__name__}
                    for idx in chunk
                ]
            for idx, entry in zip(chunk, entries):
                results[idx] = entry

        return [
            r if r is not None else {"target": self._target_of(requests[i]), "error": "Request not sent"}
            for i, r in enumerate(results)
        ]

    async def _send_chunk(
        self,
        tenant: str,
        requests: list[dict],
        indices: list[int],
        anchor_mailbox: bool,
    ) -> list[dict]:
        """Send one $batch call; a transport failure fails every item in it."""
        invoke_path = f"/{EXCHANGE_API_PATH}/{tenant}/InvokeCommand"
        headers = {"Content-Type": "application/json"}
        headers.update(self._anchor_headers(tenant, anchor_mailbox))
        batch_body = {
            "requests": [
                {
                    "id": str(pos),
                    "method": "POST",
                    "url": invoke_path,
                    "headers": headers,
                    "body": cmdlet_input(requests[idx]["cmdlet"], requests[idx].get("parameters")),
                }
                for pos, idx in enumerate(indices)
            ]
        }

        try:
            data = await self._request(
                "POST", self._tenant_url(tenant, "$batch"), json_body=batch_body
            )
        except (APIError, httpx.HTTPError) as e:
            logger.warning(f"[{tenant}] Batch of {len(indices)} requests failed: {e}")
            return [
                {"target": self._target_of(requests[idx]), "error": str(e)}
                for idx in indices
            ]

        responses = data.get("responses") if isinstance(data, dict) else None
        by_id = {
            str(resp.get("id")): resp
            for resp in (responses if isinstance(responses, list) else [])
            if isinstance(resp, dict)
        }
        entries = []
        for pos, idx in enumerate(indices):
            target = self._target_of(requests[idx])
            resp = by_id.get(str(pos))
            if resp is None:
                entries.append({"target": target, "error": "No response returned for batch item"})
                continue
            status = _status_code(resp.get("status"))
            body = resp.get("body") or {}
            error: Any = None
            if not 200 <= status < 300:
                error = body or f"HTTP {status}"
            elif isinstance(body, dict) and body.get("error"):
                error = body
            entries.append({"target": target, "error": error})
        return entries

    @staticmethod
    def _target_of(request: dict) -> str:
        parameters = request.get("parameters") or {}
        return str(request.get("target") or parameters.get("Identity", ""))


def _status_code(value: Any) -> int:
    """Sub-response status as an int; 0 when missing or malformed."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
