"""
Bulk operation executor — submits a batch of independent corrective
operations and returns one normalised result per operation.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..api.exchange import ExchangeClient
from ..errors import normalize_error
from ..sinks.base import LogSink, Severity
from ..standards.base import BatchRequest, BatchResult, ItemResult, Operation

logger = logging.getLogger("m365_compliance_engine.engine.executor")


class BulkOperationExecutor:
    """
    Guarantees, per batch:
      - every operation is attempted, regardless of sibling outcomes
      - results align 1:1 with operations and carry the operation's target
      - an empty batch makes no remote call
      - failures are logged per item and never raised
    """

    def __init__(self, exchange: ExchangeClient, log_sink: LogSink, api: str = "Standards"):
        self.exchange = exchange
        self.log_sink = log_sink
        self.api = api

    async def execute_single(self, tenant: str, operation: Operation) -> ItemResult:
        """Run one operation directly. Failure is returned, not raised."""
        try:
            await self.exchange.invoke(tenant, operation.cmdlet, parameters=dict(operation.parameters))
        except Exception as e:
            return ItemResult(target=operation.target, error=normalize_error(e) or "Unknown error")
        return ItemResult(target=operation.target)

    async def execute(
        self,
        tenant: str,
        batch: BatchRequest,
        failure_message: str = "Failed to apply change to",
        anchor_mailbox: bool = False,
    ) -> BatchResult:
        if not batch.operations:
            logger.debug(f"[{tenant}] Skipping empty batch: {batch.description}")
            return BatchResult(request=batch, results=[])

        logger.info(f"[{tenant}] Submitting {len(batch)} operations: {batch.description}")
        try:
            raw = await self.exchange.invoke_bulk(
                tenant,
                [op.to_request() for op in batch.operations],
                anchor_mailbox=anchor_mailbox,
            )
        except Exception as e:
            message = normalize_error(e) or "Unknown error"
            raw = [{"target": op.target, "error": message} for op in batch.operations]

        results = []
        for idx, op in enumerate(batch.operations):
            entry = raw[idx] if idx < len(raw) else None
            if not isinstance(entry, dict):
                error: Optional[str] = "No result returned for operation"
            elif entry.get("error"):
                error = normalize_error(entry["error"]) or "Unknown error"
            else:
                error = None
            results.append(ItemResult(target=op.target, error=error))

            if error is not None:
                self.log_sink.log(
                    self.api, tenant, f"{failure_message} {op.target}. Error: {error}", Severity.ERROR
                )

        result = BatchResult(request=batch, results=results)
        logger.info(
            f"[{tenant}] {batch.description}: {result.succeeded_count}/{len(batch)} succeeded"
        )
        return result
