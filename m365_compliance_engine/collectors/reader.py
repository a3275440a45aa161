"""
Remote state reader — fetches tenant state and object inventories.
Reads are idempotent and safe to retry; every failure surfaces as a typed
error so a missing read is never mistaken for a compliant one.
"""

from __future__ import annotations

import logging

import httpx

from ..api.base import APIError
from ..api.exchange import ExchangeClient
from ..errors import InventoryReadError, StateReadError, normalize_error
from ..safety.guardian import SafetyViolation
from ..standards.base import BaseStandard, InventoryQuery, ObjectInventory, StateSnapshot

logger = logging.getLogger("m365_compliance_engine.collectors")

_READ_ERRORS = (APIError, SafetyViolation, httpx.HTTPError)


class RemoteStateReader:
    """Read side of a reconciliation pass, scoped per call to one tenant."""

    def __init__(self, exchange: ExchangeClient):
        self.exchange = exchange

    async def read_tenant_state(self, tenant: str, standard: BaseStandard) -> StateSnapshot:
        """Read the standard's tenant-level object. Raises StateReadError."""
        try:
            items = await self.exchange.invoke(
                tenant,
                standard.state_cmdlet,
                parameters=dict(standard.state_parameters),
                select=list(standard.state_select) or None,
            )
        except _READ_ERRORS as e:
            raise StateReadError(tenant, standard.name, normalize_error(e)) from e

        if not items:
            raise StateReadError(
                tenant, standard.name, f"{standard.state_cmdlet} returned no objects"
            )
        missing = [name for name in standard.state_select if name not in items[0]]
        if missing:
            raise StateReadError(
                tenant,
                standard.name,
                f"{standard.state_cmdlet} returned no value for {', '.join(missing)}",
            )
        snapshot = StateSnapshot(values=items[0])
        logger.debug(f"[{standard.name}] [{tenant}] State read: {dict(snapshot.values)}")
        return snapshot

    async def read_non_compliant_objects(
        self,
        tenant: str,
        query: InventoryQuery,
        description: str,
    ) -> ObjectInventory:
        """List objects matching the query and predicate. Raises InventoryReadError."""
        try:
            items = await self.exchange.invoke(
                tenant,
                query.cmdlet,
                parameters=dict(query.parameters),
                select=list(query.select) or None,
                anchor_mailbox=query.anchor_mailbox,
            )
        except _READ_ERRORS as e:
            raise InventoryReadError(tenant, description, normalize_error(e)) from e

        if query.predicate is not None:
            items = [item for item in items if query.predicate(item)]
        logger.debug(f"[{tenant}] {len(items)} {description}")
        return ObjectInventory(description=description, objects=items)
