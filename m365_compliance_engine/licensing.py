"""
License gate backed by Microsoft Graph subscribedSkus.
A standard runs only if the tenant holds at least one SKU that provides a
required service plan with capacity.
"""

from __future__ import annotations

import logging

import httpx

from .api.base import APIError
from .api.graph import GraphClient
from .errors import LicenseCheckError
from .sinks.base import LicenseGate

logger = logging.getLogger("m365_compliance_engine.licensing")


class GraphLicenseGate(LicenseGate):
    """Checks service-plan capabilities once per tenant and caches them."""

    def __init__(self, graph: GraphClient):
        self.graph = graph
        self._capabilities: dict[str, set[str]] = {}

    async def tenant_capabilities(self, tenant: str) -> set[str]:
        if tenant not in self._capabilities:
            try:
                skus = await self.graph.get_all_pages("subscribedSkus")
            except (APIError, httpx.HTTPError) as e:
                raise LicenseCheckError(f"Could not read subscribed SKUs for {tenant}: {e}") from e

            plans: set[str] = set()
            for sku in skus:
                if sku.get("capabilityStatus", "Enabled") not in ("Enabled", "Warning"):
                    continue
                if ((sku.get("prepaidUnits") or {}).get("enabled") or 0) <= 0:
                    continue
                for plan in sku.get("servicePlans", []):
                    if plan.get("provisioningStatus", "Success") == "Disabled":
                        continue
                    if plan.get("servicePlanName"):
                        plans.add(plan["servicePlanName"].upper())
            self._capabilities[tenant] = plans
            logger.debug(f"[{tenant}] {len(plans)} licensed service plans")
        return self._capabilities[tenant]

    async def check_license(
        self,
        tenant: str,
        standard_name: str,
        required_capabilities: tuple[str, ...],
    ) -> bool:
        if not required_capabilities:
            return True
        capabilities = await self.tenant_capabilities(tenant)
        licensed = any(cap.upper() in capabilities for cap in required_capabilities)
        if not licensed:
            logger.info(
                f"[{standard_name}] [{tenant}] Not licensed; requires one of "
                f"{', '.join(required_capabilities)}"
            )
        return licensed


class AllowAllLicenseGate(LicenseGate):
    """Used when license checking is switched off."""

    async def check_license(self, tenant, standard_name, required_capabilities) -> bool:
        return True
