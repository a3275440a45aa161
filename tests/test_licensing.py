# ruff: noqa: S101
"""Tests for the subscribedSkus license gate."""

from __future__ import annotations

import httpx
import pytest

from m365_compliance_engine.api.base import APIError
from m365_compliance_engine.errors import LicenseCheckError
from m365_compliance_engine.licensing import AllowAllLicenseGate, GraphLicenseGate

TENANT = "contoso.onmicrosoft.com"
EXCHANGE_PLANS = ("EXCHANGE_S_STANDARD", "EXCHANGE_S_ENTERPRISE", "EXCHANGE_LITE")


class DummyGraph:
    """Graph client stub serving subscribedSkus."""

    def __init__(self, skus=None, error: Exception | None = None) -> None:
        self.skus = skus or []
        self.error = error
        self.calls: list[str] = []

    async def get_all_pages(self, endpoint: str, params=None) -> list[dict]:
        self.calls.append(endpoint)
        if self.error is not None:
            raise self.error
        return self.skus


def _sku(*plans: tuple[str, str], status: str = "Enabled", units: int = 25) -> dict:
    return {
        "capabilityStatus": status,
        "prepaidUnits": {"enabled": units},
        "servicePlans": [
            {"servicePlanName": name, "provisioningStatus": prov} for name, prov in plans
        ],
    }


@pytest.mark.asyncio
async def test_tenant_with_exchange_plan_is_licensed() -> None:
    graph = DummyGraph([_sku(("EXCHANGE_S_ENTERPRISE", "Success"), ("TEAMS1", "Success"))])
    gate = GraphLicenseGate(graph)

    assert await gate.check_license(TENANT, "EnableMailboxAuditing", EXCHANGE_PLANS)
    assert graph.calls == ["subscribedSkus"]


@pytest.mark.asyncio
async def test_disabled_plans_and_suspended_skus_do_not_count() -> None:
    graph = DummyGraph(
        [
            _sku(("EXCHANGE_S_STANDARD", "Disabled")),
            _sku(("EXCHANGE_S_ENTERPRISE", "Success"), status="Suspended"),
            _sku(("EXCHANGE_LITE", "Success"), units=0),
        ]
    )
    gate = GraphLicenseGate(graph)

    assert not await gate.check_license(TENANT, "EnableMailboxAuditing", EXCHANGE_PLANS)


@pytest.mark.asyncio
async def test_capabilities_are_cached_per_tenant() -> None:
    graph = DummyGraph([_sku(("EXCHANGE_S_STANDARD", "Success"))])
    gate = GraphLicenseGate(graph)

    await gate.check_license(TENANT, "A", EXCHANGE_PLANS)
    await gate.check_license(TENANT, "B", EXCHANGE_PLANS)

    assert graph.calls == ["subscribedSkus"]


@pytest.mark.asyncio
async def test_standard_without_requirements_skips_lookup() -> None:
    graph = DummyGraph()
    gate = GraphLicenseGate(graph)

    assert await gate.check_license(TENANT, "Anything", ())
    assert graph.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        APIError(403, "Insufficient privileges", "https://graph.microsoft.com/v1.0/subscribedSkus"),
        httpx.ConnectTimeout("timed out"),
    ],
)
async def test_lookup_failure_raises_license_check_error(error) -> None:
    gate = GraphLicenseGate(DummyGraph(error=error))

    with pytest.raises(LicenseCheckError):
        await gate.check_license(TENANT, "EnableMailboxAuditing", EXCHANGE_PLANS)


@pytest.mark.asyncio
async def test_allow_all_gate() -> None:
    assert await AllowAllLicenseGate().check_license(TENANT, "x", EXCHANGE_PLANS)


@pytest.mark.asyncio
async def test_null_prepaid_units_do_not_crash() -> None:
    sku = _sku(("EXCHANGE_S_STANDARD", "Success"))
    sku["prepaidUnits"] = {"enabled": None}
    licensed = _sku(("EXCHANGE_LITE", "Success"))
    gate = GraphLicenseGate(DummyGraph([sku, licensed]))

    capabilities = await gate.tenant_capabilities(TENANT)

    assert capabilities == {"EXCHANGE_LITE"}
