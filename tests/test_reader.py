# ruff: noqa: S101
"""Tests for tenant state and inventory reads."""

from __future__ import annotations

import httpx
import pytest

from conftest import TENANT, DummyExchange
from m365_compliance_engine.api.base import APIError
from m365_compliance_engine.collectors.reader import RemoteStateReader
from m365_compliance_engine.errors import InventoryReadError, StateReadError
from m365_compliance_engine.safety.guardian import SafetyViolation
from m365_compliance_engine.standards.base import InventoryQuery
from m365_compliance_engine.standards.mailbox_auditing import MailboxAuditingStandard

URL = "https://outlook.office365.com/adminapi/beta/contoso.onmicrosoft.com/InvokeCommand"


@pytest.mark.asyncio
async def test_snapshot_is_first_returned_object() -> None:
    exchange = DummyExchange(
        {"Get-OrganizationConfig": [{"AuditDisabled": False, "Name": "contoso"}]}
    )
    reader = RemoteStateReader(exchange)

    snapshot = await reader.read_tenant_state(TENANT, MailboxAuditingStandard())

    assert snapshot["AuditDisabled"] is False
    assert snapshot.get("Missing", "x") == "x"
    assert exchange.calls[0]["select"] == ["AuditDisabled"]


@pytest.mark.asyncio
async def test_snapshot_is_read_only() -> None:
    exchange = DummyExchange({"Get-OrganizationConfig": [{"AuditDisabled": True}]})
    snapshot = await RemoteStateReader(exchange).read_tenant_state(
        TENANT, MailboxAuditingStandard()
    )

    with pytest.raises(TypeError):
        snapshot.values["AuditDisabled"] = False  # type: ignore[index]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        APIError(404, "Tenant not provisioned", URL),
        httpx.ConnectError("connection refused"),
        SafetyViolation("SAFETY VIOLATION: Blocked cmdlet"),
    ],
)
async def test_read_errors_become_state_read_error(error) -> None:
    reader = RemoteStateReader(DummyExchange({"Get-OrganizationConfig": error}))

    with pytest.raises(StateReadError) as info:
        await reader.read_tenant_state(TENANT, MailboxAuditingStandard())

    assert info.value.tenant == TENANT
    assert info.value.standard == "EnableMailboxAuditing"
    assert str(info.value).startswith(
        f"Could not get the EnableMailboxAuditing state for {TENANT}. Error: "
    )


@pytest.mark.asyncio
async def test_no_objects_is_a_read_failure() -> None:
    reader = RemoteStateReader(DummyExchange({"Get-OrganizationConfig": []}))

    with pytest.raises(StateReadError, match="returned no objects"):
        await reader.read_tenant_state(TENANT, MailboxAuditingStandard())


@pytest.mark.asyncio
async def test_inventory_applies_predicate_and_forwards_query() -> None:
    exchange = DummyExchange(
        {"Get-Recipient": [{"Name": "a", "Flag": True}, {"Name": "b", "Flag": False}]}
    )
    query = InventoryQuery(
        cmdlet="Get-Recipient",
        parameters={"ResultSize": "Unlimited"},
        select=("Name", "Flag"),
        predicate=lambda obj: obj["Flag"],
        anchor_mailbox=True,
    )

    inventory = await RemoteStateReader(exchange).read_non_compliant_objects(
        TENANT, query, "flagged recipients"
    )

    assert inventory.description == "flagged recipients"
    assert inventory.objects == [{"Name": "a", "Flag": True}]
    assert exchange.calls[0] == {
        "tenant": TENANT,
        "cmdlet": "Get-Recipient",
        "parameters": {"ResultSize": "Unlimited"},
        "select": ["Name", "Flag"],
        "anchor_mailbox": True,
    }


@pytest.mark.asyncio
async def test_inventory_failure_raises_inventory_read_error() -> None:
    exchange = DummyExchange({"Get-Recipient": APIError(500, "Backend unavailable", URL)})
    query = InventoryQuery(cmdlet="Get-Recipient")

    with pytest.raises(InventoryReadError) as info:
        await RemoteStateReader(exchange).read_non_compliant_objects(TENANT, query, "recipients")

    assert info.value.message == "Backend unavailable"


@pytest.mark.asyncio
async def test_missing_selected_field_is_a_read_failure() -> None:
    reader = RemoteStateReader(
        DummyExchange({"Get-OrganizationConfig": [{"Name": "contoso"}]})
    )

    with pytest.raises(StateReadError) as info:
        await reader.read_tenant_state(TENANT, MailboxAuditingStandard())

    assert info.value.message == "Get-OrganizationConfig returned no value for AuditDisabled"


@pytest.mark.asyncio
async def test_explicit_null_value_is_still_a_value() -> None:
    reader = RemoteStateReader(
        DummyExchange({"Get-OrganizationConfig": [{"AuditDisabled": None}]})
    )

    snapshot = await reader.read_tenant_state(TENANT, MailboxAuditingStandard())

    assert snapshot["AuditDisabled"] is None
