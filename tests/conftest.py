"""Shared stubs for reconciliation tests."""

from __future__ import annotations

from typing import Any, Optional

import pytest

from m365_compliance_engine.sinks.base import (
    AlertSink,
    LicenseGate,
    LogSink,
    ReportStore,
    Severity,
)

TENANT = "contoso.onmicrosoft.com"


class DummyLogSink(LogSink):
    """Log entry recorder."""

    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []

    def log(self, api: str, tenant: str, message: str, severity: Severity) -> None:
        self.entries.append(
            {
                "api": api,
                "tenant": tenant,
                "message": message,
                "severity": Severity(severity),
            }
        )

    def messages(self, severity: Optional[Severity] = None) -> list[str]:
        return [
            e["message"]
            for e in self.entries
            if severity is None or e["severity"] is severity
        ]


class DummyAlertSink(AlertSink):
    """Alert recorder."""

    def __init__(self) -> None:
        self.alerts: list[dict[str, Any]] = []

    def alert(
        self,
        message: str,
        object: Any,
        tenant: str,
        standard_name: str,
        standard_id: str,
    ) -> None:
        self.alerts.append(
            {
                "message": message,
                "object": object,
                "tenant": tenant,
                "standard_name": standard_name,
                "standard_id": standard_id,
            }
        )


class DummyReportStore(ReportStore):
    """Report field recorder keyed by (tenant, field)."""

    def __init__(self) -> None:
        self.compare: dict[tuple[str, str], Any] = {}
        self.bpa: dict[tuple[str, str], tuple[Any, str]] = {}

    def set_compare_field(self, field_name: str, value: Any, tenant: str) -> None:
        self.compare[(tenant, field_name)] = value

    def set_bpa_field(self, field_name: str, value: Any, store_as: str, tenant: str) -> None:
        self.bpa[(tenant, field_name)] = (value, store_as)


class DummyLicenseGate(LicenseGate):
    """License gate with a fixed answer."""

    def __init__(self, licensed: bool = True, error: Optional[Exception] = None) -> None:
        self.licensed = licensed
        self.error = error
        self.calls: list[tuple[str, str, tuple[str, ...]]] = []

    async def check_license(
        self,
        tenant: str,
        standard_name: str,
        required_capabilities: tuple[str, ...],
    ) -> bool:
        self.calls.append((tenant, standard_name, tuple(required_capabilities)))
        if self.error is not None:
            raise self.error
        return self.licensed


class DummyExchange:
    """
    Exchange client stub. `results` maps a cmdlet name to the objects it
    returns, or to an exception it raises. `bulk_errors` maps a target to
    the error its bulk item reports.
    """

    def __init__(
        self,
        results: Optional[dict[str, Any]] = None,
        bulk_errors: Optional[dict[str, Any]] = None,
        bulk_exception: Optional[Exception] = None,
    ) -> None:
        self.results = dict(results or {})
        self.bulk_errors = dict(bulk_errors or {})
        self.bulk_exception = bulk_exception
        self.calls: list[dict[str, Any]] = []
        self.bulk_calls: list[dict[str, Any]] = []

    async def invoke(
        self,
        tenant: str,
        cmdlet: str,
        parameters: Optional[dict] = None,
        select: Optional[list[str]] = None,
        anchor_mailbox: bool = False,
    ) -> list[dict]:
        self.calls.append(
            {
                "tenant": tenant,
                "cmdlet": cmdlet,
                "parameters": dict(parameters or {}),
                "select": select,
                "anchor_mailbox": anchor_mailbox,
            }
        )
        outcome = self.results.get(cmdlet, [])
        if isinstance(outcome, BaseException):
            raise outcome
        return [dict(item) for item in outcome]

    async def invoke_bulk(
        self,
        tenant: str,
        requests: list[dict],
        anchor_mailbox: bool = False,
    ) -> list[dict]:
        self.bulk_calls.append(
            {"tenant": tenant, "requests": list(requests), "anchor_mailbox": anchor_mailbox}
        )
        if self.bulk_exception is not None:
            raise self.bulk_exception
        return [
            {"target": r["target"], "error": self.bulk_errors.get(r["target"])}
            for r in requests
        ]

    def cmdlets(self) -> list[str]:
        return [c["cmdlet"] for c in self.calls]

    def write_count(self) -> int:
        singles = sum(1 for c in self.calls if not c["cmdlet"].startswith("Get-"))
        return singles + sum(len(b["requests"]) for b in self.bulk_calls)


@pytest.fixture
def log_sink() -> DummyLogSink:
    return DummyLogSink()


@pytest.fixture
def alert_sink() -> DummyAlertSink:
    return DummyAlertSink()


@pytest.fixture
def report_store() -> DummyReportStore:
    return DummyReportStore()
