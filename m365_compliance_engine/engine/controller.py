"""
Reconciliation controller — one pass of one standard against one tenant.

    Start -> license gate -> StateRead -> {Aborted | Evaluated}
          -> [remediate] -> [alert] -> [report] -> Done

The snapshot is read once and the verdict computed once; every enabled
branch consumes that same verdict. Only a failed state read (or license
lookup) aborts the pass. Everything after it is best-effort.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..api.exchange import ExchangeClient
from ..collectors.reader import RemoteStateReader
from ..config import StandardSettings
from ..errors import LicenseCheckError, StateReadError
from ..sinks.base import AlertSink, LicenseGate, LogSink, ReportStore, Severity
from ..standards.base import BaseStandard, BatchResult, Verdict
from .executor import BulkOperationExecutor
from .planner import RemediationPlan, RemediationPlanner

logger = logging.getLogger("m365_compliance_engine.engine")


class PassStatus(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    SKIPPED_UNLICENSED = "skipped_unlicensed"


@dataclass
class PassResult:
    """Outcome of one reconciliation pass."""
    tenant: str
    standard: str
    status: PassStatus = PassStatus.COMPLETED
    verdict: Optional[Verdict] = None
    summary: str = ""
    error: str = ""
    tenant_action_attempted: bool = False
    tenant_action_error: Optional[str] = None
    batch_results: list[BatchResult] = field(default_factory=list)
    alerts_sent: int = 0
    reports_written: int = 0
    started_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None

    @property
    def succeeded(self) -> bool:
        return self.status is not PassStatus.ABORTED

    def to_dict(self) -> dict:
        return {
            "tenant": self.tenant,
            "standard": self.standard,
            "status": self.status.value,
            "succeeded": self.succeeded,
            "verdict": None if self.verdict is None else {
                "raw_value": self.verdict.raw_value,
                "compliant": self.verdict.compliant,
            },
            "summary": self.summary,
            "error": self.error,
            "tenant_action": {
                "attempted": self.tenant_action_attempted,
                "error": self.tenant_action_error,
            },
            "batches": [b.to_dict() for b in self.batch_results],
            "alerts_sent": self.alerts_sent,
            "reports_written": self.reports_written,
            "duration_seconds": round((self.completed_at or time.time()) - self.started_at, 2),
        }


class ReconciliationController:
    """
    Orchestrates remediate, alert, and report over a single evaluation.
    All collaborators are injected; nothing here is tenant-global.
    """

    def __init__(
        self,
        standard: BaseStandard,
        reader: RemoteStateReader,
        planner: RemediationPlanner,
        executor: BulkOperationExecutor,
        license_gate: LicenseGate,
        log_sink: LogSink,
        alert_sink: AlertSink,
        report_store: ReportStore,
    ):
        self.standard = standard
        self.reader = reader
        self.planner = planner
        self.executor = executor
        self.license_gate = license_gate
        self.log_sink = log_sink
        self.alert_sink = alert_sink
        self.report_store = report_store

    @classmethod
    def build(
        cls,
        standard: BaseStandard,
        exchange: ExchangeClient,
        license_gate: LicenseGate,
        log_sink: LogSink,
        alert_sink: AlertSink,
        report_store: ReportStore,
    ) -> "ReconciliationController":
        """Wire the reader, planner, and executor around one Exchange client."""
        reader = RemoteStateReader(exchange)
        return cls(
            standard=standard,
            reader=reader,
            planner=RemediationPlanner(standard, reader, log_sink),
            executor=BulkOperationExecutor(exchange, log_sink, api=standard.api),
            license_gate=license_gate,
            log_sink=log_sink,
            alert_sink=alert_sink,
            report_store=report_store,
        )

    def _log(self, tenant: str, message: str, severity: Severity = Severity.INFO):
        self.log_sink.log(self.standard.api, tenant, message, severity)

    async def run(self, tenant: str, settings: StandardSettings) -> PassResult:
        result = PassResult(tenant=tenant, standard=self.standard.name)
        logger.info(f"[{self.standard.name}] [{tenant}] Starting pass {settings}")

        try:
            licensed = await self.license_gate.check_license(
                tenant, self.standard.name, self.standard.required_capabilities
            )
        except LicenseCheckError as e:
            return self._abort(result, str(e))
        if not licensed:
            result.status = PassStatus.SKIPPED_UNLICENSED
            result.completed_at = time.time()
            return result

        try:
            snapshot = await self.reader.read_tenant_state(tenant, self.standard)
        except StateReadError as e:
            return self._abort(result, str(e))

        verdict = self.standard.evaluate(snapshot)
        result.verdict = verdict

        if settings.remediate:
            await self._remediate(tenant, verdict, result)
        if settings.alert:
            self._alert(tenant, verdict, settings, result)
        if settings.report:
            self._report(tenant, verdict, result)

        result.completed_at = time.time()
        logger.info(
            f"[{self.standard.name}] [{tenant}] Pass complete "
            f"(compliant={verdict.compliant})"
        )
        return result

    def _abort(self, result: PassResult, message: str) -> PassResult:
        self._log(result.tenant, message, Severity.ERROR)
        result.status = PassStatus.ABORTED
        result.error = message
        result.completed_at = time.time()
        return result

    # ─── Branches ──────────────────────────────────────────────────────────

    async def _remediate(self, tenant: str, verdict: Verdict, result: PassResult):
        plan = await self.planner.plan(verdict, tenant)

        if plan.tenant_action is not None:
            result.tenant_action_attempted = True
            outcome = await self.executor.execute_single(tenant, plan.tenant_action)
            result.tenant_action_error = outcome.error

        result.batch_results = list(await asyncio.gather(*(
            self.executor.execute(
                tenant,
                planned.request,
                failure_message=planned.remediation.failure_message,
                anchor_mailbox=planned.remediation.query.anchor_mailbox,
            )
            for planned in plan.batches
            if planned.request.operations
        )))

        result.summary = self._summarize(plan, result)
        severity = Severity.ERROR if result.tenant_action_error else Severity.INFO
        self._log(tenant, result.summary, severity)

    def _summarize(self, plan: RemediationPlan, result: PassResult) -> str:
        if not result.tenant_action_attempted:
            parts = [self.standard.already_compliant_message()]
        elif result.tenant_action_error:
            parts = [self.standard.remediation_failed_message(result.tenant_action_error)]
        else:
            parts = [self.standard.remediated_message()]

        for batch in result.batch_results:
            parts.append(
                f"{batch.succeeded_count} of {len(batch.request)} {batch.request.description} "
                f"remediated, {len(batch.failures)} failed."
            )
        if plan.inventory_errors:
            parts.append(f"{len(plan.inventory_errors)} object queries failed.")
        return " ".join(parts)

    def _alert(self, tenant: str, verdict: Verdict, settings: StandardSettings, result: PassResult):
        if verdict.non_compliant:
            message = self.standard.alert_message()
            self.alert_sink.alert(
                message=message,
                object=verdict.value_for(self.standard.alert_polarity),
                tenant=tenant,
                standard_name=self.standard.name,
                standard_id=settings.standard_id,
            )
            result.alerts_sent += 1
            self._log(tenant, message, Severity.INFO)
        else:
            self._log(tenant, self.standard.compliant_message(), Severity.INFO)

    def _report(self, tenant: str, verdict: Verdict, result: PassResult):
        record = self.standard.report_record(verdict)
        self.report_store.set_compare_field(record.field_name, record.value, tenant)
        if self.standard.bpa_field:
            self.report_store.set_bpa_field(
                self.standard.bpa_field, record.value, record.store_as, tenant
            )
        result.reports_written += 1
