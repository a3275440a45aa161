"""
Remediation planner — turns a verdict and the current object inventories
into the tenant-level fix and one batch per per-object remediation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from ..collectors.reader import RemoteStateReader
from ..errors import InventoryReadError
from ..sinks.base import LogSink, Severity
from ..standards.base import BaseStandard, BatchRequest, ObjectRemediation, Operation, Verdict

logger = logging.getLogger("m365_compliance_engine.engine.planner")


@dataclass
class PlannedBatch:
    remediation: ObjectRemediation
    request: BatchRequest


@dataclass
class RemediationPlan:
    tenant_action: Optional[Operation] = None
    batches: list[PlannedBatch] = field(default_factory=list)
    inventory_errors: list[str] = field(default_factory=list)


class RemediationPlanner:
    """
    The tenant-level action and each per-object batch are decided
    independently: one empty or failed inventory never suppresses another.
    """

    def __init__(self, standard: BaseStandard, reader: RemoteStateReader, log_sink: LogSink):
        self.standard = standard
        self.reader = reader
        self.log_sink = log_sink

    async def plan(self, verdict: Verdict, tenant: str) -> RemediationPlan:
        plan = RemediationPlan(tenant_action=self.standard.tenant_action(verdict))

        remediations = self.standard.object_remediations()
        outcomes = await asyncio.gather(
            *(self._plan_batch(tenant, r) for r in remediations),
            return_exceptions=True,
        )
        for remediation, outcome in zip(remediations, outcomes):
            if isinstance(outcome, InventoryReadError):
                self.log_sink.log(self.standard.api, tenant, str(outcome), Severity.ERROR)
                plan.inventory_errors.append(str(outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                plan.batches.append(PlannedBatch(remediation=remediation, request=outcome))

        logger.debug(
            f"[{self.standard.name}] [{tenant}] Plan: tenant action="
            f"{plan.tenant_action is not None}, batches="
            f"{[len(b.request) for b in plan.batches]}"
        )
        return plan

    async def _plan_batch(self, tenant: str, remediation: ObjectRemediation) -> BatchRequest:
        inventory = await self.reader.read_non_compliant_objects(
            tenant, remediation.query, remediation.description
        )
        return BatchRequest(
            description=remediation.description,
            operations=[remediation.build_operation(obj) for obj in inventory.objects],
        )
