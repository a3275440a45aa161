"""Reconciliation engine — plan, execute, and orchestrate one pass."""

from .controller import PassResult, PassStatus, ReconciliationController
from .executor import BulkOperationExecutor
from .planner import PlannedBatch, RemediationPlan, RemediationPlanner

__all__ = [
    "PassResult",
    "PassStatus",
    "ReconciliationController",
    "BulkOperationExecutor",
    "PlannedBatch",
    "RemediationPlan",
    "RemediationPlanner",
]
