"""
Base standard class — the contract every compliance standard implements,
and the data model one reconciliation pass moves through.

A standard declares how to read its tenant state, how to judge it, which
corrective cmdlets bring the tenant and its objects into line, and which
value each output sink receives.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

logger = logging.getLogger("m365_compliance_engine.standards")


class Polarity(str, Enum):
    """Which sense of the verdict a sink receives."""
    RAW = "raw"              # the snapshot value exactly as read
    COMPLIANT = "compliant"  # True when the tenant meets the standard


@dataclass(frozen=True)
class StateSnapshot:
    """Tenant-level values read once per pass. Never re-read mid-pass."""
    values: Mapping[str, Any]
    read_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __getitem__(self, key: str) -> Any:
        return self.values[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)


@dataclass(frozen=True)
class Verdict:
    """Compliance outcome computed once from a snapshot."""
    raw_value: Any
    non_compliant: bool

    @property
    def compliant(self) -> bool:
        return not self.non_compliant

    def value_for(self, polarity: Polarity) -> Any:
        """Map the verdict to the value a sink with this polarity stores."""
        if polarity is Polarity.RAW:
            return self.raw_value
        if polarity is Polarity.COMPLIANT:
            return self.compliant
        raise ValueError(f"Unknown polarity: {polarity}")


@dataclass(frozen=True)
class Operation:
    """One corrective cmdlet call against one target object."""
    cmdlet: str
    target: str
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def to_request(self) -> dict:
        return {"cmdlet": self.cmdlet, "target": self.target, "parameters": dict(self.parameters)}


@dataclass
class BatchRequest:
    """Independent operations submitted together. Order is kept for correlation."""
    description: str
    operations: list[Operation] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.operations)


@dataclass(frozen=True)
class ItemResult:
    """Outcome of one operation in a batch; error is a normalised message."""
    target: str
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    """Results aligned 1:1 with the originating BatchRequest."""
    request: BatchRequest
    results: list[ItemResult] = field(default_factory=list)

    def __post_init__(self):
        if len(self.results) != len(self.request.operations):
            raise ValueError(
                f"Batch '{self.request.description}' has {len(self.request.operations)} "
                f"operations but {len(self.results)} results"
            )

    @property
    def succeeded_count(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    @property
    def failures(self) -> list[ItemResult]:
        return [r for r in self.results if not r.succeeded]

    def to_dict(self) -> dict:
        return {
            "description": self.request.description,
            "submitted": len(self.request.operations),
            "succeeded": self.succeeded_count,
            "failed": [{"target": r.target, "error": r.error} for r in self.failures],
        }


@dataclass
class ObjectInventory:
    """Remote objects found non-compliant by one query. May be empty."""
    description: str
    objects: list[dict] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.objects)


@dataclass(frozen=True)
class InventoryQuery:
    """How to list objects for one per-object remediation."""
    cmdlet: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    select: tuple[str, ...] = ()
    predicate: Optional[Callable[[dict], bool]] = None
    anchor_mailbox: bool = False


@dataclass(frozen=True)
class ObjectRemediation:
    """
    A per-object corrective action: which objects fail the standard and
    how to build the operation that fixes one of them.
    """
    description: str              # e.g. "mailboxes without auditing"
    failure_message: str          # logged per failed item, target is appended
    query: InventoryQuery
    build_operation: Callable[[dict], Operation]


@dataclass(frozen=True)
class ReportRecord:
    """One value written to the compare store and the best-practice store."""
    field_name: str
    value: Any
    store_as: str = "bool"


class BaseStandard(ABC):
    """
    Abstract base class for all standards.

    Subclasses declare their identity, state query, and corrective
    actions, and implement evaluate() as a pure function of the snapshot.
    """

    name: str = "base"
    description: str = "Base standard"
    api: str = "Standards"
    required_capabilities: tuple[str, ...] = ()

    # Tenant state query
    state_cmdlet: str = ""
    state_parameters: Mapping[str, Any] = {}
    state_select: tuple[str, ...] = ()

    # Which sense of the verdict each sink receives
    alert_polarity: Polarity = Polarity.RAW
    report_polarity: Polarity = Polarity.COMPLIANT

    # Report field names
    compare_field: str = ""
    bpa_field: str = ""
    bpa_store_as: str = "bool"

    @abstractmethod
    def evaluate(self, snapshot: StateSnapshot) -> Verdict:
        """Derive the verdict from the snapshot. No I/O."""
        raise NotImplementedError

    def tenant_action(self, verdict: Verdict) -> Optional[Operation]:
        """The single tenant-level fix, or None if the standard has none."""
        return None

    def object_remediations(self) -> list[ObjectRemediation]:
        """Per-object fixes, each queried and batched independently."""
        return []

    # ─── Messages ──────────────────────────────────────────────────────────

    def remediated_message(self) -> str:
        return f"{self.name} remediated."

    def remediation_failed_message(self, error: str) -> str:
        return f"Failed to remediate {self.name}. Error: {error}"

    def already_compliant_message(self) -> str:
        return f"{self.name} already compliant."

    def alert_message(self) -> str:
        return f"{self.name} is not compliant"

    def compliant_message(self) -> str:
        return f"{self.name} is compliant"

    # ─── Report ────────────────────────────────────────────────────────────

    def report_record(self, verdict: Verdict) -> ReportRecord:
        return ReportRecord(
            field_name=self.compare_field or f"standards.{self.name}",
            value=verdict.value_for(self.report_polarity),
            store_as=self.bpa_store_as,
        )
