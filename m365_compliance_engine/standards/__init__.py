from .base import (
    BaseStandard,
    BatchRequest,
    BatchResult,
    InventoryQuery,
    ItemResult,
    ObjectInventory,
    ObjectRemediation,
    Operation,
    Polarity,
    ReportRecord,
    StateSnapshot,
    Verdict,
)
from .mailbox_auditing import MailboxAuditingStandard

ALL_STANDARDS = [
    MailboxAuditingStandard,
]


def get_standard(name: str) -> BaseStandard:
    """Instantiate a registered standard by name (case-insensitive)."""
    key = name.lower()
    for cls in ALL_STANDARDS:
        if cls.name.lower() == key:
            return cls()
    raise KeyError(f"Unknown standard: {name}")


__all__ = [
    "BaseStandard",
    "BatchRequest",
    "BatchResult",
    "InventoryQuery",
    "ItemResult",
    "ObjectInventory",
    "ObjectRemediation",
    "Operation",
    "Polarity",
    "ReportRecord",
    "StateSnapshot",
    "Verdict",
    "MailboxAuditingStandard",
    "ALL_STANDARDS",
    "get_standard",
]
