"""
EnableMailboxAuditing
Tenant-level mailbox auditing on, per-mailbox auditing on, and no mailbox
audit bypass associations.
"""

from __future__ import annotations

import logging
from typing import Optional

from .base import (
    BaseStandard,
    InventoryQuery,
    ObjectRemediation,
    Operation,
    Polarity,
    StateSnapshot,
    Verdict,
)

logger = logging.getLogger("m365_compliance_engine.standards.mailbox_auditing")


class MailboxAuditingStandard(BaseStandard):
    name = "EnableMailboxAuditing"
    description = "Enable tenant and mailbox level auditing and clear audit bypass"
    required_capabilities = ("EXCHANGE_S_STANDARD", "EXCHANGE_S_ENTERPRISE", "EXCHANGE_LITE")

    state_cmdlet = "Get-OrganizationConfig"
    state_select = ("AuditDisabled",)

    # Alerts carry the raw AuditDisabled flag; reports store "auditing enabled"
    alert_polarity = Polarity.RAW
    report_polarity = Polarity.COMPLIANT

    compare_field = "standards.EnableMailboxAuditing"
    bpa_field = "MailboxAuditingEnabled"
    bpa_store_as = "bool"

    def evaluate(self, snapshot: StateSnapshot) -> Verdict:
        audit_disabled = snapshot.get("AuditDisabled")
        return Verdict(raw_value=audit_disabled, non_compliant=_truthy(audit_disabled))

    def tenant_action(self, verdict: Verdict) -> Optional[Operation]:
        if verdict.compliant:
            return None
        return Operation(
            cmdlet="Set-OrganizationConfig",
            target="OrganizationConfig",
            parameters={"AuditDisabled": False},
        )

    def object_remediations(self) -> list[ObjectRemediation]:
        return [
            ObjectRemediation(
                description="mailboxes without auditing",
                failure_message="Failed to enable user level mailbox audit for",
                query=InventoryQuery(
                    cmdlet="Get-Mailbox",
                    parameters={"Filter": "AuditEnabled -eq 'False'", "ResultSize": "Unlimited"},
                    select=("AuditEnabled", "UserPrincipalName"),
                    predicate=lambda mbx: not _truthy(mbx.get("AuditEnabled")),
                    anchor_mailbox=True,
                ),
                build_operation=lambda mbx: Operation(
                    cmdlet="Set-Mailbox",
                    target=str(mbx.get("UserPrincipalName", "")),
                    parameters={
                        "Identity": mbx.get("UserPrincipalName"),
                        "AuditEnabled": True,
                    },
                ),
            ),
            ObjectRemediation(
                description="mailbox audit bypass associations",
                failure_message="Failed to disable mailbox audit bypass for",
                query=InventoryQuery(
                    cmdlet="Get-MailboxAuditBypassAssociation",
                    parameters={"ResultSize": "Unlimited"},
                    select=("Guid", "AuditBypassEnabled", "Name"),
                    predicate=lambda assoc: _truthy(assoc.get("AuditBypassEnabled")),
                    anchor_mailbox=True,
                ),
                build_operation=lambda assoc: Operation(
                    cmdlet="Set-MailboxAuditBypassAssociation",
                    target=str(assoc.get("Name") or assoc.get("Guid", "")),
                    parameters={
                        "Identity": assoc.get("Guid"),
                        "AuditBypassEnabled": False,
                    },
                ),
            ),
        ]

    def remediated_message(self) -> str:
        return "Tenant level mailbox audit enabled."

    def remediation_failed_message(self, error: str) -> str:
        return f"Failed to enable tenant level mailbox audit. Error: {error}"

    def already_compliant_message(self) -> str:
        return "Tenant level mailbox audit already enabled."

    def alert_message(self) -> str:
        return "Tenant level mailbox audit is not enabled"

    def compliant_message(self) -> str:
        return "Tenant level mailbox audit is enabled"


def _truthy(value) -> bool:
    """Exchange returns booleans, but older endpoints serialise them as strings."""
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)
