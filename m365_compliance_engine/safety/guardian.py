"""
Change Guardian — Gates every outbound request against the pass's mode.
Read cmdlets always pass, write cmdlets pass only when remediation is
enabled, and destructive cmdlets are never sent.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

logger = logging.getLogger("m365_compliance_engine.safety")

# ─── Cmdlet verbs ────────────────────────────────────────────────────────────

READ_VERBS = {"Get", "Test"}
WRITE_VERBS = {"Set", "Enable", "Disable", "New", "Add", "Update"}

# Cmdlets that no standard is allowed to send, regardless of mode
BLOCKED_CMDLET_PATTERNS = [
    re.compile(r"^Remove-", re.IGNORECASE),
    re.compile(r"^Export-", re.IGNORECASE),
    re.compile(r"^Search-Mailbox$", re.IGNORECASE),
    re.compile(r"^New-ComplianceSearchAction$", re.IGNORECASE),
]

# POST endpoints that carry cmdlets (validated separately at cmdlet level)
CMDLET_POST_ENDPOINTS = [
    re.compile(r"/adminapi/[^/]+/[^/]+/InvokeCommand$"),
    re.compile(r"/adminapi/[^/]+/[^/]+/\$batch$"),
]


class SafetyViolation(Exception):
    """Raised when a request is not permitted in the current mode."""
    pass


class ChangeGuardian:
    """
    Validates every outbound request for one reconciliation pass.
    Maintains an audit record of all checks and violations.
    """

    def __init__(self, allow_writes: bool = False):
        self.allow_writes = allow_writes
        self.violations: list[dict] = []
        self.checks_performed: int = 0
        self.writes_permitted: int = 0
        self.started_at: str = datetime.now(timezone.utc).isoformat()

    def validate_request(self, method: str, url: str) -> bool:
        """
        Validate the HTTP shape of a request.
        GET is always safe; POST only to cmdlet endpoints.
        """
        self.checks_performed += 1
        method_upper = method.upper()

        if method_upper in ("GET", "HEAD", "OPTIONS"):
            return True

        path = url.split("?", 1)[0]
        if method_upper == "POST":
            for pattern in CMDLET_POST_ENDPOINTS:
                if pattern.search(path):
                    return True

        self._record_violation(method_upper, url, "HTTP method not allowed for endpoint")
        raise SafetyViolation(f"SAFETY VIOLATION: {method_upper} {url} is not allowed")

    def validate_cmdlet(self, cmdlet: str) -> bool:
        """
        Validate a cmdlet name against the pass's mode.
        Returns True if permitted, raises SafetyViolation if not.
        """
        self.checks_performed += 1

        for pattern in BLOCKED_CMDLET_PATTERNS:
            if pattern.search(cmdlet):
                self._record_violation("CMDLET", cmdlet, "Destructive cmdlet blocked")
                raise SafetyViolation(f"SAFETY VIOLATION: Blocked cmdlet: {cmdlet}")

        verb = cmdlet.split("-", 1)[0].capitalize()
        if verb in READ_VERBS:
            return True

        if verb in WRITE_VERBS:
            if not self.allow_writes:
                self._record_violation("CMDLET", cmdlet, "Write cmdlet outside remediation")
                raise SafetyViolation(
                    f"SAFETY VIOLATION: Write cmdlet {cmdlet} requires remediation mode"
                )
            self.writes_permitted += 1
            return True

        self._record_violation("CMDLET", cmdlet, "Unknown cmdlet verb")
        raise SafetyViolation(f"SAFETY VIOLATION: Unrecognised cmdlet verb: {cmdlet}")

    def _record_violation(self, kind: str, target: str, reason: str):
        """Record a safety violation for audit."""
        violation = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "kind": kind,
            "target": target,
            "reason": reason,
        }
        self.violations.append(violation)
        logger.critical(f"SAFETY VIOLATION: {reason} — {kind} {target}")

    def get_audit_record(self) -> dict:
        """Return the full safety audit record."""
        return {
            "change_guardian": {
                "mode": "REMEDIATE" if self.allow_writes else "READ-ONLY",
                "started_at": self.started_at,
                "checks_performed": self.checks_performed,
                "writes_permitted": self.writes_permitted,
                "violations_detected": len(self.violations),
                "violations": self.violations,
                "status": "CLEAN" if not self.violations else "VIOLATIONS_DETECTED",
            }
        }

    def print_banner(self):
        """Print the mode banner before a pass."""
        print("=" * 75)
        if self.allow_writes:
            print("  REMEDIATION ENABLED -- NON-COMPLIANT SETTINGS WILL BE CHANGED")
            print("  * Only Set/Enable-style cmdlets declared by the standard are sent")
            print("  * Remove/Export cmdlets are blocked at the request layer")
        else:
            print("  READ-ONLY PASS -- NO CHANGES WILL BE MADE")
            print("  * Only Get/Test cmdlets are sent to the tenant")
        print("  * Every request is validated before execution")
        print("=" * 75)
