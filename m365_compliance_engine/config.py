"""
Configuration module for M365 Compliance Standards Engine.
Defines all tunable parameters, API endpoints, and operational settings.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional


# ─── Tenant Authentication ───────────────────────────────────────────────────

@dataclass
class CertificateAuth:
    """Certificate-based app-only authentication configuration."""
    tenant_id: str
    client_id: str
    certificate_path: str          # Path to base64-encoded PFX
    certificate_password: str = "" # Will be prompted if empty
    thumbprint: str = ""

@dataclass
class DelegatedAuth:
    """Delegated (interactive) authentication configuration."""
    tenant_id: str
    client_id: str

@dataclass
class AuthConfig:
    """Authentication configuration — supports both modes."""
    mode: str = "certificate"  # "certificate" or "delegated"
    certificate: Optional[CertificateAuth] = None
    delegated: Optional[DelegatedAuth] = None

    @property
    def tenant_id(self) -> str:
        if self.mode == "delegated" and self.delegated:
            return self.delegated.tenant_id
        if self.certificate:
            return self.certificate.tenant_id
        return ""


# ─── Remote API Settings ────────────────────────────────────────────────────

GRAPH_BASE_URL = "https://graph.microsoft.com"
GRAPH_API_VERSION = "v1.0"
GRAPH_SCOPES = ["https://graph.microsoft.com/.default"]

EXCHANGE_BASE_URL = "https://outlook.office365.com"
EXCHANGE_API_PATH = "adminapi/beta"
EXCHANGE_SCOPES = ["https://outlook.office365.com/.default"]

# Arbitration mailbox used to anchor organisation-wide queries
SYSTEM_MAILBOX = "SystemMailbox{bb558c35-97f1-4cb9-8ff7-d53741dc928c}"

# Rate limiting / throttling
MAX_CONCURRENT_REQUESTS = 4       # Parallel requests per client
MAX_RETRIES = 5                   # Retry count for throttled requests
INITIAL_BACKOFF_SECONDS = 2.0     # First retry delay
MAX_BACKOFF_SECONDS = 120.0       # Cap on exponential backoff
BACKOFF_MULTIPLIER = 2.0          # Exponential factor

# Pagination
MAX_PAGES_PER_ENDPOINT = 1000     # Safety cap on pagination loops

# Batch
EXCHANGE_BATCH_SIZE = 10          # Sub-requests per Exchange $batch call


# ─── Standard Settings ──────────────────────────────────────────────────────

@dataclass
class StandardSettings:
    """
    Per-standard mode toggles. Flags are independent; any subset may be set,
    including none (a pass that only reads state).
    """
    remediate: bool = False
    alert: bool = False
    report: bool = False
    standard_id: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StandardSettings":
        return cls(
            remediate=_flag(data.get("remediate", False)),
            alert=_flag(data.get("alert", False)),
            report=_flag(data.get("report", False)),
            standard_id=str(data.get("standard_id", data.get("standardId", "")) or ""),
        )

    @property
    def any_mode(self) -> bool:
        return self.remediate or self.alert or self.report


def _flag(value: Any) -> bool:
    """Config booleans; hand-edited files sometimes carry "true"/"false" strings."""
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


# ─── Output Configuration ───────────────────────────────────────────────────

@dataclass
class OutputConfig:
    """Where run reports and the compliance store are written."""
    base_dir: str = "./m365_compliance_output"
    store_path: str = ""

    @property
    def run_dir(self) -> Path:
        return Path(self.base_dir)

    @property
    def resolved_store_path(self) -> Path:
        if self.store_path:
            return Path(self.store_path)
        return self.run_dir / "compliance_store.db"


# ─── Master Configuration ───────────────────────────────────────────────────

@dataclass
class EngineConfig:
    """Top-level configuration for the entire engine."""
    auth: AuthConfig = field(default_factory=AuthConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    standards: dict[str, StandardSettings] = field(default_factory=dict)
    license_check: bool = True
    verbose: bool = False

    @classmethod
    def from_file(cls, path: str) -> "EngineConfig":
        """Load configuration from a JSON file."""
        with open(path, "r") as f:
            data = json.load(f)
        config = cls()
        if "auth" in data:
            auth_data = data["auth"]
            config.auth.mode = auth_data.get("mode", "certificate")
            if "certificate" in auth_data:
                c = auth_data["certificate"]
                config.auth.certificate = CertificateAuth(
                    tenant_id=c["tenant_id"],
                    client_id=c["client_id"],
                    certificate_path=c.get("certificate_path", "./base64.txt"),
                    certificate_password=c.get("certificate_password", ""),
                    thumbprint=c.get("thumbprint", ""),
                )
            if "delegated" in auth_data:
                d = auth_data["delegated"]
                config.auth.delegated = DelegatedAuth(
                    tenant_id=d["tenant_id"],
                    client_id=d["client_id"],
                )
        if "output" in data:
            for k, v in data["output"].items():
                if hasattr(config.output, k):
                    setattr(config.output, k, v)
        for name, settings in data.get("standards", {}).items():
            config.standards[name] = StandardSettings.from_dict(settings)
        config.license_check = data.get("license_check", True)
        config.verbose = data.get("verbose", False)
        return config

    def settings_for(self, standard_name: str) -> StandardSettings:
        """Return settings for a standard, or an all-off default."""
        return self.standards.get(standard_name, StandardSettings())
