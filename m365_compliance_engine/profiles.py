"""
Tenant Profile Manager — Named profiles for multi-tenant support.

Profiles are stored in:
    ~/.m365_compliance_engine/profiles.json
(or $M365_COMPLIANCE_HOME/profiles.json when set)

Each profile holds the app registration used to reach one tenant, the
tenant domain the admin APIs are addressed by, and an optional display
name. Admins managing many tenants switch with `--profile <name>`.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger("m365_compliance_engine.profiles")


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

def default_profiles_file() -> Path:
    home = os.environ.get("M365_COMPLIANCE_HOME")
    config_dir = Path(home) if home else Path.home() / ".m365_compliance_engine"
    return config_dir / "profiles.json"


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class TenantProfile:
    """A single named tenant profile."""
    name: str                          # Unique short name (e.g. "contoso-prod")
    tenant_id: str                     # Entra tenant ID, used for sign-in
    client_id: str                     # App registration client ID
    cert_path: str = "./base64.txt"    # Path to the base64-encoded PFX certificate
    tenant_domain: str = ""            # e.g. contoso.onmicrosoft.com; defaults to tenant_id
    tenant_display_name: str = ""      # Friendly name shown in reports
    notes: str = ""                    # Optional admin notes

    @property
    def tenant_ref(self) -> str:
        """The identifier the admin APIs are addressed by."""
        return self.tenant_domain or self.tenant_id

    def resolve_cert_path(self) -> str:
        """Return absolute cert path, resolving ~ and relative paths."""
        p = Path(self.cert_path).expanduser()
        if not p.is_absolute():
            p = Path.cwd() / p
        return str(p)


@dataclass
class ProfileStore:
    """Manages the collection of tenant profiles on disk."""
    profiles: dict[str, TenantProfile] = field(default_factory=dict)
    default_profile: str = ""
    path: Path = field(default_factory=default_profiles_file)

    # --- Persistence ---

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ProfileStore":
        """Load profiles from disk. Returns empty store if file doesn't exist."""
        path = path or default_profiles_file()
        if not path.exists():
            return cls(path=path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            store = cls(path=path)
            store.default_profile = data.get("default_profile", "")
            for name, pdata in data.get("profiles", {}).items():
                store.profiles[name] = TenantProfile(
                    name=name,
                    tenant_id=pdata["tenant_id"],
                    client_id=pdata["client_id"],
                    cert_path=pdata.get("cert_path", "./base64.txt"),
                    tenant_domain=pdata.get("tenant_domain", ""),
                    tenant_display_name=pdata.get("tenant_display_name", ""),
                    notes=pdata.get("notes", ""),
                )
            return store
        except (json.JSONDecodeError, KeyError) as e:
            logger.warning(f"Failed to parse {path}: {e}")
            return cls(path=path)

    def save(self) -> None:
        """Persist profiles to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "default_profile": self.default_profile,
            "profiles": {
                name: {
                    "tenant_id": p.tenant_id,
                    "client_id": p.client_id,
                    "cert_path": p.cert_path,
                    "tenant_domain": p.tenant_domain,
                    "tenant_display_name": p.tenant_display_name,
                    "notes": p.notes,
                }
                for name, p in self.profiles.items()
            },
        }
        self.path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")

    # --- CRUD ---

    def add(self, profile: TenantProfile, set_default: bool = False) -> None:
        """Add or overwrite a profile."""
        self.profiles[profile.name] = profile
        if set_default or not self.default_profile:
            self.default_profile = profile.name
        self.save()

    def remove(self, name: str) -> bool:
        """Remove a profile by name. Returns True if it existed."""
        if name not in self.profiles:
            return False
        del self.profiles[name]
        if self.default_profile == name:
            self.default_profile = next(iter(self.profiles), "")
        self.save()
        return True

    def get(self, name: str) -> Optional[TenantProfile]:
        """Get a profile by name (case-insensitive)."""
        key = name.lower()
        for pname, profile in self.profiles.items():
            if pname.lower() == key:
                return profile
        return None

    def get_default(self) -> Optional[TenantProfile]:
        """Get the default profile, or None if no profiles exist."""
        if self.default_profile:
            return self.profiles.get(self.default_profile)
        if self.profiles:
            return next(iter(self.profiles.values()))
        return None

    def set_default(self, name: str) -> bool:
        """Set the default profile. Returns True if profile exists."""
        if name not in self.profiles:
            return False
        self.default_profile = name
        self.save()
        return True

    def list_profiles(self) -> list[TenantProfile]:
        """Return all profiles sorted by name."""
        return sorted(self.profiles.values(), key=lambda p: p.name)


def resolve_profile(
    profile_name: Optional[str] = None,
) -> Optional[TenantProfile]:
    """
    Look up a tenant profile by name.
    If no name given, returns the default profile.
    """
    store = ProfileStore.load()
    if profile_name:
        return store.get(profile_name)
    return store.get_default()
