"""
M365 Compliance Standards Engine — Command-line entry point

Usage:
    python -m m365_compliance_engine --standard EnableMailboxAuditing --report
    python -m m365_compliance_engine -p contoso-prod --remediate --alert --report
    python -m m365_compliance_engine --config config.json
    python -m m365_compliance_engine standards

Profile management:
    python -m m365_compliance_engine profile add <name> --tenant-id ... --client-id ...
    python -m m365_compliance_engine profile list
    python -m m365_compliance_engine profile remove <name>
    python -m m365_compliance_engine profile set-default <name>

Nothing is changed in the tenant unless --remediate is given (or the
standard's settings enable remediation in the config file).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from contextlib import AsyncExitStack
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from . import __version__
from .api.exchange import ExchangeClient
from .api.graph import GraphClient
from .auth.authenticator import AuthenticationError, Authenticator
from .config import (
    CertificateAuth,
    DelegatedAuth,
    EngineConfig,
    EXCHANGE_SCOPES,
    GRAPH_SCOPES,
    StandardSettings,
)
from .engine.controller import PassStatus, ReconciliationController
from .licensing import AllowAllLicenseGate, GraphLicenseGate
from .profiles import ProfileStore, TenantProfile, resolve_profile
from .reporting import export_run_json
from .safety.guardian import ChangeGuardian
from .standards import ALL_STANDARDS, get_standard
from .store import SqliteComplianceStore


# ---------------------------------------------------------------------------
# Profile management sub-commands
# ---------------------------------------------------------------------------

def _cmd_profile(args: argparse.Namespace) -> int:
    """Handle `profile add|list|remove|set-default` sub-commands."""
    action = args.profile_action

    if action == "list":
        return _profile_list()
    elif action == "add":
        return _profile_add(args)
    elif action == "remove":
        return _profile_remove(args)
    elif action == "set-default":
        return _profile_set_default(args)
    return 0


def _profile_list() -> int:
    store = ProfileStore.load()
    profiles = store.list_profiles()
    if not profiles:
        print("No profiles configured. Add one with:\n")
        print("  python -m m365_compliance_engine profile add <name> \\")
        print("    --tenant-id <GUID> --client-id <GUID> --tenant-domain contoso.onmicrosoft.com")
        return 0

    print(f"\n  {'Name':<20s} {'Tenant':<38s} {'Client ID':<38s} {'Default'}")
    print(f"  {'─'*20} {'─'*38} {'─'*38} {'─'*7}")
    for p in profiles:
        default_marker = "  ✓" if p.name == store.default_profile else ""
        display = p.tenant_display_name or ""
        name_col = f"{p.name}" + (f" ({display})" if display else "")
        print(f"  {name_col:<20s} {p.tenant_ref:<38s} {p.client_id:<38s}{default_marker}")
    print()
    return 0


def _profile_add(args: argparse.Namespace) -> int:
    store = ProfileStore.load()
    name = args.profile_name
    if store.get(name):
        print(f"  Profile '{name}' already exists. It will be overwritten.")

    profile = TenantProfile(
        name=name,
        tenant_id=args.tenant_id,
        client_id=args.client_id,
        cert_path=args.cert_path or "./base64.txt",
        tenant_domain=args.tenant_domain or "",
        tenant_display_name=args.display_name or "",
        notes=args.notes or "",
    )
    set_as_default = args.set_default or not store.profiles
    store.add(profile, set_default=set_as_default)
    print(f"  ✅ Profile '{name}' saved.")
    if set_as_default:
        print(f"  ✅ Set as default profile.")
    return 0


def _profile_remove(args: argparse.Namespace) -> int:
    store = ProfileStore.load()
    if store.remove(args.profile_name):
        print(f"  ✅ Profile '{args.profile_name}' removed.")
    else:
        print(f"  ❌ Profile '{args.profile_name}' not found.")
    return 0


def _profile_set_default(args: argparse.Namespace) -> int:
    store = ProfileStore.load()
    if store.set_default(args.profile_name):
        print(f"  ✅ Default profile set to '{args.profile_name}'.")
    else:
        print(f"  ❌ Profile '{args.profile_name}' not found.")
    return 0


def _cmd_standards() -> int:
    print()
    for cls in ALL_STANDARDS:
        caps = ", ".join(cls.required_capabilities) or "none"
        print(f"  {cls.name:<28s} {cls.description}")
        print(f"  {'':<28s} requires: {caps}")
    print()
    return 0


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="m365_compliance_engine",
        description="M365 Compliance Standards Engine",
    )

    # --- Sub-commands ---
    subparsers = parser.add_subparsers(dest="command", help="Management commands")
    subparsers.add_parser("standards", help="List available standards")

    prof_parser = subparsers.add_parser("profile", help="Manage tenant profiles")
    prof_sub = prof_parser.add_subparsers(dest="profile_action", help="Profile actions")

    add_p = prof_sub.add_parser("add", help="Add or update a tenant profile")
    add_p.add_argument("profile_name", help="Short name for the profile (e.g. 'contoso-prod')")
    add_p.add_argument("--tenant-id", required=True, help="Entra tenant ID (GUID)")
    add_p.add_argument("--client-id", required=True, help="App registration client ID (GUID)")
    add_p.add_argument("--tenant-domain", help="Tenant domain used by the admin APIs")
    add_p.add_argument("--cert-path", default="./base64.txt", help="Path to base64-encoded PFX (default: ./base64.txt)")
    add_p.add_argument("--display-name", help="Friendly tenant display name for reports")
    add_p.add_argument("--notes", help="Optional admin notes")
    add_p.add_argument("--set-default", action="store_true", help="Set as default profile")

    prof_sub.add_parser("list", help="List all configured profiles")

    rm_p = prof_sub.add_parser("remove", help="Remove a profile")
    rm_p.add_argument("profile_name", help="Name of the profile to remove")

    sd_p = prof_sub.add_parser("set-default", help="Set the default profile")
    sd_p.add_argument("profile_name", help="Name of the profile to set as default")

    # --- Run options ---
    parser.add_argument("--profile", "-p", type=str, default=None,
                        help="Tenant profile name to use (run 'profile list' to see available)")
    parser.add_argument("--config", "-c", type=Path, help="Path to JSON configuration file")
    parser.add_argument("--standard", "-s", default="EnableMailboxAuditing",
                        help="Standard to run (see 'standards')")
    parser.add_argument("--remediate", action="store_true", help="Correct drift in the tenant")
    parser.add_argument("--alert", action="store_true", help="Raise an alert when non-compliant")
    parser.add_argument("--report", action="store_true", help="Record the compliance value")
    parser.add_argument("--standard-id", default=None, help="Identifier attached to alerts")
    parser.add_argument("--delegated", action="store_true",
                        help="Use delegated (device-code) authentication instead of certificate")
    parser.add_argument("--cert-path", type=Path, help="Path to base64-encoded certificate file (overrides profile)")
    parser.add_argument("--tenant-id", type=str, default=None,
                        help="Tenant ID (overrides profile; use with --client-id for ad-hoc runs)")
    parser.add_argument("--client-id", type=str, default=None,
                        help="Client ID (overrides profile; use with --tenant-id for ad-hoc runs)")
    parser.add_argument("--tenant-domain", type=str, default=None,
                        help="Tenant domain for admin API calls (defaults to the tenant ID)")
    parser.add_argument("--output-dir", "-o", type=Path, default=None,
                        help="Output directory for run reports (default: ./m365_compliance_output)")
    parser.add_argument("--store", type=Path, default=None,
                        help="SQLite compliance store path (default: <output-dir>/compliance_store.db)")
    parser.add_argument("--no-license-check", action="store_true",
                        help="Skip the subscribed SKU check")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> tuple[EngineConfig, str, str]:
    """
    Build engine configuration from profile, CLI args, or config file.
    Returns the config, the tenant reference for API calls, and a display name.
    """
    if args.config and args.config.exists():
        config = EngineConfig.from_file(str(args.config))
    else:
        config = EngineConfig()

    if args.delegated:
        config.auth.mode = "delegated"

    profile = None
    if args.profile:
        profile = resolve_profile(args.profile)
        if not profile:
            print(f"\n❌ Profile '{args.profile}' not found. Use 'profile list' to see available profiles.")
            sys.exit(1)
    elif not args.config and not args.tenant_id:
        profile = resolve_profile()

    tenant_domain = args.tenant_domain or ""
    if profile:
        tenant_id = args.tenant_id or profile.tenant_id
        client_id = args.client_id or profile.client_id
        cert_path = str(args.cert_path) if args.cert_path else profile.resolve_cert_path()
        tenant_domain = tenant_domain or profile.tenant_domain
    elif args.tenant_id and args.client_id:
        tenant_id = args.tenant_id
        client_id = args.client_id
        cert_path = str(args.cert_path) if args.cert_path else "./base64.txt"
    elif config.auth.certificate:
        tenant_id = config.auth.certificate.tenant_id
        client_id = config.auth.certificate.client_id
        cert_path = config.auth.certificate.certificate_path
    elif config.auth.delegated:
        tenant_id = config.auth.delegated.tenant_id
        client_id = config.auth.delegated.client_id
        cert_path = ""
    else:
        print("\n❌ No tenant credentials found. Use one of:")
        print("   • --profile <name>             (from saved profiles)")
        print("   • --tenant-id X --client-id Y  (ad-hoc)")
        print("   • --config config.json         (JSON config file)")
        sys.exit(1)

    if config.auth.mode == "certificate":
        password = config.auth.certificate.certificate_password if config.auth.certificate else ""
        config.auth.certificate = CertificateAuth(
            tenant_id=tenant_id,
            client_id=client_id,
            certificate_path=cert_path,
            certificate_password=password,
        )
    else:
        config.auth.delegated = DelegatedAuth(tenant_id=tenant_id, client_id=client_id)

    if args.output_dir:
        config.output.base_dir = str(args.output_dir)
    if args.store:
        config.output.store_path = str(args.store)
    if args.no_license_check:
        config.license_check = False
    config.verbose = config.verbose or args.verbose

    if profile and profile.tenant_display_name:
        tenant_name = profile.tenant_display_name
    else:
        tenant_name = tenant_domain or tenant_id

    return config, tenant_domain or tenant_id, tenant_name


def build_settings(config: EngineConfig, standard_name: str, args: argparse.Namespace) -> StandardSettings:
    """Config-file settings for the standard, with CLI flags switching modes on."""
    base = config.settings_for(standard_name)
    return StandardSettings(
        remediate=base.remediate or args.remediate,
        alert=base.alert or args.alert,
        report=base.report or args.report,
        standard_id=args.standard_id if args.standard_id is not None else base.standard_id,
    )


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


async def main_async(argv: Optional[list[str]] = None) -> int:
    """Async entry point. Returns the process exit code."""
    args = parse_args(argv)

    if args.command == "profile":
        if not args.profile_action:
            print("Usage: python -m m365_compliance_engine profile {add|list|remove|set-default}")
            return 0
        return _cmd_profile(args)
    if args.command == "standards":
        return _cmd_standards()

    try:
        standard = get_standard(args.standard)
    except KeyError:
        print(f"\n❌ Unknown standard '{args.standard}'. Run 'standards' to list them.")
        return 2

    config, tenant, tenant_name = build_config(args)
    configure_logging(config.verbose)
    settings = build_settings(config, standard.name, args)
    run_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S") + "_" + uuid.uuid4().hex[:8]

    guardian = ChangeGuardian(allow_writes=settings.remediate)
    guardian.print_banner()

    print("=" * 70)
    print(f" M365 Compliance Standards Engine v{__version__}")
    print("=" * 70)
    print(f"\n📋 Run ID:   {run_id}")
    print(f"🏢 Tenant:   {tenant_name}")
    print(f"📐 Standard: {standard.name}")
    if settings.any_mode:
        modes = [m for m in ("remediate", "alert", "report") if getattr(settings, m)]
        print(f"⚙  Modes:    {', '.join(modes)}")
    else:
        print("⚙  Modes:    none (state read only)")

    print("\n🔐 Authenticating...")
    authenticator = Authenticator(config.auth)
    try:
        exchange_token = await authenticator.acquire_token(EXCHANGE_SCOPES)
        graph_token = (
            await authenticator.acquire_token(GRAPH_SCOPES) if config.license_check else ""
        )
    except AuthenticationError as e:
        print(f"❌ Authentication failed: {e}")
        return 1
    print("✅ Authentication successful.")

    store = SqliteComplianceStore(str(config.output.resolved_store_path))

    async with AsyncExitStack() as stack:
        exchange = await stack.enter_async_context(ExchangeClient(exchange_token, guardian))
        if config.license_check:
            graph = await stack.enter_async_context(GraphClient(graph_token, guardian))
            license_gate = GraphLicenseGate(graph)
        else:
            license_gate = AllowAllLicenseGate()

        controller = ReconciliationController.build(
            standard=standard,
            exchange=exchange,
            license_gate=license_gate,
            log_sink=store,
            alert_sink=store,
            report_store=store,
        )
        result = await controller.run(tenant, settings)
        stats = exchange.get_stats()

    report_path = export_run_json(
        result,
        config.output.run_dir,
        run_id,
        guardian_record=guardian.get_audit_record(),
        client_stats=stats,
    )

    print("\n" + "=" * 70)
    print(" RUN COMPLETE" if result.succeeded else " RUN ABORTED")
    print("=" * 70)
    if result.status is PassStatus.SKIPPED_UNLICENSED:
        print("\n  ⏭  Tenant is not licensed for this standard; nothing to do.")
    elif result.status is PassStatus.ABORTED:
        print(f"\n  ❌ {result.error}")
    else:
        state = "compliant" if result.verdict and result.verdict.compliant else "NOT compliant"
        print(f"\n  State:   {state}")
        if result.summary:
            print(f"  Summary: {result.summary}")
        print(f"  Alerts:  {result.alerts_sent}")
        print(f"  Reports: {result.reports_written}")
    print(f"  Report:  {report_path}")
    print()
    return 0 if result.succeeded else 1


def main():
    """Synchronous entry point for `python -m m365_compliance_engine`."""
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
