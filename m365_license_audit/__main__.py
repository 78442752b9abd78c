"""
M365 High-Cost License Audit — Main Orchestrator

Usage:
    python -m m365_license_audit --tenant-id <GUID> --client-id <GUID>
    python -m m365_license_audit --config audit.json
    python -m m365_license_audit --auth-mode certificate --cert-path ./base64.txt
    python -m m365_license_audit --threshold 120 --license SPE_E5 --license VISIOCLIENT
    python -m m365_license_audit --list-permissions

Runs once: authenticate, fetch users, flag inactive high-cost license holders,
print a table and write HighCostInactiveUsers_<date>.csv. STRICTLY READ-ONLY.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import os
import sys
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from . import __version__
from .bootstrap import check_dependencies
from .config import RunConfig, REQUIRED_PERMISSIONS
from .analyzers import InactiveLicenseAnalyzer
from .reporting import export_csv, print_table, ReportWriteError

logger = logging.getLogger("m365_license_audit")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


class AuditOutcome(Enum):
    """Terminal states of a run."""
    MISSING_DEPENDENCY = "missing_dependency"
    AUTH_FAILED = "auth_failed"
    FETCH_FAILED = "fetch_failed"
    WRITE_FAILED = "write_failed"
    NO_CANDIDATES = "no_candidates"
    REPORT_WRITTEN = "report_written"

    @property
    def exit_code(self) -> int:
        if self in (AuditOutcome.NO_CANDIDATES, AuditOutcome.REPORT_WRITTEN):
            return EXIT_OK
        return EXIT_FAILURE


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="m365_license_audit",
        description="Report high-cost M365 licenses held by inactive accounts (READ-ONLY)",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="Path to JSON configuration file",
    )
    parser.add_argument(
        "--tenant-id",
        type=str,
        default=None,
        help="Tenant ID (overrides config file and M365_TENANT_ID)",
    )
    parser.add_argument(
        "--client-id",
        type=str,
        default=None,
        help="App registration client ID (overrides config file and M365_CLIENT_ID)",
    )
    parser.add_argument(
        "--auth-mode",
        choices=["delegated", "certificate"],
        default=None,
        help="Device-code sign-in (default) or certificate app-only auth",
    )
    parser.add_argument(
        "--cert-path",
        type=Path,
        help="Path to base64-encoded PFX certificate (certificate mode)",
    )
    parser.add_argument(
        "--threshold",
        type=int,
        default=None,
        help="Days without sign-in beyond which an account is flagged (default: 90)",
    )
    parser.add_argument(
        "--license",
        dest="licenses",
        action="append",
        default=None,
        metavar="SKU",
        help="High-cost license SKU part number to watch; repeat to list several",
    )
    parser.add_argument(
        "--output-dir", "-o",
        type=Path,
        default=None,
        help="Directory for the CSV report (default: current directory)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--list-permissions",
        action="store_true",
        help="Print the read-only Graph permissions this tool needs and exit",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace, environ: Optional[dict[str, str]] = None) -> RunConfig:
    """
    Build run configuration: defaults < config file < environment < CLI flags.
    Raises ValueError on missing or invalid settings.
    """
    environ = os.environ if environ is None else environ

    if args.config:
        if not args.config.exists():
            raise ValueError(f"Config file not found: {args.config}")
        config = RunConfig.from_file(args.config)
    else:
        config = RunConfig()

    if args.auth_mode:
        config.auth.mode = args.auth_mode

    file_tenant, file_client = config.tenant_credentials()
    tenant_id = args.tenant_id or environ.get("M365_TENANT_ID") or file_tenant
    client_id = args.client_id or environ.get("M365_CLIENT_ID") or file_client
    if not tenant_id or not client_id:
        raise ValueError(
            "No tenant credentials found. Pass --tenant-id and --client-id, "
            "set M365_TENANT_ID / M365_CLIENT_ID, or use --config."
        )
    config.apply_credentials(
        tenant_id,
        client_id,
        cert_path=str(args.cert_path) if args.cert_path else None,
    )

    if args.threshold is not None or args.licenses:
        overrides: dict[str, Any] = {}
        if args.threshold is not None:
            overrides["inactive_days_threshold"] = args.threshold
        if args.licenses:
            overrides["high_cost_licenses"] = tuple(args.licenses)
        config.audit = dataclasses.replace(config.audit, **overrides)

    if args.output_dir:
        config.output_dir = str(args.output_dir)
    config.verbose = config.verbose or args.verbose
    return config


def _print_permissions() -> None:
    print("\n  Required Microsoft Graph permissions (read-only):\n")
    for perm, why in REQUIRED_PERMISSIONS.items():
        print(f"    {perm:<22s} {why}")
    print()


async def run_audit(
    config: RunConfig,
    authenticator=None,
    transport=None,
    now: Optional[datetime] = None,
    run_date: Optional[date] = None,
) -> AuditOutcome:
    """
    Authenticate → fetch → filter → report. The authenticated session is
    closed on every path once authentication has been attempted.
    """
    # Graph stack imported here so the dependency check can run first
    from .auth.authenticator import Authenticator, AuthenticationError
    from .collectors import UserLicenseCollector, DirectoryFetchError
    from .graph.client import GraphClient
    from .safety.guardian import SafetyGuardian, SafetyViolation

    guardian = SafetyGuardian()
    guardian.print_banner()

    audit = config.audit
    print(f"  Watching:  {', '.join(audit.high_cost_licenses)}")
    print(f"  Threshold: {audit.inactive_days_threshold} days without sign-in")

    print("\n🔐 Connecting to Microsoft Graph...")
    authenticator = authenticator or Authenticator(config.auth)
    try:
        try:
            token = authenticator.acquire_token()
        except AuthenticationError as e:
            print(f"❌ Authentication failed: {e}")
            return AuditOutcome.AUTH_FAILED
        print("✅ Authentication successful.")

        print("\n📥 Fetching users with license and sign-in data...")
        try:
            async with GraphClient(token, guardian, transport=transport) as client:
                accounts = await UserLicenseCollector(client).collect()
        except DirectoryFetchError as e:
            kind = "Permission denied" if e.permission_denied else "Fetch failed"
            print(f"❌ {kind}: {e}")
            print(f"   {e.remediation}")
            return AuditOutcome.FETCH_FAILED
        except SafetyViolation as e:
            print(f"❌ {e}")
            return AuditOutcome.FETCH_FAILED

        print(f"\n🔎 Analyzing {len(accounts)} accounts...")
        candidates = InactiveLicenseAnalyzer(audit).analyze(accounts, now=now)

        if not candidates:
            print("\n✅ No inactive accounts holding high-cost licenses were found.")
            return AuditOutcome.NO_CANDIDATES

        try:
            path = export_csv(
                candidates,
                config.output_path,
                run_date=run_date,
                prefix=config.report_prefix,
            )
        except ReportWriteError as e:
            print(f"❌ {e}")
            print(f"   {len(candidates)} candidates found, but no report was saved.")
            return AuditOutcome.WRITE_FAILED

        print_table(candidates)
        print("=" * 70)
        print(" AUDIT COMPLETE")
        print("=" * 70)
        print(f"\n  Candidates: {len(candidates)}")
        print(f"  Report:     {path.resolve() if path else '-'}")
        print()
        return AuditOutcome.REPORT_WRITTEN
    finally:
        authenticator.close()
        logger.debug(f"Safety record: {guardian.get_audit_record()}")


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for `python -m m365_license_audit`. Returns the exit code."""
    args = parse_args(argv)

    if args.list_permissions:
        _print_permissions()
        return EXIT_OK

    deps = check_dependencies()
    if not deps.ok:
        print(f"❌ Missing required libraries: {', '.join(deps.missing)}")
        print(f"   Install them with: {deps.install_hint}")
        return AuditOutcome.MISSING_DEPENDENCY.exit_code

    try:
        config = build_config(args)
    except (ValueError, KeyError, OSError) as e:
        print(f"❌ Configuration error: {e}")
        return EXIT_USAGE

    logging.basicConfig(
        level=logging.DEBUG if config.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("=" * 70)
    print(f" M365 High-Cost License Audit v{__version__}")
    print(" Mode: READ-ONLY — No tenant modifications will be made")
    print("=" * 70)

    outcome = asyncio.run(run_audit(config))
    return outcome.exit_code


if __name__ == "__main__":
    sys.exit(main())
