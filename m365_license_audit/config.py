"""
Configuration module for the M365 High-Cost License Audit.
Defines Graph settings, authentication modes, and the audit rule parameters.
"""

from __future__ import annotations

import os
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


# ─── Tenant Authentication ───────────────────────────────────────────────────

# Least-privilege, read-only delegated scopes. No write scope is ever requested.
DELEGATED_SCOPES = [
    "User.Read.All",
    "AuditLog.Read.All",
    "Directory.Read.All",
]

@dataclass
class CertificateAuth:
    """Certificate-based app-only authentication configuration."""
    tenant_id: str
    client_id: str
    certificate_path: str = "./base64.txt"  # Path to base64-encoded PFX
    certificate_password: str = ""          # Will be prompted if empty

@dataclass
class DelegatedAuth:
    """Delegated (device code) authentication configuration."""
    tenant_id: str
    client_id: str
    scopes: list[str] = field(default_factory=lambda: list(DELEGATED_SCOPES))

@dataclass
class AuthConfig:
    """Authentication configuration — supports both modes."""
    mode: str = "delegated"  # "delegated" or "certificate"
    certificate: Optional[CertificateAuth] = None
    delegated: Optional[DelegatedAuth] = None


# ─── Graph API Settings ─────────────────────────────────────────────────────

GRAPH_BASE_URL = "https://graph.microsoft.com"
GRAPH_API_VERSION = "v1.0"

# Pagination
DEFAULT_PAGE_SIZE = 999           # Maximum items per page ($top)
MAX_PAGES_PER_ENDPOINT = 10000    # Safety cap on pagination loops

REQUEST_TIMEOUT_SECONDS = 60.0
CONNECT_TIMEOUT_SECONDS = 30.0


# ─── Audit Rule ─────────────────────────────────────────────────────────────

DEFAULT_HIGH_COST_LICENSES = (
    "SPE_E5",               # Microsoft 365 E5
    "ENTERPRISEPREMIUM",    # Office 365 E5
    "VISIOCLIENT",          # Visio Plan 2
    "PROJECTPROFESSIONAL",  # Project Plan 3
    "POWER_BI_PRO",         # Power BI Pro
)
DEFAULT_INACTIVE_DAYS_THRESHOLD = 90
DEFAULT_LICENSE_SEPARATOR = ", "

@dataclass(frozen=True)
class AuditConfig:
    """Immutable rule parameters, read once at start of a run."""
    high_cost_licenses: tuple[str, ...] = DEFAULT_HIGH_COST_LICENSES
    inactive_days_threshold: int = DEFAULT_INACTIVE_DAYS_THRESHOLD
    license_separator: str = DEFAULT_LICENSE_SEPARATOR

    def __post_init__(self):
        threshold = self.inactive_days_threshold
        if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold <= 0:
            raise ValueError(
                f"inactive_days_threshold must be a positive integer, got {threshold!r}"
            )
        licenses = self.high_cost_licenses
        if isinstance(licenses, str) or not isinstance(licenses, (list, tuple)):
            raise ValueError(
                f"high_cost_licenses must be a list of strings, got {licenses!r}"
            )
        if not all(isinstance(s, str) for s in licenses):
            raise ValueError(
                f"high_cost_licenses entries must be strings, got {licenses!r}"
            )
        # Drop blanks and duplicates, keep the configured order
        cleaned = tuple(dict.fromkeys(
            s.strip() for s in self.high_cost_licenses if s and s.strip()
        ))
        if not cleaned:
            raise ValueError("high_cost_licenses must contain at least one license identifier")
        object.__setattr__(self, "high_cost_licenses", cleaned)


# ─── Output Configuration ───────────────────────────────────────────────────

DEFAULT_REPORT_PREFIX = "HighCostInactiveUsers_"


# ─── Master Configuration ───────────────────────────────────────────────────

@dataclass
class RunConfig:
    """Top-level configuration for a single audit run."""
    auth: AuthConfig = field(default_factory=AuthConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    output_dir: str = ""
    report_prefix: str = DEFAULT_REPORT_PREFIX
    verbose: bool = False

    def __post_init__(self):
        if not self.output_dir:
            self.output_dir = os.getcwd()

    @property
    def output_path(self) -> Path:
        return Path(self.output_dir)

    @classmethod
    def from_file(cls, path: str | Path) -> "RunConfig":
        """Load configuration from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a JSON object")
        config = cls()
        if "auth" in data:
            auth_data = data["auth"]
            config.auth.mode = auth_data.get("mode", "delegated")
            if "certificate" in auth_data:
                c = auth_data["certificate"]
                config.auth.certificate = CertificateAuth(
                    tenant_id=c["tenant_id"],
                    client_id=c["client_id"],
                    certificate_path=c.get("certificate_path", "./base64.txt"),
                    certificate_password=c.get("certificate_password", ""),
                )
            if "delegated" in auth_data:
                d = auth_data["delegated"]
                config.auth.delegated = DelegatedAuth(
                    tenant_id=d["tenant_id"],
                    client_id=d["client_id"],
                )
        if "audit" in data:
            a = data["audit"]
            config.audit = AuditConfig(
                high_cost_licenses=a.get("high_cost_licenses", DEFAULT_HIGH_COST_LICENSES),
                inactive_days_threshold=a.get("inactive_days_threshold", DEFAULT_INACTIVE_DAYS_THRESHOLD),
                license_separator=a.get("license_separator", DEFAULT_LICENSE_SEPARATOR),
            )
        if "output" in data:
            out = data["output"]
            config.output_dir = out.get("dir") or config.output_dir
            config.report_prefix = out.get("report_prefix", config.report_prefix)
        config.verbose = data.get("verbose", False)
        return config

    def tenant_credentials(self) -> tuple[Optional[str], Optional[str]]:
        """Return (tenant_id, client_id) from whichever auth block is populated."""
        for block in (self.auth.delegated, self.auth.certificate):
            if block:
                return block.tenant_id, block.client_id
        return None, None

    def apply_credentials(
        self,
        tenant_id: str,
        client_id: str,
        cert_path: Optional[str] = None,
    ) -> None:
        """Build the auth block for the configured mode from resolved identifiers."""
        if self.auth.mode == "certificate":
            existing = self.auth.certificate
            self.auth.certificate = CertificateAuth(
                tenant_id=tenant_id,
                client_id=client_id,
                certificate_path=cert_path or (existing.certificate_path if existing else "./base64.txt"),
                certificate_password=existing.certificate_password if existing else "",
            )
        elif self.auth.mode == "delegated":
            self.auth.delegated = DelegatedAuth(tenant_id=tenant_id, client_id=client_id)
        else:
            raise ValueError(f"Unknown auth mode: {self.auth.mode}")


# ─── Required Graph API Permissions (Least Privilege, Read-Only) ─────────

REQUIRED_PERMISSIONS = {
    "User.Read.All": "Read user profiles and assigned licenses",
    "AuditLog.Read.All": "Read sign-in activity (signInActivity.lastSignInDateTime)",
    "Directory.Read.All": "Read subscribed SKUs to resolve license part numbers",
}
