"""
Inactive High-Cost License Analyzer
Flags accounts that hold a configured high-cost license and have not signed
in for longer than the inactivity threshold, or have never signed in.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from ..config import AuditConfig
from ..models import Account, Candidate, NEVER_SIGNED_IN

logger = logging.getLogger("m365_license_audit.analyzers.license")


def days_inactive(last_sign_in: datetime, now: datetime) -> int:
    """Whole days elapsed between two instants, both compared in UTC. Truncates."""
    return (_as_utc(now) - _as_utc(last_sign_in)).days


def matched_licenses(account: Account, config: AuditConfig) -> list[str]:
    """High-cost licenses held by the account, in the account's own order."""
    watched = {lic.casefold() for lic in config.high_cost_licenses}
    matches = []
    for lic in account.license_ids:
        if lic.casefold() in watched and lic not in matches:
            matches.append(lic)
    return matches


def evaluate_account(
    account: Account,
    config: AuditConfig,
    now: datetime,
) -> Optional[Candidate]:
    """Return a Candidate for the account, or None if it does not qualify."""
    matches = matched_licenses(account, config)
    if not matches:
        return None
    license_display = config.license_separator.join(matches)

    if account.last_sign_in is None:
        # No sign-in on record counts as maximal inactivity
        return Candidate(
            display_name=account.display_name,
            user_principal_name=account.user_principal_name,
            inactive_days=None,
            high_cost_license=license_display,
            last_sign_in=NEVER_SIGNED_IN,
        )

    days = days_inactive(account.last_sign_in, now)
    if days <= config.inactive_days_threshold:
        return None

    return Candidate(
        display_name=account.display_name,
        user_principal_name=account.user_principal_name,
        inactive_days=days,
        high_cost_license=license_display,
        last_sign_in=_as_utc(account.last_sign_in).date().isoformat(),
    )


def find_candidates(
    accounts: Iterable[Account],
    config: AuditConfig,
    now: Optional[datetime] = None,
) -> list[Candidate]:
    """
    Produce the candidate sequence in directory enumeration order.
    Pure with respect to (accounts, config, now).
    """
    if now is None:
        now = datetime.now(timezone.utc)
    candidates = []
    for account in accounts:
        candidate = evaluate_account(account, config, now)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


class InactiveLicenseAnalyzer:
    name = "inactive_license_analyzer"
    description = "High-cost licenses held by accounts past the inactivity threshold"

    def __init__(self, config: AuditConfig):
        self.config = config

    def analyze(self, accounts: list[Account], now: Optional[datetime] = None) -> list[Candidate]:
        candidates = find_candidates(accounts, self.config, now)
        never = sum(1 for c in candidates if c.inactive_days is None)
        logger.info(
            f"[{self.name}] Analysis complete — {len(candidates)} candidates "
            f"of {len(accounts)} accounts ({never} never signed in)"
        )
        return candidates


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken to already be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
