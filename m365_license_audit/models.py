"""
Audit data models — the directory account snapshot and the derived candidate row.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

# Rendered in place of a day count / date when no sign-in is on record
NO_ACTIVITY_DAYS = "N/A"
NEVER_SIGNED_IN = "Never"

REPORT_COLUMNS = [
    "DisplayName",
    "UserPrincipalName",
    "InactiveForDays",
    "HighCostLicense",
    "LastSignIn",
]


@dataclass(frozen=True)
class Account:
    """A directory account as returned by the user fetch. Read-only input."""
    display_name: str
    user_principal_name: str
    license_ids: tuple[str, ...] = ()
    last_sign_in: Optional[datetime] = None   # None = no sign-in on record


@dataclass(frozen=True)
class Candidate:
    """An account flagged as holding a high-cost license while inactive."""
    display_name: str
    user_principal_name: str
    inactive_days: Optional[int]      # None = no activity on record
    high_cost_license: str
    last_sign_in: str                 # ISO date, or NEVER_SIGNED_IN

    @property
    def inactive_for_days(self) -> str:
        if self.inactive_days is None:
            return NO_ACTIVITY_DAYS
        return str(self.inactive_days)

    def to_row(self) -> dict[str, str]:
        return {
            "DisplayName": self.display_name,
            "UserPrincipalName": self.user_principal_name,
            "InactiveForDays": self.inactive_for_days,
            "HighCostLicense": self.high_cost_license,
            "LastSignIn": self.last_sign_in,
        }
