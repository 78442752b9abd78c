from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from m365_license_audit.config import AuditConfig
from m365_license_audit.models import Account

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)


def days_ago(days: int) -> datetime:
    return NOW - timedelta(days=days)


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def audit_config() -> AuditConfig:
    return AuditConfig(
        high_cost_licenses=("SPE_E5", "VISIOCLIENT", "POWER_BI_PRO"),
        inactive_days_threshold=90,
    )


@pytest.fixture()
def sample_accounts() -> list[Account]:
    return [
        Account("Alice", "alice@contoso.com", ("SPE_E5",), days_ago(124)),
        Account("Bob", "bob@contoso.com", ("VISIOCLIENT",), days_ago(95)),
        Account("Charlie", "charlie@contoso.com", ("POWER_BI_PRO",), None),
        Account("Dana", "dana@contoso.com", ("O365_BUSINESS_ESSENTIALS",), days_ago(400)),
    ]
