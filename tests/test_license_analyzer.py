from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from m365_license_audit.analyzers import (
    InactiveLicenseAnalyzer,
    days_inactive,
    find_candidates,
    matched_licenses,
)
from m365_license_audit.config import AuditConfig
from m365_license_audit.models import Account, NEVER_SIGNED_IN, NO_ACTIVITY_DAYS

from .conftest import NOW, days_ago


def test_end_to_end_example(sample_accounts, audit_config, now):
    candidates = find_candidates(sample_accounts, audit_config, now)

    assert [c.display_name for c in candidates] == ["Alice", "Bob", "Charlie"]
    alice, bob, charlie = candidates
    assert (alice.inactive_days, alice.high_cost_license) == (124, "SPE_E5")
    assert alice.last_sign_in == days_ago(124).date().isoformat()
    assert (bob.inactive_days, bob.high_cost_license) == (95, "VISIOCLIENT")
    assert charlie.inactive_days is None
    assert charlie.inactive_for_days == NO_ACTIVITY_DAYS
    assert charlie.last_sign_in == NEVER_SIGNED_IN


def test_account_without_high_cost_license_is_never_flagged(audit_config, now):
    accounts = [
        Account("Eve", "eve@contoso.com", ("EXCHANGESTANDARD",), days_ago(1000)),
        Account("Finn", "finn@contoso.com", (), None),
    ]
    assert find_candidates(accounts, audit_config, now) == []


def test_sign_in_exactly_at_threshold_is_excluded(audit_config, now):
    account = Account("Gus", "gus@contoso.com", ("SPE_E5",), days_ago(90))
    assert find_candidates([account], audit_config, now) == []


def test_sign_in_one_day_past_threshold_is_flagged(audit_config, now):
    account = Account("Hana", "hana@contoso.com", ("SPE_E5",), days_ago(91))
    candidates = find_candidates([account], audit_config, now)
    assert len(candidates) == 1
    assert candidates[0].inactive_days == 91


@pytest.mark.parametrize("threshold", [1, 90, 10_000])
def test_never_signed_in_is_flagged_for_any_threshold(threshold, now):
    config = AuditConfig(high_cost_licenses=("SPE_E5",), inactive_days_threshold=threshold)
    account = Account("Ivo", "ivo@contoso.com", ("SPE_E5",), None)
    candidates = find_candidates([account], config, now)
    assert len(candidates) == 1
    assert candidates[0].last_sign_in == NEVER_SIGNED_IN


def test_filter_is_idempotent(sample_accounts, audit_config, now):
    first = find_candidates(sample_accounts, audit_config, now)
    second = find_candidates(sample_accounts, audit_config, now)
    assert first == second


def test_multiple_matches_produce_one_candidate_in_account_order(audit_config, now):
    account = Account(
        "Jo", "jo@contoso.com",
        ("POWER_BI_PRO", "EXCHANGESTANDARD", "SPE_E5"),
        days_ago(200),
    )
    candidates = find_candidates([account], audit_config, now)
    assert len(candidates) == 1
    assert candidates[0].high_cost_license == "POWER_BI_PRO, SPE_E5"


def test_custom_separator(now):
    config = AuditConfig(high_cost_licenses=("A", "B"), license_separator=" | ")
    account = Account("Kit", "kit@contoso.com", ("A", "B"), None)
    assert find_candidates([account], config, now)[0].high_cost_license == "A | B"


def test_license_match_ignores_case(now):
    config = AuditConfig(high_cost_licenses=("spe_e5",))
    account = Account("Lee", "lee@contoso.com", ("SPE_E5",), None)
    assert matched_licenses(account, config) == ["SPE_E5"]


def test_empty_input_gives_no_candidates(audit_config, now):
    assert find_candidates([], audit_config, now) == []


def test_future_sign_in_is_not_flagged(audit_config, now):
    account = Account("Max", "max@contoso.com", ("SPE_E5",), now + timedelta(days=3))
    assert find_candidates([account], audit_config, now) == []


def test_days_inactive_truncates_partial_days():
    last = NOW - timedelta(days=90, hours=23, minutes=59)
    assert days_inactive(last, NOW) == 90


def test_days_inactive_normalizes_timezones():
    plus_five = timezone(timedelta(hours=5))
    # Same instant as NOW - 91 days, expressed at +05:00
    last = (NOW - timedelta(days=91)).astimezone(plus_five)
    assert days_inactive(last, NOW) == 91


def test_naive_timestamps_are_treated_as_utc():
    last = datetime(2026, 7, 1, 12, 0)
    assert days_inactive(last, NOW) == (NOW.replace(tzinfo=None) - last).days


def test_analyzer_wraps_find_candidates(sample_accounts, audit_config, now):
    analyzer = InactiveLicenseAnalyzer(audit_config)
    assert analyzer.analyze(sample_accounts, now=now) == find_candidates(
        sample_accounts, audit_config, now
    )
