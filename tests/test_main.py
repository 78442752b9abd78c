from __future__ import annotations

import asyncio
import csv
from datetime import date

import pytest
import requests

from m365_license_audit import __main__ as cli
from m365_license_audit.__main__ import AuditOutcome, run_audit
from m365_license_audit.auth import authenticator as auth_mod
from m365_license_audit.auth.authenticator import AuthenticationError
from m365_license_audit.bootstrap import DependencyCheck
from m365_license_audit.config import AuditConfig, DelegatedAuth, RunConfig

from .conftest import NOW
from .graph_fakes import BI_SKU, E5_SKU, ESSENTIALS_SKU, VISIO_SKU, FakeGraph, graph_user

RUN_DATE = date(2026, 10, 16)


class FakeAuthenticator:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.closed = False

    def acquire_token(self) -> str:
        if self.fail:
            raise AuthenticationError("Delegated auth failed: user declined consent")
        return "token"

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def run_config(tmp_path) -> RunConfig:
    return RunConfig(
        audit=AuditConfig(high_cost_licenses=("SPE_E5", "VISIOCLIENT", "POWER_BI_PRO")),
        output_dir=str(tmp_path),
    )


@pytest.fixture()
def example_graph() -> FakeGraph:
    return FakeGraph([
        graph_user("Alice", [E5_SKU], "2026-06-14T09:00:00Z"),      # 124 days
        graph_user("Bob", [VISIO_SKU], "2026-07-13T09:00:00Z"),     # 95 days
        graph_user("Charlie", [BI_SKU], None),
        graph_user("Dana", [ESSENTIALS_SKU], "2025-09-11T09:00:00Z"),
    ])


def _run(config, graph, auth):
    return asyncio.run(run_audit(
        config,
        authenticator=auth,
        transport=graph.transport(),
        now=NOW,
        run_date=RUN_DATE,
    ))


def test_report_written_for_example_tenant(run_config, example_graph, tmp_path, capsys):
    auth = FakeAuthenticator()

    outcome = _run(run_config, example_graph, auth)

    assert outcome is AuditOutcome.REPORT_WRITTEN
    assert outcome.exit_code == 0
    assert auth.closed
    report = tmp_path / "HighCostInactiveUsers_2026-10-16.csv"
    with open(report, newline="", encoding="utf-8") as fh:
        rows = list(csv.DictReader(fh))
    assert [(r["DisplayName"], r["InactiveForDays"], r["HighCostLicense"], r["LastSignIn"]) for r in rows] == [
        ("Alice", "124", "SPE_E5", "2026-06-14"),
        ("Bob", "95", "VISIOCLIENT", "2026-07-13"),
        ("Charlie", "N/A", "POWER_BI_PRO", "Never"),
    ]
    out = capsys.readouterr().out
    assert "Analyzing 4 accounts" in out
    assert "Candidates: 3" in out


def test_no_candidates_is_success_without_file(run_config, tmp_path, capsys):
    auth = FakeAuthenticator()

    outcome = _run(run_config, FakeGraph([]), auth)

    assert outcome is AuditOutcome.NO_CANDIDATES
    assert outcome.exit_code == 0
    assert list(tmp_path.iterdir()) == []
    assert auth.closed
    assert "No inactive accounts" in capsys.readouterr().out


def test_auth_failure_stops_before_fetch(run_config, example_graph, tmp_path):
    auth = FakeAuthenticator(fail=True)

    outcome = _run(run_config, example_graph, auth)

    assert outcome is AuditOutcome.AUTH_FAILED
    assert outcome.exit_code == 1
    assert example_graph.requests == []
    assert list(tmp_path.iterdir()) == []
    assert auth.closed


def test_permission_denied_fetch(run_config, tmp_path, capsys):
    auth = FakeAuthenticator()

    outcome = _run(run_config, FakeGraph([], users_status=403), auth)

    assert outcome is AuditOutcome.FETCH_FAILED
    assert outcome.exit_code == 1
    assert list(tmp_path.iterdir()) == []
    assert auth.closed
    assert "Permission denied" in capsys.readouterr().out


def test_transient_fetch_failure_message(run_config, capsys):
    outcome = _run(run_config, FakeGraph([], users_status=503), FakeAuthenticator())
    assert outcome is AuditOutcome.FETCH_FAILED
    out = capsys.readouterr().out
    assert "Fetch failed" in out
    assert "retry later" in out


def test_unwritable_report_fails_and_closes_session(example_graph, tmp_path, capsys):
    config = RunConfig(output_dir=str(tmp_path / "missing" / "dir"))
    auth = FakeAuthenticator()

    outcome = _run(config, example_graph, auth)

    assert outcome is AuditOutcome.WRITE_FAILED
    assert outcome.exit_code == 1
    assert auth.closed
    out = capsys.readouterr().out
    assert "no report was saved" in out
    assert "UserPrincipalName" not in out
    assert "AUDIT COMPLETE" not in out


def test_main_lists_permissions(capsys):
    assert cli.main(["--list-permissions"]) == 0
    assert "AuditLog.Read.All" in capsys.readouterr().out


def test_main_exits_on_missing_dependency(monkeypatch, capsys):
    monkeypatch.setattr(cli, "check_dependencies", lambda: DependencyCheck(missing=["msal"]))
    called = []
    monkeypatch.setattr(cli, "run_audit", lambda *a, **k: called.append(a))

    assert cli.main(["--tenant-id", "t", "--client-id", "c"]) == 1
    assert called == []
    assert "pip install msal" in capsys.readouterr().out


def test_main_config_error_is_usage_error(monkeypatch):
    monkeypatch.delenv("M365_TENANT_ID", raising=False)
    monkeypatch.delenv("M365_CLIENT_ID", raising=False)
    assert cli.main([]) == 2


def test_main_returns_outcome_exit_code(monkeypatch, tmp_path):
    seen = {}

    async def fake_run_audit(config):
        seen["config"] = config
        return AuditOutcome.NO_CANDIDATES

    monkeypatch.setattr(cli, "run_audit", fake_run_audit)

    code = cli.main([
        "--tenant-id", "t", "--client-id", "c",
        "--threshold", "30", "--output-dir", str(tmp_path),
    ])

    assert code == 0
    assert seen["config"].audit.inactive_days_threshold == 30
    assert seen["config"].output_dir == str(tmp_path)


def test_identity_platform_unreachable_is_auth_failure(run_config, example_graph, monkeypatch, capsys):
    def offline(client_id, authority):
        raise requests.exceptions.ConnectionError("Name or service not known")

    monkeypatch.setattr(auth_mod.msal, "PublicClientApplication", offline)
    run_config.auth.delegated = DelegatedAuth("tenant-1", "client-1")

    outcome = asyncio.run(run_audit(
        run_config,
        transport=example_graph.transport(),
        now=NOW,
        run_date=RUN_DATE,
    ))

    assert outcome is AuditOutcome.AUTH_FAILED
    assert example_graph.requests == []
    assert "Authentication failed" in capsys.readouterr().out


def test_main_rejects_license_string_in_config(tmp_path, monkeypatch):
    monkeypatch.delenv("M365_TENANT_ID", raising=False)
    monkeypatch.delenv("M365_CLIENT_ID", raising=False)
    path = tmp_path / "audit.json"
    path.write_text(
        '{"auth": {"delegated": {"tenant_id": "t", "client_id": "c"}},'
        ' "audit": {"high_cost_licenses": "SPE_E5"}}'
    )
    assert cli.main(["--config", str(path)]) == 2
