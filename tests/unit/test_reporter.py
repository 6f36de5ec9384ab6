from __future__ import annotations

import pytest
from rich.console import Console
from typer.testing import CliRunner

from spendsync import analytics, config, reporter
from spendsync.main import app
from spendsync.reconciler import SyncResult, SyncStatus

runner = CliRunner()


@pytest.fixture
def memory_backends(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("REMOTE_BACKEND", "memory")
    config.get_settings.cache_clear()
    yield
    config.get_settings.cache_clear()


def _console() -> Console:
    return Console(record=True, width=160)


def test_print_records(record_factory) -> None:
    console = _console()
    reporter.print_records(
        [record_factory(id="a", amount="1234.5", external_ref="433847362847")], console=console
    )

    text = console.export_text()
    assert "₹1,234.50" in text
    assert "433847362847" in text
    assert "1 record(s)" in text


def test_print_records_empty() -> None:
    console = _console()
    reporter.print_records([], console=console)
    assert "No transactions" in console.export_text()


def test_print_category_breakdown(record_factory) -> None:
    console = _console()
    breakdown = analytics.category_spending([record_factory(id="a"), record_factory(id="b")])

    reporter.print_category_breakdown(breakdown, console=console)

    text = console.export_text()
    assert "Food" in text
    assert "100.0" in text


def test_print_sync_result() -> None:
    console = _console()
    result = SyncResult(
        uploaded=2, downloaded=1, tombstoned=0, skipped=False, error=None, duration_seconds=0.01
    )

    reporter.print_sync_result(result, SyncStatus(), console=console)

    text = console.export_text()
    assert "Sync Result" in text
    assert "never" in text


def test_print_sync_result_skipped() -> None:
    console = _console()
    result = SyncResult(
        uploaded=0, downloaded=0, tombstoned=0, skipped=True, error=None, duration_seconds=0.0
    )
    reporter.print_sync_result(result, SyncStatus(is_syncing=True), console=console)
    assert "skipped" in console.export_text()


def test_cli_suggest() -> None:
    result = runner.invoke(app, ["suggest", "Zomato"])
    assert result.exit_code == 0
    assert result.stdout.startswith("Food")


def test_cli_ingest_messages(memory_backends) -> None:
    result = runner.invoke(
        app,
        [
            "ingest",
            "--message",
            "Paid Rs.1200 to Amazon Pay via GPay",
            "--message",
            "Your OTP is 123456",
        ],
    )
    assert result.exit_code == 0
    assert "inserted" in result.stdout
    assert "skipped: otp" in result.stdout


def test_cli_info(memory_backends) -> None:
    result = runner.invoke(app, ["info"])
    assert result.exit_code == 0
    assert "store=" in result.stdout
