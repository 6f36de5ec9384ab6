from __future__ import annotations

import asyncio
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, List, Optional, Tuple

import typer

from spendsync import analytics, export, reporter
from spendsync.config import Settings, get_settings
from spendsync.coordinator import IngestionCoordinator
from spendsync.domain.models import Category
from spendsync.infrastructure import RecordStore, create_remote, create_store
from spendsync.parsing.classifier import suggest as suggest_categories
from spendsync.reconciler import Reconciler
from spendsync.utils.logging import configure_logging

app = typer.Typer(help="spendsync: capture payment notifications and keep them in sync.")


def _current_month() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m")


@asynccontextmanager
async def _session(
    settings: Settings,
) -> AsyncIterator[Tuple[RecordStore, Reconciler, IngestionCoordinator]]:
    """
    Open the configured store and remote, and close both on exit.
    """
    store = await create_store(settings)
    remote = await create_remote(settings)
    reconciler = Reconciler(store, remote)
    coordinator = IngestionCoordinator(store, reconciler=reconciler)
    try:
        await coordinator.start()
        yield store, reconciler, coordinator
    finally:
        await reconciler.close()
        await remote.close()
        await store.close()


def _setup() -> Settings:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    return settings


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"env={settings.app_env} | store={settings.store_backend} "
        f"(DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name}) | "
        f"remote={settings.remote_backend} account={settings.account_id} | "
        f"sync_interval={settings.sync_interval_seconds}s parse_dates={settings.parse_message_dates}"
    )


@app.command()
def ingest(
    source: Optional[Path] = typer.Argument(
        None, help="File with one message per line (reads stdin when omitted)."
    ),
    message: Optional[List[str]] = typer.Option(
        None, "--message", "-m", help="Message text; may be repeated."
    ),
    sync_after: bool = typer.Option(False, "--sync", help="Run a sync pass afterwards."),
) -> None:
    """
    Ingest raw notification messages into the local store.
    """
    settings = _setup()
    if message:
        messages = list(message)
    elif source is not None:
        messages = source.read_text(encoding="utf-8").splitlines()
    else:
        messages = sys.stdin.read().splitlines()
    messages = [text.strip() for text in messages if text.strip()]

    async def _run() -> None:
        async with _session(settings) as (_, reconciler, coordinator):
            stats = await coordinator.ingest_many(messages)
            await reconciler.drain()
            reporter.print_ingest_stats(stats)
            if sync_after:
                reporter.print_sync_result(await reconciler.sync(), reconciler.status)

    asyncio.run(_run())


@app.command()
def add(
    amount: str = typer.Argument(..., help="Amount, e.g. 249.50"),
    merchant: str = typer.Argument(..., help="Payee name."),
    category: Optional[Category] = typer.Option(None, "--category", "-c"),
) -> None:
    """
    Record a manual payment.
    """
    settings = _setup()

    async def _run() -> str:
        async with _session(settings) as (_, reconciler, coordinator):
            record_id = await coordinator.add_manual(amount, merchant, category=category)
            await reconciler.drain()
            return record_id

    typer.echo(asyncio.run(_run()))


@app.command()
def sync(
    live: bool = typer.Option(
        False, "--live", help="Keep running: periodic sync plus live remote updates."
    ),
) -> None:
    """
    Reconcile the local store with the remote store.
    """
    settings = _setup()

    async def _run() -> None:
        async with _session(settings) as (_, reconciler, _coordinator):
            if not live:
                reporter.print_sync_result(await reconciler.sync(), reconciler.status)
                return
            await reconciler.start_live_updates()
            await reconciler.run_periodic(settings.sync_interval_seconds)

    asyncio.run(_run())


@app.command("list")
def list_records(
    month: Optional[str] = typer.Option(None, "--month", help="YYYY-MM"),
    search: Optional[str] = typer.Option(None, "--search", "-s"),
    category: Optional[Category] = typer.Option(None, "--category", "-c"),
    limit: int = typer.Option(50, "--limit", "-n"),
) -> None:
    """
    List stored transactions, newest first.
    """
    settings = _setup()

    async def _run() -> None:
        async with _session(settings) as (store, _, _coordinator):
            records = await (store.query_by_month(month) if month else store.query_all())
            criteria = analytics.RecordFilter(category=category, search_term=search)
            reporter.print_records(analytics.filter_records(records, criteria)[:limit])

    asyncio.run(_run())


@app.command()
def summary(month: Optional[str] = typer.Option(None, "--month", help="YYYY-MM")) -> None:
    """
    Show the monthly total, category breakdown, and top merchants.
    """
    settings = _setup()
    month = month or _current_month()

    async def _run() -> None:
        async with _session(settings) as (store, _, _coordinator):
            records = await store.query_by_month(month)
            stats = analytics.monthly_stats(records, month)
            typer.echo(
                f"{month}: {stats['count']} payment(s), total {export.format_currency(stats['total'])}, "
                f"average {export.format_currency(stats['average'])}"
            )
            reporter.print_category_breakdown(analytics.category_spending(records))
            reporter.print_top_merchants(analytics.top_merchants(records))

    asyncio.run(_run())


@app.command()
def suggest(merchant: str = typer.Argument(..., help="Merchant text to classify.")) -> None:
    """
    Suggest up to three categories for a merchant.
    """
    typer.echo(", ".join(category.value for category in suggest_categories(merchant)))


@app.command("export")
def export_records(
    path: Optional[Path] = typer.Argument(None, help="Destination CSV file."),
    month: Optional[str] = typer.Option(None, "--month", help="YYYY-MM"),
    text: bool = typer.Option(False, "--text", help="Print a plain-text summary instead."),
) -> None:
    """
    Export transactions as CSV (or a text summary).
    """
    settings = _setup()

    async def _run() -> None:
        async with _session(settings) as (store, _, _coordinator):
            records = await (store.query_by_month(month) if month else store.query_all())
            if text:
                typer.echo(export.text_summary(records, month or _current_month()))
                return
            target = path or Path(
                export.monthly_filename(month) if month else export.default_filename()
            )
            count = export.export_csv(records, target)
            typer.echo(f"Wrote {count} row(s) to {target}")

    asyncio.run(_run())


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
