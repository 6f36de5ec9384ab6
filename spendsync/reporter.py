from __future__ import annotations

from typing import List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from spendsync.analytics import CategorySpending, MerchantSpending
from spendsync.coordinator import IngestionStats
from spendsync.domain.models import TransactionRecord
from spendsync.export import format_currency, format_date
from spendsync.reconciler import SyncResult, SyncStatus


def print_records(
    records: List[TransactionRecord],
    title: str = "Transactions",
    console: Optional[Console] = None,
) -> None:
    """
    Render records as a rich table, newest first as given.
    """
    console = console or Console()

    if not records:
        console.print("[yellow]No transactions to display.[/yellow]")
        return

    table = Table(title=title, box=box.ROUNDED, caption=f"{len(records)} record(s)")
    table.add_column("Date", style="cyan", no_wrap=True)
    table.add_column("Amount", justify="right", style="bold green")
    table.add_column("Merchant", style="magenta")
    table.add_column("Category", style="blue")
    table.add_column("Source", style="yellow")
    table.add_column("Ref", style="dim")
    table.add_column("Synced", justify="center")

    for record in records:
        table.add_row(
            format_date(record.occurred_at),
            format_currency(record.amount),
            record.merchant,
            record.category.value if record.category else "-",
            record.origin.value,
            record.external_ref or "",
            "✓" if record.synced_at else "",
        )

    console.print(table)


def print_category_breakdown(
    breakdown: List[CategorySpending],
    title: str = "Spending by Category",
    console: Optional[Console] = None,
) -> None:
    console = console or Console()

    if not breakdown:
        console.print("[yellow]No spending recorded.[/yellow]")
        return

    table = Table(title=title, box=box.ROUNDED, caption="Sorted by amount (descending)")
    table.add_column("Category", style="cyan", no_wrap=True)
    table.add_column("Amount", justify="right", style="bold green")
    table.add_column("Share %", justify="right", style="yellow")
    table.add_column("Count", justify="right", style="magenta")

    for item in breakdown:
        table.add_row(
            item["category"].value,
            format_currency(item["amount"]),
            f"{item['percentage']:.1f}",
            str(item["count"]),
        )

    console.print(table)


def print_top_merchants(
    merchants: List[MerchantSpending], console: Optional[Console] = None
) -> None:
    console = console or Console()
    if not merchants:
        return

    table = Table(title="Top Merchants", box=box.ROUNDED)
    table.add_column("Merchant", style="magenta")
    table.add_column("Total", justify="right", style="bold green")
    table.add_column("Payments", justify="right")
    for item in merchants:
        table.add_row(
            item["merchant"],
            format_currency(item["total_amount"]),
            str(item["transaction_count"]),
        )
    console.print(table)


def print_sync_result(
    result: SyncResult, status: SyncStatus, console: Optional[Console] = None
) -> None:
    """
    Render one sync pass plus the reconciler's status afterwards.
    """
    console = console or Console()

    if result["skipped"]:
        console.print("[yellow]Sync already in progress; skipped.[/yellow]")
        return

    table = Table(title="Sync Result", box=box.ROUNDED)
    table.add_column("Uploaded", justify="right", style="green")
    table.add_column("Downloaded", justify="right", style="cyan")
    table.add_column("Tombstones", justify="right", style="magenta")
    table.add_column("Duration (s)", justify="right", style="yellow")
    table.add_column("Error", style="red")
    table.add_row(
        str(result["uploaded"]),
        str(result["downloaded"]),
        str(result["tombstoned"]),
        f"{result['duration_seconds']:.3f}",
        result["error"] or "",
    )
    console.print(table)

    last = status.last_sync_time.isoformat() if status.last_sync_time else "never"
    console.print(f"[dim]Last successful sync: {last} | pending uploads: {status.pending_uploads}[/dim]")


def print_ingest_stats(stats: IngestionStats, console: Optional[Console] = None) -> None:
    console = console or Console()

    table = Table(title="Ingestion", box=box.ROUNDED)
    table.add_column("Outcome", style="cyan")
    table.add_column("Messages", justify="right", style="magenta")
    table.add_row("received", str(stats["received"]))
    table.add_row("inserted", str(stats["inserted"]))
    for reason, count in sorted(stats["skipped"].items()):
        table.add_row(f"skipped: {reason}", str(count))
    if stats["failed"]:
        table.add_row("[red]failed[/red]", str(stats["failed"]))
    console.print(table)
