"""
CSV export and plain-text summaries of transaction records.
"""

from __future__ import annotations

import csv
import io
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterable, List, Optional, TextIO

from spendsync.analytics import total_spent
from spendsync.domain.models import TransactionRecord
from spendsync.utils.logging import get_logger

log = get_logger(__name__)

CSV_HEADER = ["Date", "Amount", "Merchant", "Category", "Source", "UPI Ref", "Raw Message"]


def format_currency(amount: Decimal) -> str:
    """`Decimal("12345.5")` -> `"₹12,345.50"`."""
    return f"₹{amount:,.2f}"


def format_date(value: datetime) -> str:
    """`15 Nov 2024` style date."""
    return f"{value.day} {value.strftime('%b %Y')}"


def default_filename(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"upi_spends_{today.strftime('%d-%m-%Y')}.csv"


def monthly_filename(month: str) -> str:
    return f"upi_spends_{month.replace('-', '_')}.csv"


def _row(record: TransactionRecord) -> List[str]:
    return [
        format_date(record.occurred_at),
        f"{record.amount:.2f}",
        record.merchant,
        record.category.value if record.category else "",
        record.origin.value,
        record.external_ref or "",
        record.raw_text or "",
    ]


def write_csv(records: Iterable[TransactionRecord], stream: TextIO) -> int:
    """Write a header plus one row per record; returns the number of rows."""
    writer = csv.writer(stream)
    writer.writerow(CSV_HEADER)
    count = 0
    for record in records:
        writer.writerow(_row(record))
        count += 1
    return count


def to_csv(records: Iterable[TransactionRecord]) -> str:
    buffer = io.StringIO()
    write_csv(records, buffer)
    return buffer.getvalue()


def export_csv(records: Iterable[TransactionRecord], path: Path) -> int:
    """Export to `path`, creating parent directories as needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        count = write_csv(records, handle)
    log.info("CSV export written", extra={"path": str(path), "rows": count})
    return count


def text_summary(records: List[TransactionRecord], month: str, recent: int = 10) -> str:
    lines = [
        f"UPI Spend Tracker - {month}",
        "=" * 40,
        "",
        f"Total Transactions: {len(records)}",
        f"Total Spending: {format_currency(total_spent(records))}",
        "",
        "Recent Transactions:",
        "-" * 40,
    ]
    for record in records[:recent]:
        lines.append(
            f"{format_date(record.occurred_at)} | {format_currency(record.amount)} | {record.merchant}"
        )
    return "\n".join(lines) + "\n"


__all__ = [
    "CSV_HEADER",
    "default_filename",
    "export_csv",
    "format_currency",
    "format_date",
    "monthly_filename",
    "text_summary",
    "to_csv",
    "write_csv",
]
