from __future__ import annotations

import csv
import io
from datetime import date, datetime, timezone
from decimal import Decimal

from spendsync.domain.models import Category
from spendsync.export import (
    CSV_HEADER,
    default_filename,
    export_csv,
    format_currency,
    format_date,
    monthly_filename,
    text_summary,
    to_csv,
)


def test_format_currency_uses_rupee_and_grouping() -> None:
    assert format_currency(Decimal("12345.5")) == "₹12,345.50"
    assert format_currency(Decimal("0.00")) == "₹0.00"


def test_format_date() -> None:
    assert format_date(datetime(2024, 11, 5, 8, 0, tzinfo=timezone.utc)) == "5 Nov 2024"


def test_filenames() -> None:
    assert default_filename(date(2024, 11, 15)) == "upi_spends_15-11-2024.csv"
    assert monthly_filename("2024-11") == "upi_spends_2024_11.csv"


def test_csv_rows_parse_back(record_factory) -> None:
    records = [
        record_factory(
            id="a",
            amount="450",
            merchant="zomato@paytm",
            external_ref="433847362847",
            raw_text='Rs 450 debited, "quoted", to zomato',
        ),
        record_factory(id="b", merchant="Kirana", category=None),
    ]

    rows = list(csv.reader(io.StringIO(to_csv(records))))

    assert rows[0] == CSV_HEADER
    assert rows[1] == [
        "10 Nov 2024",
        "450.00",
        "zomato@paytm",
        Category.FOOD.value,
        "Bank",
        "433847362847",
        'Rs 450 debited, "quoted", to zomato',
    ]
    assert rows[2][3] == ""
    assert rows[2][5] == ""
    assert len(rows) == 3


def test_export_csv_writes_file(tmp_path, record_factory) -> None:
    path = tmp_path / "exports" / monthly_filename("2024-11")

    count = export_csv([record_factory(id="a")], path)

    assert count == 1
    assert path.read_text(encoding="utf-8").splitlines()[0] == ",".join(CSV_HEADER)


def test_text_summary(record_factory) -> None:
    records = [
        record_factory(id=str(i), amount="1000", merchant=f"Shop {i}") for i in range(12)
    ]

    summary = text_summary(records, "2024-11")
    lines = summary.splitlines()

    assert lines[0] == "UPI Spend Tracker - 2024-11"
    assert "Total Transactions: 12" in lines
    assert "Total Spending: ₹12,000.00" in lines
    assert "10 Nov 2024 | ₹1,000.00 | Shop 0" in lines
    assert not any("Shop 10" in line for line in lines)
