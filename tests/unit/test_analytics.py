from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from spendsync import analytics
from spendsync.analytics import RecordFilter
from spendsync.domain.models import Category, Origin


def _at(day: int, month: int = 11) -> datetime:
    return datetime(2024, month, day, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def records(record_factory):
    return [
        record_factory(id="1", amount="300", merchant="Swiggy", occurred_at=_at(1)),
        record_factory(id="2", amount="200", merchant="Swiggy", occurred_at=_at(1)),
        record_factory(
            id="3",
            amount="400",
            merchant="Amazon",
            category=Category.SHOPPING,
            origin=Origin.GPAY,
            occurred_at=_at(3),
            external_ref="433847362847",
        ),
        record_factory(id="4", amount="100", merchant="Kirana", category=None, occurred_at=_at(5)),
        record_factory(id="5", amount="999", merchant="IRCTC", occurred_at=_at(28, month=10)),
    ]


def test_monthly_stats(records) -> None:
    stats = analytics.monthly_stats(records, "2024-11")

    assert stats["count"] == 4
    assert stats["total"] == Decimal("1000.00")
    assert stats["average"] == Decimal("250.00")


def test_monthly_stats_for_empty_month(records) -> None:
    stats = analytics.monthly_stats(records, "2023-01")
    assert (stats["count"], stats["total"], stats["average"]) == (0, Decimal("0"), Decimal("0"))


def test_category_spending_is_sorted_and_sums_to_total(records) -> None:
    november = analytics.in_month(records, "2024-11")

    breakdown = analytics.category_spending(november)

    assert [item["category"] for item in breakdown] == [
        Category.FOOD,
        Category.SHOPPING,
        Category.OTHERS,
    ]
    assert breakdown[0]["amount"] == Decimal("500.00")
    assert breakdown[0]["count"] == 2
    assert breakdown[0]["percentage"] == pytest.approx(50.0)
    assert sum(item["percentage"] for item in breakdown) == pytest.approx(100.0)


def test_category_spending_of_nothing() -> None:
    assert analytics.category_spending([]) == []


def test_daily_spending_is_ascending(records) -> None:
    daily = analytics.daily_spending(records)

    assert [d["date"] for d in daily] == ["2024-10-28", "2024-11-01", "2024-11-03", "2024-11-05"]
    assert daily[1]["amount"] == Decimal("500.00")


def test_top_merchants(records) -> None:
    top = analytics.top_merchants(records, limit=2)

    assert [m["merchant"] for m in top] == ["IRCTC", "Swiggy"]
    assert top[1]["transaction_count"] == 2
    assert top[1]["total_amount"] == Decimal("500.00")


def test_search_matches_merchant_and_reference(records) -> None:
    assert {r.id for r in analytics.search(records, "SWIG")} == {"1", "2"}
    assert [r.id for r in analytics.search(records, "3847362")] == ["3"]
    assert analytics.search(records, "nothing") == []


def test_filter_records(records) -> None:
    food = analytics.filter_records(records, RecordFilter(category=Category.FOOD))
    assert {r.id for r in food} == {"1", "2", "5"}

    window = analytics.filter_records(records, RecordFilter(start=_at(2), end=_at(5)))
    assert [r.id for r in window] == ["4", "3"]

    pricey = analytics.filter_records(
        records, RecordFilter(min_amount=Decimal("300"), origin=Origin.BANK)
    )
    assert {r.id for r in pricey} == {"1", "5"}

    capped = analytics.filter_records(records, RecordFilter(max_amount=Decimal("150")))
    assert [r.id for r in capped] == ["4"]
