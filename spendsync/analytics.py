"""
Spending analytics over lists of transaction records.

All functions are pure: they take records already loaded from a store
(normally `store.query_all()` or `store.query_by_month(...)`) and never touch
I/O. Amounts stay `Decimal` throughout; percentages are floats.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, TypedDict

from pydantic import BaseModel, Field

from spendsync.domain.models import Category, Origin, TransactionRecord, to_utc
from spendsync.infrastructure.base import newest_first

_ZERO = Decimal("0.00")


class CategorySpending(TypedDict):
    category: Category
    amount: Decimal
    percentage: float
    count: int


class DailySpending(TypedDict):
    date: str  # YYYY-MM-DD
    amount: Decimal


class MerchantSpending(TypedDict):
    merchant: str
    total_amount: Decimal
    transaction_count: int


class MonthlyStats(TypedDict):
    month: str
    total: Decimal
    count: int
    average: Decimal


class RecordFilter(BaseModel):
    """Criteria for `filter_records`; unset fields do not constrain."""

    category: Optional[Category] = None
    origin: Optional[Origin] = None
    start: Optional[datetime] = Field(None, description="Inclusive lower bound on occurred_at.")
    end: Optional[datetime] = Field(None, description="Inclusive upper bound on occurred_at.")
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    search_term: Optional[str] = None


def month_key(record: TransactionRecord) -> str:
    return record.occurred_at.strftime("%Y-%m")


def in_month(records: Iterable[TransactionRecord], month: str) -> List[TransactionRecord]:
    return [record for record in records if month_key(record) == month]


def total_spent(records: Iterable[TransactionRecord]) -> Decimal:
    return sum((record.amount for record in records), _ZERO)


def category_spending(records: Iterable[TransactionRecord]) -> List[CategorySpending]:
    """
    Spending per category, largest first.

    Records without a category are counted under Others.
    """
    records = list(records)
    total = total_spent(records)
    amounts: Dict[Category, Decimal] = defaultdict(lambda: _ZERO)
    counts: Dict[Category, int] = defaultdict(int)
    for record in records:
        category = record.category or Category.OTHERS
        amounts[category] += record.amount
        counts[category] += 1

    breakdown = [
        CategorySpending(
            category=category,
            amount=amount,
            percentage=float(amount / total * 100) if total > 0 else 0.0,
            count=counts[category],
        )
        for category, amount in amounts.items()
    ]
    return sorted(breakdown, key=lambda item: item["amount"], reverse=True)


def daily_spending(records: Iterable[TransactionRecord]) -> List[DailySpending]:
    """Per-day totals in ascending date order."""
    per_day: Dict[str, Decimal] = defaultdict(lambda: _ZERO)
    for record in records:
        per_day[record.occurred_at.date().isoformat()] += record.amount
    return [DailySpending(date=day, amount=per_day[day]) for day in sorted(per_day)]


def top_merchants(
    records: Iterable[TransactionRecord], limit: int = 5
) -> List[MerchantSpending]:
    totals: Dict[str, Decimal] = defaultdict(lambda: _ZERO)
    counts: Dict[str, int] = defaultdict(int)
    for record in records:
        totals[record.merchant] += record.amount
        counts[record.merchant] += 1
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return [
        MerchantSpending(merchant=merchant, total_amount=amount, transaction_count=counts[merchant])
        for merchant, amount in ranked[:limit]
    ]


def monthly_stats(records: Iterable[TransactionRecord], month: str) -> MonthlyStats:
    selected = in_month(records, month)
    total = total_spent(selected)
    count = len(selected)
    average = (total / count).quantize(Decimal("0.01")) if count else _ZERO
    return MonthlyStats(month=month, total=total, count=count, average=average)


def search(records: Iterable[TransactionRecord], term: str) -> List[TransactionRecord]:
    """Case-insensitive match on merchant, reference, or message text."""
    needle = term.lower()
    return newest_first(
        [
            record
            for record in records
            if needle in record.merchant.lower()
            or needle in (record.external_ref or "").lower()
            or needle in (record.raw_text or "").lower()
        ]
    )


def filter_records(
    records: Iterable[TransactionRecord], criteria: RecordFilter
) -> List[TransactionRecord]:
    start = to_utc(criteria.start) if criteria.start else None
    end = to_utc(criteria.end) if criteria.end else None
    candidates = search(records, criteria.search_term) if criteria.search_term else records

    selected = []
    for record in candidates:
        if criteria.category is not None and record.category != criteria.category:
            continue
        if criteria.origin is not None and record.origin != criteria.origin:
            continue
        if start is not None and record.occurred_at < start:
            continue
        if end is not None and record.occurred_at > end:
            continue
        if criteria.min_amount is not None and record.amount < criteria.min_amount:
            continue
        if criteria.max_amount is not None and record.amount > criteria.max_amount:
            continue
        selected.append(record)
    return newest_first(selected)


__all__ = [
    "CategorySpending",
    "DailySpending",
    "MerchantSpending",
    "MonthlyStats",
    "RecordFilter",
    "category_spending",
    "daily_spending",
    "filter_records",
    "in_month",
    "month_key",
    "monthly_stats",
    "search",
    "top_merchants",
    "total_spent",
]
