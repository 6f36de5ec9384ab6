"""
Message extractor: turns one raw notification string into a candidate
transaction or a typed rejection.

The pipeline is a sequence of hard gates evaluated in order:

1. relevance  -> `not-a-transaction`
2. failure    -> `failed-transaction` (wins over a parseable amount, since
                 failure notices restate the attempted amount)
3. amount     -> `no-amount`
4. merchant   (sentinel when unrecoverable, never a rejection)
5. origin     (default Unknown)
6. reference  (optional)
7. date       (falls back to capture time)

Everything here is a pure function of the input text and the rule tables in
`spendsync.parsing.rules`; nothing raises for bad input.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Tuple

from spendsync.domain.models import (
    UNKNOWN_MERCHANT,
    ExtractedTransaction,
    ExtractionResult,
    Origin,
    Rejected,
    RejectionReason,
    to_utc,
)
from spendsync.parsing.rules import (
    AMOUNT_RULES,
    CORE_DEBIT_KEYWORDS,
    DATE_RULES,
    FAILURE_KEYWORDS,
    MERCHANT_DISALLOWED,
    MERCHANT_MAX_LENGTH,
    MERCHANT_MIN_LENGTH,
    MERCHANT_RULES,
    MONTHS,
    ORIGIN_KEYWORDS,
    OTP_KEYWORDS,
    PROMOTIONAL_KEYWORDS,
    REFERENCE_RULES,
    TRANSACTION_KEYWORDS,
    VPA_HANDLE,
)
from spendsync.utils.clock import utc_now


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in keywords)


def is_transaction_message(text: str) -> bool:
    return _contains_any(text, TRANSACTION_KEYWORDS)


def is_failed_transaction(text: str) -> bool:
    return _contains_any(text, FAILURE_KEYWORDS)


def is_otp_message(text: str) -> bool:
    return _contains_any(text, OTP_KEYWORDS)


def is_promotional_message(text: str) -> bool:
    """
    Promotional vocabulary without a genuine debit.

    "Rs 200 debited ... you earned cashback" is a payment; "You won Rs 10,000
    cashback" is not.
    """
    return _contains_any(text, PROMOTIONAL_KEYWORDS) and not _contains_any(
        text, CORE_DEBIT_KEYWORDS
    )


def parse_amount(numeral: str) -> Optional[Decimal]:
    """Parse a matched numeral, dropping grouping commas; None unless positive."""
    try:
        value = Decimal(numeral.replace(",", ""))
    except InvalidOperation:
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


def extract_amount(text: str) -> Optional[Decimal]:
    """Return the amount from the first rule that yields a positive number."""
    for rule in AMOUNT_RULES:
        match = rule.pattern.search(text)
        if match is None:
            continue
        amount = parse_amount(match.group(1))
        if amount is not None:
            return amount
    return None


def sanitize_merchant(candidate: str) -> str:
    cleaned = MERCHANT_DISALLOWED.sub("", candidate)
    # Sentence punctuation, not part of the name.
    return " ".join(cleaned.split()).rstrip("._-")


def extract_merchant(text: str) -> str:
    """Return the first well-formed payee, or the unknown-merchant sentinel."""
    for rule in MERCHANT_RULES:
        match = rule.pattern.search(text)
        if match is None:
            continue
        merchant = sanitize_merchant(match.group(1))
        if MERCHANT_MIN_LENGTH <= len(merchant) <= MERCHANT_MAX_LENGTH:
            return merchant
    return UNKNOWN_MERCHANT


def extract_origin(text: str) -> Origin:
    scrubbed = VPA_HANDLE.sub(" ", text).lower()
    for origin, keywords in ORIGIN_KEYWORDS:
        for keyword in keywords:
            if re.search(rf"\b{re.escape(keyword)}", scrubbed):
                return origin
    return Origin.UNKNOWN


def extract_reference(text: str) -> Optional[str]:
    for rule in REFERENCE_RULES:
        match = rule.pattern.search(text)
        if match is not None:
            return match.group(1).strip()
    return None


def _date_from_match(groups: dict) -> Optional[date]:
    try:
        day = int(groups["day"])
        month_token = groups["month"].lower()
        month = MONTHS[month_token[:3]] if month_token[:1].isalpha() else int(month_token)
        year = int(groups["year"])
    except (KeyError, ValueError):
        return None
    if year < 100:
        year += 2000
    try:
        return date(year, month, day)
    except ValueError:
        return None


def extract_date(
    text: str, captured_at: datetime, parse_dates: bool = True
) -> Tuple[datetime, bool]:
    """
    Locate a date in `text`.

    Returns `(occurred_at, detected)`. When a date is found and parsing is
    enabled, it is combined with the capture time-of-day; impossible dates and
    dates after the capture day fall back to `captured_at`.
    """
    captured_at = to_utc(captured_at)
    for rule in DATE_RULES:
        match = rule.pattern.search(text)
        if match is None:
            continue
        if not parse_dates:
            return captured_at, True
        parsed = _date_from_match(match.groupdict())
        if parsed is None or parsed > captured_at.date():
            continue
        return datetime.combine(parsed, captured_at.timetz()), True
    return captured_at, False


def extract(
    raw_text: str,
    *,
    captured_at: Optional[datetime] = None,
    parse_dates: bool = True,
) -> ExtractionResult:
    """
    Turn one raw message into an `ExtractedTransaction` or a `Rejected`.

    Parameters
    ----------
    raw_text : str
        Message body exactly as received.
    captured_at : datetime, optional
        When the message was captured; defaults to now (UTC).
    parse_dates : bool
        Parse embedded dates (default) or only detect their presence.
    """
    if not is_transaction_message(raw_text):
        return Rejected(RejectionReason.NOT_A_TRANSACTION)
    if is_failed_transaction(raw_text):
        return Rejected(RejectionReason.FAILED_TRANSACTION)

    amount = extract_amount(raw_text)
    if amount is None:
        return Rejected(RejectionReason.NO_AMOUNT)

    occurred_at, detected = extract_date(
        raw_text, captured_at or utc_now(), parse_dates=parse_dates
    )
    return ExtractedTransaction(
        amount=amount,
        merchant=extract_merchant(raw_text),
        occurred_at=occurred_at,
        origin=extract_origin(raw_text),
        external_ref=extract_reference(raw_text),
        raw_text=raw_text,
        date_detected=detected,
    )


def extract_many(
    messages: Iterable[str], *, captured_at: Optional[datetime] = None
) -> List[ExtractedTransaction]:
    """Extract every message, keeping only the accepted candidates."""
    results: List[ExtractedTransaction] = []
    for message in messages:
        result = extract(message, captured_at=captured_at)
        if isinstance(result, ExtractedTransaction):
            results.append(result)
    return results


__all__ = [
    "extract",
    "extract_amount",
    "extract_date",
    "extract_many",
    "extract_merchant",
    "extract_origin",
    "extract_reference",
    "is_failed_transaction",
    "is_otp_message",
    "is_promotional_message",
    "is_transaction_message",
    "parse_amount",
    "sanitize_merchant",
]
