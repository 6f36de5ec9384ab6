"""
Rule tables for message extraction.

Every table is an explicitly ordered tuple; evaluation always walks it from
the first entry to the last and the first hit wins. Reordering entries
changes extraction results, so new rules go where their precedence belongs,
not at the end by default.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Pattern, Tuple

from spendsync.domain.models import Origin


@dataclass(frozen=True)
class PatternRule:
    """A named regex with its evaluation rank (lower runs first)."""

    name: str
    priority: int
    pattern: Pattern[str]


def _ordered(*specs: Tuple[str, str]) -> Tuple[PatternRule, ...]:
    return tuple(
        PatternRule(name=name, priority=rank, pattern=re.compile(regex, re.IGNORECASE))
        for rank, (name, regex) in enumerate(specs)
    )


# --- Vocabulary gates --------------------------------------------------------

TRANSACTION_KEYWORDS: Tuple[str, ...] = (
    "upi",
    "debited",
    "paid",
    "transferred",
    "sent to",
    "payment",
    "transaction",
    "gpay",
    "phonepe",
    "paytm",
    "bhim",
    "google pay",
)

FAILURE_KEYWORDS: Tuple[str, ...] = (
    "failed",
    "declined",
    "rejected",
    "unsuccessful",
    "not successful",
    "could not",
    "unable to",
    "reversed",
)

OTP_KEYWORDS: Tuple[str, ...] = (
    "otp",
    "one time password",
    "verification code",
    "verify",
    "do not share",
)

PROMOTIONAL_KEYWORDS: Tuple[str, ...] = (
    "offer",
    "discount",
    "cashback",
    "congratulations",
    "winner",
    "claim",
    "subscribe",
    "unsubscribe",
)

# A promotional message carrying one of these is still a real payment.
CORE_DEBIT_KEYWORDS: Tuple[str, ...] = ("debited", "paid")


# --- Amount ------------------------------------------------------------------

# Currency marker not glued to a preceding letter ("hours 12" is not "rs 12").
_CUR = r"(?<![a-z])(?:rs\.?|inr|₹)"
# Digits with optional Western or Indian grouping, up to two decimals.
_NUM = r"(\d+(?:,\d+)*(?:\.\d{1,2})?)"

AMOUNT_RULES: Tuple[PatternRule, ...] = _ordered(
    ("debited-after-amount", rf"{_CUR}\s*{_NUM}\s*(?:has\s+been\s+|is\s+|was\s+)?debited"),
    ("debited-by-amount", rf"debited\s+(?:by|with|for)\s+{_CUR}\s*{_NUM}"),
    ("paid-amount", rf"paid\s+{_CUR}\s*{_NUM}"),
    ("amount-then-sent", rf"{_CUR}\s*{_NUM}\s+(?:transferred|sent|paid)"),
    ("amount-label", rf"amount\s*(?:of\s*)?:?\s*(?:{_CUR})?\s*{_NUM}"),
    ("currency-code", rf"(?<![a-z])(?:inr|₹)\s*{_NUM}"),
    ("rupee-symbol", rf"(?<![a-z])rs\.?\s*{_NUM}"),
    ("trailing-code", rf"{_NUM}\s*(?:inr|rupees)\b"),
)


# --- Merchant ----------------------------------------------------------------

_NAME = r"([a-z0-9@._&'\- ]+?)"
_NAME_END = (
    r"(?=\s+(?:via|on|for|ref|upi|using|from|at|with|dated|avl|bal)\b"
    r"|\s*[.,;:(](?:\s|$)"
    r"|\s*$)"
)

MERCHANT_RULES: Tuple[PatternRule, ...] = _ordered(
    ("vpa", r"\bvpa\s*:?\s*([a-z0-9._\-]+@[a-z0-9._\-]*[a-z0-9])"),
    ("paid-to", rf"\bpaid\s+to\s+{_NAME}{_NAME_END}"),
    ("transferred-to", rf"\btransferred\s+to\s+{_NAME}{_NAME_END}"),
    ("sent-to", rf"\bsent\s+to\s+{_NAME}{_NAME_END}"),
    ("made-to", rf"\bmade\s+to\s+{_NAME}{_NAME_END}"),
    ("in-favour-of", rf"\bin\s+favou?r\s+of\s+{_NAME}{_NAME_END}"),
    ("to", rf"\bto\s+{_NAME}{_NAME_END}"),
)

MERCHANT_DISALLOWED = re.compile(r"[^A-Za-z0-9@._\- ]")
MERCHANT_MIN_LENGTH = 2
MERCHANT_MAX_LENGTH = 100


# --- Origin ------------------------------------------------------------------

# Named apps first, generic bank tokens last.
ORIGIN_KEYWORDS: Tuple[Tuple[Origin, Tuple[str, ...]], ...] = (
    (Origin.GPAY, ("google pay", "gpay", "g pay")),
    (Origin.PHONEPE, ("phonepe", "phone pe")),
    (Origin.PAYTM, ("paytm",)),
    (Origin.BHIM, ("bhim",)),
    (Origin.BANK, ("bank", "sbi", "hdfc", "icici", "axis", "kotak", "pnb")),
)

# "name@psp" handles name the payee's PSP, not the payer's rail.
VPA_HANDLE = re.compile(r"[a-z0-9._\-]+@[a-z0-9._\-]*[a-z0-9]", re.IGNORECASE)


# --- Reference ---------------------------------------------------------------

REFERENCE_RULES: Tuple[PatternRule, ...] = _ordered(
    (
        "labelled",
        r"\b(?:upi\s*ref(?:erence)?|reference|ref|utr|rrn|txn)(?![a-z])"
        r"\s*(?:no|number|id)?\.?\s*[:#\-]?\s*"
        r"([a-z0-9]*\d[a-z0-9]*)",
    ),
    ("bare-12-digit", r"(?<!\d)(\d{12})(?!\d)"),
)


# --- Date --------------------------------------------------------------------

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

# Groups are always (day, month, year); day-first is the issuer convention.
DATE_RULES: Tuple[PatternRule, ...] = _ordered(
    ("iso", r"\b(?P<year>\d{4})-(?P<month>\d{1,2})-(?P<day>\d{1,2})\b"),
    ("numeric", r"\b(?P<day>\d{1,2})[/\-](?P<month>\d{1,2})[/\-](?P<year>\d{4}|\d{2})\b"),
    (
        "month-name",
        r"\b(?P<day>\d{1,2})(?:st|nd|rd|th)?[\s\-/]*"
        r"(?P<month>jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*"
        r"[\s\-/,']*(?P<year>\d{4}|\d{2})\b",
    ),
)


__all__ = [
    "AMOUNT_RULES",
    "CORE_DEBIT_KEYWORDS",
    "DATE_RULES",
    "FAILURE_KEYWORDS",
    "MERCHANT_DISALLOWED",
    "MERCHANT_MAX_LENGTH",
    "MERCHANT_MIN_LENGTH",
    "MERCHANT_RULES",
    "MONTHS",
    "ORIGIN_KEYWORDS",
    "OTP_KEYWORDS",
    "PROMOTIONAL_KEYWORDS",
    "PatternRule",
    "REFERENCE_RULES",
    "TRANSACTION_KEYWORDS",
    "VPA_HANDLE",
]
