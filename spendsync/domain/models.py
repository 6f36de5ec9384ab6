"""
Domain models for spendsync.

Defines the canonical transaction record shared by the extractor, the stores,
and the reconciler, plus the closed vocabularies (category, origin, capture
method) and the typed results returned by extraction and ingestion.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, field_validator

UNKNOWN_MERCHANT = "Unknown Merchant"

_CENTS = Decimal("0.01")


class Category(str, Enum):
    FOOD = "Food"
    SHOPPING = "Shopping"
    BILLS = "Bills"
    TRAVEL = "Travel"
    GROCERIES = "Groceries"
    RECHARGE = "Recharge"
    ENTERTAINMENT = "Entertainment"
    HEALTHCARE = "Healthcare"
    OTHERS = "Others"


class Origin(str, Enum):
    """Payment rail or app used to make the payment."""

    GPAY = "GPay"
    PHONEPE = "PhonePe"
    PAYTM = "Paytm"
    BHIM = "BHIM"
    BANK = "Bank"
    MANUAL = "Manual"
    UNKNOWN = "Unknown"


class CaptureMethod(str, Enum):
    """How a record entered the system (not how it was paid)."""

    MESSAGE = "message-capture"
    MANUAL = "manual-entry"


class RejectionReason(str, Enum):
    NOT_A_TRANSACTION = "not-a-transaction"
    FAILED_TRANSACTION = "failed-transaction"
    NO_AMOUNT = "no-amount"
    OTP = "otp"
    PROMOTIONAL = "promotional"
    DUPLICATE = "duplicate"


def to_utc(value: datetime) -> datetime:
    """Return `value` as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def quantize_amount(value: Decimal) -> Decimal:
    return value.quantize(_CENTS)


class TransactionRecord(BaseModel):
    """
    A single financial transaction, as persisted locally and remotely.

    `id` is None only before the owning store has accepted the record.
    `created_at` is the sole tiebreaker when the same id differs between
    stores; `deleted_at` marks a tombstone.
    """

    id: Optional[str] = Field(None, description="Store-assigned identifier.")
    amount: Decimal = Field(..., gt=0, description="Positive amount, two decimal places.")
    merchant: str = Field(UNKNOWN_MERCHANT, description="Payee display name or VPA.")
    category: Optional[Category] = Field(None, description="Assigned by the classifier.")
    occurred_at: datetime = Field(..., description="When the payment happened (UTC).")
    origin: Origin = Field(Origin.UNKNOWN, description="Payment rail/app.")
    capture_method: CaptureMethod = Field(CaptureMethod.MESSAGE)
    external_ref: Optional[str] = Field(None, description="Issuer reference / UTR.")
    raw_text: Optional[str] = Field(None, description="Original message body.")
    created_at: datetime = Field(..., description="Record creation time (UTC).")
    synced_at: Optional[datetime] = Field(None, description="Last confirmed remote write.")
    deleted_at: Optional[datetime] = Field(None, description="Tombstone time, if deleted.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }

    @field_validator("amount")
    @classmethod
    def _two_places(cls, value: Decimal) -> Decimal:
        quantized = quantize_amount(value)
        if quantized <= 0:
            raise ValueError("amount must be at least 0.01")
        return quantized

    @field_validator("merchant")
    @classmethod
    def _merchant_not_blank(cls, value: str) -> str:
        value = value.strip()
        return value or UNKNOWN_MERCHANT

    @field_validator("occurred_at", "created_at", "synced_at", "deleted_at")
    @classmethod
    def _aware_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        return to_utc(value)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def content(self) -> Dict[str, Any]:
        """Field values that identify the record's state, excluding sync bookkeeping."""
        return self.model_dump(exclude={"synced_at"})


class ExtractedTransaction(BaseModel):
    """Candidate produced by the extractor, before classification and storage."""

    amount: Decimal = Field(..., gt=0)
    merchant: str = UNKNOWN_MERCHANT
    occurred_at: datetime
    origin: Origin = Origin.UNKNOWN
    external_ref: Optional[str] = None
    raw_text: str
    date_detected: bool = False

    model_config = {"frozen": True}

    @field_validator("amount")
    @classmethod
    def _two_places(cls, value: Decimal) -> Decimal:
        return quantize_amount(value)


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason


@dataclass(frozen=True)
class Inserted:
    id: str


@dataclass(frozen=True)
class Skipped:
    reason: RejectionReason


ExtractionResult = Union[ExtractedTransaction, Rejected]
IngestOutcome = Union[Inserted, Skipped]


__all__ = [
    "UNKNOWN_MERCHANT",
    "CaptureMethod",
    "Category",
    "ExtractedTransaction",
    "ExtractionResult",
    "IngestOutcome",
    "Inserted",
    "Origin",
    "Rejected",
    "RejectionReason",
    "Skipped",
    "TransactionRecord",
    "quantize_amount",
    "to_utc",
]
