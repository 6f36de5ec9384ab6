"""
Domain package for spendsync.

Exports the core domain models used across parsing, storage, and
reconciliation. Keep this package focused on data definitions and validation
concerns.
"""

from spendsync.domain.models import (
    UNKNOWN_MERCHANT,
    CaptureMethod,
    Category,
    ExtractedTransaction,
    ExtractionResult,
    IngestOutcome,
    Inserted,
    Origin,
    Rejected,
    RejectionReason,
    Skipped,
    TransactionRecord,
)

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
]
