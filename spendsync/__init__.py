"""
spendsync - payment notification capture with local-first sync.

This package turns free-text bank and payment-app notifications into
structured, deduplicated, categorized transaction records and keeps them
consistent between a local store and a remote store:

- Message extraction (amount, payee, rail, reference, date)
- Keyword categorization
- Ingestion with duplicate suppression
- Two-way reconciliation with tombstones and live updates
- Spending analytics and CSV export
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from spendsync.config import Settings, get_settings
from spendsync.coordinator import IngestionCoordinator, IngestionStats
from spendsync.domain.models import (
    Category,
    Inserted,
    Origin,
    Rejected,
    RejectionReason,
    Skipped,
    TransactionRecord,
)
from spendsync.parsing import classify, extract, suggest
from spendsync.reconciler import Reconciler, SyncResult, SyncStatus
from spendsync.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "Category",
    "Inserted",
    "Origin",
    "Rejected",
    "RejectionReason",
    "Skipped",
    "TransactionRecord",
    # Pipeline
    "IngestionCoordinator",
    "IngestionStats",
    "classify",
    "extract",
    "suggest",
    # Reconciliation
    "Reconciler",
    "SyncResult",
    "SyncStatus",
    # Logging
    "configure_logging",
    "get_logger",
]
