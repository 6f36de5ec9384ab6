"""
Ingestion coordinator: raw message in, stored and classified record out.

Steps for each message, in order:

1. OTP vocabulary                       -> Skipped(otp)
2. promotional vocabulary, no debit     -> Skipped(promotional)
3. reference (or exact text) seen       -> Skipped(duplicate)
4. extractor rejection                  -> Skipped(<reason>)
5. classify merchant, insert into the local store -> Inserted(id)
6. enqueue a background upload (best effort)

Store failures propagate as `StoreError`; upload failures never reach the
ingest result.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, TypedDict, Union

from spendsync.config import get_settings
from spendsync.domain.models import (
    CaptureMethod,
    Category,
    IngestOutcome,
    Inserted,
    Origin,
    Rejected,
    RejectionReason,
    Skipped,
    TransactionRecord,
)
from spendsync.errors import DuplicateRecordError, StoreError
from spendsync.infrastructure.base import RecordStore
from spendsync.parsing.classifier import KeywordClassifier
from spendsync.parsing.extractor import (
    extract,
    extract_reference,
    is_otp_message,
    is_promotional_message,
)
from spendsync.reconciler import Reconciler
from spendsync.utils.clock import MonotonicClock
from spendsync.utils.logging import get_logger

log = get_logger(__name__)


class IngestionStats(TypedDict):
    """Counts from `IngestionCoordinator.ingest_many`; `skipped` is keyed by reason value."""

    received: int
    inserted: int
    skipped: Dict[str, int]
    failed: int


class IngestionCoordinator:
    """
    Drives messages and manual entries into the local store.

    Parameters
    ----------
    store : RecordStore
        Local record store.
    reconciler : Reconciler, optional
        When given, every accepted change is queued for upload.
    classifier : KeywordClassifier, optional
        Defaults to a classifier with the built-in keyword table.
    clock : MonotonicClock, optional
        Source of `created_at` values.
    parse_dates : bool, optional
        Overrides the `PARSE_MESSAGE_DATES` setting.
    """

    def __init__(
        self,
        store: RecordStore,
        reconciler: Optional[Reconciler] = None,
        classifier: Optional[KeywordClassifier] = None,
        clock: Optional[MonotonicClock] = None,
        parse_dates: Optional[bool] = None,
    ) -> None:
        self.store = store
        self.reconciler = reconciler
        self.classifier = classifier or KeywordClassifier()
        self.clock = clock or MonotonicClock()
        self.parse_dates = (
            get_settings().parse_message_dates if parse_dates is None else parse_dates
        )

    async def start(self) -> int:
        """Prepare stored data for use; returns how many records were backfilled."""
        return await self.backfill_categories()

    def _skip(self, reason: RejectionReason) -> Skipped:
        log.debug("Message skipped", extra={"reason": reason.value})
        return Skipped(reason)

    def _schedule_upload(self, record: TransactionRecord) -> None:
        if self.reconciler is None:
            return
        try:
            self.reconciler.enqueue_upload(record)
        except Exception:  # noqa: BLE001 - uploads are best effort
            log.exception("Could not schedule upload", extra={"record_id": record.id})

    async def ingest(
        self, raw_text: str, *, captured_at: Optional[datetime] = None
    ) -> IngestOutcome:
        """
        Process one raw message.

        Raises
        ------
        StoreError
            If the local store fails; rejections are returned as `Skipped`.
        """
        if is_otp_message(raw_text):
            return self._skip(RejectionReason.OTP)
        if is_promotional_message(raw_text):
            return self._skip(RejectionReason.PROMOTIONAL)
        if await self.store.exists(extract_reference(raw_text) or raw_text):
            return self._skip(RejectionReason.DUPLICATE)

        result = extract(raw_text, captured_at=captured_at, parse_dates=self.parse_dates)
        if isinstance(result, Rejected):
            return self._skip(result.reason)

        record = TransactionRecord(
            amount=result.amount,
            merchant=result.merchant,
            category=self.classifier.classify(result.merchant),
            occurred_at=result.occurred_at,
            origin=result.origin,
            capture_method=CaptureMethod.MESSAGE,
            external_ref=result.external_ref,
            raw_text=raw_text,
            created_at=self.clock.now(),
        )
        try:
            record_id = await self.store.insert(record)
        except DuplicateRecordError:
            # Lost a race with a concurrent ingest of the same message.
            return self._skip(RejectionReason.DUPLICATE)

        log.info(
            "Transaction captured",
            extra={
                "record_id": record_id,
                "amount": str(record.amount),
                "category": record.category.value,
                "origin": record.origin.value,
            },
        )
        self._schedule_upload(record.model_copy(update={"id": record_id}))
        return Inserted(record_id)

    async def ingest_many(
        self, messages: Iterable[str], *, captured_at: Optional[datetime] = None
    ) -> IngestionStats:
        """Ingest messages one by one, counting outcomes; store failures are counted, not raised."""
        stats = IngestionStats(received=0, inserted=0, skipped={}, failed=0)
        for message in messages:
            stats["received"] += 1
            try:
                outcome = await self.ingest(message, captured_at=captured_at)
            except StoreError:
                log.exception("Ingest failed")
                stats["failed"] += 1
                continue
            if isinstance(outcome, Inserted):
                stats["inserted"] += 1
            else:
                key = outcome.reason.value
                stats["skipped"][key] = stats["skipped"].get(key, 0) + 1
        return stats

    async def add_manual(
        self,
        amount: Union[Decimal, str, float],
        merchant: str,
        *,
        category: Optional[Category] = None,
        occurred_at: Optional[datetime] = None,
    ) -> str:
        """Store a manually entered payment and return its id."""
        created_at = self.clock.now()
        record = TransactionRecord(
            amount=amount,
            merchant=merchant,
            category=category or self.classifier.classify(merchant),
            occurred_at=occurred_at or created_at,
            origin=Origin.MANUAL,
            capture_method=CaptureMethod.MANUAL,
            created_at=created_at,
        )
        record_id = await self.store.insert(record)
        self._schedule_upload(record.model_copy(update={"id": record_id}))
        return record_id

    async def update_record(self, record_id: str, **fields: Any) -> TransactionRecord:
        updated = await self.store.update(record_id, **fields)
        self._schedule_upload(updated)
        return updated

    async def delete_record(self, record_id: str) -> None:
        await self.store.delete(record_id)
        tombstone = await self.store.get(record_id, include_deleted=True)
        if tombstone is not None:
            self._schedule_upload(tombstone)

    async def reset(self) -> int:
        """Delete every live record; tombstones are queued for upload."""
        deleted = await self.store.delete_all()
        for record in await self.store.query_all(include_deleted=True):
            if record.is_deleted and (
                record.synced_at is None or record.synced_at <= record.deleted_at
            ):
                self._schedule_upload(record)
        log.info("Local records reset", extra={"deleted": deleted})
        return deleted

    async def backfill_categories(self) -> int:
        """Classify every live record that has no category yet."""
        updated = 0
        for record in await self.store.query_all():
            if record.category is not None:
                continue
            await self.update_record(
                record.id, category=self.classifier.classify(record.merchant)
            )
            updated += 1
        if updated:
            log.info("Backfilled categories", extra={"records": updated})
        return updated


__all__ = ["IngestionCoordinator", "IngestionStats"]
