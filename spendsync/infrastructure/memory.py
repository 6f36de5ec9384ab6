"""
In-memory adapters.

`InMemoryRecordStore` is the default local store (and the test double for the
PostgreSQL one). `InMemoryRemoteBackend` plays the remote store shared by
several devices; each device talks to it through its own
`InMemoryRemoteProvider` session, which is how own-write echoes are told
apart from changes made elsewhere.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Dict, List, Optional, Tuple

from spendsync.domain.models import TransactionRecord
from spendsync.errors import DuplicateRecordError, RecordNotFoundError, RemoteError
from spendsync.infrastructure.base import (
    AbstractRecordStore,
    ChangeKind,
    RemoteChange,
    RemoteListener,
    Unsubscribe,
    apply_update,
    newest_first,
    same_content,
)
from spendsync.utils.clock import utc_now
from spendsync.utils.logging import get_logger

log = get_logger(__name__)


def new_record_id() -> str:
    return uuid.uuid4().hex


def duplicate_key(record: TransactionRecord) -> Optional[str]:
    """The value an incoming record is deduplicated on (reference first, then text)."""
    return record.external_ref or record.raw_text


class InMemoryRecordStore(AbstractRecordStore):
    """
    Dict-backed record store.

    All mutations take `self._lock`, so concurrent coroutines see them applied
    one at a time.
    """

    def __init__(self, records: Optional[List[TransactionRecord]] = None) -> None:
        super().__init__()
        self._records: Dict[str, TransactionRecord] = {}
        self._lock = asyncio.Lock()
        for record in records or []:
            if record.id is None:
                raise ValueError("Seed records must carry an id")
            self._records[record.id] = record

    def _matches(self, value: str) -> bool:
        return any(
            record.external_ref == value or record.raw_text == value
            for record in self._records.values()
        )

    async def insert(self, record: TransactionRecord) -> str:
        if record.id is not None:
            raise ValueError("insert assigns ids; use put() for records that already have one")
        async with self._lock:
            key = duplicate_key(record)
            if key is not None and self._matches(key):
                raise DuplicateRecordError(key)
            record_id = new_record_id()
            while record_id in self._records:
                record_id = new_record_id()
            stored = record.model_copy(update={"id": record_id})
            self._records[record_id] = stored
            self._emit(ChangeKind.INSERT, record_id, stored)
        return record_id

    async def update(self, record_id: str, **fields: Any) -> TransactionRecord:
        async with self._lock:
            current = self._records.get(record_id)
            if current is None or current.is_deleted:
                raise RecordNotFoundError(record_id)
            updated = apply_update(current, fields)
            self._records[record_id] = updated
            self._emit(ChangeKind.UPDATE, record_id, updated)
        return updated

    async def delete(self, record_id: str) -> None:
        async with self._lock:
            current = self._records.get(record_id)
            if current is None or current.is_deleted:
                raise RecordNotFoundError(record_id)
            tombstone = current.model_copy(update={"deleted_at": utc_now()})
            self._records[record_id] = tombstone
            self._emit(ChangeKind.DELETE, record_id, tombstone)

    async def delete_all(self) -> int:
        async with self._lock:
            now = utc_now()
            live = [record for record in self._records.values() if not record.is_deleted]
            for record in live:
                self._records[record.id] = record.model_copy(update={"deleted_at": now})
            self._emit(ChangeKind.RESET, None)
        return len(live)

    async def put(self, record: TransactionRecord) -> None:
        if record.id is None:
            raise ValueError("put requires a record id")
        async with self._lock:
            self._records[record.id] = record
            self._emit(ChangeKind.PUT, record.id, record)

    async def put_if_unchanged(
        self, record: TransactionRecord, expected: Optional[TransactionRecord]
    ) -> bool:
        if record.id is None:
            raise ValueError("put requires a record id")
        async with self._lock:
            if not same_content(self._records.get(record.id), expected):
                return False
            self._records[record.id] = record
            self._emit(ChangeKind.PUT, record.id, record)
        return True

    async def get(
        self, record_id: str, include_deleted: bool = False
    ) -> Optional[TransactionRecord]:
        record = self._records.get(record_id)
        if record is None or (record.is_deleted and not include_deleted):
            return None
        return record

    async def query_all(self, include_deleted: bool = False) -> List[TransactionRecord]:
        return newest_first(
            [
                record
                for record in self._records.values()
                if include_deleted or not record.is_deleted
            ]
        )

    async def exists(self, value: str) -> bool:
        return self._matches(value)


class InMemoryRemoteBackend:
    """
    Shared remote record set.

    `online` simulates connectivity: while False every provider call raises
    `RemoteError`.
    """

    def __init__(self) -> None:
        self.records: Dict[str, TransactionRecord] = {}
        self.online = True
        self.put_calls = 0
        self._subscribers: Dict[int, Tuple[str, RemoteListener]] = {}
        self._next_token = 0

    def _check_online(self) -> None:
        if not self.online:
            raise RemoteError("remote store unreachable")

    def subscribe(self, session_id: str, listener: RemoteListener) -> Unsubscribe:
        token = self._next_token
        self._next_token += 1
        self._subscribers[token] = (session_id, listener)

        def unsubscribe() -> None:
            self._subscribers.pop(token, None)

        return unsubscribe

    async def write(self, session_id: str, record: TransactionRecord) -> None:
        self._check_online()
        self.records[record.id] = record
        self.put_calls += 1
        for subscriber_session, listener in list(self._subscribers.values()):
            change = RemoteChange(record=record, has_pending_writes=subscriber_session == session_id)
            try:
                await listener(change)
            except Exception:  # noqa: BLE001 - one subscriber must not break the writer
                log.exception("Remote subscriber failed", extra={"record_id": record.id})


class InMemoryRemoteProvider:
    """One session's view of an `InMemoryRemoteBackend`."""

    def __init__(
        self,
        backend: Optional[InMemoryRemoteBackend] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self.backend = backend or InMemoryRemoteBackend()
        self.session_id = session_id or uuid.uuid4().hex

    async def get(self, record_id: str) -> Optional[TransactionRecord]:
        self.backend._check_online()
        return self.backend.records.get(record_id)

    async def list(self) -> List[TransactionRecord]:
        self.backend._check_online()
        return [record for record in self.backend.records.values()]

    async def put(self, record: TransactionRecord) -> None:
        if record.id is None:
            raise ValueError("remote records need an id")
        await self.backend.write(self.session_id, record)

    async def subscribe(self, listener: RemoteListener) -> Unsubscribe:
        return self.backend.subscribe(self.session_id, listener)

    async def close(self) -> None:
        return None


__all__ = [
    "InMemoryRecordStore",
    "InMemoryRemoteBackend",
    "InMemoryRemoteProvider",
    "duplicate_key",
    "new_record_id",
]
