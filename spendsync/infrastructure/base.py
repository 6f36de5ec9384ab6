"""
Contracts for the local record store and the remote record provider.

Concrete adapters (in-memory, PostgreSQL) implement the `RecordStore` and
`RemoteRecordProvider` protocols so the coordinator and reconciler never
depend on a storage engine directly. Shared plumbing (subscription registry,
validated partial updates) lives here too.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Optional,
    Protocol,
    TypeVar,
    runtime_checkable,
)

from spendsync.domain.models import TransactionRecord
from spendsync.errors import ImmutableFieldError
from spendsync.utils.logging import get_logger

log = get_logger(__name__)

Unsubscribe = Callable[[], None]

# Fields fixed at creation; deletion goes through `delete`, not `update`.
IMMUTABLE_FIELDS = frozenset({"id", "created_at", "deleted_at"})


class ChangeKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    PUT = "put"
    RESET = "reset"


@dataclass(frozen=True)
class StoreChange:
    """Notification emitted by a record store after a successful mutation."""

    kind: ChangeKind
    record_id: Optional[str]
    record: Optional[TransactionRecord] = None


@dataclass(frozen=True)
class RemoteChange:
    """
    One record as reported by the remote provider's live channel.

    `has_pending_writes` is True when the change is the echo of a write made
    by the subscribing session itself rather than confirmed remote state
    from elsewhere.
    """

    record: TransactionRecord
    has_pending_writes: bool = False


StoreListener = Callable[[StoreChange], None]
RemoteListener = Callable[[RemoteChange], Awaitable[None]]

L = TypeVar("L")


class SubscriptionRegistry(Generic[L]):
    """
    Listener registry owned by one adapter instance.

    `subscribe` returns a handle that removes exactly that subscription;
    calling it twice is harmless.
    """

    def __init__(self) -> None:
        self._listeners: Dict[int, L] = {}
        self._next_token = 0

    def subscribe(self, listener: L) -> Unsubscribe:
        token = self._next_token
        self._next_token += 1
        self._listeners[token] = listener

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    def listeners(self) -> List[L]:
        return list(self._listeners.values())

    def __len__(self) -> int:
        return len(self._listeners)

    def notify(self, event: Any) -> None:
        """Call synchronous listeners; a failing listener never fails the write."""
        for listener in self.listeners():
            try:
                listener(event)  # type: ignore[operator]
            except Exception:  # noqa: BLE001 - listener faults are isolated from writers
                log.exception("Change listener failed", extra={"listener": repr(listener)})


def apply_update(record: TransactionRecord, fields: Dict[str, Any]) -> TransactionRecord:
    """
    Return `record` with `fields` applied and re-validated.

    An edit clears `synced_at` (unless `fields` sets it) so the record counts
    as unconfirmed until its new content has been uploaded.

    Raises
    ------
    ImmutableFieldError
        If `fields` touches id, created_at or deleted_at.
    ValueError
        If a field name is unknown or a value fails validation.
    """
    touched = IMMUTABLE_FIELDS.intersection(fields)
    if touched:
        raise ImmutableFieldError(f"Cannot update immutable field(s): {', '.join(sorted(touched))}")
    unknown = set(fields) - set(TransactionRecord.model_fields)
    if unknown:
        raise ValueError(f"Unknown record field(s): {', '.join(sorted(unknown))}")
    return TransactionRecord.model_validate({**record.model_dump(), "synced_at": None, **fields})


def same_content(
    current: Optional[TransactionRecord], expected: Optional[TransactionRecord]
) -> bool:
    """True if `current` still holds `expected`'s content (both None counts as a match)."""
    if current is None or expected is None:
        return current is None and expected is None
    return current.content() == expected.content()


def newest_first(records: List[TransactionRecord]) -> List[TransactionRecord]:
    return sorted(records, key=lambda r: (r.occurred_at, r.created_at), reverse=True)


@runtime_checkable
class RecordStore(Protocol):
    """
    Local persistence for transaction records.

    Mutations (insert/update/delete/put/delete_all) are serialized per store
    instance. Queries exclude tombstones unless asked otherwise.
    """

    async def insert(self, record: TransactionRecord) -> str:
        """Persist a new record and return its assigned id."""
        ...

    async def update(self, record_id: str, **fields: Any) -> TransactionRecord:
        ...

    async def delete(self, record_id: str) -> None:
        """Tombstone one record."""
        ...

    async def delete_all(self) -> int:
        """Tombstone every live record; returns how many were deleted."""
        ...

    async def put(self, record: TransactionRecord) -> None:
        """Upsert a record keeping its id (reconciliation only)."""
        ...

    async def put_if_unchanged(
        self, record: TransactionRecord, expected: Optional[TransactionRecord]
    ) -> bool:
        """
        Write `record` only if the stored copy still has `expected`'s content.

        `expected=None` means the id must be absent. The check and the write
        are one atomic step; returns False (writing nothing) on a mismatch.
        """
        ...

    async def get(
        self, record_id: str, include_deleted: bool = False
    ) -> Optional[TransactionRecord]:
        ...

    async def query_all(self, include_deleted: bool = False) -> List[TransactionRecord]:
        """All records, newest `occurred_at` first."""
        ...

    async def query_by_month(self, month: str) -> List[TransactionRecord]:
        ...

    async def exists(self, value: str) -> bool:
        """True if any record has `value` as its external ref or raw text."""
        ...

    async def count(self) -> int:
        ...

    def on_change(self, listener: StoreListener) -> Unsubscribe:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class RemoteRecordProvider(Protocol):
    """Remote record set for one account with get/list/put and live changes."""

    async def get(self, record_id: str) -> Optional[TransactionRecord]:
        ...

    async def list(self) -> List[TransactionRecord]:
        ...

    async def put(self, record: TransactionRecord) -> None:
        """Upsert by id."""
        ...

    async def subscribe(self, listener: RemoteListener) -> Unsubscribe:
        ...

    async def close(self) -> None:
        ...


class AbstractRecordStore(abc.ABC):
    """
    Optional ABC helper for class-based stores.

    Provides the change registry and the derived queries; subclasses implement
    the primitive reads and writes.
    """

    def __init__(self) -> None:
        self._changes: SubscriptionRegistry[StoreListener] = SubscriptionRegistry()

    def on_change(self, listener: StoreListener) -> Unsubscribe:
        return self._changes.subscribe(listener)

    def _emit(self, kind: ChangeKind, record_id: Optional[str], record=None) -> None:
        self._changes.notify(StoreChange(kind=kind, record_id=record_id, record=record))

    @abc.abstractmethod
    async def query_all(self, include_deleted: bool = False) -> List[TransactionRecord]:
        raise NotImplementedError  # pragma: no cover - interface only

    async def query_by_month(self, month: str) -> List[TransactionRecord]:
        """Live records whose `occurred_at` falls in `month` ("YYYY-MM")."""
        return [
            record
            for record in await self.query_all()
            if record.occurred_at.strftime("%Y-%m") == month
        ]

    async def count(self) -> int:
        return len(await self.query_all())

    async def close(self) -> None:
        return None


__all__ = [
    "AbstractRecordStore",
    "ChangeKind",
    "IMMUTABLE_FIELDS",
    "RecordStore",
    "RemoteChange",
    "RemoteListener",
    "RemoteRecordProvider",
    "StoreChange",
    "StoreListener",
    "SubscriptionRegistry",
    "Unsubscribe",
    "apply_update",
    "same_content",
    "newest_first",
]
