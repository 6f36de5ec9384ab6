"""
PostgreSQL-backed local record store (psycopg 3, async pool).

One row per record in `transactions`; tombstones stay as rows with
`deleted_at` set. Writes are serialized per store instance through an
`asyncio.Lock`, and the duplicate check runs in the same transaction as the
insert it guards.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from spendsync.domain.models import TransactionRecord
from spendsync.errors import DuplicateRecordError, RecordNotFoundError, StoreError
from spendsync.infrastructure.base import AbstractRecordStore, ChangeKind, apply_update
from spendsync.infrastructure.db_factory import open_local_pool
from spendsync.infrastructure.memory import duplicate_key, new_record_id
from spendsync.utils.clock import utc_now
from spendsync.utils.logging import get_logger

log = get_logger(__name__)

COLUMNS = (
    "id",
    "amount",
    "merchant",
    "category",
    "occurred_at",
    "origin",
    "capture_method",
    "external_ref",
    "raw_text",
    "created_at",
    "synced_at",
    "deleted_at",
)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS transactions (
    id              TEXT PRIMARY KEY,
    amount          NUMERIC(14, 2) NOT NULL CHECK (amount > 0),
    merchant        TEXT NOT NULL,
    category        TEXT,
    occurred_at     TIMESTAMPTZ NOT NULL,
    origin          TEXT NOT NULL,
    capture_method  TEXT NOT NULL,
    external_ref    TEXT,
    raw_text        TEXT,
    created_at      TIMESTAMPTZ NOT NULL,
    synced_at       TIMESTAMPTZ,
    deleted_at      TIMESTAMPTZ
);
CREATE INDEX IF NOT EXISTS transactions_occurred_at_idx ON transactions (occurred_at DESC);
CREATE INDEX IF NOT EXISTS transactions_external_ref_idx ON transactions (external_ref);
CREATE INDEX IF NOT EXISTS transactions_raw_text_md5_idx ON transactions (md5(raw_text));
"""

_SELECT = f"SELECT {', '.join(COLUMNS)} FROM transactions"
_UPSERT = (
    f"INSERT INTO transactions ({', '.join(COLUMNS)}) "
    f"VALUES ({', '.join(['%(' + c + ')s' for c in COLUMNS])}) "
    "ON CONFLICT (id) DO UPDATE SET "
    + ", ".join(f"{c} = EXCLUDED.{c}" for c in COLUMNS if c != "id")
)
# Everything but sync bookkeeping, matching `TransactionRecord.content()`.
CONTENT_COLUMNS = tuple(c for c in COLUMNS if c != "synced_at")
_INSERT_IF_ABSENT = (
    f"INSERT INTO transactions ({', '.join(COLUMNS)}) "
    f"VALUES ({', '.join(['%(' + c + ')s' for c in COLUMNS])}) "
    "ON CONFLICT (id) DO NOTHING"
)
_REPLACE_IF_UNCHANGED = (
    "UPDATE transactions SET "
    + ", ".join(f"{c} = %({c})s" for c in COLUMNS if c != "id")
    + " WHERE id = %(id)s AND "
    + " AND ".join(f"{c} IS NOT DISTINCT FROM %(expected_{c})s" for c in CONTENT_COLUMNS)
)
_EXISTS = (
    "SELECT EXISTS (SELECT 1 FROM transactions "
    "WHERE external_ref = %(value)s OR md5(raw_text) = md5(%(value)s) AND raw_text = %(value)s)"
)


def record_to_row(record: TransactionRecord) -> Dict[str, Any]:
    row = record.model_dump(mode="python")
    for key in ("category", "origin", "capture_method"):
        value = row[key]
        row[key] = value.value if value is not None else None
    return row


def row_to_record(row: Dict[str, Any]) -> TransactionRecord:
    return TransactionRecord.model_validate(dict(row))


class PostgresRecordStore(AbstractRecordStore):
    """
    Record store on a psycopg `AsyncConnectionPool`.

    Use `PostgresRecordStore.connect()` to open a pool from settings, or pass
    an existing pool (the store then does not own it).
    """

    def __init__(self, pool: AsyncConnectionPool, owns_pool: bool = False) -> None:
        super().__init__()
        self._pool = pool
        self._owns_pool = owns_pool
        self._lock = asyncio.Lock()

    @classmethod
    async def connect(cls, dsn: Optional[str] = None) -> "PostgresRecordStore":
        pool = await open_local_pool(dsn)
        store = cls(pool, owns_pool=True)
        await store.ensure_schema()
        return store

    @asynccontextmanager
    async def _cursor(self) -> AsyncIterator[psycopg.AsyncCursor]:
        try:
            async with self._pool.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    yield cur
        except psycopg.Error as exc:
            log.error("Local store operation failed", extra={"error": str(exc)})
            raise StoreError(str(exc)) from exc

    async def ensure_schema(self) -> None:
        async with self._cursor() as cur:
            await cur.execute(SCHEMA_SQL)

    async def _fetch_one(self, cur: psycopg.AsyncCursor, record_id: str) -> Optional[TransactionRecord]:
        await cur.execute(f"{_SELECT} WHERE id = %s", (record_id,))
        row = await cur.fetchone()
        return row_to_record(row) if row else None

    async def insert(self, record: TransactionRecord) -> str:
        if record.id is not None:
            raise ValueError("insert assigns ids; use put() for records that already have one")
        async with self._lock:
            async with self._cursor() as cur:
                key = duplicate_key(record)
                if key is not None:
                    await cur.execute(_EXISTS, {"value": key})
                    found = await cur.fetchone()
                    if found and found["exists"]:
                        raise DuplicateRecordError(key)
                stored = record.model_copy(update={"id": new_record_id()})
                await cur.execute(_UPSERT, record_to_row(stored))
            self._emit(ChangeKind.INSERT, stored.id, stored)
        return stored.id

    async def update(self, record_id: str, **fields: Any) -> TransactionRecord:
        async with self._lock:
            async with self._cursor() as cur:
                current = await self._fetch_one(cur, record_id)
                if current is None or current.is_deleted:
                    raise RecordNotFoundError(record_id)
                updated = apply_update(current, fields)
                await cur.execute(_UPSERT, record_to_row(updated))
            self._emit(ChangeKind.UPDATE, record_id, updated)
        return updated

    async def delete(self, record_id: str) -> None:
        async with self._lock:
            async with self._cursor() as cur:
                await cur.execute(
                    "UPDATE transactions SET deleted_at = %s "
                    "WHERE id = %s AND deleted_at IS NULL",
                    (utc_now(), record_id),
                )
                if cur.rowcount == 0:
                    raise RecordNotFoundError(record_id)
                tombstone = await self._fetch_one(cur, record_id)
            self._emit(ChangeKind.DELETE, record_id, tombstone)

    async def delete_all(self) -> int:
        async with self._lock:
            async with self._cursor() as cur:
                await cur.execute(
                    "UPDATE transactions SET deleted_at = %s WHERE deleted_at IS NULL",
                    (utc_now(),),
                )
                deleted = cur.rowcount
            self._emit(ChangeKind.RESET, None)
        return deleted

    async def put(self, record: TransactionRecord) -> None:
        if record.id is None:
            raise ValueError("put requires a record id")
        async with self._lock:
            async with self._cursor() as cur:
                await cur.execute(_UPSERT, record_to_row(record))
            self._emit(ChangeKind.PUT, record.id, record)

    async def put_if_unchanged(
        self, record: TransactionRecord, expected: Optional[TransactionRecord]
    ) -> bool:
        """Compare-and-set in a single statement; see `RecordStore.put_if_unchanged`."""
        if record.id is None:
            raise ValueError("put requires a record id")
        params = record_to_row(record)
        if expected is None:
            statement = _INSERT_IF_ABSENT
        else:
            statement = _REPLACE_IF_UNCHANGED
            expected_row = record_to_row(expected)
            params.update({f"expected_{c}": expected_row[c] for c in CONTENT_COLUMNS})
        async with self._lock:
            async with self._cursor() as cur:
                await cur.execute(statement, params)
                written = cur.rowcount == 1
            if written:
                self._emit(ChangeKind.PUT, record.id, record)
        return written

    async def get(
        self, record_id: str, include_deleted: bool = False
    ) -> Optional[TransactionRecord]:
        async with self._cursor() as cur:
            record = await self._fetch_one(cur, record_id)
        if record is None or (record.is_deleted and not include_deleted):
            return None
        return record

    async def query_all(self, include_deleted: bool = False) -> List[TransactionRecord]:
        where = "" if include_deleted else " WHERE deleted_at IS NULL"
        async with self._cursor() as cur:
            await cur.execute(f"{_SELECT}{where} ORDER BY occurred_at DESC, created_at DESC")
            rows = await cur.fetchall()
        return [row_to_record(row) for row in rows]

    async def query_by_month(self, month: str) -> List[TransactionRecord]:
        async with self._cursor() as cur:
            await cur.execute(
                f"{_SELECT} WHERE deleted_at IS NULL "
                "AND to_char(occurred_at AT TIME ZONE 'UTC', 'YYYY-MM') = %s "
                "ORDER BY occurred_at DESC, created_at DESC",
                (month,),
            )
            rows = await cur.fetchall()
        return [row_to_record(row) for row in rows]

    async def exists(self, value: str) -> bool:
        async with self._cursor() as cur:
            await cur.execute(_EXISTS, {"value": value})
            row = await cur.fetchone()
        return bool(row and row["exists"])

    async def count(self) -> int:
        async with self._cursor() as cur:
            await cur.execute("SELECT COUNT(*) AS n FROM transactions WHERE deleted_at IS NULL")
            row = await cur.fetchone()
        return int(row["n"]) if row else 0

    async def close(self) -> None:
        if self._owns_pool:
            await self._pool.close()


__all__ = ["PostgresRecordStore", "record_to_row", "row_to_record"]
