"""
PostgreSQL-backed remote record provider (asyncpg).

Records for every account share `remote_transactions`, keyed by
`(account_id, id)`. Each `put` sends a NOTIFY carrying the record id and the
writing session; subscribers re-read the row and flag notifications from
their own session as pending-write echoes.

asyncpg is used here rather than psycopg for its native LISTEN support
(`Connection.add_listener`), which the live-update channel relies on.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Set

import asyncpg

from spendsync.config import get_settings
from spendsync.domain.models import TransactionRecord
from spendsync.errors import RemoteError
from spendsync.infrastructure.base import (
    RemoteChange,
    RemoteListener,
    SubscriptionRegistry,
    Unsubscribe,
)
from spendsync.infrastructure.db_factory import open_remote_pool
from spendsync.infrastructure.postgres_store import COLUMNS, record_to_row
from spendsync.utils.logging import get_logger

log = get_logger(__name__)

CHANNEL = "spendsync_remote_changes"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS remote_transactions (
    account_id      TEXT NOT NULL,
    id              TEXT NOT NULL,
    amount          NUMERIC(14, 2) NOT NULL,
    merchant        TEXT NOT NULL,
    category        TEXT,
    occurred_at     TIMESTAMPTZ NOT NULL,
    origin          TEXT NOT NULL,
    capture_method  TEXT NOT NULL,
    external_ref    TEXT,
    raw_text        TEXT,
    created_at      TIMESTAMPTZ NOT NULL,
    synced_at       TIMESTAMPTZ,
    deleted_at      TIMESTAMPTZ,
    PRIMARY KEY (account_id, id)
);
"""

_SELECT = f"SELECT {', '.join(COLUMNS)} FROM remote_transactions WHERE account_id = $1"
_UPSERT = (
    f"INSERT INTO remote_transactions (account_id, {', '.join(COLUMNS)}) "
    f"VALUES ($1, {', '.join(f'${i}' for i in range(2, len(COLUMNS) + 2))}) "
    "ON CONFLICT (account_id, id) DO UPDATE SET "
    + ", ".join(f"{c} = EXCLUDED.{c}" for c in COLUMNS if c != "id")
)


def _to_record(row: asyncpg.Record) -> TransactionRecord:
    return TransactionRecord.model_validate(dict(row))


class PostgresRemoteProvider:
    """
    Remote provider for one account over an asyncpg pool.

    Use `PostgresRemoteProvider.connect()`; `close()` releases the listener
    connection and the pool.
    """

    def __init__(
        self,
        pool: asyncpg.Pool,
        account_id: Optional[str] = None,
        session_id: Optional[str] = None,
        owns_pool: bool = False,
    ) -> None:
        self._pool = pool
        self._owns_pool = owns_pool
        self.account_id = account_id or get_settings().account_id
        self.session_id = session_id or uuid.uuid4().hex
        self._listeners: SubscriptionRegistry[RemoteListener] = SubscriptionRegistry()
        self._listen_conn: Optional[asyncpg.Connection] = None
        self._deliveries: Set[asyncio.Task] = set()

    @classmethod
    async def connect(
        cls, dsn: Optional[str] = None, account_id: Optional[str] = None
    ) -> "PostgresRemoteProvider":
        pool = await open_remote_pool(dsn)
        provider = cls(pool, account_id=account_id, owns_pool=True)
        await provider.ensure_schema()
        return provider

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        try:
            async with self._pool.acquire() as conn:
                yield conn
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            raise RemoteError(str(exc)) from exc

    async def ensure_schema(self) -> None:
        async with self._connection() as conn:
            await conn.execute(SCHEMA_SQL)

    async def get(self, record_id: str) -> Optional[TransactionRecord]:
        async with self._connection() as conn:
            row = await conn.fetchrow(f"{_SELECT} AND id = $2", self.account_id, record_id)
        return _to_record(row) if row else None

    async def list(self) -> List[TransactionRecord]:
        async with self._connection() as conn:
            rows = await conn.fetch(f"{_SELECT} ORDER BY created_at", self.account_id)
        return [_to_record(row) for row in rows]

    async def put(self, record: TransactionRecord) -> None:
        if record.id is None:
            raise ValueError("remote records need an id")
        row = record_to_row(record)
        payload = json.dumps(
            {"account_id": self.account_id, "id": record.id, "session": self.session_id}
        )
        async with self._connection() as conn:
            async with conn.transaction():
                await conn.execute(_UPSERT, self.account_id, *(row[c] for c in COLUMNS))
                await conn.execute("SELECT pg_notify($1, $2)", CHANNEL, payload)

    async def subscribe(self, listener: RemoteListener) -> Unsubscribe:
        if self._listen_conn is None:
            try:
                self._listen_conn = await self._pool.acquire()
                await self._listen_conn.add_listener(CHANNEL, self._on_notify)
            except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
                raise RemoteError(str(exc)) from exc
        return self._listeners.subscribe(listener)

    def _on_notify(self, conn: Any, pid: int, channel: str, payload: str) -> None:
        try:
            message: Dict[str, Any] = json.loads(payload)
        except ValueError:
            log.warning("Ignoring malformed change notification", extra={"payload": payload})
            return
        if message.get("account_id") != self.account_id:
            return
        task = asyncio.get_running_loop().create_task(
            self._deliver(message["id"], message.get("session") == self.session_id)
        )
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _deliver(self, record_id: str, own_write: bool) -> None:
        try:
            record = await self.get(record_id)
        except RemoteError:
            log.exception("Could not load changed remote record", extra={"record_id": record_id})
            return
        if record is None:
            return
        change = RemoteChange(record=record, has_pending_writes=own_write)
        for listener in self._listeners.listeners():
            try:
                await listener(change)
            except Exception:  # noqa: BLE001 - keep delivering to other listeners
                log.exception("Remote listener failed", extra={"record_id": record_id})

    async def close(self) -> None:
        for task in list(self._deliveries):
            task.cancel()
        if self._listen_conn is not None:
            try:
                await self._listen_conn.remove_listener(CHANNEL, self._on_notify)
            finally:
                await self._pool.release(self._listen_conn)
                self._listen_conn = None
        if self._owns_pool:
            await self._pool.close()


__all__ = ["CHANNEL", "PostgresRemoteProvider"]
