"""
Infrastructure package for spendsync.

Holds the record store and remote provider adapters plus the factories that
pick one from settings (`STORE_BACKEND`, `REMOTE_BACKEND`).
"""

from __future__ import annotations

from typing import Optional

from spendsync.config import Settings, get_settings
from spendsync.infrastructure.base import (
    ChangeKind,
    RecordStore,
    RemoteChange,
    RemoteRecordProvider,
    StoreChange,
    Unsubscribe,
)
from spendsync.infrastructure.memory import (
    InMemoryRecordStore,
    InMemoryRemoteBackend,
    InMemoryRemoteProvider,
)


async def create_store(settings: Optional[Settings] = None) -> RecordStore:
    """Open the local record store selected by `STORE_BACKEND`."""
    settings = settings or get_settings()
    if settings.store_backend == "postgres":
        from spendsync.infrastructure.postgres_store import PostgresRecordStore

        return await PostgresRecordStore.connect(settings.local_dsn)
    return InMemoryRecordStore()


async def create_remote(settings: Optional[Settings] = None) -> RemoteRecordProvider:
    """Open the remote provider selected by `REMOTE_BACKEND`."""
    settings = settings or get_settings()
    if settings.remote_backend == "postgres":
        from spendsync.infrastructure.postgres_remote import PostgresRemoteProvider

        return await PostgresRemoteProvider.connect(
            settings.remote_dsn or settings.local_dsn, account_id=settings.account_id
        )
    return InMemoryRemoteProvider()


__all__ = [
    "ChangeKind",
    "InMemoryRecordStore",
    "InMemoryRemoteBackend",
    "InMemoryRemoteProvider",
    "RecordStore",
    "RemoteChange",
    "RemoteRecordProvider",
    "StoreChange",
    "Unsubscribe",
    "create_remote",
    "create_store",
]
