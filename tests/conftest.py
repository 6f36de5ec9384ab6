"""
Pytest configuration for spendsync.

Provides fixtures for:
- Settings override and database availability for integration tests
- In-memory stores, remote backends and per-device providers
- Reconciler / coordinator wiring on top of them
- A record factory with sensible defaults
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

import psycopg
import pytest

from spendsync.config import Settings
from spendsync.coordinator import IngestionCoordinator
from spendsync.domain.models import CaptureMethod, Category, Origin, TransactionRecord
from spendsync.infrastructure.memory import (
    InMemoryRecordStore,
    InMemoryRemoteBackend,
    InMemoryRemoteProvider,
)
from spendsync.reconciler import Reconciler
from spendsync.utils.clock import MonotonicClock

CAPTURED_AT = datetime(2024, 11, 20, 9, 30, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "spendsync"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    return test_settings.local_dsn


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except Exception:
        return False


@pytest.fixture(scope="session")
def require_db(db_connection_available: bool) -> None:
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")


@pytest.fixture
def captured_at() -> datetime:
    return CAPTURED_AT


@pytest.fixture
def record_factory() -> Callable[..., TransactionRecord]:
    """
    Build a `TransactionRecord`; keyword arguments override the defaults.
    """

    def _make(**overrides) -> TransactionRecord:
        fields = {
            "amount": Decimal("100.00"),
            "merchant": "Swiggy",
            "category": Category.FOOD,
            "occurred_at": datetime(2024, 11, 10, 12, 0, tzinfo=timezone.utc),
            "origin": Origin.BANK,
            "capture_method": CaptureMethod.MESSAGE,
            "created_at": datetime(2024, 11, 10, 12, 0, 5, tzinfo=timezone.utc),
        }
        fields.update(overrides)
        return TransactionRecord(**fields)

    return _make


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def remote_backend() -> InMemoryRemoteBackend:
    return InMemoryRemoteBackend()


@pytest.fixture
def remote(remote_backend: InMemoryRemoteBackend) -> InMemoryRemoteProvider:
    return InMemoryRemoteProvider(remote_backend, session_id="device-a")


@pytest.fixture
def other_device(remote_backend: InMemoryRemoteBackend) -> InMemoryRemoteProvider:
    """A second session on the same remote backend."""
    return InMemoryRemoteProvider(remote_backend, session_id="device-b")


@pytest.fixture
def reconciler(store: InMemoryRecordStore, remote: InMemoryRemoteProvider) -> Reconciler:
    return Reconciler(store, remote)


@pytest.fixture
def coordinator(store: InMemoryRecordStore, reconciler: Reconciler) -> IngestionCoordinator:
    return IngestionCoordinator(
        store, reconciler=reconciler, clock=MonotonicClock(), parse_dates=True
    )
