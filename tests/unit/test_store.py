from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from spendsync.domain.models import UNKNOWN_MERCHANT, Category, TransactionRecord
from spendsync.errors import DuplicateRecordError, ImmutableFieldError, RecordNotFoundError
from spendsync.infrastructure.base import ChangeKind, RecordStore
from spendsync.infrastructure.memory import InMemoryRecordStore


def test_memory_store_satisfies_protocol(store: InMemoryRecordStore) -> None:
    assert isinstance(store, RecordStore)


def test_record_validation(record_factory) -> None:
    with pytest.raises(ValidationError):
        record_factory(amount=Decimal("0"))
    with pytest.raises(ValidationError):
        record_factory(amount=Decimal("-5"))

    record = record_factory(
        amount="10.5",
        merchant="   ",
        occurred_at=datetime(2024, 11, 1, 8, 0),
    )
    assert record.amount == Decimal("10.50")
    assert record.merchant == UNKNOWN_MERCHANT
    assert record.occurred_at.tzinfo is not None


@pytest.mark.asyncio
async def test_insert_assigns_unique_ids(store: InMemoryRecordStore, record_factory) -> None:
    first = await store.insert(record_factory(external_ref="REF1"))
    second = await store.insert(record_factory(external_ref="REF2"))

    assert first != second
    assert (await store.get(first)).id == first
    assert await store.count() == 2


@pytest.mark.asyncio
async def test_insert_rejects_records_with_ids(store: InMemoryRecordStore, record_factory) -> None:
    with pytest.raises(ValueError):
        await store.insert(record_factory(id="preset"))


@pytest.mark.asyncio
async def test_query_all_is_newest_first(store: InMemoryRecordStore, record_factory) -> None:
    older = await store.insert(
        record_factory(external_ref="A", occurred_at=datetime(2024, 10, 1, tzinfo=timezone.utc))
    )
    newer = await store.insert(
        record_factory(external_ref="B", occurred_at=datetime(2024, 11, 1, tzinfo=timezone.utc))
    )

    assert [r.id for r in await store.query_all()] == [newer, older]
    assert [r.id for r in await store.query_by_month("2024-10")] == [older]


@pytest.mark.asyncio
async def test_duplicates_are_rejected_atomically(store: InMemoryRecordStore, record_factory) -> None:
    await store.insert(record_factory(external_ref="433847362847", raw_text="first text"))

    with pytest.raises(DuplicateRecordError):
        await store.insert(record_factory(external_ref="433847362847", raw_text="other text"))

    await store.insert(record_factory(raw_text="no reference here"))
    with pytest.raises(DuplicateRecordError):
        await store.insert(record_factory(raw_text="no reference here"))

    assert await store.exists("433847362847")
    assert await store.exists("no reference here")
    assert not await store.exists("something else")


@pytest.mark.asyncio
async def test_update_rules(store: InMemoryRecordStore, record_factory) -> None:
    record_id = await store.insert(record_factory(category=None))

    updated = await store.update(record_id, category=Category.TRAVEL)
    assert updated.category is Category.TRAVEL
    assert (await store.get(record_id)).category is Category.TRAVEL

    with pytest.raises(ImmutableFieldError):
        await store.update(record_id, created_at=datetime.now(timezone.utc))
    with pytest.raises(ImmutableFieldError):
        await store.update(record_id, id="other")
    with pytest.raises(ValueError):
        await store.update(record_id, colour="blue")
    with pytest.raises(RecordNotFoundError):
        await store.update("missing", category=Category.FOOD)


@pytest.mark.asyncio
async def test_delete_leaves_a_tombstone(store: InMemoryRecordStore, record_factory) -> None:
    record_id = await store.insert(record_factory(external_ref="REF9"))

    await store.delete(record_id)

    assert await store.get(record_id) is None
    tombstone = await store.get(record_id, include_deleted=True)
    assert tombstone.is_deleted
    assert await store.query_all() == []
    assert len(await store.query_all(include_deleted=True)) == 1
    # Deleted messages are not captured again.
    assert await store.exists("REF9")
    with pytest.raises(RecordNotFoundError):
        await store.delete(record_id)
    with pytest.raises(RecordNotFoundError):
        await store.update(record_id, merchant="x")


@pytest.mark.asyncio
async def test_delete_all(store: InMemoryRecordStore, record_factory) -> None:
    for ref in ("R1", "R2", "R3"):
        await store.insert(record_factory(external_ref=ref))

    assert await store.delete_all() == 3
    assert await store.count() == 0
    assert await store.delete_all() == 0


@pytest.mark.asyncio
async def test_put_keeps_the_given_id(store: InMemoryRecordStore, record_factory) -> None:
    await store.put(record_factory(id="remote-1"))
    assert (await store.get("remote-1")).merchant == "Swiggy"

    with pytest.raises(ValueError):
        await store.put(record_factory())


@pytest.mark.asyncio
async def test_update_marks_record_unconfirmed(store: InMemoryRecordStore, record_factory) -> None:
    await store.put(record_factory(id="r1", synced_at=datetime(2024, 11, 11, tzinfo=timezone.utc)))

    updated = await store.update("r1", merchant="Zomato")

    assert updated.synced_at is None
    assert (await store.get("r1")).synced_at is None


@pytest.mark.asyncio
async def test_put_if_unchanged(store: InMemoryRecordStore, record_factory) -> None:
    original = record_factory(id="r1")
    assert await store.put_if_unchanged(original, expected=None) is True
    assert await store.put_if_unchanged(original, expected=None) is False

    confirmed = original.model_copy(update={"synced_at": datetime(2024, 11, 11, tzinfo=timezone.utc)})
    assert await store.put_if_unchanged(confirmed, expected=original) is True
    assert (await store.get("r1")).synced_at is not None

    await store.update("r1", category=Category.SHOPPING)
    assert await store.put_if_unchanged(original, expected=original) is False
    assert (await store.get("r1")).category is Category.SHOPPING


@pytest.mark.asyncio
async def test_change_notifications(store: InMemoryRecordStore, record_factory) -> None:
    events = []

    def broken(_change) -> None:
        raise RuntimeError("listener bug")

    store.on_change(broken)
    unsubscribe = store.on_change(events.append)

    record_id = await store.insert(record_factory(external_ref="N1"))
    await store.update(record_id, merchant="Zomato")
    await store.delete(record_id)
    unsubscribe()
    unsubscribe()
    await store.insert(record_factory(external_ref="N2"))

    assert [e.kind for e in events] == [ChangeKind.INSERT, ChangeKind.UPDATE, ChangeKind.DELETE]
    assert events[0].record_id == record_id
    assert isinstance(events[1].record, TransactionRecord)


def test_seed_records_need_ids(record_factory) -> None:
    with pytest.raises(ValueError):
        InMemoryRecordStore([record_factory()])
