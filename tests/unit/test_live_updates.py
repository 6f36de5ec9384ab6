"""Live remote change handling between two devices sharing one remote backend."""

from __future__ import annotations

from datetime import timedelta

import pytest

from spendsync.infrastructure.base import RemoteChange
from spendsync.infrastructure.memory import InMemoryRecordStore, InMemoryRemoteProvider
from spendsync.reconciler import Reconciler


@pytest.fixture
def device_b(other_device: InMemoryRemoteProvider) -> Reconciler:
    return Reconciler(InMemoryRecordStore(), other_device)


@pytest.mark.asyncio
async def test_foreign_changes_are_applied(
    store, reconciler, device_b, record_factory
) -> None:
    await device_b.start_live_updates()
    await reconciler.start_live_updates()

    record_id = await store.insert(record_factory(external_ref="LV1"))
    assert await reconciler.upload(await store.get(record_id))

    mirrored = await device_b.store.get(record_id)
    assert mirrored is not None
    assert mirrored.content() == (await store.get(record_id)).content()


@pytest.mark.asyncio
async def test_own_session_echoes_are_ignored(
    store, remote_backend, reconciler, record_factory
) -> None:
    await store.put(record_factory(id="echo"))
    await reconciler.start_live_updates()

    # Another client on the same session: its writes arrive flagged as pending.
    same_session = InMemoryRemoteProvider(remote_backend, session_id="device-a")
    newer = record_factory(
        id="echo", merchant="Changed", created_at=record_factory().created_at + timedelta(hours=1)
    )
    await same_session.put(newer)

    assert (await store.get("echo")).merchant == "Swiggy"


@pytest.mark.asyncio
async def test_older_foreign_copy_does_not_overwrite(
    store, other_device, reconciler, record_factory
) -> None:
    base = record_factory(id="lww")
    await store.put(base.model_copy(update={"merchant": "Local"}))
    await reconciler.start_live_updates()

    await other_device.put(
        base.model_copy(update={"merchant": "Stale", "created_at": base.created_at - timedelta(1)})
    )
    assert (await store.get("lww")).merchant == "Local"

    await other_device.put(
        base.model_copy(update={"merchant": "Fresh", "created_at": base.created_at + timedelta(1)})
    )
    assert (await store.get("lww")).merchant == "Fresh"


@pytest.mark.asyncio
async def test_foreign_edit_of_same_version_replaces_confirmed_copy(
    store, other_device, reconciler, record_factory
) -> None:
    base = record_factory(id="edited", synced_at=record_factory().created_at)
    await store.put(base)
    await reconciler.start_live_updates()

    await other_device.put(base.model_copy(update={"merchant": "Amazon"}))

    assert (await store.get("edited")).merchant == "Amazon"


@pytest.mark.asyncio
async def test_foreign_edit_does_not_replace_unconfirmed_local_edit(
    store, other_device, reconciler, record_factory
) -> None:
    base = record_factory(id="edited", synced_at=record_factory().created_at)
    await store.put(base)
    await store.update("edited", merchant="Local edit")
    await reconciler.start_live_updates()

    await other_device.put(base.model_copy(update={"merchant": "Amazon"}))

    assert (await store.get("edited")).merchant == "Local edit"


@pytest.mark.asyncio
async def test_remote_tombstone_deletes_locally(
    store, other_device, reconciler, record_factory
) -> None:
    record = record_factory(id="gone")
    await store.put(record)
    await reconciler.start_live_updates()

    await other_device.put(record.model_copy(update={"deleted_at": record.created_at}))

    assert await store.get("gone") is None
    assert (await store.get("gone", include_deleted=True)).is_deleted


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery(store, other_device, reconciler, record_factory) -> None:
    stop = await reconciler.start_live_updates()
    stop()

    await other_device.put(record_factory(id="late"))

    assert await store.get("late") is None


@pytest.mark.asyncio
async def test_failing_apply_is_recorded(reconciler, record_factory) -> None:
    class BrokenStore(InMemoryRecordStore):
        async def put_if_unchanged(self, record, expected):
            raise RuntimeError("disk full")

    reconciler.store = BrokenStore()

    await reconciler._on_remote_change(RemoteChange(record=record_factory(id="x")))

    assert reconciler.status.error == "disk full"
