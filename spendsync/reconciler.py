"""
Two-way reconciliation between the local record store and the remote provider.

Merge rules, applied per record id:

- present on one side only: replicate to the other side
- deleted on either side: the tombstone wins and is replicated
- present on both: the copy with the larger `created_at` replaces the other
  whole (no field-level merge)
- same `created_at` but different content: a local copy that was edited
  since it was last uploaded (`synced_at` is None) is pushed, otherwise the
  remote copy is pulled

Local writes made while reconciling are conditional on the local copy not
having changed in between, so a concurrent edit is never overwritten.

`sync()` never raises for store/remote faults: the error is logged and kept
in `SyncStatus.error` and `SyncResult["error"]`. A pass that fails partway is
not rolled back; the next pass converges.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional, TypedDict

from spendsync.config import get_settings
from spendsync.domain.models import TransactionRecord
from spendsync.infrastructure.base import (
    RecordStore,
    RemoteChange,
    RemoteRecordProvider,
    SubscriptionRegistry,
    Unsubscribe,
)
from spendsync.utils.clock import utc_now
from spendsync.utils.logging import get_logger
from spendsync.utils.profiler import profile_block

log = get_logger(__name__)


class SyncResult(TypedDict):
    """
    Outcome of one `Reconciler.sync()` call.

    `uploaded`/`downloaded` count live records copied in each direction;
    `tombstoned` counts deletions replicated either way.
    """

    uploaded: int
    downloaded: int
    tombstoned: int
    skipped: bool
    error: Optional[str]
    duration_seconds: float


@dataclass(frozen=True)
class SyncStatus:
    last_sync_time: Optional[datetime] = None
    is_syncing: bool = False
    pending_uploads: int = 0
    error: Optional[str] = None
    last_duration_seconds: Optional[float] = None


StatusListener = Callable[[SyncStatus], None]


def _empty_result(skipped: bool = False) -> SyncResult:
    return SyncResult(
        uploaded=0,
        downloaded=0,
        tombstoned=0,
        skipped=skipped,
        error=None,
        duration_seconds=0.0,
    )


LOCAL = "local"
REMOTE = "remote"


def newer_side(mine: TransactionRecord, theirs: TransactionRecord) -> Optional[str]:
    """
    Which of two live copies of one record should replace the other.

    Returns `LOCAL`, `REMOTE`, or None when they already hold the same content.
    """
    if mine.created_at != theirs.created_at:
        return LOCAL if mine.created_at > theirs.created_at else REMOTE
    if mine.content() == theirs.content():
        return None
    return LOCAL if mine.synced_at is None else REMOTE


class Reconciler:
    """
    Keeps one local store and one remote provider converged.

    Parameters
    ----------
    store : RecordStore
        Local record store; the source of truth for this device.
    remote : RemoteRecordProvider
        Remote record set shared with other devices.
    """

    def __init__(self, store: RecordStore, remote: RemoteRecordProvider) -> None:
        self.store = store
        self.remote = remote
        self._status = SyncStatus()
        self._status_listeners: SubscriptionRegistry[StatusListener] = SubscriptionRegistry()
        self._sync_task: Optional[asyncio.Task] = None
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._pending = 0
        self._live_unsubscribe: Optional[Unsubscribe] = None
        self._periodic: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------ status

    @property
    def status(self) -> SyncStatus:
        return self._status

    def on_status_change(self, listener: StatusListener) -> Unsubscribe:
        """Register `listener`; it is called at once with the current status."""
        unsubscribe = self._status_listeners.subscribe(listener)
        listener(self._status)
        return unsubscribe

    def _set_status(self, **changes) -> None:
        self._status = replace(self._status, **changes)
        self._status_listeners.notify(self._status)

    # ------------------------------------------------------------------ upload

    async def _push(self, record: TransactionRecord) -> TransactionRecord:
        stamped = record.model_copy(update={"synced_at": utc_now()})
        await self.remote.put(stamped)
        await self._mark_synced(stamped)
        return stamped

    async def _mark_synced(self, stamped: TransactionRecord) -> None:
        # No-op if edited since the snapshot was taken; its own upload follows.
        await self.store.put_if_unchanged(stamped, expected=stamped)

    async def _download(
        self, theirs: TransactionRecord, mine: Optional[TransactionRecord]
    ) -> bool:
        """Replace the local copy `mine` with `theirs` unless it changed meanwhile."""
        if theirs.synced_at is None:
            theirs = theirs.model_copy(update={"synced_at": utc_now()})
        applied = await self.store.put_if_unchanged(theirs, expected=mine)
        if not applied:
            log.info("Local copy changed during download; kept", extra={"record_id": theirs.id})
        return applied

    async def upload(self, record: TransactionRecord) -> bool:
        """
        Upsert the current local version of `record` into the remote store.

        Returns False (and records the error in `status`) on failure.
        """
        if record.id is None:
            raise ValueError("Only stored records can be uploaded")
        try:
            current = await self.store.get(record.id, include_deleted=True) or record
            await self._push(current)
        except Exception as exc:  # noqa: BLE001 - upload failures are reported, not raised
            log.exception("Upload failed", extra={"record_id": record.id})
            self._set_status(error=str(exc))
            return False
        log.debug("Uploaded record", extra={"record_id": record.id})
        return True

    def enqueue_upload(self, record: TransactionRecord) -> None:
        """Schedule a background upload; never blocks and never raises for I/O."""
        if record.id is None:
            raise ValueError("Only stored records can be uploaded")
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._upload_worker())
        self._queue.put_nowait(record)
        self._pending += 1
        self._set_status(pending_uploads=self._pending)

    async def _upload_worker(self) -> None:
        assert self._queue is not None
        while True:
            record = await self._queue.get()
            try:
                await self.upload(record)
            except Exception:  # noqa: BLE001 - one bad record must not stop the worker
                log.exception("Queued upload failed", extra={"record_id": record.id})
            finally:
                self._pending -= 1
                self._queue.task_done()
                self._set_status(pending_uploads=self._pending)

    def _discard_queued(self) -> int:
        if self._queue is None:
            return 0
        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
            dropped += 1
        if dropped:
            self._pending -= dropped
            log.warning("Dropped queued uploads", extra={"dropped": dropped})
            self._set_status(pending_uploads=self._pending)
        return dropped

    async def drain(self) -> None:
        """Wait until every enqueued upload has been attempted."""
        if self._queue is not None:
            await self._queue.join()

    # -------------------------------------------------------------------- sync

    async def sync(self) -> SyncResult:
        """
        Run one full reconciliation pass.

        A call made while a pass is running returns at once with
        `skipped=True`. Cancelling the caller does not cancel the pass.
        """
        if self._sync_task is not None and not self._sync_task.done():
            log.info("Sync already in progress; skipping")
            return _empty_result(skipped=True)
        self._sync_task = asyncio.get_running_loop().create_task(self._run_sync())
        return await asyncio.shield(self._sync_task)

    async def _run_sync(self) -> SyncResult:
        self._set_status(is_syncing=True)
        result = _empty_result()
        with profile_block("sync") as stats:
            try:
                await self._merge(result)
            except Exception as exc:  # noqa: BLE001 - recorded in status, caller may retry
                log.exception("Sync failed")
                result["error"] = str(exc)
        result["duration_seconds"] = stats.duration_seconds

        if result["error"] is None:
            self._set_status(
                is_syncing=False,
                error=None,
                last_sync_time=utc_now(),
                last_duration_seconds=stats.duration_seconds,
            )
        else:
            self._set_status(
                is_syncing=False,
                error=result["error"],
                last_duration_seconds=stats.duration_seconds,
            )
        log.info(
            "Sync finished",
            extra={
                "uploaded": result["uploaded"],
                "downloaded": result["downloaded"],
                "tombstoned": result["tombstoned"],
                "error": result["error"],
                "duration_seconds": round(stats.duration_seconds, 4),
                "peak_rss_bytes": stats.peak_rss_bytes,
            },
        )
        return result

    async def _merge(self, result: SyncResult) -> None:
        local = {r.id: r for r in await self.store.query_all(include_deleted=True)}
        remote = {r.id: r for r in await self.remote.list()}

        for record_id in sorted(local.keys() | remote.keys()):
            mine = local.get(record_id)
            theirs = remote.get(record_id)

            if theirs is None:
                await self._push(mine)
                result["tombstoned" if mine.is_deleted else "uploaded"] += 1
            elif mine is None:
                if await self._download(theirs, None):
                    result["tombstoned" if theirs.is_deleted else "downloaded"] += 1
            elif mine.is_deleted and theirs.is_deleted:
                continue
            elif mine.is_deleted:
                await self._push(mine)
                result["tombstoned"] += 1
            elif theirs.is_deleted:
                if await self._download(theirs, mine):
                    result["tombstoned"] += 1
            else:
                side = newer_side(mine, theirs)
                if side == LOCAL:
                    await self._push(mine)
                    result["uploaded"] += 1
                elif side == REMOTE and await self._download(theirs, mine):
                    result["downloaded"] += 1

    # ------------------------------------------------------------ live updates

    async def start_live_updates(self) -> Unsubscribe:
        """Apply remote changes as they arrive; returns a handle that stops it."""
        if self._live_unsubscribe is None:
            self._live_unsubscribe = await self.remote.subscribe(self._on_remote_change)
            log.info("Live updates started")
        return self.stop_live_updates

    def stop_live_updates(self) -> None:
        if self._live_unsubscribe is not None:
            self._live_unsubscribe()
            self._live_unsubscribe = None
            log.info("Live updates stopped")

    async def _on_remote_change(self, change: RemoteChange) -> None:
        if change.has_pending_writes:
            return
        theirs = change.record
        try:
            mine = await self.store.get(theirs.id, include_deleted=True)
            if mine is None or (theirs.is_deleted and not mine.is_deleted):
                await self._download(theirs, mine)
            elif not mine.is_deleted and not theirs.is_deleted:
                if newer_side(mine, theirs) == REMOTE:
                    await self._download(theirs, mine)
        except Exception as exc:  # noqa: BLE001 - a bad change must not stop the channel
            log.exception("Could not apply remote change", extra={"record_id": theirs.id})
            self._set_status(error=str(exc))

    # ---------------------------------------------------------------- schedule

    async def run_periodic(
        self, interval: Optional[float] = None, iterations: Optional[int] = None
    ) -> List[SyncResult]:
        """
        Call `sync()` every `interval` seconds (default `SYNC_INTERVAL_SECONDS`).

        Runs until cancelled, or for `iterations` passes when given.
        """
        if interval is None:
            interval = get_settings().sync_interval_seconds
        results: List[SyncResult] = []
        while iterations is None or len(results) < iterations:
            results.append(await self.sync())
            if iterations is not None and len(results) >= iterations:
                break
            await asyncio.sleep(interval)
        return results

    def start_periodic(self, interval: Optional[float] = None) -> asyncio.Task:
        if self._periodic is None or self._periodic.done():
            self._periodic = asyncio.get_running_loop().create_task(self.run_periodic(interval))
        return self._periodic

    async def close(self) -> None:
        """
        Stop background work; in-flight sync passes are allowed to finish.

        Uploads still queued are dropped. Their records stay unconfirmed
        locally and go out with the next `sync()`.
        """
        self.stop_live_updates()
        for task in (self._periodic, self._worker):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._periodic = None
        self._worker = None
        self._discard_queued()
        if self._sync_task is not None and not self._sync_task.done():
            await asyncio.wait([self._sync_task])


__all__ = ["Reconciler", "SyncResult", "SyncStatus"]
