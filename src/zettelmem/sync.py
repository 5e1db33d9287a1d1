"""
zettelmem sync manager -- phase two of note creation.

A note is durable as soon as SQLiteStore.put returns. Pushing it to the
remote index happens afterwards, in a background task: success is logged,
any failure puts the note in the retry queue. flush() re-sends everything
queued; the periodic loop calls it on an interval.

Delivery to the remote is at-least-once. A timed-out add is cancelled, but
the service may already have accepted it, so a later retry can produce a
second copy remotely.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Set

from zettelmem.remote import RemoteIndex, bounded
from zettelmem.sqlite_store import SQLiteStore
from zettelmem.types import Note

logger = logging.getLogger("zettelmem.sync")


class SyncOutcome:
    SYNCED = "synced"
    QUEUED = "queued"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncEvent:
    """Emitted once per sync attempt that reached a conclusion."""

    note_id: str
    outcome: str
    error: Optional[str] = None


@dataclass(frozen=True)
class FlushReport:
    attempted: int = 0
    synced: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return {"attempted": self.attempted, "synced": self.synced, "failed": self.failed}


SyncListener = Callable[[SyncEvent], None]


class SyncManager:
    """Owns remote writes and the retry queue lifecycle."""

    def __init__(self, store: SQLiteStore, remote: RemoteIndex, timeout_ms: int = 5000):
        self.store = store
        self.remote = remote
        self.timeout_ms = timeout_ms
        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[SyncListener] = []
        self._flush_task: Optional[asyncio.Task] = None
        self._periodic_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_listener(self, callback: SyncListener) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: SyncListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self, event: SyncEvent) -> None:
        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception:
                logger.exception("Sync listener failed for %s", event.note_id)

    # ------------------------------------------------------------------
    # Single-note sync
    # ------------------------------------------------------------------

    async def sync(self, note: Note) -> SyncEvent:
        """Push one note to the remote index; queue it for retry on failure.

        Never raises for remote or queue errors; the returned event says
        what happened. Cancellation still propagates.
        """
        try:
            await bounded(self.remote.add(note), self.timeout_ms)
        except Exception as e:
            logger.warning("Remote sync failed for %s: %s", note.id, e)
            try:
                await asyncio.to_thread(self.store.enqueue_retry, note)
            except Exception as qe:
                logger.error("Could not queue %s for retry: %s", note.id, qe)
                event = SyncEvent(note.id, SyncOutcome.FAILED, error=str(qe))
            else:
                event = SyncEvent(note.id, SyncOutcome.QUEUED, error=str(e))
        else:
            logger.info("Synced note %s", note.id)
            event = SyncEvent(note.id, SyncOutcome.SYNCED)
        self._emit(event)
        return event

    def sync_async(self, note: Note) -> "asyncio.Task[SyncEvent]":
        """Start sync(note) in the background and return its task.

        The manager holds a reference until the task finishes.
        """
        task = asyncio.create_task(self.sync(note), name=f"zettelmem-sync-{note.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight background sync to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Retry queue flush
    # ------------------------------------------------------------------

    async def flush(self) -> FlushReport:
        """Re-send every queued note once. Failures stay queued.

        A flush requested while another is running waits for that one and
        returns its report.
        """
        if self._flush_task is not None and not self._flush_task.done():
            logger.debug("Flush already running, joining it")
            return await asyncio.shield(self._flush_task)
        self._flush_task = asyncio.create_task(self._flush_once(), name="zettelmem-flush")
        return await asyncio.shield(self._flush_task)

    async def _flush_once(self) -> FlushReport:
        items = await asyncio.to_thread(self.store.pending_retries)
        if not items:
            return FlushReport()
        logger.info("Flushing %d queued note(s)", len(items))

        synced = failed = 0
        for item in items:
            try:
                await bounded(self.remote.add(item.to_note()), self.timeout_ms)
            except Exception as e:
                failed += 1
                logger.warning("Retry still failing for %s: %s", item.id, e)
                continue
            # Only drop the row we sent; a newer enqueue for the same note stays.
            removed = await asyncio.to_thread(self.store.delete_retry, item.id, item.enqueued_at)
            if not removed:
                logger.debug("Retry for %s was re-queued during flush, keeping it", item.id)
            synced += 1
            logger.info("Retry synced %s", item.id)
            self._emit(SyncEvent(item.id, SyncOutcome.SYNCED))

        return FlushReport(attempted=len(items), synced=synced, failed=failed)

    # ------------------------------------------------------------------
    # Periodic flush loop
    # ------------------------------------------------------------------

    async def run_periodic(self, interval_ms: int = 10000) -> None:
        """Flush every interval_ms until cancelled. Cycle errors are logged."""
        while True:
            await asyncio.sleep(interval_ms / 1000.0)
            try:
                report = await self.flush()
            except Exception as e:
                logger.error("Periodic flush failed: %s", e)
                continue
            if report.attempted:
                logger.info("Periodic flush: %d/%d synced", report.synced, report.attempted)

    def start(self, interval_ms: int = 10000) -> asyncio.Task:
        if self._periodic_task is None or self._periodic_task.done():
            self._periodic_task = asyncio.create_task(
                self.run_periodic(interval_ms), name="zettelmem-flush-loop"
            )
        return self._periodic_task

    async def stop(self) -> None:
        """Stop the periodic loop and wait for background syncs to finish."""
        task, self._periodic_task = self._periodic_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.drain()
        if self._flush_task is not None and not self._flush_task.done():
            await asyncio.gather(self._flush_task, return_exceptions=True)

    @property
    def running(self) -> bool:
        return self._periodic_task is not None and not self._periodic_task.done()
