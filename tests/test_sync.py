"""Tests for the SyncManager: background sync, retry queue and flush."""
import asyncio

import pytest

from conftest import FakeRemoteIndex
from zettelmem.sync import FlushReport, SyncEvent, SyncManager, SyncOutcome
from zettelmem.types import Note


def _saved(store, title="T", content="C"):
    note = Note.create(title, content)
    store.put(note)
    return note


@pytest.mark.asyncio
async def test_sync_success_emits_synced(store):
    remote = FakeRemoteIndex()
    mgr = SyncManager(store, remote, timeout_ms=200)
    events = []
    mgr.add_listener(events.append)

    note = _saved(store)
    event = await mgr.sync_async(note)

    assert event == SyncEvent(note.id, SyncOutcome.SYNCED)
    assert events == [event]
    assert [n.id for n in remote.added] == [note.id]
    assert store.retry_count() == 0


@pytest.mark.asyncio
async def test_sync_failure_queues_retry(store):
    mgr = SyncManager(store, FakeRemoteIndex("fail"), timeout_ms=200)
    note = _saved(store)

    event = await mgr.sync_async(note)

    assert event.outcome == SyncOutcome.QUEUED
    assert "down" in event.error
    assert [item.id for item in store.pending_retries()] == [note.id]


@pytest.mark.asyncio
async def test_sync_timeout_queues_retry(store):
    mgr = SyncManager(store, FakeRemoteIndex("hang"), timeout_ms=50)
    note = _saved(store)

    event = await asyncio.wait_for(mgr.sync(note), timeout=2)

    assert event.outcome == SyncOutcome.QUEUED
    assert store.retry_count() == 1


@pytest.mark.asyncio
async def test_unexpected_remote_error_still_queues(store):
    class Broken(FakeRemoteIndex):
        async def add(self, note):
            raise RuntimeError("boom")

    mgr = SyncManager(store, Broken(), timeout_ms=200)
    event = await mgr.sync(_saved(store))
    assert event.outcome == SyncOutcome.QUEUED


@pytest.mark.asyncio
async def test_enqueue_failure_reported_not_raised(tmp_home):
    from zettelmem.sqlite_store import SQLiteStore

    s = SQLiteStore(tmp_home / "gone.db")
    note = _saved(s)
    s.close()
    mgr = SyncManager(s, FakeRemoteIndex("fail"), timeout_ms=200)

    event = await mgr.sync(note)
    assert event.outcome == SyncOutcome.FAILED


@pytest.mark.asyncio
async def test_eventual_drain(store):
    """A note that failed to sync leaves the queue on the first successful flush."""
    remote = FakeRemoteIndex("fail")
    mgr = SyncManager(store, remote, timeout_ms=200)
    note = _saved(store)
    await mgr.sync_async(note)
    assert [item.id for item in store.pending_retries()] == [note.id]

    report = await mgr.flush()
    assert report == FlushReport(attempted=1, synced=0, failed=1)
    assert store.retry_count() == 1

    remote.mode = "succeed"
    report = await mgr.flush()
    assert report == FlushReport(attempted=1, synced=1, failed=0)
    assert store.retry_count() == 0
    assert [n.id for n in remote.added] == [note.id]


@pytest.mark.asyncio
async def test_flush_empty_queue(store):
    mgr = SyncManager(store, FakeRemoteIndex(), timeout_ms=200)
    assert await mgr.flush() == FlushReport()


@pytest.mark.asyncio
async def test_flush_partial_failure(store):
    remote = FakeRemoteIndex()
    mgr = SyncManager(store, remote, timeout_ms=200)
    good, bad = _saved(store, "good", "g"), _saved(store, "bad", "b")
    store.enqueue_retry(good)
    store.enqueue_retry(bad)

    real_add = remote.add

    async def picky_add(note):
        if note.id == bad.id:
            raise RuntimeError("rejected")
        await real_add(note)

    remote.add = picky_add
    report = await mgr.flush()

    assert report.attempted == 2
    assert report.synced == 1
    assert report.failed == 1
    assert [item.id for item in store.pending_retries()] == [bad.id]


@pytest.mark.asyncio
async def test_flush_keeps_item_requeued_mid_flight(store):
    """A fresh enqueue during a flush's remote call must survive the flush."""
    remote = FakeRemoteIndex()
    mgr = SyncManager(store, remote, timeout_ms=1000)
    note = _saved(store)
    store.enqueue_retry(note)

    real_add = remote.add

    async def add_then_requeue(n):
        await real_add(n)
        # Simulate a concurrent sync failure re-queueing the note
        store._conn.execute(
            "UPDATE retry_queue SET enqueued_at = ? WHERE id = ?",
            ("2999-01-01T00:00:00+00:00", n.id),
        )
        store._conn.commit()

    remote.add = add_then_requeue
    report = await mgr.flush()

    assert report.synced == 1
    assert store.retry_count() == 1


@pytest.mark.asyncio
async def test_concurrent_flushes_coalesce(store):
    remote = FakeRemoteIndex()
    mgr = SyncManager(store, remote, timeout_ms=1000)
    note = _saved(store)
    store.enqueue_retry(note)

    gate = asyncio.Event()
    real_add = remote.add

    async def slow_add(n):
        await gate.wait()
        await real_add(n)

    remote.add = slow_add
    first = asyncio.create_task(mgr.flush())
    second = asyncio.create_task(mgr.flush())
    await asyncio.sleep(0.05)
    gate.set()
    r1, r2 = await asyncio.gather(first, second)

    assert r1 == r2 == FlushReport(attempted=1, synced=1, failed=0)
    assert len(remote.added) == 1


@pytest.mark.asyncio
async def test_periodic_loop_drains_queue(store):
    remote = FakeRemoteIndex("fail")
    mgr = SyncManager(store, remote, timeout_ms=200)
    await mgr.sync(_saved(store))
    assert store.retry_count() == 1

    remote.mode = "succeed"
    mgr.start(interval_ms=20)
    assert mgr.running
    for _ in range(100):
        if store.retry_count() == 0:
            break
        await asyncio.sleep(0.02)
    await mgr.stop()

    assert store.retry_count() == 0
    assert not mgr.running


@pytest.mark.asyncio
async def test_periodic_loop_survives_errors(store):
    mgr = SyncManager(store, FakeRemoteIndex(), timeout_ms=200)
    calls = []

    async def failing_flush():
        calls.append(1)
        raise RuntimeError("cycle failed")

    mgr.flush = failing_flush
    mgr.start(interval_ms=10)
    for _ in range(100):
        if len(calls) >= 3:
            break
        await asyncio.sleep(0.01)
    await mgr.stop()
    assert len(calls) >= 3


@pytest.mark.asyncio
async def test_drain_waits_for_in_flight(store):
    remote = FakeRemoteIndex()
    mgr = SyncManager(store, remote, timeout_ms=1000)
    gate = asyncio.Event()
    real_add = remote.add

    async def slow_add(n):
        await gate.wait()
        await real_add(n)

    remote.add = slow_add
    task = mgr.sync_async(_saved(store))
    assert mgr.in_flight == 1
    asyncio.get_running_loop().call_later(0.02, gate.set)
    await mgr.drain()

    assert task.done()
    assert mgr.in_flight == 0
    assert len(remote.added) == 1


@pytest.mark.asyncio
async def test_listener_errors_do_not_break_sync(store):
    mgr = SyncManager(store, FakeRemoteIndex(), timeout_ms=200)
    seen = []

    def bad_listener(event):
        raise ValueError("listener bug")

    mgr.add_listener(bad_listener)
    mgr.add_listener(seen.append)
    event = await mgr.sync(_saved(store))

    assert event.outcome == SyncOutcome.SYNCED
    assert seen == [event]

    mgr.remove_listener(bad_listener)
    mgr.remove_listener(seen.append)
    await mgr.sync(_saved(store))
    assert len(seen) == 1
