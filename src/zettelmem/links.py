"""Bidirectional typed links between notes."""

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Dict, Tuple

from zettelmem.errors import ValidationError
from zettelmem.sqlite_store import SQLiteStore
from zettelmem.types import Link

logger = logging.getLogger("zettelmem.links")


class _NoteLocks:
    """One asyncio.Lock per note id, created on demand and dropped when idle."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._refs: Dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, *note_ids: str) -> AsyncIterator[None]:
        # Sorted acquisition keeps two opposite links from deadlocking.
        ids = sorted(set(note_ids))
        for note_id in ids:
            self._locks.setdefault(note_id, asyncio.Lock())
            self._refs[note_id] = self._refs.get(note_id, 0) + 1
        acquired = []
        try:
            for note_id in ids:
                await self._locks[note_id].acquire()
                acquired.append(note_id)
            yield
        finally:
            for note_id in reversed(acquired):
                self._locks[note_id].release()
            for note_id in ids:
                self._refs[note_id] -= 1
                if not self._refs[note_id]:
                    del self._refs[note_id]
                    del self._locks[note_id]

    def __len__(self) -> int:
        return len(self._locks)


class LinkGraph:
    """Creates links so that both endpoints see them, or neither does.

    A link a -> b of type t appends {a, b, t} to a and {b, a, t_by} to b.
    Links are append-only; repeating a call appends duplicates.
    """

    def __init__(self, store: SQLiteStore):
        self.store = store
        self._locks = _NoteLocks()

    async def create_link(self, source: str, target: str, link_type: str) -> Tuple[Link, Link]:
        for field_name, value in (("from", source), ("to", target), ("type", link_type)):
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"'{field_name}' must be a non-empty string")

        forward = Link(source=source, target=target, type=link_type)
        inverse = forward.inverse()
        async with self._locks.hold(source, target):
            write = asyncio.ensure_future(asyncio.to_thread(self._append, forward, inverse))
            try:
                await asyncio.shield(write)
            except asyncio.CancelledError:
                # The worker thread cannot be interrupted; hold the locks until it is done.
                await asyncio.wait([write])
                if not write.cancelled() and write.exception() is not None:
                    logger.warning("Link %s -> %s failed after cancel: %s", source, target, write.exception())
                raise

        logger.info("Linked %s -[%s]-> %s", source, link_type, target)
        return forward, inverse

    def _append(self, forward: Link, inverse: Link) -> None:
        origin = self.store.get(forward.source)
        if forward.source == forward.target:
            self.store.update_links(origin.id, origin.links + (forward, inverse))
            return
        target = self.store.get(forward.target)
        self.store.update_links_many({
            origin.id: origin.links + (forward,),
            target.id: target.links + (inverse,),
        })
