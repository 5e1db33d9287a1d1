"""
zettelmem query router -- remote first, durable store as fallback.

Reads go to the remote index, bounded by the remote timeout. A timeout,
transport error, service error or (for get_note) a missing match sends
the read to the SQLite store instead. Remote trouble alone never makes a
read fail; only a note missing from both stores does.
"""

import asyncio
import logging

from zettelmem.errors import ValidationError
from zettelmem.remote import RemoteIndex, bounded, hit_note_id, normalize_search_results, to_search_hit
from zettelmem.sqlite_store import SQLiteStore
from zettelmem.types import NoteView, SearchHit, SearchResponse, Via

logger = logging.getLogger("zettelmem.router")

# Candidates fetched when looking a single note up by its noteId marker.
_GET_CANDIDATES = 5


class QueryRouter:
    def __init__(
        self,
        store: SQLiteStore,
        remote: RemoteIndex,
        timeout_ms: int = 5000,
        search_limit: int = 10,
    ):
        self.store = store
        self.remote = remote
        self.timeout_ms = timeout_ms
        self.search_limit = search_limit

    async def get_note(self, note_id: str) -> NoteView:
        """Fetch one note. Raises NotFound if neither store has it."""
        if not isinstance(note_id, str) or not note_id.strip():
            raise ValidationError("'id' must be a non-empty string")

        try:
            items = await bounded(
                self.remote.search(f"noteId:{note_id}", limit=_GET_CANDIDATES), self.timeout_ms
            )
        except Exception as e:
            logger.warning("Remote get failed for %s, using durable store: %s", note_id, e)
        else:
            for item in normalize_search_results(items):
                if hit_note_id(item) == note_id:
                    hit = to_search_hit(item)
                    return NoteView(id=note_id, content=hit.content, via=Via.REMOTE, title=hit.title)
            logger.debug("No remote match for %s, using durable store", note_id)

        note = await asyncio.to_thread(self.store.get, note_id)
        return NoteView.from_note(note)

    async def search_notes(self, query: str) -> SearchResponse:
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("'query' must be a non-empty string")

        try:
            items = await bounded(self.remote.search(query, limit=self.search_limit), self.timeout_ms)
        except Exception as e:
            logger.warning("Remote search failed, using durable store: %s", e)
            notes = await asyncio.to_thread(self.store.find_by_text, query, self.search_limit)
            return SearchResponse(
                results=tuple(SearchHit(id=n.id, content=n.content, title=n.title) for n in notes),
                via=Via.DURABLE,
            )

        hits = [to_search_hit(item) for item in normalize_search_results(items)]
        return SearchResponse(results=tuple(hits[: self.search_limit]), via=Via.REMOTE)
