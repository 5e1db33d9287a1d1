"""
zettelmem note service -- the one object the servers and the CLI talk to.

Holds the store handle and the remote client for the life of the process
and wires the sync manager, link graph and query router around them.

Usage:
    async with NoteService.from_settings() as svc:
        note = await svc.create_note("Title", "One idea.", tags=["x"])
        view = await svc.get_note(note.id)
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from zettelmem.config import Settings, load_settings
from zettelmem.errors import ValidationError
from zettelmem.links import LinkGraph
from zettelmem.remote import RemoteIndex, build_remote_index
from zettelmem.router import QueryRouter
from zettelmem.sqlite_store import SQLiteStore
from zettelmem.sync import FlushReport, SyncManager
from zettelmem.types import Link, Note, NoteView, SearchResponse

logger = logging.getLogger("zettelmem.service")


def _require_text(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{name}' must be a non-empty string")
    return value


def _check_tags(tags: Any) -> List[str]:
    if tags is None:
        return []
    if not isinstance(tags, (list, tuple)):
        raise ValidationError("'tags' must be a list of strings")
    for tag in tags:
        if not isinstance(tag, str):
            raise ValidationError("'tags' must be a list of strings")
    return list(tags)


class NoteService:
    def __init__(self, store: SQLiteStore, remote: RemoteIndex, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.store = store
        self.remote = remote
        self.sync = SyncManager(store, remote, timeout_ms=self.settings.remote_timeout_ms)
        self.links = LinkGraph(store)
        self.router = QueryRouter(
            store,
            remote,
            timeout_ms=self.settings.remote_timeout_ms,
            search_limit=self.settings.search_limit,
        )
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "NoteService":
        """Open the store and build the remote client from configuration."""
        settings = settings or load_settings()
        settings.ensure_dirs()
        store = SQLiteStore(settings.db_path)
        return cls(store, build_remote_index(settings), settings)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create_note(self, title: str, content: str, tags: Optional[List[str]] = None) -> Note:
        """Persist a note durably and start its remote sync.

        Returns as soon as the SQLite write commits. The remote sync runs
        in the background; its task is available via ``self.sync``.
        """
        _require_text("title", title)
        _require_text("content", content)
        tag_list = _check_tags(tags)
        if len(content) > self.settings.max_content_size:
            raise ValidationError(
                f"'content' exceeds maximum size ({len(content)} > {self.settings.max_content_size} chars)"
            )

        note = Note.create(title, content, tag_list)
        await asyncio.to_thread(self.store.put, note)
        logger.info("Created note %s", note.id)
        self.sync.sync_async(note)
        return note

    async def get_note(self, note_id: str) -> NoteView:
        return await self.router.get_note(note_id)

    async def search_notes(self, query: str) -> SearchResponse:
        return await self.router.search_notes(query)

    async def create_link(self, source: str, target: str, link_type: str) -> Tuple[Link, Link]:
        return await self.links.create_link(source, target, link_type)

    async def flush(self) -> FlushReport:
        return await self.sync.flush()

    async def status(self) -> Dict[str, Any]:
        notes = await asyncio.to_thread(self.store.note_count)
        pending = await asyncio.to_thread(self.store.retry_count)
        return {
            "notes": notes,
            "pending_retries": pending,
            "in_flight_syncs": self.sync.in_flight,
            "remote": self.remote.name,
            "db_path": str(self.store.db_path),
            "flush_loop": self.sync.running,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic retry flush. Needs a running event loop."""
        self.sync.start(self.settings.flush_interval_ms)

    async def aclose(self) -> None:
        """Stop background work, then release the remote client and the store."""
        if self._closed:
            return
        self._closed = True
        try:
            await self.sync.stop()
        finally:
            try:
                await self.remote.aclose()
            finally:
                self.store.close()
        logger.debug("Note service closed")

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> "NoteService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
