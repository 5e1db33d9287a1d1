"""zettelmem -- Zettelkasten notes over Mem0 semantic memory with a local SQLite store.

Direct Python API -- no MCP server required::

    import asyncio
    from zettelmem import NoteService

    async def demo():
        async with NoteService.from_settings() as svc:
            note = await svc.create_note("Atomic notes", "One idea per note.", tags=["zettel"])
            print(await svc.search_notes("atomic"))

    asyncio.run(demo())

For MCP tools (stdio or HTTP), install with: ``pip install zettelmem[server]``
"""

__version__ = "0.10.0"

from zettelmem.config import Settings, load_settings
from zettelmem.errors import DuplicateId, NotFound, RemoteUnavailable, ValidationError, ZettelError
from zettelmem.remote import Mem0RemoteIndex, OfflineRemoteIndex, RemoteIndex
from zettelmem.service import NoteService
from zettelmem.sqlite_store import SQLiteStore
from zettelmem.sync import FlushReport, SyncEvent, SyncManager, SyncOutcome
from zettelmem.types import Link, Note, NoteView, SearchHit, SearchResponse, Via

__all__ = [
    "NoteService",
    "SQLiteStore",
    "SyncManager",
    # Remote
    "RemoteIndex",
    "Mem0RemoteIndex",
    "OfflineRemoteIndex",
    # Types
    "Note",
    "Link",
    "NoteView",
    "SearchHit",
    "SearchResponse",
    "Via",
    "SyncEvent",
    "SyncOutcome",
    "FlushReport",
    # Errors
    "ZettelError",
    "ValidationError",
    "NotFound",
    "RemoteUnavailable",
    "DuplicateId",
    # Config
    "Settings",
    "load_settings",
    # Meta
    "__version__",
]
