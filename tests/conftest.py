"""zettelmem test configuration."""
import asyncio
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Ensure zettelmem package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from zettelmem.config import Settings
from zettelmem.errors import RemoteUnavailable
from zettelmem.remote import RemoteIndex, normalize_search_results

_ENV_VARS = (
    "ZETTEL_HOME",
    "ZETTEL_DB_PATH",
    "MEM0_API_KEY",
    "MEM0_BASE_URL",
    "ZETTEL_USER_ID",
    "ZETTEL_REMOTE_TIMEOUT_MS",
    "ZETTEL_FLUSH_INTERVAL_MS",
    "ZETTEL_SEARCH_LIMIT",
    "ZETTEL_MAX_CONTENT_SIZE",
    "ZETTEL_RATE_LIMIT_GLOBAL",
    "ZETTEL_RATE_LIMIT_WRITE",
    "ZETTEL_HTTP_HOST",
    "ZETTEL_CORS_ORIGINS",
    "ZETTEL_HTTP_PORT",
    "ZETTEL_LOG_LEVEL",
)


class FakeRemoteIndex(RemoteIndex):
    """Scriptable in-memory remote index.

    Modes: "succeed" stores and searches memories, "fail" raises
    RemoteUnavailable, "hang" never returns (so bounded() times out).
    """

    name = "fake"

    def __init__(self, mode: str = "succeed"):
        self.mode = mode
        self.added = []
        self.memories = []
        self.search_calls = []
        self.search_results = None  # raw payload override for search()
        self.closed = False

    async def _behave(self):
        if self.mode == "fail":
            raise RemoteUnavailable("fake remote is down")
        if self.mode == "hang":
            await asyncio.Event().wait()

    async def add(self, note):
        await self._behave()
        self.added.append(note)
        self.memories.append({
            "id": f"mem-{len(self.memories) + 1}",
            "memory": note.content,
            "metadata": {"noteId": note.id, "title": note.title},
        })

    async def search(self, query, limit=10):
        self.search_calls.append((query, limit))
        await self._behave()
        if self.search_results is not None:
            return normalize_search_results(self.search_results)
        if query.startswith("noteId:"):
            wanted = query[len("noteId:"):]
            found = [m for m in self.memories if m["metadata"]["noteId"] == wanted]
        else:
            q = query.casefold()
            found = [
                m for m in self.memories
                if q in m["memory"].casefold() or q in m["metadata"]["title"].casefold()
            ]
        return found[:limit]

    async def aclose(self):
        self.closed = True


@pytest.fixture
def tmp_home(tmp_path, monkeypatch):
    """Create a temporary zettelmem home and clear zettelmem env vars."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    home = tmp_path / ".zettelmem"
    home.mkdir()
    monkeypatch.setenv("ZETTEL_HOME", str(home))
    return home


@pytest.fixture
def settings(tmp_home):
    """Settings with short timeouts so remote outages resolve quickly."""
    return Settings(home=tmp_home, remote_timeout_ms=200, flush_interval_ms=50)


@pytest.fixture
def store(tmp_home):
    """Create a fresh SQLiteStore for testing."""
    from zettelmem.sqlite_store import SQLiteStore
    s = SQLiteStore(db_path=tmp_home / "test.db")
    yield s
    s.close()


@pytest.fixture
def remote():
    return FakeRemoteIndex()


@pytest_asyncio.fixture
async def service(store, remote, settings):
    """NoteService over the temp store and the fake remote."""
    from zettelmem.service import NoteService
    svc = NoteService(store, remote, settings)
    yield svc
    await svc.aclose()
