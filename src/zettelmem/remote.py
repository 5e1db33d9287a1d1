"""
zettelmem remote index -- semantic search over a Mem0-compatible service.

The remote index holds a projection of each note (title + content as a
conversation, noteId/title in metadata). It is never the source of truth:
every failure surfaces as RemoteUnavailable and callers fall back to the
durable store or queue a retry.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

import httpx

from zettelmem.errors import RemoteUnavailable
from zettelmem.types import Note, SearchHit

logger = logging.getLogger("zettelmem.remote")

T = TypeVar("T")


async def bounded(aw: Awaitable[T], timeout_ms: int) -> T:
    """Await a remote call for at most timeout_ms.

    On timeout the call is cancelled (not just abandoned) and
    RemoteUnavailable is raised. Other RemoteUnavailable errors pass through.
    """
    try:
        return await asyncio.wait_for(aw, timeout=timeout_ms / 1000.0)
    except asyncio.TimeoutError as e:
        raise RemoteUnavailable(f"Remote call timed out after {timeout_ms}ms") from e


def normalize_search_results(raw: Any) -> List[Dict[str, Any]]:
    """Accept a bare list or ``{"results": [...]}``; anything else is empty."""
    if isinstance(raw, list):
        items = raw
    elif isinstance(raw, dict) and isinstance(raw.get("results"), list):
        items = raw["results"]
    else:
        return []
    return [item for item in items if isinstance(item, dict)]


def _metadata(item: Dict[str, Any]) -> Dict[str, Any]:
    meta = item.get("metadata")
    return meta if isinstance(meta, dict) else {}


def hit_note_id(item: Dict[str, Any]) -> Optional[str]:
    """The note id a remote memory belongs to, if it carries one."""
    note_id = _metadata(item).get("noteId")
    return str(note_id) if note_id else None


def hit_content(item: Dict[str, Any]) -> str:
    for key in ("memory", "content", "text"):
        value = item.get(key)
        if isinstance(value, str):
            return value
    return ""


def to_search_hit(item: Dict[str, Any]) -> SearchHit:
    """Map one remote memory to the common hit shape."""
    title = _metadata(item).get("title")
    return SearchHit(
        id=hit_note_id(item) or str(item.get("id", "")),
        content=hit_content(item),
        title=title if isinstance(title, str) else None,
    )


class RemoteIndex(ABC):
    """Semantic index interface. Both methods raise RemoteUnavailable on any failure."""

    name = "remote"

    @abstractmethod
    async def add(self, note: Note) -> None:
        ...

    @abstractmethod
    async def search(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Raw memories, already passed through normalize_search_results."""

    async def aclose(self) -> None:
        return None


class OfflineRemoteIndex(RemoteIndex):
    """Stand-in used when no remote credentials are configured.

    Every call fails, so writes collect in the retry queue and reads are
    served by the durable store. Configuring a key later drains the queue.
    """

    name = "offline"

    async def add(self, note: Note) -> None:
        raise RemoteUnavailable("Remote index not configured (MEM0_API_KEY unset)")

    async def search(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        raise RemoteUnavailable("Remote index not configured (MEM0_API_KEY unset)")


class Mem0RemoteIndex(RemoteIndex):
    """Mem0 platform REST client.

    Endpoints:
        POST /v1/memories/         add a conversation with metadata
        POST /v1/memories/search/  semantic search scoped to user_id
    """

    name = "mem0"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.mem0.ai",
        user_id: str = "zettelkasten_mcp",
        timeout_ms: int = 5000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_id = user_id
        # Per-request transport timeout sits slightly above bounded() so the
        # asyncio deadline is the one that normally fires.
        seconds = timeout_ms / 1000.0 + 1.0
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Token {api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(seconds, connect=min(seconds, 5.0)),
            transport=transport,
        )

    async def _post(self, path: str, body: Dict[str, Any]) -> Any:
        try:
            response = await self._client.post(path, json=body)
        except httpx.HTTPError as e:
            raise RemoteUnavailable(f"Mem0 request to {path} failed: {e}") from e
        if response.status_code >= 400:
            raise RemoteUnavailable(
                f"Mem0 {path} returned HTTP {response.status_code}: {response.text[:200]}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise RemoteUnavailable(f"Mem0 {path} returned invalid JSON") from e

    async def add(self, note: Note) -> None:
        await self._post("/v1/memories/", {
            "messages": [
                {"role": "user", "content": f"Note: {note.title}"},
                {"role": "assistant", "content": note.content},
            ],
            "user_id": self.user_id,
            "metadata": {"noteId": note.id, "title": note.title},
        })

    async def search(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        raw = await self._post("/v1/memories/search/", {
            "query": query,
            "user_id": self.user_id,
            "limit": limit,
        })
        return normalize_search_results(raw)

    async def aclose(self) -> None:
        await self._client.aclose()


def build_remote_index(settings) -> RemoteIndex:
    """Mem0 when an API key is configured, otherwise the offline stand-in."""
    if settings.remote_enabled:
        logger.info("Remote index: mem0 at %s (user %s)", settings.mem0_base_url, settings.user_id)
        return Mem0RemoteIndex(
            api_key=settings.mem0_api_key,
            base_url=settings.mem0_base_url,
            user_id=settings.user_id,
            timeout_ms=settings.remote_timeout_ms,
        )
    logger.warning("MEM0_API_KEY not set; running offline, notes will queue for remote sync")
    return OfflineRemoteIndex()
