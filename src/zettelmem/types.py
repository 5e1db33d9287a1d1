"""Value types for notes, links, retry items and read results."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

INVERSE_SUFFIX = "_by"


class Via:
    """Which store answered a read."""

    REMOTE = "remote"
    DURABLE = "durable"


def new_note_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Link:
    """Directed typed edge. Serialized as ``{"from", "to", "type"}``."""

    source: str
    target: str
    type: str

    def inverse(self) -> "Link":
        return Link(source=self.target, target=self.source, type=self.type + INVERSE_SUFFIX)

    def to_dict(self) -> Dict[str, str]:
        return {"from": self.source, "to": self.target, "type": self.type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Link":
        return cls(source=data["from"], target=data["to"], type=data["type"])


@dataclass(frozen=True)
class Note:
    """One atomic idea. Immutable except for its link list, which only grows."""

    id: str
    title: str
    content: str
    tags: Tuple[str, ...] = ()
    links: Tuple[Link, ...] = ()
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def create(cls, title: str, content: str, tags: Optional[List[str]] = None) -> "Note":
        return cls(id=new_note_id(), title=title, content=content, tags=tuple(tags or ()))

    def with_links(self, links) -> "Note":
        return Note(
            id=self.id,
            title=self.title,
            content=self.content,
            tags=self.tags,
            links=tuple(links),
            created_at=self.created_at,
        )

    def sync_payload(self) -> Dict[str, str]:
        """The slice of a note the remote index needs (and the retry queue keeps)."""
        return {"id": self.id, "title": self.title, "content": self.content}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "tags": list(self.tags),
            "links": [link.to_dict() for link in self.links],
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class RetryItem:
    """A note payload waiting to be re-sent to the remote index."""

    id: str
    payload: Dict[str, str]
    enqueued_at: str

    def to_note(self) -> Note:
        # Only the synced fields survive in the queue; that is all add() reads.
        return Note(id=self.payload["id"], title=self.payload["title"], content=self.payload["content"])


@dataclass(frozen=True)
class NoteView:
    """Result of a single-note lookup, tagged with the store that answered."""

    id: str
    content: str
    via: str
    title: Optional[str] = None
    tags: Optional[Tuple[str, ...]] = None
    links: Optional[Tuple[Link, ...]] = None

    @classmethod
    def from_note(cls, note: Note) -> "NoteView":
        return cls(
            id=note.id,
            content=note.content,
            via=Via.DURABLE,
            title=note.title,
            tags=note.tags,
            links=note.links,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "content": self.content, "via": self.via}
        if self.title is not None:
            out["title"] = self.title
        if self.tags is not None:
            out["tags"] = list(self.tags)
        if self.links is not None:
            out["links"] = [link.to_dict() for link in self.links]
        return out


@dataclass(frozen=True)
class SearchHit:
    id: str
    content: str
    title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "content": self.content}
        if self.title is not None:
            out["title"] = self.title
        return out


@dataclass(frozen=True)
class SearchResponse:
    results: Tuple[SearchHit, ...]
    via: str

    def to_dict(self) -> Dict[str, Any]:
        return {"results": [hit.to_dict() for hit in self.results], "via": self.via}
