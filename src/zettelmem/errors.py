"""Error taxonomy shared by the store, the sync layer and the server surfaces.

Callers only ever see ValidationError and NotFound. RemoteUnavailable is
raised by the remote index and absorbed by the sync manager (queued retry)
or the query router (durable fallback). DuplicateId means the id generator
collided and is treated as fatal.
"""


class ZettelError(Exception):
    """Base class for zettelmem errors."""


class ValidationError(ZettelError, ValueError):
    """Bad caller input. Surfaced immediately, never retried."""


class NotFound(ZettelError, LookupError):
    """A referenced note does not exist in the durable store."""

    def __init__(self, note_id: str, message: str = ""):
        self.note_id = note_id
        super().__init__(message or f"Note not found: {note_id}")


class RemoteUnavailable(ZettelError):
    """Timeout, transport failure or service error from the remote index."""


class DuplicateId(ZettelError):
    """A note id already exists in the durable store."""

    def __init__(self, note_id: str):
        self.note_id = note_id
        super().__init__(f"Duplicate note id: {note_id}")
