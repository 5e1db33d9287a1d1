"""
zettelmem SQLite Store -- durable, always-available note storage.

Holds two record sets in one database file:

    notes        id, title, content, tags (JSON|NULL), links (JSON), created_at
    retry_queue  id, payload (JSON), enqueued_at

The store is the source of truth for note existence and content. It is
exact-match only; semantic search belongs to the remote index. The retry
queue lives here so pending remote syncs survive a restart, but its
lifecycle is owned by the sync manager.

Usage:
    store = SQLiteStore(db_path)
    store.put(note)
    note = store.get(note.id)
    hits = store.find_by_text("zettel", limit=10)
"""

import json
import logging
import sqlite3
import threading
import time as _time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from zettelmem.errors import DuplicateId, NotFound
from zettelmem.types import Link, Note, RetryItem, utcnow

logger = logging.getLogger("zettelmem.sqlite_store")

SCHEMA_VERSION = 1

# ---------------------------------------------------------------------------
# SQLite retry -- a second process opening the same file (CLI while the
# server runs) can briefly hold the write lock past busy_timeout.
# ---------------------------------------------------------------------------
_DB_RETRY_ATTEMPTS = 3
_DB_RETRY_BASE_DELAY = 0.5  # seconds


def _retry_on_locked(fn, *args, **kwargs):
    """Call fn with retry on 'database is locked' OperationalError."""
    for attempt in range(_DB_RETRY_ATTEMPTS):
        try:
            return fn(*args, **kwargs)
        except sqlite3.OperationalError as e:
            if "database is locked" in str(e) and attempt < _DB_RETRY_ATTEMPTS - 1:
                delay = _DB_RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning("database is locked (attempt %d/%d), retrying in %.1fs",
                               attempt + 1, _DB_RETRY_ATTEMPTS, delay)
                _time.sleep(delay)
            else:
                raise


def _fold(value: Optional[str]) -> Optional[str]:
    """Unicode-aware lowercasing for find_by_text (SQLite's lower() is ASCII-only)."""
    return value.casefold() if value is not None else None


class SQLiteStore:
    """SQLite-backed durable store for notes and the remote-sync retry queue.

    One connection per process, opened here and released by close(). All
    access goes through a lock so async callers can hop to worker threads.
    """

    def __init__(self, db_path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)

        self._lock = threading.Lock()
        self._closed = False
        self._conn = self._connect()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        """Create the SQLite connection with WAL and a generous busy timeout."""
        conn = sqlite3.connect(str(self.db_path), timeout=30, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA busy_timeout=30000")
        conn.create_function("zk_fold", 1, _fold, deterministic=True)
        return conn

    def _init_schema(self) -> None:
        """Create tables if they don't exist."""
        c = self._conn

        c.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER NOT NULL
            )
        """)
        row = c.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
        if row is None:
            c.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        elif row[0] > SCHEMA_VERSION:
            logger.warning("Database schema v%d is newer than this build (v%d)", row[0], SCHEMA_VERSION)

        c.execute("""
            CREATE TABLE IF NOT EXISTS notes (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                content TEXT NOT NULL,
                tags TEXT,
                links TEXT NOT NULL DEFAULT '[]',
                created_at TEXT NOT NULL
            )
        """)
        c.execute("CREATE INDEX IF NOT EXISTS idx_notes_created_at ON notes(created_at)")

        c.execute("""
            CREATE TABLE IF NOT EXISTS retry_queue (
                id TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                enqueued_at TEXT NOT NULL
            )
        """)

        c.commit()
        logger.debug("SQLite store ready at %s", self.db_path)

    # ------------------------------------------------------------------
    # Resilient commit
    # ------------------------------------------------------------------

    def _commit(self) -> None:
        _retry_on_locked(self._conn.commit)

    def _run_sql(self, sql, params=()):
        return _retry_on_locked(self._conn.execute, sql, params)

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def put(self, note: Note) -> None:
        """Insert a new note. Durable once this returns.

        Raises DuplicateId if the id is already taken.
        """
        tags_json = json.dumps(list(note.tags)) if note.tags else None
        links_json = json.dumps([link.to_dict() for link in note.links])
        with self._lock:
            try:
                self._run_sql(
                    """INSERT INTO notes (id, title, content, tags, links, created_at)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (note.id, note.title, note.content, tags_json, links_json,
                     note.created_at.isoformat()),
                )
            except sqlite3.IntegrityError as e:
                self._conn.rollback()
                raise DuplicateId(note.id) from e
            self._commit()

    def get(self, note_id: str) -> Note:
        """Return the note with this id or raise NotFound."""
        with self._lock:
            row = self._run_sql(
                "SELECT id, title, content, tags, links, created_at FROM notes WHERE id = ?",
                (note_id,),
            ).fetchone()
        if not row:
            raise NotFound(note_id)
        return self._row_to_note(row)

    def exists(self, note_id: str) -> bool:
        with self._lock:
            row = self._run_sql("SELECT 1 FROM notes WHERE id = ?", (note_id,)).fetchone()
        return row is not None

    def update_links(self, note_id: str, links: Iterable[Link]) -> None:
        """Replace the link list of an existing note."""
        self.update_links_many({note_id: links})

    def update_links_many(self, updates: Dict[str, Iterable[Link]]) -> None:
        """Replace the link lists of several notes in one transaction.

        Either every list is written or none is; NotFound if any id is absent.
        """
        with self._lock:
            try:
                for note_id, links in updates.items():
                    cur = self._run_sql(
                        "UPDATE notes SET links = ? WHERE id = ?",
                        (json.dumps([link.to_dict() for link in links]), note_id),
                    )
                    if cur.rowcount == 0:
                        raise NotFound(note_id)
            except BaseException:
                self._conn.rollback()
                raise
            self._commit()

    def find_by_text(self, query: str, limit: int = 10) -> List[Note]:
        """Notes whose title or content contains query (case-insensitive), newest first."""
        needle = _fold(query)
        with self._lock:
            rows = self._run_sql(
                """SELECT id, title, content, tags, links, created_at FROM notes
                   WHERE instr(zk_fold(title), ?) > 0 OR instr(zk_fold(content), ?) > 0
                   ORDER BY created_at DESC, rowid DESC
                   LIMIT ?""",
                (needle, needle, max(0, int(limit))),
            ).fetchall()
        return [self._row_to_note(row) for row in rows]

    def note_count(self) -> int:
        with self._lock:
            return self._run_sql("SELECT COUNT(*) FROM notes").fetchone()[0]

    # ------------------------------------------------------------------
    # Retry queue
    # ------------------------------------------------------------------

    def enqueue_retry(self, note: Note) -> RetryItem:
        """Insert or overwrite the pending retry for a note (latest wins)."""
        item = RetryItem(id=note.id, payload=note.sync_payload(), enqueued_at=utcnow().isoformat())
        with self._lock:
            self._run_sql(
                """INSERT INTO retry_queue (id, payload, enqueued_at) VALUES (?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET payload = excluded.payload,
                                                 enqueued_at = excluded.enqueued_at""",
                (item.id, json.dumps(item.payload), item.enqueued_at),
            )
            self._commit()
        return item

    def pending_retries(self) -> List[RetryItem]:
        """Every queued item. Callers must not rely on the order."""
        with self._lock:
            rows = self._run_sql("SELECT id, payload, enqueued_at FROM retry_queue").fetchall()
        items = []
        for note_id, payload, enqueued_at in rows:
            try:
                items.append(RetryItem(id=note_id, payload=json.loads(payload), enqueued_at=enqueued_at))
            except (TypeError, ValueError) as e:
                logger.error("Skipping unreadable retry item %s: %s", note_id, e)
        return items

    def delete_retry(self, note_id: str, enqueued_at: Optional[str] = None) -> bool:
        """Remove a queued item. With enqueued_at, only if it was not re-enqueued since."""
        with self._lock:
            if enqueued_at is None:
                cur = self._run_sql("DELETE FROM retry_queue WHERE id = ?", (note_id,))
            else:
                cur = self._run_sql(
                    "DELETE FROM retry_queue WHERE id = ? AND enqueued_at = ?",
                    (note_id, enqueued_at),
                )
            self._commit()
            return cur.rowcount > 0

    def retry_count(self) -> int:
        with self._lock:
            return self._run_sql("SELECT COUNT(*) FROM retry_queue").fetchone()[0]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_dt(value: Optional[str]) -> datetime:
        """Parse a stored ISO timestamp to an aware UTC datetime."""
        if not value:
            return utcnow()
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt

    def _row_to_note(self, row: tuple) -> Note:
        note_id, title, content, tags_json, links_json, created_at = row
        tags = json.loads(tags_json) if tags_json else []
        links = json.loads(links_json) if links_json else []
        return Note(
            id=note_id,
            title=title,
            content=content,
            tags=tuple(tags),
            links=tuple(Link.from_dict(link) for link in links),
            created_at=self._parse_dt(created_at),
        )

    def close(self) -> None:
        """Close the database connection. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._conn.execute("PRAGMA wal_checkpoint(PASSIVE)")
            except sqlite3.Error as e:
                logger.debug("WAL checkpoint on close failed: %s", e)
            self._conn.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "SQLiteStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
