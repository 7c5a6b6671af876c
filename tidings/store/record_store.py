"""
Tidings Record Store
--------------------
SQLite persistence for ingested records and the entities classified from
them (contacts, events, event types, notes), plus the in-memory BM25 index
over record text used for lexical candidate retrieval.

Entities point back at their originating record through a plain
``source_record_id`` column with an index and no foreign key: deleting a
record never touches its entities, and looking up a vanished record
returns ``None``.
"""

import sqlite3
import json
import time
import logging
import threading
from pathlib import Path
from typing import Optional, List, Dict, Any, Union

from tidings.core.types import Contact, Event, EventStatus, EventType, Note, Record
from tidings.errors import DuplicateRecordError
from tidings.retrieval.bm25 import BM25Index

logger = logging.getLogger("Tidings.Store")

SCHEMA_VERSION = 1

CREATE_RECORDS = """
CREATE TABLE IF NOT EXISTS records (
    id              TEXT PRIMARY KEY,
    source          TEXT NOT NULL,
    external_id     TEXT,
    title           TEXT NOT NULL DEFAULT '',
    body            TEXT NOT NULL DEFAULT '',
    created_at      REAL NOT NULL,
    ingested_at     REAL NOT NULL,

    -- Enrichment
    due_at          REAL,
    confidence      REAL,

    -- Provenance (JSON)
    metadata        TEXT DEFAULT '{}',

    UNIQUE (source, external_id)
);
"""

CREATE_CONTACTS = """
CREATE TABLE IF NOT EXISTS contacts (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    name             TEXT NOT NULL,
    email            TEXT,
    phone            TEXT,
    meta_json        TEXT DEFAULT '{}',
    source_record_id TEXT,
    created_at       REAL NOT NULL
);
"""

CREATE_EVENT_TYPES = """
CREATE TABLE IF NOT EXISTS event_types (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    type_name TEXT NOT NULL UNIQUE
);
"""

CREATE_EVENTS = """
CREATE TABLE IF NOT EXISTS events (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    type_id          INTEGER NOT NULL,
    title            TEXT NOT NULL,
    body             TEXT,
    start_at         REAL,
    end_at           REAL,
    location         TEXT,
    status           TEXT NOT NULL DEFAULT 'pending',
    source_type      TEXT,
    source_record_id TEXT,
    confidence       REAL,
    created_at       REAL NOT NULL
);
"""

CREATE_NOTES = """
CREATE TABLE IF NOT EXISTS notes (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    title            TEXT NOT NULL,
    body             TEXT NOT NULL DEFAULT '',
    created_at       REAL NOT NULL,
    updated_at       REAL NOT NULL,
    source_record_id TEXT
);
"""

SCHEMA_META = """
CREATE TABLE IF NOT EXISTS schema_meta (
    key   TEXT PRIMARY KEY,
    value TEXT
);
"""

CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_records_created ON records(created_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_records_source ON records(source);",
    "CREATE INDEX IF NOT EXISTS idx_records_due ON records(due_at);",
    "CREATE INDEX IF NOT EXISTS idx_contacts_source_record ON contacts(source_record_id);",
    "CREATE INDEX IF NOT EXISTS idx_events_source_record ON events(source_record_id);",
    "CREATE INDEX IF NOT EXISTS idx_events_start ON events(start_at);",
    "CREATE INDEX IF NOT EXISTS idx_notes_source_record ON notes(source_record_id);",
]

Entity = Union[Contact, Event, Note]


class RecordStore:
    """Records and classified entities in SQLite, with a BM25 index over record text."""

    # SQLite's default SQLITE_LIMIT_VARIABLE_NUMBER is 999.
    _SQLITE_MAX_VARS = 900

    def __init__(self, db_path):
        self.db_path = Path(db_path) if not isinstance(db_path, Path) else db_path
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self.lexical = BM25Index()
        self._initialize()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn

    def _initialize(self):
        with self._lock:
            conn = self._get_conn()
            for ddl in (CREATE_RECORDS, CREATE_CONTACTS, CREATE_EVENT_TYPES, CREATE_EVENTS, CREATE_NOTES, SCHEMA_META):
                conn.execute(ddl)
            for idx in CREATE_INDEXES:
                conn.execute(idx)
            conn.execute(
                "INSERT OR IGNORE INTO schema_meta (key, value) VALUES (?, ?)",
                ("version", str(SCHEMA_VERSION)),
            )
            conn.commit()
            rows = conn.execute("SELECT id, title, body FROM records").fetchall()
        self.lexical.rebuild({row["id"]: f"{row['title']} {row['body']}" for row in rows})
        logger.info("Record store initialized at %s (%d records)", self.db_path, len(rows))

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> Record:
        d = dict(row)
        try:
            d["metadata"] = json.loads(d.get("metadata") or "{}")
        except json.JSONDecodeError:
            d["metadata"] = {}
        return Record(**d)

    # --- Records ---

    def add_record(self, record: Record) -> str:
        """
        Insert a new record.

        Raises:
            DuplicateRecordError: if (source, external_id) or the id is already stored.
        """
        with self._lock:
            conn = self._get_conn()
            try:
                conn.execute(
                    """INSERT INTO records (
                        id, source, external_id, title, body, created_at, ingested_at,
                        due_at, confidence, metadata
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        record.id, record.source, record.external_id,
                        record.title, record.body, record.created_at, record.ingested_at,
                        record.due_at, record.confidence, json.dumps(record.metadata),
                    ),
                )
                conn.commit()
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise DuplicateRecordError(record.source, record.external_id or record.id) from e
            self.lexical.add(record.id, record.text)
        return record.id

    def get_record(self, record_id: str) -> Optional[Record]:
        with self._lock:
            row = self._get_conn().execute("SELECT * FROM records WHERE id = ?", (record_id,)).fetchone()
        return self._row_to_record(row) if row is not None else None

    def find_by_external_id(self, source: str, external_id: str) -> Optional[Record]:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM records WHERE source = ? AND external_id = ? LIMIT 1",
                (source, external_id),
            ).fetchone()
        return self._row_to_record(row) if row is not None else None

    def exists(self, source: str, external_id: str) -> bool:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT 1 FROM records WHERE source = ? AND external_id = ? LIMIT 1",
                (source, external_id),
            ).fetchone()
        return row is not None

    def update_record(self, record_id: str, **kwargs) -> bool:
        if not kwargs:
            return False
        if "metadata" in kwargs and isinstance(kwargs["metadata"], dict):
            kwargs["metadata"] = json.dumps(kwargs["metadata"])
        set_clause = ", ".join(f"{k} = ?" for k in kwargs.keys())
        values = list(kwargs.values()) + [record_id]
        with self._lock:
            conn = self._get_conn()
            cursor = conn.execute(f"UPDATE records SET {set_clause} WHERE id = ?", values)
            conn.commit()
        if cursor.rowcount and ({"title", "body"} & kwargs.keys()):
            with self._lock:
                updated = self.get_record(record_id)
                if updated is not None:
                    self.lexical.add(record_id, updated.text)
        return cursor.rowcount > 0

    def delete_record(self, record_id: str) -> bool:
        """Delete a record. Entities derived from it are left in place."""
        with self._lock:
            conn = self._get_conn()
            cursor = conn.execute("DELETE FROM records WHERE id = ?", (record_id,))
            conn.commit()
            self.lexical.remove(record_id)
        return cursor.rowcount > 0

    def query_records(
        self,
        start: Optional[float] = None,
        end: Optional[float] = None,
        source: Optional[str] = None,
        limit: int = 100,
    ) -> List[Record]:
        """Records in an inclusive created_at window and/or from one source, newest first."""
        conditions = []
        params: list = []
        if start is not None:
            conditions.append("created_at >= ?")
            params.append(start)
        if end is not None:
            conditions.append("created_at <= ?")
            params.append(end)
        if source:
            conditions.append("source = ?")
            params.append(source)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(limit)
        with self._lock:
            rows = self._get_conn().execute(
                f"SELECT * FROM records {where} ORDER BY created_at DESC LIMIT ?", params
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def get_by_ids(self, record_ids: List[str]) -> List[Record]:
        """Fetch records by id, preserving the order of ``record_ids``."""
        if not record_ids:
            return []
        ids = list(dict.fromkeys(record_ids))
        found: Dict[str, Record] = {}
        with self._lock:
            conn = self._get_conn()
            for i in range(0, len(ids), self._SQLITE_MAX_VARS):
                chunk = ids[i : i + self._SQLITE_MAX_VARS]
                placeholders = ",".join("?" for _ in chunk)
                rows = conn.execute(
                    f"SELECT * FROM records WHERE id IN ({placeholders})", chunk
                ).fetchall()
                for row in rows:
                    found[row["id"]] = self._row_to_record(row)
        return [found[i] for i in ids if i in found]

    def search_text(self, expression: str, limit: int = 20) -> List[Record]:
        """
        Lexical candidates for a BM25 match expression, best first.

        Raises:
            LexicalQueryError: if the expression is malformed.
        """
        with self._lock:
            hits = self.lexical.match(expression, limit=limit)
        return self.get_by_ids([doc_id for doc_id, _ in hits])

    def count_records(self, source: Optional[str] = None) -> int:
        with self._lock:
            conn = self._get_conn()
            if source:
                row = conn.execute("SELECT COUNT(*) FROM records WHERE source = ?", (source,)).fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) FROM records").fetchone()
        return row[0] if row else 0

    def count_entities(self) -> Dict[str, int]:
        with self._lock:
            conn = self._get_conn()
            return {
                table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for table in ("contacts", "events", "event_types", "notes")
            }

    # --- Entities ---

    def add_contact(self, contact: Contact) -> Contact:
        with self._lock:
            conn = self._get_conn()
            cursor = conn.execute(
                """INSERT INTO contacts (name, email, phone, meta_json, source_record_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    contact.name, contact.email, contact.phone,
                    json.dumps(contact.metadata), contact.source_record_id, time.time(),
                ),
            )
            conn.commit()
        return contact.model_copy(update={"id": int(cursor.lastrowid)})

    def get_or_create_event_type(self, type_name: str) -> EventType:
        """Idempotent get-or-create keyed by the unique type name."""
        with self._lock:
            conn = self._get_conn()
            conn.execute("INSERT OR IGNORE INTO event_types (type_name) VALUES (?)", (type_name,))
            conn.commit()
            row = conn.execute(
                "SELECT id, type_name FROM event_types WHERE type_name = ?", (type_name,)
            ).fetchone()
        return EventType(id=int(row["id"]), type_name=row["type_name"])

    def add_event(self, event: Event) -> Event:
        with self._lock:
            conn = self._get_conn()
            cursor = conn.execute(
                """INSERT INTO events (
                    type_id, title, body, start_at, end_at, location, status,
                    source_type, source_record_id, confidence, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    event.type_id, event.title, event.body, event.start_at, event.end_at,
                    event.location, event.status.value, event.source_type,
                    event.source_record_id, event.confidence, time.time(),
                ),
            )
            conn.commit()
        return event.model_copy(update={"id": int(cursor.lastrowid)})

    def add_note(self, note: Note) -> Note:
        with self._lock:
            conn = self._get_conn()
            cursor = conn.execute(
                """INSERT INTO notes (title, body, created_at, updated_at, source_record_id)
                VALUES (?, ?, ?, ?, ?)""",
                (note.title, note.body, note.created_at, note.updated_at, note.source_record_id),
            )
            conn.commit()
        return note.model_copy(update={"id": int(cursor.lastrowid)})

    def contacts(self, limit: int = 100) -> List[Contact]:
        with self._lock:
            rows = self._get_conn().execute(
                "SELECT * FROM contacts ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [self._row_to_contact(row) for row in rows]

    def events_between(
        self,
        start: Optional[float] = None,
        end: Optional[float] = None,
        limit: int = 100,
    ) -> List[Event]:
        conditions = []
        params: list = []
        if start is not None:
            conditions.append("start_at >= ?")
            params.append(start)
        if end is not None:
            conditions.append("start_at <= ?")
            params.append(end)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(limit)
        with self._lock:
            rows = self._get_conn().execute(
                f"SELECT * FROM events {where} ORDER BY start_at ASC LIMIT ?", params
            ).fetchall()
        return [self._row_to_event(row) for row in rows]

    def event_types(self) -> List[EventType]:
        with self._lock:
            rows = self._get_conn().execute("SELECT id, type_name FROM event_types ORDER BY id").fetchall()
        return [EventType(id=row["id"], type_name=row["type_name"]) for row in rows]

    def notes(self, limit: int = 100) -> List[Note]:
        with self._lock:
            rows = self._get_conn().execute(
                "SELECT * FROM notes ORDER BY created_at DESC LIMIT ?", (limit,)
            ).fetchall()
        return [Note(**dict(row)) for row in rows]

    def entities_for_record(self, record_id: str) -> Dict[str, List[Any]]:
        """Reverse lookup of every entity classified from one record."""
        with self._lock:
            conn = self._get_conn()
            contact_rows = conn.execute(
                "SELECT * FROM contacts WHERE source_record_id = ?", (record_id,)
            ).fetchall()
            event_rows = conn.execute(
                "SELECT * FROM events WHERE source_record_id = ?", (record_id,)
            ).fetchall()
            note_rows = conn.execute(
                "SELECT * FROM notes WHERE source_record_id = ?", (record_id,)
            ).fetchall()
        return {
            "contacts": [self._row_to_contact(row) for row in contact_rows],
            "events": [self._row_to_event(row) for row in event_rows],
            "notes": [Note(**dict(row)) for row in note_rows],
        }

    def source_record_for(self, entity: Entity) -> Optional[Record]:
        """Follow an entity's weak back-reference; ``None`` once the record is gone."""
        if not entity.source_record_id:
            return None
        return self.get_record(entity.source_record_id)

    @staticmethod
    def _row_to_contact(row: sqlite3.Row) -> Contact:
        try:
            meta = json.loads(row["meta_json"] or "{}")
        except json.JSONDecodeError:
            meta = {}
        return Contact(
            id=row["id"], name=row["name"], email=row["email"], phone=row["phone"],
            source_record_id=row["source_record_id"], metadata=meta,
        )

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        d = dict(row)
        d.pop("created_at", None)
        try:
            d["status"] = EventStatus(d.get("status") or "pending")
        except ValueError:
            d["status"] = EventStatus.PENDING
        return Event(**d)

    def close(self):
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
