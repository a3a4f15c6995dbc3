"""Local SQLite record store. Connection is cached via Streamlit."""
import json
import logging
import os
import sqlite3
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterable

import streamlit as st
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "radprep.db"
ACTIVE_SESSION_KEY = "current"


class StoreError(Exception):
    """Any failure reading or writing the local database."""


class Table:
    """One record kind. Rows are a key column plus the record as JSON."""

    def __init__(self, store: "RecordStore", name: str, key_field: str, auto_increment: bool = False):
        self.store = store
        self.name = name
        self.key_field = key_field
        self.auto_increment = auto_increment

    def create(self, conn: sqlite3.Connection):
        key_type = "INTEGER PRIMARY KEY AUTOINCREMENT" if self.auto_increment else "TEXT PRIMARY KEY"
        conn.execute(f"CREATE TABLE IF NOT EXISTS {self.name} (key {key_type}, data TEXT NOT NULL)")

    def _key(self, key):
        # Bookmarks are keyed by question id; keep integer keys comparable with stored text keys.
        return key if self.auto_increment else str(key)

    def _row(self, key, data: str) -> dict:
        record = json.loads(data)
        if self.auto_increment:
            record[self.key_field] = key
        return record

    def get(self, key) -> dict | None:
        rows = self.store.query(f"SELECT key, data FROM {self.name} WHERE key = ?", (self._key(key),))
        return self._row(*rows[0]) if rows else None

    def add(self, record: dict):
        """Insert a new record and return its key."""
        data = {k: v for k, v in record.items() if k != self.key_field or not self.auto_increment}
        if self.auto_increment:
            cur = self.store.execute(f"INSERT INTO {self.name} (data) VALUES (?)", (json.dumps(data),))
            record[self.key_field] = cur.lastrowid
            return cur.lastrowid
        key = self._key(record[self.key_field])
        self.store.execute(f"INSERT INTO {self.name} (key, data) VALUES (?, ?)", (key, json.dumps(data)))
        return record[self.key_field]

    def put(self, record: dict):
        """Upsert by key. Auto-increment records without a key are inserted."""
        key = record.get(self.key_field)
        if key is None:
            return self.add(record)
        data = {k: v for k, v in record.items() if k != self.key_field or not self.auto_increment}
        self.store.execute(
            f"INSERT INTO {self.name} (key, data) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET data = excluded.data",
            (self._key(key), json.dumps(data)),
        )
        return key

    def delete(self, key):
        self.store.execute(f"DELETE FROM {self.name} WHERE key = ?", (self._key(key),))

    def bulk_get(self, keys: Iterable) -> list[dict | None]:
        """Records in the order of keys, None where a key is missing."""
        keys = list(keys)
        if not keys:
            return []
        wanted = [self._key(k) for k in keys]
        found = {}
        # SQLite caps bound parameters; 500 stays well below every default.
        for i in range(0, len(wanted), 500):
            chunk = wanted[i : i + 500]
            marks = ", ".join("?" for _ in chunk)
            for key, data in self.store.query(f"SELECT key, data FROM {self.name} WHERE key IN ({marks})", chunk):
                found[key] = self._row(key, data)
        return [found.get(k) for k in wanted]

    def bulk_add(self, records: list[dict]) -> list:
        with self.store.transaction():
            return [self.add(r) for r in records]

    def count(self) -> int:
        return self.store.query(f"SELECT COUNT(*) FROM {self.name}")[0][0]

    def clear(self):
        self.store.execute(f"DELETE FROM {self.name}")

    def all(self) -> list[dict]:
        return [self._row(k, d) for k, d in self.store.query(f"SELECT key, data FROM {self.name} ORDER BY rowid")]

    def filter(self, predicate: Callable[[dict], bool]) -> list[dict]:
        return [r for r in self.all() if predicate(r)]

    def where(self, field: str, value) -> list[dict]:
        """Equality lookup on a record field."""
        if field == self.key_field:
            record = self.get(value)
            return [record] if record else []
        rows = self.store.query(
            f"SELECT key, data FROM {self.name} WHERE json_extract(data, ?) = ? ORDER BY rowid",
            (f"$.{field}", value),
        )
        return [self._row(k, d) for k, d in rows]


class RecordStore:
    """Four tables (questions, attempts, bookmarks, active_sessions) in one SQLite file."""

    def __init__(self, path: str):
        self.path = str(path)
        self._depth = 0
        # Shared by every Streamlit script thread; held for the whole of a transaction.
        self._lock = threading.RLock()
        try:
            self.conn = sqlite3.connect(self.path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.path}: {e}") from e
        self.questions = Table(self, "questions", "id", auto_increment=True)
        self.attempts = Table(self, "attempts", "id", auto_increment=True)
        self.bookmarks = Table(self, "bookmarks", "question_id")
        self.active_sessions = Table(self, "active_sessions", "id")
        self.init_schema()

    def init_schema(self):
        with self.transaction():
            for table in (self.questions, self.attempts, self.bookmarks, self.active_sessions):
                table.create(self.conn)
            self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_questions_chapter ON questions(json_extract(data, '$.chapter'))"
            )
            self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_attempts_timestamp ON attempts(json_extract(data, '$.timestamp'))"
            )

    @contextmanager
    def transaction(self):
        """Commit everything inside the block together, or roll it all back."""
        with self._lock:
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self.conn.rollback()
                raise
            else:
                self._depth -= 1
                if self._depth == 0:
                    try:
                        self.conn.commit()
                    except sqlite3.Error as e:
                        self.conn.rollback()
                        raise StoreError(f"Commit failed: {e}") from e

    def execute(self, sql: str, params: Iterable = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                cur = self.conn.execute(sql, tuple(params))
                if self._depth == 0:
                    self.conn.commit()
                return cur
            except sqlite3.Error as e:
                if self._depth == 0:
                    self.conn.rollback()
                raise StoreError(str(e)) from e

    def query(self, sql: str, params: Iterable = ()) -> list[tuple]:
        with self._lock:
            try:
                return self.conn.execute(sql, tuple(params)).fetchall()
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e

    def close(self):
        self.conn.close()


def _env_store() -> RecordStore:
    path = os.environ.get("RADPREP_DB_PATH") or DEFAULT_DB_PATH
    logger.info("Opening record store at %s", path)
    return RecordStore(path)


@st.cache_resource
def get_store() -> RecordStore:
    return _env_store()


def get_store_uncached() -> RecordStore:
    """For CLI/scripts (no Streamlit context)."""
    return _env_store()


def now_ms() -> int:
    return int(time.time() * 1000)


# --- Questions ---

def get_questions(store: RecordStore) -> list[dict]:
    return store.questions.all()


def get_questions_by_chapter(store: RecordStore, chapter: str) -> list[dict]:
    return store.questions.where("chapter", chapter)


def get_question_count(store: RecordStore) -> int:
    return store.questions.count()


def get_chapter_counts(store: RecordStore) -> dict[str, int]:
    """Returns {chapter: count} in the order chapters first appear in the bank."""
    counts: dict[str, int] = {}
    for q in store.questions.all():
        counts[q["chapter"]] = counts.get(q["chapter"], 0) + 1
    return counts


def clear_questions(store: RecordStore):
    store.questions.clear()
    logger.info("Question bank cleared")


def search_questions(store: RecordStore, query: str) -> list[dict]:
    """Case-insensitive substring match on question text or chapter."""
    needle = (query or "").strip().lower()
    if not needle:
        return []
    return store.questions.filter(
        lambda q: needle in (q.get("text") or "").lower() or needle in (q.get("chapter") or "").lower()
    )


# --- Bookmarks ---

def is_bookmarked(store: RecordStore, question_id: int) -> bool:
    return store.bookmarks.get(question_id) is not None


def toggle_bookmark(store: RecordStore, question_id: int) -> bool:
    """Flip membership. Returns True if the question is bookmarked afterwards."""
    if is_bookmarked(store, question_id):
        store.bookmarks.delete(question_id)
        return False
    store.bookmarks.put({"question_id": question_id, "timestamp": now_ms()})
    return True


def remove_bookmark(store: RecordStore, question_id: int):
    store.bookmarks.delete(question_id)


def get_bookmarked_questions(store: RecordStore) -> list[dict]:
    ids = [int(b["question_id"]) for b in store.bookmarks.all()]
    return [q for q in store.questions.bulk_get(ids) if q]


# --- Attempts ---

def add_attempt(store: RecordStore, attempt: dict) -> int:
    return store.attempts.add(attempt)


def get_attempts(store: RecordStore) -> list[dict]:
    return store.attempts.all()


# --- Active session ---

def get_active_session(store: RecordStore) -> dict | None:
    return store.active_sessions.get(ACTIVE_SESSION_KEY)


def put_active_session(store: RecordStore, session: dict):
    store.active_sessions.put({**session, "id": ACTIVE_SESSION_KEY})


def clear_active_session(store: RecordStore):
    store.active_sessions.clear()
