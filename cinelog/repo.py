# cinelog/repo.py
import json
import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional

from cinelog.models import Record

logger = logging.getLogger(__name__)

STORAGE_KEY = "cinelog_movies_v1"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


# --- Exceptions ---
class RepoError(Exception):
    pass


# --- SQLite key-value repo ---
class SqliteRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path
        dirname = os.path.dirname(db_path)
        if dirname:
            os.makedirs(dirname, exist_ok=True)
        with self.conn() as c:
            c.executescript(SCHEMA_SQL)

    @contextmanager
    def conn(self):
        con = sqlite3.connect(self.db_path)
        con.row_factory = sqlite3.Row
        try:
            yield con
            con.commit()
        finally:
            con.close()

    def get(self, key: str) -> Optional[str]:
        with self.conn() as c:
            r = c.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            return r["value"] if r else None

    def set(self, key: str, value: str) -> None:
        with self.conn() as c:
            c.execute("INSERT INTO kv_store (key, value) VALUES (?, ?) "
                      "ON CONFLICT(key) DO UPDATE SET value = excluded.value", (key, value))

    def delete(self, key: str) -> None:
        with self.conn() as c:
            c.execute("DELETE FROM kv_store WHERE key = ?", (key,))


# --- In-memory repo (used for unit tests) ---
class InMemoryRepo:
    def __init__(self):
        self._data: Dict[str, str] = {}
        self.writes = 0

    def get(self, key: str) -> Optional[str]: return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self.writes += 1

    def delete(self, key: str) -> None: self._data.pop(key, None)


# --- Record blob helpers ---
def load_records(repo, key: str = STORAGE_KEY) -> List[Record]:
    """Read the record list; an absent or malformed blob yields []."""
    raw = repo.get(key)
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
        if not isinstance(parsed, list):
            raise RepoError(f"stored value under {key!r} is not a list")
        return [Record.from_dict(d) for d in parsed]
    except (ValueError, TypeError, AttributeError, RepoError):
        logger.exception("Failed to load records from key %s; starting empty", key)
        return []


def save_records(repo, records: List[Record], key: str = STORAGE_KEY) -> None:
    repo.set(key, json.dumps([r.to_dict() for r in records], ensure_ascii=False))
    logger.debug("Saved %d records under %s", len(records), key)


class DebouncedSaver:
    """
    Coalesces bursts of writes: schedule() (re)starts a timer and only the
    last scheduled snapshot is written when it fires.
    """

    def __init__(self, write: Callable[[List[Record]], None], delay: float = 0.5):
        self._write = write
        self.delay = delay
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._pending: Optional[List[Record]] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def schedule(self, records: List[Record]) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending = list(records)
            self._timer = threading.Timer(self.delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            snapshot, self._pending = self._pending, None
        if snapshot is not None:
            self._write(snapshot)

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending = None

    def close(self) -> None:
        self.flush()
