"""Corpus sinks: accumulate extracted pages keyed by URL in insertion order."""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Iterator

from docrag.core.errors import SinkWriteError
from docrag.core.logging import get_logger
from docrag.ingest.types import PageRecord
from docrag.utils.time import now_ms

logger = get_logger(__name__)

DEFAULT_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA temp_store=MEMORY;",
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS pages (
  seq INTEGER PRIMARY KEY AUTOINCREMENT,
  url TEXT NOT NULL UNIQUE,
  title TEXT,
  raw_content BLOB,
  content TEXT NOT NULL,
  created_at INTEGER NOT NULL,
  updated_at INTEGER NOT NULL
);
"""


class CorpusSink:
    """Common sink interface.

    Appends are safe from concurrent workers. A second record for the same
    URL replaces the first but keeps its position.
    """

    def append(self, record: PageRecord) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def export_all(self) -> list[PageRecord]:  # pragma: no cover - interface
        raise NotImplementedError

    def __len__(self) -> int:
        return len(self.export_all())

    def __iter__(self) -> Iterator[PageRecord]:
        return iter(self.export_all())

    def close(self) -> None:
        return None


class MemoryCorpusSink(CorpusSink):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, PageRecord] = {}

    def append(self, record: PageRecord) -> None:
        with self._lock:
            self._records[record.url] = record

    def export_all(self) -> list[PageRecord]:
        with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class SQLiteCorpusSink(CorpusSink):
    """Durable sink backed by a single SQLite file."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path).expanduser()
        self._lock = threading.Lock()
        self._connection: sqlite3.Connection | None = None
        try:
            self._connect().executescript(SCHEMA)
        except sqlite3.Error as exc:
            raise SinkWriteError(f"Cannot open corpus database {self.db_path}: {exc}") from exc

    def _connect(self) -> sqlite3.Connection:
        if self._connection is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            for pragma in DEFAULT_PRAGMAS:
                self._connection.execute(pragma)
        return self._connection

    def append(self, record: PageRecord) -> None:
        now = now_ms()
        with self._lock:
            conn = self._connect()
            try:
                conn.execute(
                    """
                    INSERT INTO pages (url, title, raw_content, content, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(url) DO UPDATE SET
                      title = excluded.title,
                      raw_content = excluded.raw_content,
                      content = excluded.content,
                      updated_at = excluded.updated_at
                    """,
                    [record.url, record.title, record.raw_content, record.extracted_markup, now, now],
                )
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                raise SinkWriteError(f"Failed to store {record.url}: {exc}") from exc

    def export_all(self) -> list[PageRecord]:
        with self._lock:
            rows = self._connect().execute(
                "SELECT url, title, raw_content, content FROM pages ORDER BY seq ASC"
            ).fetchall()
        return [
            PageRecord(
                url=row["url"],
                raw_content=row["raw_content"] if row["raw_content"] is not None else "",
                extracted_markup=row["content"],
                title=row["title"],
            )
            for row in rows
        ]

    def __len__(self) -> int:
        with self._lock:
            row = self._connect().execute("SELECT COUNT(*) AS count FROM pages").fetchone()
        return int(row["count"]) if row else 0

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


def open_sink(db_path: Path | None) -> CorpusSink:
    if db_path is None:
        return MemoryCorpusSink()
    logger.info("Storing corpus in %s", db_path)
    return SQLiteCorpusSink(db_path)


__all__ = ["CorpusSink", "MemoryCorpusSink", "SQLiteCorpusSink", "open_sink"]
