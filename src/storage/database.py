# src/storage/database.py — v1
"""SQLite database holding the library tables and the batch state.

Uses stdlib sqlite3. Every repository write commits immediately, so each
write is atomic on its own and nothing spans phases; resumed runs rely on
lookup-or-create instead of transactions.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

MEMORY = ":memory:"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS authors (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    slug TEXT NOT NULL UNIQUE,
    bio TEXT,
    date_of_birth TEXT,
    nationality TEXT,
    open_library_key TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS series (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    original_name TEXT,
    slug TEXT NOT NULL,
    author_id TEXT NOT NULL REFERENCES authors(id) ON DELETE CASCADE,
    description TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (name, author_id)
);
CREATE INDEX IF NOT EXISTS idx_series_author ON series(author_id);
CREATE INDEX IF NOT EXISTS idx_series_slug ON series(slug);

CREATE TABLE IF NOT EXISTS books (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    original_title TEXT,
    slug TEXT NOT NULL,
    author_id TEXT NOT NULL REFERENCES authors(id) ON DELETE CASCADE,
    series_id TEXT REFERENCES series(id) ON DELETE SET NULL,
    series_order INTEGER,
    description TEXT,
    isbn TEXT,
    first_publish_year INTEGER,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (author_id, slug)
);
CREATE INDEX IF NOT EXISTS idx_books_series ON books(series_id);

CREATE TABLE IF NOT EXISTS files (
    id TEXT PRIMARY KEY,
    book_id TEXT REFERENCES books(id) ON DELETE CASCADE,
    type TEXT NOT NULL CHECK (type IN ('book')),
    format TEXT NOT NULL,
    path TEXT NOT NULL,
    sha256 TEXT,
    size INTEGER,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_files_book ON files(book_id);
CREATE INDEX IF NOT EXISTS idx_files_sha256 ON files(sha256);

CREATE TABLE IF NOT EXISTS indexing_batches (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL CHECK (status IN
        ('pending', 'processing', 'completed', 'failed', 'rolled_back')),
    total_books INTEGER NOT NULL DEFAULT 0,
    processed_books INTEGER NOT NULL DEFAULT 0,
    failed_books INTEGER NOT NULL DEFAULT 0,
    started_at TEXT,
    completed_at TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_batches_status ON indexing_batches(status);

CREATE TABLE IF NOT EXISTS indexing_batch_items (
    id TEXT PRIMARY KEY,
    batch_id TEXT NOT NULL REFERENCES indexing_batches(id) ON DELETE CASCADE,
    file_path TEXT NOT NULL,
    source_sha256 TEXT,
    status TEXT NOT NULL CHECK (status IN
        ('pending', 'name_resolved', 'persisted', 'images_fetched',
         'metadata_fetched', 'completed', 'failed')),
    agent_results TEXT,
    error_message TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_batch_items_batch ON indexing_batch_items(batch_id);
CREATE INDEX IF NOT EXISTS idx_batch_items_status ON indexing_batch_items(status);
"""


class Database:
    """Thin wrapper over a sqlite3 connection with the schema applied.

    Args:
        db_path: File path, or ":memory:" for tests.
    """

    def __init__(self, db_path: Path | str = MEMORY) -> None:
        if str(db_path) == MEMORY:
            self._path = MEMORY
        else:
            path = Path(db_path).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            self._path = str(path)
        self._conn = sqlite3.connect(self._path)
        self._conn.row_factory = sqlite3.Row
        if self._path != MEMORY:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        logger.debug("Database ready: %s", self._path)

    @property
    def path(self) -> str:
        return self._path

    def execute(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        """Execute one write statement and commit it."""
        cursor = self._conn.execute(sql, tuple(params))
        self._conn.commit()
        return cursor

    def fetch_one(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Row | None:
        return self._conn.execute(sql, tuple(params)).fetchone()

    def fetch_all(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        return self._conn.execute(sql, tuple(params)).fetchall()

    def scalar(self, sql: str, params: Iterable[Any] = ()) -> Any:
        row = self.fetch_one(sql, params)
        return None if row is None else row[0]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
