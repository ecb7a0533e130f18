# src/storage/library_repo.py — v1
"""Library repositories: authors, series, books and files.

The pipeline only ever writes through get_or_create_* (lookup by natural
key first), so a resumed run or a crash between writes never duplicates a
row. Enrichment updates use COALESCE and never overwrite with NULL.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from booknest.core.ids import generate_id, utc_now
from booknest.core.models import Author, Book, FileRecord, Series

if TYPE_CHECKING:
    from booknest.storage.database import Database

logger = logging.getLogger(__name__)


def _model(cls: type, row: sqlite3.Row | None) -> Any:
    return cls(**dict(row)) if row is not None else None


class AuthorRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def find_by_id(self, author_id: str) -> Author | None:
        return _model(Author, self._db.fetch_one("SELECT * FROM authors WHERE id = ?", (author_id,)))

    def find_by_slug(self, slug: str) -> Author | None:
        return _model(Author, self._db.fetch_one("SELECT * FROM authors WHERE slug = ?", (slug,)))

    def find_by_name(self, name: str) -> Author | None:
        return _model(Author, self._db.fetch_one("SELECT * FROM authors WHERE name = ?", (name,)))

    def get_or_create(self, name: str, slug: str) -> tuple[Author, bool]:
        """Return (author, created). Matches by slug, then by name."""
        existing = self.find_by_slug(slug) or self.find_by_name(name)
        if existing is not None:
            return existing, False
        now = utc_now()
        author_id = generate_id()
        self._db.execute(
            "INSERT INTO authors (id, name, slug, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (author_id, name, slug, now, now),
        )
        logger.debug("Created author %s (%s)", name, slug)
        return self.find_by_id(author_id), True

    def update_metadata(
        self,
        author_id: str,
        bio: str | None = None,
        nationality: str | None = None,
        date_of_birth: str | None = None,
        open_library_key: str | None = None,
    ) -> None:
        self._db.execute(
            "UPDATE authors SET bio = COALESCE(?, bio), nationality = COALESCE(?, nationality), "
            "date_of_birth = COALESCE(?, date_of_birth), "
            "open_library_key = COALESCE(?, open_library_key), updated_at = ? WHERE id = ?",
            (bio, nationality, date_of_birth, open_library_key, utc_now(), author_id),
        )

    def count(self) -> int:
        return self._db.scalar("SELECT COUNT(*) FROM authors") or 0


class SeriesRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def find_by_id(self, series_id: str) -> Series | None:
        return _model(Series, self._db.fetch_one("SELECT * FROM series WHERE id = ?", (series_id,)))

    def find_by_author(self, author_id: str) -> list[Series]:
        rows = self._db.fetch_all(
            "SELECT * FROM series WHERE author_id = ? ORDER BY name", (author_id,)
        )
        return [Series(**dict(r)) for r in rows]

    def find_by_author_and_slug(self, author_id: str, slug: str) -> Series | None:
        return _model(
            Series,
            self._db.fetch_one(
                "SELECT * FROM series WHERE author_id = ? AND slug = ?", (author_id, slug)
            ),
        )

    def get_or_create(
        self, author_id: str, name: str, slug: str, original_name: str | None = None,
    ) -> tuple[Series, bool]:
        """Return (series, created). Matches by (author, slug), then (author, name)."""
        existing = self.find_by_author_and_slug(author_id, slug) or _model(
            Series,
            self._db.fetch_one(
                "SELECT * FROM series WHERE author_id = ? AND name = ?", (author_id, name)
            ),
        )
        if existing is not None:
            return existing, False
        now = utc_now()
        series_id = generate_id()
        self._db.execute(
            "INSERT INTO series (id, name, original_name, slug, author_id, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (series_id, name, original_name, slug, author_id, now, now),
        )
        return self.find_by_id(series_id), True

    def update_description(self, series_id: str, description: str | None) -> None:
        self._db.execute(
            "UPDATE series SET description = COALESCE(?, description), updated_at = ? "
            "WHERE id = ?",
            (description, utc_now(), series_id),
        )

    def count(self) -> int:
        return self._db.scalar("SELECT COUNT(*) FROM series") or 0


class BookRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def find_by_id(self, book_id: str) -> Book | None:
        return _model(Book, self._db.fetch_one("SELECT * FROM books WHERE id = ?", (book_id,)))

    def find_by_author_and_slug(self, author_id: str, slug: str) -> Book | None:
        return _model(
            Book,
            self._db.fetch_one(
                "SELECT * FROM books WHERE author_id = ? AND slug = ?", (author_id, slug)
            ),
        )

    def find_by_series(self, series_id: str) -> list[Book]:
        rows = self._db.fetch_all(
            "SELECT * FROM books WHERE series_id = ? ORDER BY series_order, title", (series_id,)
        )
        return [Book(**dict(r)) for r in rows]

    def get_or_create(
        self,
        author_id: str,
        title: str,
        slug: str,
        original_title: str | None = None,
        series_id: str | None = None,
    ) -> tuple[Book, bool]:
        """Return (book, created) keyed by (author, slug).

        An existing book without a series is linked to *series_id*.
        """
        existing = self.find_by_author_and_slug(author_id, slug)
        if existing is not None:
            if series_id and existing.series_id is None:
                self.set_series(existing.id, series_id)
                existing = self.find_by_id(existing.id)
            return existing, False
        now = utc_now()
        book_id = generate_id()
        self._db.execute(
            "INSERT INTO books (id, title, original_title, slug, author_id, series_id, "
            "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (book_id, title, original_title, slug, author_id, series_id, now, now),
        )
        return self.find_by_id(book_id), True

    def set_series(self, book_id: str, series_id: str | None, series_order: int | None = None) -> None:
        """Link or unlink a series; unlinking keeps the book."""
        self._db.execute(
            "UPDATE books SET series_id = ?, series_order = ?, updated_at = ? WHERE id = ?",
            (series_id, series_order, utc_now(), book_id),
        )

    def update_metadata(
        self, book_id: str, description: str | None = None, first_publish_year: int | None = None,
    ) -> None:
        self._db.execute(
            "UPDATE books SET description = COALESCE(?, description), "
            "first_publish_year = COALESCE(?, first_publish_year), updated_at = ? WHERE id = ?",
            (description, first_publish_year, utc_now(), book_id),
        )

    def count(self) -> int:
        return self._db.scalar("SELECT COUNT(*) FROM books") or 0


class FileRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    def find_by_id(self, file_id: str) -> FileRecord | None:
        return _model(FileRecord, self._db.fetch_one("SELECT * FROM files WHERE id = ?", (file_id,)))

    def find_by_book(self, book_id: str) -> list[FileRecord]:
        rows = self._db.fetch_all(
            "SELECT * FROM files WHERE book_id = ? ORDER BY created_at, rowid", (book_id,)
        )
        return [FileRecord(**dict(r)) for r in rows]

    def find_by_sha256(self, sha256: str) -> FileRecord | None:
        return _model(
            FileRecord,
            self._db.fetch_one("SELECT * FROM files WHERE sha256 = ? LIMIT 1", (sha256,)),
        )

    def exists_by_sha256(self, sha256: str) -> bool:
        return self._db.fetch_one("SELECT 1 FROM files WHERE sha256 = ? LIMIT 1", (sha256,)) is not None

    def existing_sha256(self, digests: list[str]) -> set[str]:
        """Subset of *digests* already recorded as files."""
        found: set[str] = set()
        # Stay below SQLite's bound-parameter limit
        for start in range(0, len(digests), 500):
            chunk = digests[start:start + 500]
            rows = self._db.fetch_all(
                f"SELECT DISTINCT sha256 FROM files WHERE sha256 IN ({', '.join('?' for _ in chunk)})",
                chunk,
            )
            found.update(r["sha256"] for r in rows)
        return found

    def get_or_create(
        self, book_id: str, fmt: str, path: str, sha256: str, size: int | None,
    ) -> tuple[FileRecord, bool]:
        """Return (file, created) keyed by (book, sha256, format)."""
        existing = _model(
            FileRecord,
            self._db.fetch_one(
                "SELECT * FROM files WHERE book_id = ? AND sha256 = ? AND format = ?",
                (book_id, sha256, fmt),
            ),
        )
        if existing is not None:
            return existing, False
        file_id = generate_id()
        self._db.execute(
            "INSERT INTO files (id, book_id, type, format, path, sha256, size, created_at) "
            "VALUES (?, ?, 'book', ?, ?, ?, ?, ?)",
            (file_id, book_id, fmt, path, sha256, size, utc_now()),
        )
        return self.find_by_id(file_id), True

    def count(self) -> int:
        return self._db.scalar("SELECT COUNT(*) FROM files") or 0
