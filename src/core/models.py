# src/core/models.py — v1
"""Core domain types shared by the crawler, agents and repositories.

Ephemeral types (DiscoveredFile, HashedFile, Resolved*) live only for the
duration of a chunk. Persisted entities (Author, Series, Book, FileRecord)
mirror the library tables.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# === CRAWLER OUTPUT ===


class DiscoveredFile(BaseModel):
    """A supported ebook file found under the source directory."""

    path: str
    format: str
    size: int


class HashedFile(DiscoveredFile):
    """DiscoveredFile plus its content digest."""

    sha256: str


class CrawlResult(BaseModel):
    """Outcome of a full crawl: hashed files plus soft errors."""

    files: list[HashedFile] = Field(default_factory=list)
    total_size: int = 0
    errors: list[str] = Field(default_factory=list)
    duplicate_groups: list[list[str]] = Field(default_factory=list)


# === NAME RESOLUTION ===


class ResolvedAuthor(BaseModel):
    original_name: str
    normalized_name: str
    slug: str
    confidence: float = Field(ge=0.0, le=1.0)


class ResolvedTitle(BaseModel):
    original_title: str
    english_title: str
    slug: str
    confidence: float = Field(ge=0.0, le=1.0)


class ResolvedSeries(BaseModel):
    """Series guess; name fields are null together when no series was detected."""

    original_name: str | None = None
    english_name: str | None = None
    slug: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def is_present(self) -> bool:
        return self.english_name is not None and self.slug is not None


class NameResolution(BaseModel):
    """Resolved identity of one batch item."""

    item_id: str
    file_path: str
    sha256: str
    format: str
    author: ResolvedAuthor
    title: ResolvedTitle
    series: ResolvedSeries
    overall_confidence: float = Field(ge=0.0, le=1.0)


# === PERSISTED LIBRARY ENTITIES ===


class Author(BaseModel):
    id: str
    name: str
    slug: str
    bio: str | None = None
    date_of_birth: str | None = None
    nationality: str | None = None
    open_library_key: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class Series(BaseModel):
    id: str
    name: str
    original_name: str | None = None
    slug: str
    author_id: str
    description: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class Book(BaseModel):
    id: str
    title: str
    original_title: str | None = None
    slug: str
    author_id: str
    series_id: str | None = None
    series_order: int | None = None
    description: str | None = None
    isbn: str | None = None
    first_publish_year: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


class FileRecord(BaseModel):
    id: str
    book_id: str | None = None
    type: str = "book"
    format: str
    path: str
    sha256: str | None = None
    size: int | None = None
    created_at: str | None = None
