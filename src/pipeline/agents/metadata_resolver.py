# src/pipeline/agents/metadata_resolver.py — v1
"""Metadata resolver agent.

Asks the AI service for biographies, descriptions, nationality and
first publication year of the distinct authors, books and series of the
persisted items. Results are matched back to inputs by normalized string
equality, never by position; an unmatched input is logged and left
without enrichment. Rows are only updated with non-empty text.
"""

from __future__ import annotations

import logging
import re
import time
from typing import TYPE_CHECKING

from booknest.batch.agent_results import MetadataEntry
from booknest.batch.status import BatchItemStatus
from booknest.pipeline.plugin_kit.base_agent import BaseAgent
from booknest.pipeline.plugin_kit.models import AgentOutput
from booknest.services.models import (
    AuthorMetadataOutput,
    BookMetadataOutput,
    MetadataBookRequest,
    MetadataRequest,
    MetadataSeriesRequest,
    SeriesMetadataOutput,
)

if TYPE_CHECKING:
    from booknest.pipeline.state import ChunkState
    from booknest.services.ai_service import AIService
    from booknest.storage.batch_repo import BatchRepository
    from booknest.storage.library_repo import AuthorRepository, BookRepository, SeriesRepository

logger = logging.getLogger(__name__)

_NAME_PUNCT = re.compile(r"[.']")
_TITLE_PUNCT = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_name(name: str | None) -> str:
    """'J.R.R. Tolkien' -> 'jrr tolkien'."""
    return _WHITESPACE.sub(" ", _NAME_PUNCT.sub("", (name or "").lower())).strip()


def normalize_title(title: str | None) -> str:
    """'The Hobbit: Or There and Back Again' -> 'the hobbit or there and back again'."""
    return _WHITESPACE.sub(" ", _TITLE_PUNCT.sub("", (title or "").lower())).strip()


class MetadataResolverAgent(BaseAgent):
    """Enrich persisted authors, books and series with descriptive metadata."""

    def __init__(
        self,
        ai_service: AIService,
        batch_repo: BatchRepository,
        author_repo: AuthorRepository,
        book_repo: BookRepository,
        series_repo: SeriesRepository,
    ) -> None:
        self._ai = ai_service
        self._batch_repo = batch_repo
        self._authors = author_repo
        self._books = book_repo
        self._series = series_repo

    @property
    def name(self) -> str:
        return "metadata_resolver"

    @property
    def version(self) -> str:
        return "1.0.0"

    @property
    def description(self) -> str:
        return "Add biographies, descriptions and publication years"

    async def execute(self, state: ChunkState) -> AgentOutput:
        started = time.perf_counter()
        entries = state.persisted_entries()

        # Distinct inputs keyed by persisted row id
        authors: dict[str, str] = {}
        books: dict[str, tuple[str, str]] = {}
        series: dict[str, tuple[str, str]] = {}
        for entry in entries:
            r = state.resolutions[entry.item_id]
            p = state.persisted[entry.item_id]
            authors.setdefault(p.author_id, r.author.normalized_name)
            books.setdefault(p.book_id, (r.author.normalized_name, r.title.english_title))
            if p.series_id and r.series.english_name:
                series.setdefault(p.series_id, (r.author.normalized_name, r.series.english_name))

        request = MetadataRequest(
            authors=list(authors.values()),
            books=[MetadataBookRequest(author=a, title=t) for a, t in books.values()],
            series=[MetadataSeriesRequest(author=a, name=n) for a, n in series.values()],
        )
        if request.is_empty:
            return self.build_output(started, {"authors": 0, "books": 0, "series": 0})

        response = await self._ai.resolve_metadata(request)

        enriched_authors = {
            author_id for author_id, name in authors.items()
            if self._apply_author(author_id, name, response.authors)
        }
        enriched_books = {
            book_id for book_id, (author, title) in books.items()
            if self._apply_book(book_id, author, title, response.books)
        }
        enriched_series = {
            series_id for series_id, (author, name) in series.items()
            if self._apply_series(series_id, author, name, response.series)
        }

        for entry in entries:
            p = state.persisted[entry.item_id]
            metadata = MetadataEntry(
                author_enriched=p.author_id in enriched_authors,
                book_enriched=p.book_id in enriched_books,
                series_enriched=p.series_id in enriched_series,
            )
            results = entry.item.agent_results.model_copy(update={"metadata": metadata})
            item = self._batch_repo.advance_item(
                entry.item_id, BatchItemStatus.METADATA_FETCHED, results,
            )
            state.update_item(item)

        logger.info(
            "Metadata saved: %d/%d authors, %d/%d books, %d/%d series",
            len(enriched_authors), len(authors), len(enriched_books), len(books),
            len(enriched_series), len(series),
        )
        total = len(authors) + len(books) + len(series)
        enriched = len(enriched_authors) + len(enriched_books) + len(enriched_series)
        return self.build_output(
            started,
            {
                "authors": len(enriched_authors),
                "books": len(enriched_books),
                "series": len(enriched_series),
            },
            confidence=round(enriched / total, 2) if total else 0.0,
            ai_calls=1,
            items_processed=len(entries),
        )

    # ------------------------------------------------------------------

    def _apply_author(self, author_id: str, name: str, outputs: list[AuthorMetadataOutput]) -> bool:
        key = normalize_name(name)
        match = next((o for o in outputs if normalize_name(o.name) == key), None)
        if match is None:
            logger.warning(
                "Author match failed for %r (returned: %s)", name, [o.name for o in outputs],
            )
            return False
        if not (match.bio or match.nationality or match.date_of_birth):
            logger.info("No metadata to save for author %r", name)
            return False
        self._authors.update_metadata(
            author_id,
            bio=match.bio,
            nationality=match.nationality,
            date_of_birth=match.date_of_birth,
            open_library_key=match.open_library_key,
        )
        return True

    def _apply_book(
        self, book_id: str, author: str, title: str, outputs: list[BookMetadataOutput],
    ) -> bool:
        author_key, title_key = normalize_name(author), normalize_title(title)
        match = next(
            (o for o in outputs
             if normalize_name(o.author) == author_key and normalize_title(o.title) == title_key),
            None,
        )
        if match is None:
            logger.debug("Book match failed for %r by %r", title, author)
            return False
        if not (match.description or match.first_publish_year):
            return False
        self._books.update_metadata(
            book_id, description=match.description, first_publish_year=match.first_publish_year,
        )
        return True

    def _apply_series(
        self, series_id: str, author: str, name: str, outputs: list[SeriesMetadataOutput],
    ) -> bool:
        author_key, name_key = normalize_name(author), normalize_title(name)
        match = next(
            (o for o in outputs
             if normalize_name(o.author) == author_key and normalize_title(o.name) == name_key),
            None,
        )
        if match is None:
            logger.debug("Series match failed for %r by %r", name, author)
            return False
        if not match.description:
            return False
        self._series.update_description(series_id, match.description)
        return True
