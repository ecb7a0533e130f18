# src/pipeline/agents/name_resolver.py — v1
"""Name resolver agent.

Sends the chunk's file paths to the AI service and turns each guess
into a ResolvedAuthor / ResolvedTitle / ResolvedSeries triple:
author names are re-capitalized and cached per chunk, book slugs are
made unique per author, and the triple is stored on the batch item
(status -> name_resolved) before the agent returns.

Items that already carry a stored names entry (resumed runs) are not
sent to the AI service again.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from booknest.batch.agent_results import NamesResult
from booknest.batch.status import BatchItemStatus, item_rank
from booknest.core.models import NameResolution, ResolvedAuthor, ResolvedSeries, ResolvedTitle
from booknest.core.slugify import generate_unique_slug, slugify
from booknest.pipeline.agents.validation import (
    UNKNOWN_AUTHOR,
    UNKNOWN_TITLE,
    normalize_name_output,
)
from booknest.pipeline.plugin_kit.base_agent import BaseAgent
from booknest.pipeline.plugin_kit.models import AgentOutput
from booknest.services.models import NameResolverItemOutput, NameResolverRequestItem

if TYPE_CHECKING:
    from booknest.pipeline.state import ChunkEntry, ChunkState
    from booknest.services.ai_service import AIService
    from booknest.storage.batch_repo import BatchRepository

logger = logging.getLogger(__name__)


def normalize_author_name(name: str) -> str:
    """Capitalize each whitespace-separated part: 'jOHN  smith' -> 'John Smith'."""
    return " ".join(part[:1].upper() + part[1:].lower() for part in name.split())


class NameResolverAgent(BaseAgent):
    """Resolve author, title and series for every active item of a chunk."""

    def __init__(self, ai_service: AIService, batch_repo: BatchRepository) -> None:
        self._ai = ai_service
        self._batch_repo = batch_repo

    @property
    def name(self) -> str:
        return "name_resolver"

    @property
    def version(self) -> str:
        return "1.0.0"

    @property
    def description(self) -> str:
        return "Infer author, title and series from file paths"

    async def execute(self, state: ChunkState) -> AgentOutput:
        started = time.perf_counter()

        # author slug -> book slugs assigned in this chunk
        book_slugs: dict[str, set[str]] = {}
        pending: list[ChunkEntry] = []
        reused = 0

        for entry in state.active_entries():
            stored = entry.item.agent_results.names
            if stored is not None and item_rank(entry.item.status) >= item_rank(
                BatchItemStatus.NAME_RESOLVED
            ):
                state.resolutions[entry.item_id] = self._from_stored(entry, stored)
                book_slugs.setdefault(stored.author.slug, set()).add(stored.title.slug)
                reused += 1
            else:
                pending.append(entry)

        missing = 0
        if pending:
            logger.info("Resolving names for %d files (%d reused)", len(pending), reused)
            outputs = await self._ai.resolve_names(
                [NameResolverRequestItem(file_path=e.item.file_path) for e in pending]
            )
            by_path: dict[str, NameResolverItemOutput] = {}
            for output in outputs:
                by_path.setdefault(output.file_path, output)

            author_cache: dict[str, ResolvedAuthor] = {}
            for entry in pending:
                raw = by_path.get(entry.item.file_path)
                if raw is None:
                    logger.warning("No AI result for %s", entry.item.file_path)
                    missing += 1
                    continue
                resolution = self._resolve(entry, normalize_name_output(raw), author_cache, book_slugs)
                self._store(state, entry, resolution)

        resolved = [state.resolutions[e.item_id] for e in state.active_entries()
                    if e.item_id in state.resolutions]
        avg = (
            round(sum(r.overall_confidence for r in resolved) / len(resolved), 2)
            if resolved else 0.0
        )
        logger.info(
            "Name resolution complete: %d resolved, %d reused, %d missing, avg confidence %.2f",
            len(resolved) - reused, reused, missing, avg,
        )
        return self.build_output(
            started,
            {"resolved": len(resolved) - reused, "reused": reused, "missing": missing},
            confidence=avg,
            ai_calls=1 if pending else 0,
            items_processed=len(resolved),
        )

    # ------------------------------------------------------------------

    def _resolve(
        self,
        entry: ChunkEntry,
        output: NameResolverItemOutput,
        author_cache: dict[str, ResolvedAuthor],
        book_slugs: dict[str, set[str]],
    ) -> NameResolution:
        author = self._resolve_author(output, author_cache)
        title = self._resolve_title(output, author.slug, book_slugs)
        series = self._resolve_series(output)
        return NameResolution(
            item_id=entry.item_id,
            file_path=entry.item.file_path,
            sha256=entry.item.source_sha256 or "",
            format=entry.format,
            author=author,
            title=title,
            series=series,
            overall_confidence=output.confidence or 0.0,
        )

    @staticmethod
    def _resolve_author(
        output: NameResolverItemOutput, cache: dict[str, ResolvedAuthor],
    ) -> ResolvedAuthor:
        original = output.author.name or UNKNOWN_AUTHOR
        normalized = normalize_author_name(original) or UNKNOWN_AUTHOR
        cached = cache.get(normalized)
        if cached is not None:
            return cached
        author = ResolvedAuthor(
            original_name=original,
            normalized_name=normalized,
            slug=slugify(normalized) or slugify(UNKNOWN_AUTHOR),
            confidence=output.author.confidence or 0.0,
        )
        cache[normalized] = author
        return author

    @staticmethod
    def _resolve_title(
        output: NameResolverItemOutput,
        author_slug: str,
        book_slugs: dict[str, set[str]],
    ) -> ResolvedTitle:
        original = output.title.original or UNKNOWN_TITLE
        english = output.title.english or original
        base = slugify(english) or slugify(UNKNOWN_TITLE)

        taken = book_slugs.setdefault(author_slug, set())
        slug = generate_unique_slug(base, taken)
        taken.add(slug)

        return ResolvedTitle(
            original_title=original,
            english_title=english,
            slug=slug,
            confidence=output.title.confidence or 0.0,
        )

    @staticmethod
    def _resolve_series(output: NameResolverItemOutput) -> ResolvedSeries:
        series = output.series
        if series is None or not series.name:
            return ResolvedSeries()
        english = series.english_name or series.name
        slug = slugify(english)
        if not slug:
            return ResolvedSeries()
        return ResolvedSeries(
            original_name=series.name,
            english_name=english,
            slug=slug,
            confidence=series.confidence or 0.0,
        )

    @staticmethod
    def _from_stored(entry: ChunkEntry, stored: NamesResult) -> NameResolution:
        return NameResolution(
            item_id=entry.item_id,
            file_path=entry.item.file_path,
            sha256=entry.item.source_sha256 or "",
            format=entry.format,
            author=stored.author,
            title=stored.title,
            series=stored.series,
            overall_confidence=stored.overall_confidence,
        )

    def _store(self, state: ChunkState, entry: ChunkEntry, resolution: NameResolution) -> None:
        names = NamesResult(
            author=resolution.author,
            title=resolution.title,
            series=resolution.series,
            overall_confidence=resolution.overall_confidence,
        )
        results = entry.item.agent_results.model_copy(update={"names": names})
        item = self._batch_repo.advance_item(entry.item_id, BatchItemStatus.NAME_RESOLVED, results)
        state.update_item(item)
        state.resolutions[entry.item_id] = resolution
