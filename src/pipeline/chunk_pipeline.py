# src/pipeline/chunk_pipeline.py — v1
"""Concrete stages of the chunk pipeline and their fixed order.

    names (abort) -> persistence (isolate) -> images -> move originals
        -> conversion -> metadata -> completion (isolate)

Images run after persistence so item statuses advance in declared
order; everything between persistence and completion is best effort.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections import defaultdict
from pathlib import Path
from typing import TYPE_CHECKING

from booknest.batch.agent_results import ConversionEntry, PersistenceResult
from booknest.batch.status import BatchItemStatus, item_rank
from booknest.core.errors import PathSafetyError
from booknest.core.hasher import hash_file_async
from booknest.pipeline.stages import AgentStage, FailurePolicy, Stage, StageRunner
from booknest.services.converter import best_source_format

if TYPE_CHECKING:
    from booknest.pipeline.agents.image_resolver import ImageResolverAgent
    from booknest.pipeline.agents.metadata_resolver import MetadataResolverAgent
    from booknest.pipeline.agents.name_resolver import NameResolverAgent
    from booknest.pipeline.stages import StageRunResult
    from booknest.pipeline.state import ChunkEntry, ChunkState
    from booknest.storage.batch_repo import BatchRepository
    from booknest.storage.library_repo import (
        AuthorRepository,
        BookRepository,
        FileRepository,
        SeriesRepository,
    )
    from booknest.storage.organizer import FileOrganizer

logger = logging.getLogger(__name__)


class PersistenceStage(Stage):
    """Lookup-or-create author/series/book, copy the file, record it."""

    name = "persistence"
    policy = FailurePolicy.ISOLATE_ITEM

    def __init__(
        self,
        batch_repo: BatchRepository,
        author_repo: AuthorRepository,
        series_repo: SeriesRepository,
        book_repo: BookRepository,
        file_repo: FileRepository,
        organizer: FileOrganizer,
    ) -> None:
        self._batch_repo = batch_repo
        self._authors = author_repo
        self._series = series_repo
        self._books = book_repo
        self._files = file_repo
        self._organizer = organizer

    async def run_item(self, state: ChunkState, entry: ChunkEntry) -> None:
        resolution = state.resolutions.get(entry.item_id)
        if resolution is None:
            raise LookupError("No name resolution result for this file")

        stored = entry.item.agent_results.persistence
        if stored is not None and item_rank(entry.item.status) >= item_rank(BatchItemStatus.PERSISTED):
            state.persisted[entry.item_id] = stored
            return

        author, created = self._authors.get_or_create(
            resolution.author.normalized_name, resolution.author.slug,
        )
        if created:
            logger.debug("Created author %s", author.name)
        if author.slug != resolution.author.slug:
            # Matched an existing author by name; its slug owns the library folder
            resolution = resolution.model_copy(update={
                "author": resolution.author.model_copy(update={"slug": author.slug}),
            })
            state.resolutions[entry.item_id] = resolution

        series_id: str | None = None
        if resolution.series.is_present:
            series, _ = self._series.get_or_create(
                author.id,
                resolution.series.english_name,
                resolution.series.slug,
                original_name=resolution.series.original_name,
            )
            series_id = series.id

        book, created = self._books.get_or_create(
            author.id,
            resolution.title.english_title,
            resolution.title.slug,
            original_title=resolution.title.original_title,
            series_id=series_id,
        )
        if created:
            logger.debug("Created book %s", book.title)

        source = Path(entry.item.file_path)
        sha256 = resolution.sha256 or await hash_file_async(source)
        target = await self._organizer.copy_file(source, author.slug, book.slug, sha256, entry.format)
        record, _ = self._files.get_or_create(book.id, entry.format, str(target), sha256, entry.size)

        persistence = PersistenceResult(
            author_id=author.id,
            book_id=book.id,
            series_id=book.series_id or series_id,
            file_id=record.id,
            library_path=str(target),
        )
        results = entry.item.agent_results.model_copy(update={"persistence": persistence})
        item = self._batch_repo.advance_item(entry.item_id, BatchItemStatus.PERSISTED, results)
        state.update_item(item)
        state.persisted[entry.item_id] = persistence


class MoveOriginalsStage(Stage):
    """Move ingested originals to the processed area and tidy source folders."""

    name = "move_originals"
    policy = FailurePolicy.BEST_EFFORT

    def __init__(self, organizer: FileOrganizer) -> None:
        self._organizer = organizer

    async def run(self, state: ChunkState) -> None:
        folders: list[str] = []
        moved = 0
        for entry in state.persisted_entries():
            source = Path(entry.item.file_path)
            if not source.exists():
                logger.debug("Original already gone: %s", source)
                continue
            folder = self._organizer.source_author_folder(source)
            try:
                result = await self._organizer.move_processed_file(source)
            except PathSafetyError as e:
                logger.error("Refusing to move %s: %s", source, e)
                state.errors.append(f"{source}: {e}")
                continue
            if result.success:
                moved += 1
                if folder:
                    folders.append(folder)
        logger.info("Moved %d originals to the processed area", moved)
        if folders:
            await self._organizer.clean_empty_folders(folders)


class ConversionStage(Stage):
    """Fill in missing formats per book and record the converted files."""

    name = "conversion"
    policy = FailurePolicy.BEST_EFFORT

    def __init__(
        self, batch_repo: BatchRepository, file_repo: FileRepository, organizer: FileOrganizer,
    ) -> None:
        self._batch_repo = batch_repo
        self._files = file_repo
        self._organizer = organizer

    async def run(self, state: ChunkState) -> None:
        if not self._organizer.conversion_available():
            logger.warning("Converter not available, skipping conversion")
            return

        by_book: dict[str, list[ChunkEntry]] = defaultdict(list)
        for entry in state.persisted_entries():
            by_book[state.persisted[entry.item_id].book_id].append(entry)

        for book_id, entries in by_book.items():
            resolution = state.resolutions[entries[0].item_id]
            try:
                outcome = await self._convert_book(
                    book_id, resolution.author.slug, resolution.title.slug,
                )
            except Exception as e:
                logger.warning("Conversion failed for %s: %s", resolution.title.english_title, e)
                state.errors.append(f"conversion {resolution.title.slug}: {e}")
                continue
            for entry in entries:
                results = entry.item.agent_results.model_copy(update={"conversion": outcome})
                self._batch_repo.save_agent_results(entry.item_id, results)
                state.update_item(entry.item.model_copy(update={"agent_results": results}))

    async def _convert_book(self, book_id: str, author_slug: str, book_slug: str) -> ConversionEntry:
        available: dict[str, str] = {}
        for record in self._files.find_by_book(book_id):
            if record.sha256:
                available.setdefault(record.format, record.sha256)
        source_format = best_source_format(list(available))
        if source_format is None:
            return ConversionEntry()

        sha256 = available[source_format]
        results = await self._organizer.convert_book(author_slug, book_slug, sha256, list(available))

        outcome = ConversionEntry()
        for fmt, result in results.items():
            if result.success and result.output_path:
                size = await asyncio.to_thread(os.path.getsize, result.output_path)
                self._files.get_or_create(book_id, fmt, result.output_path, sha256, size)
                outcome.converted.append(fmt)
            else:
                outcome.failed[fmt] = result.error or "unknown error"
        if outcome.converted or outcome.failed:
            logger.info(
                "Converted %s/%s: ok=%s failed=%s",
                author_slug, book_slug, outcome.converted, sorted(outcome.failed),
            )
        return outcome


class CompletionStage(Stage):
    name = "completion"
    policy = FailurePolicy.ISOLATE_ITEM

    def __init__(self, batch_repo: BatchRepository) -> None:
        self._batch_repo = batch_repo

    async def run_item(self, state: ChunkState, entry: ChunkEntry) -> None:
        item = self._batch_repo.advance_item(entry.item_id, BatchItemStatus.COMPLETED)
        state.update_item(item)


class ChunkPipeline:
    """Fixed stage sequence applied to every chunk of a batch."""

    def __init__(
        self,
        batch_repo: BatchRepository,
        author_repo: AuthorRepository,
        series_repo: SeriesRepository,
        book_repo: BookRepository,
        file_repo: FileRepository,
        organizer: FileOrganizer,
        name_agent: NameResolverAgent,
        image_agent: ImageResolverAgent,
        metadata_agent: MetadataResolverAgent,
        conversion_enabled: bool = True,
    ) -> None:
        stages: list[Stage] = [
            AgentStage(name_agent, "names", FailurePolicy.ABORT_BATCH),
            PersistenceStage(batch_repo, author_repo, series_repo, book_repo, file_repo, organizer),
            AgentStage(image_agent, "images", FailurePolicy.BEST_EFFORT),
            MoveOriginalsStage(organizer),
        ]
        if conversion_enabled:
            stages.append(ConversionStage(batch_repo, file_repo, organizer))
        stages.extend([
            AgentStage(metadata_agent, "metadata", FailurePolicy.BEST_EFFORT),
            CompletionStage(batch_repo),
        ])
        self._runner = StageRunner(stages, batch_repo)

    @property
    def stage_names(self) -> list[str]:
        return [s.name for s in self._runner.stages]

    async def process(self, state: ChunkState) -> StageRunResult:
        return await self._runner.run(state)
