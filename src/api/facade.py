# src/api/facade.py — v1
"""Public API facade — start-or-resume indexing, status, history, cancel.

Usage:
    from booknest.api.facade import open_indexing_service
    async with open_indexing_service(settings) as service:
        result = await service.start_indexing()

``open_indexing_service`` wires every collaborator from Settings;
``IndexingService`` itself only needs an orchestrator and the batch
repository, so tests can hand it fakes.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from booknest.api.models import IndexingStatus
from booknest.batch.status import BatchStatus
from booknest.core.errors import IndexingInProgressError

if TYPE_CHECKING:
    from booknest.batch.models import Batch, BatchPage, BatchRunResult
    from booknest.config.settings import Settings
    from booknest.pipeline.orchestrator import BatchOrchestrator
    from booknest.storage.batch_repo import BatchRepository

logger = logging.getLogger(__name__)


class IndexingService:
    """Operations exposed to the CLI and the HTTP layer.

    Args:
        orchestrator: Runs and inspects batches.
        batch_repo: Batch state, used for the running-batch pre-check.
    """

    def __init__(self, orchestrator: BatchOrchestrator, batch_repo: BatchRepository) -> None:
        self._orchestrator = orchestrator
        self._batch_repo = batch_repo

    async def start_indexing(self) -> BatchRunResult:
        """Start a new batch or resume the failed one.

        Raises:
            IndexingInProgressError: A batch is already processing.
        """
        running = self._batch_repo.find_by_status(BatchStatus.PROCESSING)
        if running:
            raise IndexingInProgressError(running[0].id)
        return await self._orchestrator.start_indexing()

    def get_status(self) -> IndexingStatus:
        running = self._batch_repo.find_by_status(BatchStatus.PROCESSING)
        current = running[0] if running else None
        latest = self._batch_repo.find_latest()
        return IndexingStatus(
            is_running=current is not None,
            current_batch=self._orchestrator.get_status(current.id) if current else None,
            last_batch=self._orchestrator.get_status(latest.id) if latest else None,
        )

    def get_history(self, limit: int = 20, offset: int = 0) -> BatchPage:
        return self._orchestrator.get_history(limit=limit, offset=offset)

    def cancel_batch(self, batch_id: str) -> Batch:
        """Roll back a pending or processing batch.

        Raises:
            BatchNotFoundError: Unknown batch id.
            BatchNotCancellableError: Batch already finished.
        """
        batch = self._orchestrator.rollback(batch_id)
        logger.info("Batch %s cancelled", batch_id)
        return batch


@asynccontextmanager
async def open_indexing_service(settings: Settings) -> AsyncIterator[IndexingService]:
    """Build an IndexingService from *settings*; closes HTTP and DB on exit."""
    from booknest.batch.crawler import Crawler
    from booknest.core.retry import RetryConfig
    from booknest.llm.client_factory import create_component_client
    from booknest.pipeline.agents.image_resolver import ImageResolverAgent
    from booknest.pipeline.agents.metadata_resolver import MetadataResolverAgent
    from booknest.pipeline.agents.name_resolver import NameResolverAgent
    from booknest.pipeline.chunk_pipeline import ChunkPipeline
    from booknest.pipeline.orchestrator import BatchOrchestrator
    from booknest.services.ai_service import AIService
    from booknest.services.converter import CalibreConverter
    from booknest.services.image_downloader import ImageDownloader, build_http_client
    from booknest.services.image_search import OpenLibraryImageSearch
    from booknest.storage.batch_repo import BatchRepository
    from booknest.storage.database import Database
    from booknest.storage.library_repo import (
        AuthorRepository,
        BookRepository,
        FileRepository,
        SeriesRepository,
    )
    from booknest.storage.organizer import FileOrganizer

    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    db = Database(settings.db_path)
    http = build_http_client(settings.image_user_agent, settings.image_timeout_s)
    try:
        batch_repo = BatchRepository(db)
        author_repo = AuthorRepository(db)
        series_repo = SeriesRepository(db)
        book_repo = BookRepository(db)
        file_repo = FileRepository(db)

        retry = settings.retry_config
        ai_service = AIService(
            create_component_client("name_resolver", settings),
            retry=retry,
            metadata_llm=create_component_client("metadata_resolver", settings),
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_default_temperature,
        )
        converter = CalibreConverter(
            calibre_path=settings.calibre_path,
            timeout_s=settings.conversion_timeout_s,
            retry=RetryConfig(max_retries=settings.conversion_max_retries, base_delay_s=1.0),
        ) if settings.conversion_enabled else None
        organizer = FileOrganizer(
            settings.ebooks_dir, settings.source_dir, settings.processed_dir, converter,
        )

        pipeline = ChunkPipeline(
            batch_repo, author_repo, series_repo, book_repo, file_repo, organizer,
            name_agent=NameResolverAgent(ai_service, batch_repo),
            image_agent=ImageResolverAgent(
                OpenLibraryImageSearch(
                    http,
                    settings.image_search_base_url,
                    settings.image_covers_base_url,
                    retry=retry,
                ),
                ImageDownloader(
                    http, settings.image_max_bytes, settings.image_min_bytes, retry=retry,
                ),
                batch_repo,
                settings.ebooks_dir,
                settings.assets_dir,
            ),
            metadata_agent=MetadataResolverAgent(
                ai_service, batch_repo, author_repo, book_repo, series_repo,
            ),
            conversion_enabled=settings.conversion_enabled,
        )
        orchestrator = BatchOrchestrator(
            batch_repo, file_repo, Crawler(settings.source_dir), pipeline,
            batch_size=settings.batch_size,
        )
        yield IndexingService(orchestrator, batch_repo)
    finally:
        await http.aclose()
        db.close()
