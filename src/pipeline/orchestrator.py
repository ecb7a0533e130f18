# src/pipeline/orchestrator.py — v1
"""Batch orchestrator — start-or-resume indexing runs.

Decides between a new batch and resuming the oldest failed one, splits
the work into chunks of ``batch_size`` items and drives each chunk
through the ChunkPipeline, strictly in order:

  new:    create (pending) -> processing -> crawl -> drop known digests
          -> create items -> chunks -> completed | failed
  resume: items not completed (failed ones re-opened) -> processing
          -> chunks -> completed | failed

A chunk that raises (an ABORT_BATCH stage) marks the batch failed and
stops the run; the failure is reported in the returned summary, not
raised. A failed batch is picked up again by the next start.
"""

from __future__ import annotations

import logging
import os
import time
from typing import TYPE_CHECKING

from booknest.batch.dedup import filter_new_files
from booknest.batch.models import Batch, BatchPage, BatchProgress, BatchRunResult
from booknest.batch.status import CANCELLABLE_BATCH_STATUSES, BatchItemStatus, BatchStatus
from booknest.core.errors import BatchNotCancellableError
from booknest.core.formats import detect_format
from booknest.logging.context import batch_context
from booknest.pipeline.state import ChunkEntry, ChunkState

if TYPE_CHECKING:
    from booknest.batch.crawler import Crawler
    from booknest.batch.models import BatchItem
    from booknest.pipeline.chunk_pipeline import ChunkPipeline
    from booknest.storage.batch_repo import BatchRepository
    from booknest.storage.library_repo import FileRepository

logger = logging.getLogger(__name__)

NO_NEW_FILES = "No new files to process"


def _file_size(path: str) -> int | None:
    try:
        return os.path.getsize(path)
    except OSError:
        return None


def chunked(entries: list[ChunkEntry], size: int) -> list[list[ChunkEntry]]:
    """Split *entries* into consecutive groups of at most *size*."""
    if size < 1:
        raise ValueError(f"Chunk size must be >= 1, got {size}")
    return [entries[i:i + size] for i in range(0, len(entries), size)]


class BatchOrchestrator:
    """Top-level driver of indexing runs.

    Args:
        batch_repo: Batch and item state.
        file_repo: Ingested file records (cross-batch dedup).
        crawler: Source directory crawler.
        pipeline: Stage sequence applied to each chunk.
        batch_size: Items per chunk (bounds each AI request).
    """

    def __init__(
        self,
        batch_repo: BatchRepository,
        file_repo: FileRepository,
        crawler: Crawler,
        pipeline: ChunkPipeline,
        batch_size: int = 25,
    ) -> None:
        self._batch_repo = batch_repo
        self._file_repo = file_repo
        self._crawler = crawler
        self._pipeline = pipeline
        self._batch_size = batch_size

    async def start_indexing(self) -> BatchRunResult:
        """Resume the oldest failed batch, else start a new one."""
        started = time.monotonic()
        failed = self._batch_repo.find_by_status(BatchStatus.FAILED)
        if failed:
            return await self._resume_batch(failed[0], started)
        return await self._start_new_batch(started)

    # ------------------------------------------------------------------
    # New batch / resume
    # ------------------------------------------------------------------

    async def _start_new_batch(self, started: float) -> BatchRunResult:
        batch = self._batch_repo.create_batch()
        with batch_context(batch.id):
            logger.info("Starting new indexing batch %s", batch.id)
            self._batch_repo.transition_batch(batch.id, BatchStatus.PROCESSING)
            errors: list[str] = []
            try:
                crawl = await self._crawler.crawl()
                errors.extend(crawl.errors)
                new_files = filter_new_files(crawl.files, self._file_repo)
                logger.info(
                    "Crawl complete: %d files found, %d new", len(crawl.files), len(new_files),
                )

                if not new_files:
                    self._finish(batch.id, BatchStatus.COMPLETED)
                    return self._result(batch.id, False, started, [NO_NEW_FILES, *errors])

                items = self._batch_repo.create_items(batch.id, new_files)
                self._batch_repo.update_counters(batch.id, total_books=len(items))
                entries = [
                    ChunkEntry(item=item, format=f.format, size=f.size)
                    for item, f in zip(items, new_files)
                ]
            except Exception as exc:
                logger.exception("Indexing failed before processing")
                self._finish(batch.id, BatchStatus.FAILED)
                return self._result(batch.id, False, started, [*errors, str(exc)])

            return await self._process(batch.id, entries, False, started, errors)

    async def _resume_batch(self, batch: Batch, started: float) -> BatchRunResult:
        with batch_context(batch.id):
            logger.info("Resuming failed batch %s", batch.id)
            self._batch_repo.transition_batch(batch.id, BatchStatus.PROCESSING)
            errors: list[str] = []
            try:
                incomplete = self._batch_repo.find_incomplete_items(batch.id)
                logger.info("Found %d incomplete items", len(incomplete))
                entries = [e for e in (self._reopen(item) for item in incomplete) if e is not None]
                self._refresh_counters(batch.id)
            except Exception as exc:
                logger.exception("Resume failed before processing")
                self._finish(batch.id, BatchStatus.FAILED)
                return self._result(batch.id, True, started, [str(exc)])

            return await self._process(batch.id, entries, True, started, errors)

    def _reopen(self, item: BatchItem) -> ChunkEntry | None:
        """Rebuild a chunk entry for a resumed item, re-opening failed ones."""
        fmt = detect_format(item.file_path)
        if fmt is None:
            logger.warning("Cannot determine format of %s, skipping", item.file_path)
            if item.status is not BatchItemStatus.FAILED:
                self._batch_repo.fail_item(item.id, "Unsupported format")
            return None
        if item.status is BatchItemStatus.FAILED:
            target = (
                BatchItemStatus.NAME_RESOLVED
                if item.agent_results.names is not None
                else BatchItemStatus.PENDING
            )
            item = self._batch_repo.requeue_item(item.id, target)
        return ChunkEntry(item=item, format=fmt, size=_file_size(item.file_path))

    # ------------------------------------------------------------------
    # Chunk loop
    # ------------------------------------------------------------------

    async def _process(
        self,
        batch_id: str,
        entries: list[ChunkEntry],
        resumed: bool,
        started: float,
        errors: list[str],
    ) -> BatchRunResult:
        chunks = chunked(entries, self._batch_size)
        for idx, chunk in enumerate(chunks):
            logger.info(
                "Processing chunk %d/%d (%d items)", idx + 1, len(chunks), len(chunk),
            )
            state = ChunkState(batch_id=batch_id, chunk_index=idx, entries=chunk)
            try:
                await self._pipeline.process(state)
            except Exception as exc:
                logger.exception("Chunk %d failed, stopping batch", idx + 1)
                errors.extend(state.errors)
                errors.append(str(exc))
                self._refresh_counters(batch_id)
                self._finish(batch_id, BatchStatus.FAILED)
                return self._result(batch_id, resumed, started, errors)

            errors.extend(state.errors)
            self._refresh_counters(batch_id)

        self._finish(batch_id, BatchStatus.COMPLETED)
        result = self._result(batch_id, resumed, started, errors)
        logger.info(
            "Indexing finished: %d processed, %d failed in %.1fs",
            result.processed_books, result.failed_books, result.duration_s,
        )
        return result

    def _refresh_counters(self, batch_id: str) -> None:
        counts = self._batch_repo.count_items_by_status(batch_id)
        self._batch_repo.update_counters(
            batch_id,
            processed_books=counts.get(BatchItemStatus.COMPLETED.value, 0),
            failed_books=counts.get(BatchItemStatus.FAILED.value, 0),
        )

    def _finish(self, batch_id: str, target: BatchStatus) -> None:
        batch = self._batch_repo.get_batch(batch_id)
        if batch.status is BatchStatus.ROLLED_BACK:
            # Cancelled while running; the annotation stands
            logger.info("Batch %s was rolled back during the run", batch_id)
            return
        self._batch_repo.transition_batch(batch_id, target)

    def _result(
        self, batch_id: str, resumed: bool, started: float, errors: list[str],
    ) -> BatchRunResult:
        batch = self._batch_repo.get_batch(batch_id)
        return BatchRunResult(
            batch_id=batch.id,
            status=batch.status,
            resumed=resumed,
            total_books=batch.total_books,
            processed_books=batch.processed_books,
            failed_books=batch.failed_books,
            duration_s=round(time.monotonic() - started, 2),
            errors=errors,
        )

    # ------------------------------------------------------------------
    # Status / rollback
    # ------------------------------------------------------------------

    def rollback(self, batch_id: str) -> Batch:
        """Mark a pending or processing batch rolled_back.

        A status annotation only: files and rows written so far stay.

        Raises:
            BatchNotFoundError: Unknown batch id.
            BatchNotCancellableError: Batch is not pending/processing.
        """
        batch = self._batch_repo.get_batch(batch_id)
        if batch.status not in CANCELLABLE_BATCH_STATUSES:
            raise BatchNotCancellableError(batch_id, batch.status.value)
        return self._batch_repo.transition_batch(batch_id, BatchStatus.ROLLED_BACK)

    def get_status(self, batch_id: str) -> BatchProgress:
        """Counters plus the status of the most recently touched item."""
        batch = self._batch_repo.get_batch(batch_id)
        last = self._batch_repo.find_last_touched_item(batch_id)
        return BatchProgress(
            batch=batch,
            current_phase=last.status if last else None,
            item_counts=self._batch_repo.count_items_by_status(batch_id),
        )

    def get_history(self, limit: int = 20, offset: int = 0) -> BatchPage:
        return self._batch_repo.list_batches(limit=limit, offset=offset)
