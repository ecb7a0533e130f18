# src/batch/models.py — v1
"""Batch records, run summaries and progress views."""

from __future__ import annotations

from pydantic import BaseModel, Field

from booknest.batch.agent_results import AgentResults
from booknest.batch.status import BatchItemStatus, BatchStatus


class Batch(BaseModel):
    """One indexing run."""

    id: str
    status: BatchStatus
    total_books: int = 0
    processed_books: int = 0
    failed_books: int = 0
    started_at: str | None = None
    completed_at: str | None = None
    created_at: str | None = None


class BatchItem(BaseModel):
    """Per-file unit of work within a batch."""

    id: str
    batch_id: str
    file_path: str
    source_sha256: str | None = None
    status: BatchItemStatus = BatchItemStatus.PENDING
    agent_results: AgentResults = Field(default_factory=AgentResults)
    error_message: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class BatchRunResult(BaseModel):
    """Summary returned by start-or-resume indexing."""

    batch_id: str
    status: BatchStatus
    resumed: bool = False
    total_books: int = 0
    processed_books: int = 0
    failed_books: int = 0
    duration_s: float = 0.0
    errors: list[str] = Field(default_factory=list)


class BatchProgress(BaseModel):
    """Batch counters plus the status of the most recently touched item."""

    batch: Batch
    current_phase: BatchItemStatus | None = None
    item_counts: dict[str, int] = Field(default_factory=dict)


class BatchPage(BaseModel):
    """Paginated batch history, newest first."""

    batches: list[Batch] = Field(default_factory=list)
    total: int = 0
    limit: int = 20
    offset: int = 0
