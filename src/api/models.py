# src/api/models.py — v1
"""Upward interface models consumed by the CLI and HTTP layers."""

from __future__ import annotations

from pydantic import BaseModel

from booknest.batch.models import BatchProgress


class IndexingStatus(BaseModel):
    """Whether a batch is running, plus the running and latest batches."""

    is_running: bool = False
    current_batch: BatchProgress | None = None
    last_batch: BatchProgress | None = None
