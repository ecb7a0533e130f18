# src/core/ids.py — v1
"""Identifier generation for batches and persisted records."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


def generate_id() -> str:
    return str(uuid.uuid4())


def generate_batch_id(now: datetime | None = None) -> str:
    """Return an id of the form ``batch-YYYY-MM-DD-<8 hex>``."""
    now = now or datetime.now(timezone.utc)
    return f"batch-{now:%Y-%m-%d}-{uuid.uuid4().hex[:8]}"


def utc_now() -> str:
    """ISO-8601 UTC timestamp as stored in the database."""
    return datetime.now(timezone.utc).isoformat()
