# src/batch/agent_results.py — v1
"""Structured, versioned per-phase results stored on each batch item.

Each phase appends its own entry. The stored JSON blob is decoded
defensively: an entry that is malformed, has an unknown key or carries an
unsupported version is dropped with a warning so resume never aborts on
a stale or hand-edited row.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from booknest.core.models import ResolvedAuthor, ResolvedSeries, ResolvedTitle

logger = logging.getLogger(__name__)


class NamesResult(BaseModel):
    """Name resolver output for one item."""

    version: Literal[1] = 1
    author: ResolvedAuthor
    title: ResolvedTitle
    series: ResolvedSeries
    overall_confidence: float = Field(ge=0.0, le=1.0)


class PersistenceResult(BaseModel):
    """Ids of the library rows the item was linked to."""

    version: Literal[1] = 1
    author_id: str
    book_id: str
    series_id: str | None = None
    file_id: str
    library_path: str


class ImagesResult(BaseModel):
    version: Literal[1] = 1
    author_image: str | None = None
    author_image_source: Literal["download", "default", "existing"] | None = None
    book_image: str | None = None
    book_image_source: Literal["download", "default", "existing"] | None = None
    series_image: str | None = None


class ConversionEntry(BaseModel):
    version: Literal[1] = 1
    converted: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)


class MetadataEntry(BaseModel):
    version: Literal[1] = 1
    author_enriched: bool = False
    book_enriched: bool = False
    series_enriched: bool = False


_PHASE_MODELS: dict[str, type[BaseModel]] = {
    "names": NamesResult,
    "persistence": PersistenceResult,
    "images": ImagesResult,
    "conversion": ConversionEntry,
    "metadata": MetadataEntry,
}


class AgentResults(BaseModel):
    """Union of all phase entries; every entry is optional."""

    names: NamesResult | None = None
    persistence: PersistenceResult | None = None
    images: ImagesResult | None = None
    conversion: ConversionEntry | None = None
    metadata: MetadataEntry | None = None

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)

    @classmethod
    def decode(cls, raw: str | None, item_id: str = "?") -> AgentResults:
        """Decode a stored blob, keeping every entry that validates."""
        if not raw:
            return cls()
        try:
            data: Any = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Item %s: agent results are not JSON, discarding", item_id)
            return cls()
        if not isinstance(data, dict):
            logger.warning("Item %s: agent results are not an object, discarding", item_id)
            return cls()

        entries: dict[str, BaseModel] = {}
        for key, value in data.items():
            model = _PHASE_MODELS.get(key)
            if model is None:
                logger.warning("Item %s: unknown agent result %r dropped", item_id, key)
                continue
            try:
                entries[key] = model.model_validate(value)
            except ValidationError as e:
                logger.warning(
                    "Item %s: agent result %r unreadable (%d errors), dropped",
                    item_id, key, e.error_count(),
                )
        return cls(**entries)
