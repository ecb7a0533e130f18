# src/pipeline/state.py — v1
"""Mutable state of one chunk flowing through the pipeline stages.

Holds the chunk's batch items plus everything the stages learn about
them: resolved names, persisted ids, failures and soft errors. An item
marked failed drops out of every later stage.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from booknest.batch.agent_results import PersistenceResult
from booknest.batch.models import BatchItem
from booknest.core.models import NameResolution
from booknest.pipeline.plugin_kit.models import AgentOutput


class ChunkEntry(BaseModel):
    """A batch item plus the file facts the stages need."""

    item: BatchItem
    format: str
    size: int | None = None

    @property
    def item_id(self) -> str:
        return self.item.id


class ChunkState(BaseModel):
    """Mutable state accumulating results across the stages of a chunk."""

    batch_id: str
    chunk_index: int = 0
    entries: list[ChunkEntry] = Field(default_factory=list)

    # === NAME RESOLUTION ===
    resolutions: dict[str, NameResolution] = Field(default_factory=dict)

    # === PERSISTENCE ===
    persisted: dict[str, PersistenceResult] = Field(default_factory=dict)

    # === BOOKKEEPING ===
    failed: dict[str, str] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    agent_outputs: dict[str, AgentOutput] = Field(default_factory=dict)

    def active_entries(self) -> list[ChunkEntry]:
        """Entries not marked failed, in chunk order."""
        return [e for e in self.entries if e.item_id not in self.failed]

    def persisted_entries(self) -> list[ChunkEntry]:
        """Active entries whose library rows exist."""
        return [e for e in self.active_entries() if e.item_id in self.persisted]

    def entry(self, item_id: str) -> ChunkEntry:
        for e in self.entries:
            if e.item_id == item_id:
                return e
        raise KeyError(item_id)

    def update_item(self, item: BatchItem) -> None:
        """Replace the stored snapshot of *item* after a repository write."""
        self.entry(item.id).item = item

    def mark_failed(self, item_id: str, error: str) -> None:
        self.failed[item_id] = error
        self.errors.append(f"{self.entry(item_id).item.file_path}: {error}")

    def record_agent_output(self, agent_name: str, output: AgentOutput) -> None:
        self.agent_outputs[agent_name] = output
