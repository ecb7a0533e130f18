# src/pipeline/plugin_kit/base_agent.py — v1
"""Standard interface for the chunk pipeline agents."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from booknest.pipeline.plugin_kit.models import AgentMetadata, AgentOutput

if TYPE_CHECKING:
    from booknest.pipeline.state import ChunkState


class BaseAgent(ABC):
    """Standard interface for all pipeline agents."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique agent identifier (e.g., 'name_resolver')."""

    @property
    @abstractmethod
    def version(self) -> str:
        """Agent version (semver)."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of what this agent does."""

    @abstractmethod
    async def execute(self, state: ChunkState) -> AgentOutput:
        """Run the agent over the active items of a chunk.

        Args:
            state: Mutable chunk state; the agent records its results on it.

        Returns:
            AgentOutput with summary data and confidence.
        """

    def build_output(
        self,
        started: float,
        data: dict[str, Any],
        confidence: float = 1.0,
        ai_calls: int = 0,
        items_processed: int = 0,
        warnings: list[str] | None = None,
    ) -> AgentOutput:
        """Wrap *data* with execution metadata; *started* is a perf_counter value."""
        return AgentOutput(
            data=data,
            confidence=confidence,
            metadata=AgentMetadata(
                agent_name=self.name,
                agent_version=self.version,
                execution_time_ms=int((time.perf_counter() - started) * 1000),
                ai_calls=ai_calls,
                items_processed=items_processed,
            ),
            warnings=warnings or [],
        )
