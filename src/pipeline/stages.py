# src/pipeline/stages.py — v1
"""Stage abstraction and runner for the chunk pipeline.

Stages run strictly in order. Each declares how its failures propagate:

  ABORT_BATCH   any exception escapes and fails the whole batch
  ISOLATE_ITEM  runs per item; a failing item is marked failed and
                skipped by every later stage, siblings continue
  BEST_EFFORT   exceptions are logged and absorbed
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from booknest.logging.context import set_phase_context

if TYPE_CHECKING:
    from booknest.pipeline.plugin_kit.base_agent import BaseAgent
    from booknest.pipeline.state import ChunkEntry, ChunkState
    from booknest.storage.batch_repo import BatchRepository

logger = logging.getLogger(__name__)


class FailurePolicy(str, Enum):
    ABORT_BATCH = "abort_batch"
    ISOLATE_ITEM = "isolate_item"
    BEST_EFFORT = "best_effort"


class Stage(ABC):
    """One step of the chunk pipeline."""

    name: str = "stage"
    policy: FailurePolicy = FailurePolicy.BEST_EFFORT
    agent: str | None = None

    async def run(self, state: ChunkState) -> None:
        """Chunk-level body, used by ABORT_BATCH and BEST_EFFORT stages."""
        for entry in state.active_entries():
            await self.run_item(state, entry)

    async def run_item(self, state: ChunkState, entry: ChunkEntry) -> None:
        """Per-item body, used by ISOLATE_ITEM stages."""
        raise NotImplementedError(f"Stage '{self.name}' has no per-item body")


class AgentStage(Stage):
    """Stage that delegates to a BaseAgent and records its output."""

    def __init__(self, agent: BaseAgent, name: str, policy: FailurePolicy) -> None:
        self._agent = agent
        self.name = name
        self.policy = policy
        self.agent = agent.name

    async def run(self, state: ChunkState) -> None:
        output = await self._agent.execute(state)
        state.record_agent_output(self._agent.name, output)


@dataclass
class StageRunResult:
    """Outcome of running the stages over one chunk."""

    completed_stages: list[str] = field(default_factory=list)
    absorbed_failures: list[str] = field(default_factory=list)
    failed_items: list[str] = field(default_factory=list)
    duration_ms: int = 0


class StageRunner:
    """Run an ordered list of stages against a ChunkState.

    Args:
        stages: Stages in execution order.
        batch_repo: Used to persist isolated item failures.
    """

    def __init__(self, stages: list[Stage], batch_repo: BatchRepository) -> None:
        self._stages = stages
        self._batch_repo = batch_repo

    @property
    def stages(self) -> list[Stage]:
        return list(self._stages)

    async def run(self, state: ChunkState) -> StageRunResult:
        """Execute all stages in order.

        Raises:
            Exception: Whatever an ABORT_BATCH stage raised.
        """
        start_ns = time.monotonic_ns()
        result = StageRunResult()
        try:
            for idx, stage in enumerate(self._stages):
                set_phase_context(stage.name, stage.agent)
                logger.info(
                    "Stage %d/%d: %s (%d active items)",
                    idx + 1, len(self._stages), stage.name, len(state.active_entries()),
                )
                if stage.policy is FailurePolicy.ABORT_BATCH:
                    try:
                        await stage.run(state)
                    except Exception as exc:
                        logger.error("Stage '%s' failed, aborting batch: %s", stage.name, exc)
                        raise
                elif stage.policy is FailurePolicy.ISOLATE_ITEM:
                    await self._run_isolated(stage, state, result)
                else:
                    try:
                        await stage.run(state)
                    except Exception as exc:
                        logger.exception("Stage '%s' failed (non-blocking)", stage.name)
                        message = f"{stage.name}: {exc}"
                        result.absorbed_failures.append(message)
                        state.errors.append(message)
                result.completed_stages.append(stage.name)
        finally:
            set_phase_context(None)
            result.duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000

        logger.info(
            "Chunk %d complete: %d stages, %d items failed, %d absorbed failures, %dms",
            state.chunk_index + 1, len(result.completed_stages), len(result.failed_items),
            len(result.absorbed_failures), result.duration_ms,
        )
        return result

    async def _run_isolated(
        self, stage: Stage, state: ChunkState, result: StageRunResult,
    ) -> None:
        for entry in state.active_entries():
            try:
                await stage.run_item(state, entry)
            except Exception as exc:
                logger.error(
                    "Stage '%s' failed for %s: %s", stage.name, entry.item.file_path, exc,
                )
                item = self._batch_repo.fail_item(entry.item_id, str(exc))
                state.update_item(item)
                state.mark_failed(entry.item_id, str(exc))
                result.failed_items.append(entry.item_id)
