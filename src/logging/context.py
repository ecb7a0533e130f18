# src/logging/context.py — v1
"""Contextual logging support: attach batch_id, phase and agent to log records.

Replaces a per-batch child logger: while a batch runs every record is
tagged with its id, whichever module emits it.
"""

from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

_batch_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "batch_id", default=None
)
_phase: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "phase", default=None
)
_agent: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "agent", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    batch_id: str | None = None
    phase: str | None = None
    agent: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        batch_id=_batch_id.get(),
        phase=_phase.get(),
        agent=_agent.get(),
    )


def set_batch_context(batch_id: str | None) -> None:
    _batch_id.set(batch_id)


def set_phase_context(phase: str | None, agent: str | None = None) -> None:
    """Set phase-level context (called per pipeline stage)."""
    _phase.set(phase)
    _agent.set(agent)


@contextmanager
def batch_context(batch_id: str) -> Iterator[None]:
    """Tag every record emitted inside the block with *batch_id*."""
    batch_token = _batch_id.set(batch_id)
    phase_token = _phase.set(None)
    agent_token = _agent.set(None)
    try:
        yield
    finally:
        _agent.reset(agent_token)
        _phase.reset(phase_token)
        _batch_id.reset(batch_token)


def clear_context() -> None:
    """Reset all context variables."""
    _batch_id.set(None)
    _phase.set(None)
    _agent.set(None)
