# src/pipeline/plugin_kit/models.py — v1
"""Agent execution models: AgentMetadata, AgentOutput."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class AgentMetadata(BaseModel):
    """Metadata about an agent execution, attached to every AgentOutput."""

    agent_name: str
    agent_version: str
    execution_time_ms: int
    ai_calls: int = 0
    items_processed: int = 0


class AgentOutput(BaseModel):
    """Standard return type for all BaseAgent.execute() calls."""

    data: dict[str, Any] = Field(default_factory=dict)
    confidence: float = 1.0
    metadata: AgentMetadata
    warnings: list[str] = Field(default_factory=list)
