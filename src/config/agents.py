# src/config/agents.py — v1
"""Agent-to-phase mapping used for per-phase LLM routing (llm/config.py)."""

from __future__ import annotations

PHASE_COMPONENT_MAP: dict[str, list[str]] = {
    "resolution": ["name_resolver"],
    "enrichment": ["metadata_resolver"],
}
