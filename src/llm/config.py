# src/llm/config.py — v1
"""Per-component LLM routing with cascade resolution.

Resolution order:
  1. Per-component env var (LLM_NAME_RESOLVER=openai:llama-3.3-70b-versatile)
  2. Per-phase env var (LLM_PHASE_ENRICHMENT=anthropic:claude-sonnet-4-20250514)
  3. Default provider + model (LLM_DEFAULT_PROVIDER + LLM_DEFAULT_MODEL)
  4. Hardcoded fallback (google:gemini-2.0-flash)
"""

from __future__ import annotations

from dataclasses import dataclass

from booknest.config.agents import PHASE_COMPONENT_MAP
from booknest.config.settings import Settings

_FALLBACK_PROVIDER = "google"
_FALLBACK_MODEL = "gemini-2.0-flash"


@dataclass(frozen=True)
class LLMAssignment:
    """Resolved LLM provider:model for a component."""

    provider: str
    model: str
    source: str  # "component", "phase", "default", or "fallback"

    @property
    def key(self) -> str:
        return f"{self.provider}:{self.model}"


def _find_phase(component: str) -> str | None:
    for phase, components in PHASE_COMPONENT_MAP.items():
        if component in components:
            return phase
    return None


def _parse_assignment(value: str) -> tuple[str, str] | None:
    """Parse 'provider:model' string. Returns None if empty or malformed."""
    if not value or ":" not in value:
        return None
    provider, model = value.split(":", 1)
    return (provider.strip(), model.strip())


def resolve_llm(component: str, settings: Settings) -> LLMAssignment:
    """Resolve the LLM assignment for a component (e.g. "name_resolver")."""
    parsed = _parse_assignment(getattr(settings, f"llm_{component}", ""))
    if parsed:
        return LLMAssignment(provider=parsed[0], model=parsed[1], source="component")

    phase = _find_phase(component)
    if phase:
        parsed = _parse_assignment(getattr(settings, f"llm_phase_{phase}", ""))
        if parsed:
            return LLMAssignment(provider=parsed[0], model=parsed[1], source="phase")

    if settings.llm_default_provider and settings.llm_default_model:
        return LLMAssignment(
            provider=settings.llm_default_provider,
            model=settings.llm_default_model,
            source="default",
        )

    return LLMAssignment(
        provider=_FALLBACK_PROVIDER,
        model=_FALLBACK_MODEL,
        source="fallback",
    )
