# src/llm/client_factory.py — v1
"""Factory: instantiate an LLM client from a provider name.

Adapters are imported lazily so only the SDK of the configured provider
needs to be importable at runtime.
"""

from __future__ import annotations

import importlib
import logging

from booknest.config.settings import Settings
from booknest.llm.base_client import BaseLLMClient
from booknest.llm.config import resolve_llm

logger = logging.getLogger(__name__)

# Registry of provider name -> adapter class path (lazy import).
_PROVIDER_REGISTRY: dict[str, str] = {
    "google": "booknest.llm.adapters.google_adapter.GoogleAdapter",
    "openai": "booknest.llm.adapters.openai_adapter.OpenAIAdapter",
    "anthropic": "booknest.llm.adapters.anthropic_adapter.AnthropicAdapter",
    "ollama": "booknest.llm.adapters.ollama_adapter.OllamaAdapter",
}


class UnsupportedProviderError(ValueError):
    """Raised when a provider is not registered."""


def create_llm_client(
    provider: str,
    model: str,
    settings: Settings | None = None,
    **kwargs: object,
) -> BaseLLMClient:
    """Instantiate the correct adapter from provider name.

    Args:
        provider: Provider identifier (google, openai, anthropic, ollama).
        model: Model name (e.g. gemini-2.0-flash).
        settings: Application settings (for API keys and endpoints).
        **kwargs: Additional provider-specific arguments.

    Raises:
        UnsupportedProviderError: If provider is not registered.
    """
    if provider not in _PROVIDER_REGISTRY:
        raise UnsupportedProviderError(
            f"Unsupported LLM provider: {provider!r}. "
            f"Available: {', '.join(sorted(_PROVIDER_REGISTRY))}"
        )

    adapter_cls = _import_class(_PROVIDER_REGISTRY[provider])

    init_kwargs = dict(kwargs)
    init_kwargs["model"] = model

    if settings is not None:
        if provider == "google":
            init_kwargs.setdefault("api_key", settings.google_api_key)
        elif provider == "openai":
            init_kwargs.setdefault("api_key", settings.openai_api_key)
            if settings.openai_base_url:
                init_kwargs.setdefault("base_url", settings.openai_base_url)
        elif provider == "anthropic":
            init_kwargs.setdefault("api_key", settings.anthropic_api_key)
        elif provider == "ollama":
            init_kwargs.setdefault("host", settings.ollama_base_url)

    logger.debug("Creating LLM client: provider=%s, model=%s", provider, model)
    return adapter_cls(**init_kwargs)


def create_component_client(component: str, settings: Settings) -> BaseLLMClient:
    """Create the client routed to *component* by the settings cascade."""
    assignment = resolve_llm(component, settings)
    logger.info(
        "LLM for %s: %s (from %s)", component, assignment.key, assignment.source,
    )
    return create_llm_client(assignment.provider, assignment.model, settings)


def register_provider(name: str, class_path: str) -> None:
    """Register a custom provider adapter."""
    _PROVIDER_REGISTRY[name] = class_path
    logger.info("Registered LLM provider: %s -> %s", name, class_path)


def _import_class(class_path: str) -> type:
    """Dynamically import a class from its fully qualified path."""
    module_path, class_name = class_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)
