# tests/unit/llm/test_unit_llm_routing.py — v1
"""Tests for llm/config.py and llm/client_factory.py — provider routing."""

from __future__ import annotations

import pytest

from booknest.config.settings import Settings
from booknest.llm.adapters.anthropic_adapter import AnthropicAdapter
from booknest.llm.adapters.ollama_adapter import OllamaAdapter
from booknest.llm.adapters.openai_adapter import OpenAIAdapter
from booknest.llm.client_factory import (
    UnsupportedProviderError,
    create_component_client,
    create_llm_client,
)
from booknest.llm.config import resolve_llm


def _settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)


class TestResolveLLM:
    def test_default(self):
        a = resolve_llm("name_resolver", _settings())
        assert (a.provider, a.model, a.source) == ("google", "gemini-2.0-flash", "default")

    def test_phase_overrides_default(self):
        a = resolve_llm("metadata_resolver", _settings(llm_phase_enrichment="openai:gpt-4o"))
        assert a.key == "openai:gpt-4o"
        assert a.source == "phase"

    def test_component_overrides_phase(self):
        s = _settings(
            llm_phase_resolution="openai:gpt-4o",
            llm_name_resolver="anthropic:claude-3-5-haiku-latest",
        )
        a = resolve_llm("name_resolver", s)
        assert a.provider == "anthropic"
        assert a.source == "component"

    def test_malformed_value_ignored(self):
        a = resolve_llm("name_resolver", _settings(llm_name_resolver="gpt-4o"))
        assert a.source == "default"

    def test_fallback(self):
        a = resolve_llm("name_resolver", _settings(llm_default_provider="", llm_default_model=""))
        assert a.source == "fallback"
        assert a.key == "google:gemini-2.0-flash"


class TestClientFactory:
    def test_unknown_provider(self):
        with pytest.raises(UnsupportedProviderError, match="Available"):
            create_llm_client("nope", "model")

    def test_openai_with_settings(self):
        s = _settings(openai_api_key="sk-test", openai_base_url="https://api.groq.com/openai/v1")
        client = create_llm_client("openai", "llama-3.3-70b-versatile", s)
        assert isinstance(client, OpenAIAdapter)
        assert client.provider_name == "openai"
        assert client._base_url == "https://api.groq.com/openai/v1"

    def test_ollama_host(self):
        client = create_llm_client("ollama", "llama3", _settings(ollama_base_url="http://gpu:11434"))
        assert isinstance(client, OllamaAdapter)

    def test_component_client(self):
        s = _settings(llm_metadata_resolver="anthropic:claude-3-5-haiku-latest", anthropic_api_key="k")
        assert isinstance(create_component_client("metadata_resolver", s), AnthropicAdapter)
