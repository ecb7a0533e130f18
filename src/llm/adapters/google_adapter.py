# src/llm/adapters/google_adapter.py — v1
"""Google Gemini adapter implementing BaseLLMClient.

Uses the google-generativeai SDK. JSON output is requested through the
response MIME type; Gemini is the default provider for name resolution.
"""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel

from booknest.llm.base_client import BaseLLMClient
from booknest.llm.models import LLMResponse, Message


class GoogleAdapter(BaseLLMClient):
    """Google Gemini adapter."""

    def __init__(self, model: str = "gemini-2.0-flash", api_key: str = "", **kwargs: Any):
        self._model = model
        self._api_key = api_key

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.3,
        response_format: type[BaseModel] | None = None,
    ) -> LLMResponse:
        import google.generativeai as genai

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(self._model, system_instruction=system)

        gen_config: dict[str, Any] = {
            "max_output_tokens": max_tokens,
            "temperature": temperature,
            "response_mime_type": "application/json",
        }

        contents = [
            {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
            for m in messages
        ]

        t0 = time.monotonic()
        resp = await model.generate_content_async(contents, generation_config=gen_config)
        latency = int((time.monotonic() - t0) * 1000)

        candidates = getattr(resp, "candidates", None) or []
        finish_reason = str(candidates[0].finish_reason) if candidates else None
        # resp.text raises when the candidate has no text part
        text = resp.text if candidates and candidates[0].content.parts else ""

        usage = getattr(resp, "usage_metadata", None)
        return LLMResponse(
            content=text or "",
            input_tokens=getattr(usage, "prompt_token_count", 0) if usage else 0,
            output_tokens=getattr(usage, "candidates_token_count", 0) if usage else 0,
            model=self._model,
            provider="google",
            latency_ms=latency,
            finish_reason=finish_reason,
            raw_response=resp,
        )

    @property
    def provider_name(self) -> str:
        return "google"
