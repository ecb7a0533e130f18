# src/services/ai_service.py — v1
"""AI collaborator: name resolution and metadata enrichment over an LLM client.

Both calls send a JSON-only system prompt and parse the reply defensively
(markdown fences are stripped). An empty or unparsable reply raises
AIResponseError, which the retry predicate treats as transient.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ValidationError

from booknest.core.errors import AIResponseError
from booknest.core.retry import RetryConfig, is_retryable_error, with_retry
from booknest.llm.models import Message
from booknest.services.models import (
    MetadataRequest,
    MetadataResponse,
    NameResolverItemOutput,
    NameResolverRequestItem,
    NameResolverResponse,
)

if TYPE_CHECKING:
    from booknest.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)

_PROMPTS_DIR = Path(__file__).parent / "prompts"

# Maximum lengths of enrichment text, applied by the caller.
AUTHOR_BIO_MAX = 300
BOOK_DESCRIPTION_MAX = 500
SERIES_DESCRIPTION_MAX = 200

_NAME_RESOLVER_ROLE = (
    "a highly specialized book name resolver service. You analyze file paths "
    "and names to extract author names, book titles, and the book series name "
    "if applicable. You handle multilingual content (German, French, Spanish "
    "and others) and normalize names to English where possible. You always "
    "provide confidence scores between 0.0 and 1.0."
)
_METADATA_ROLE = (
    "a highly specialized book metadata service. You provide short metadata "
    "for authors, books, and series: biographies, book descriptions, "
    "publication years and series descriptions. All descriptions must be in "
    "English."
)

ResponseT = TypeVar("ResponseT", bound=BaseModel)


def build_system_prompt(role: str) -> str:
    return (
        f"You are {role}. You MUST respond with valid JSON only. No markdown, "
        "no code blocks, no explanation. Just pure JSON that can be parsed directly."
    )


def truncate(text: str | None, max_length: int) -> str | None:
    """Cut *text* to *max_length* characters, ending with '...' when cut."""
    if not text:
        return None
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def parse_json_payload(content: str) -> Any:
    """Parse an LLM JSON reply, handling markdown fences.

    Raises:
        AIResponseError: If the content is empty or not valid JSON.
    """
    text = content.strip()
    if text.startswith("```"):
        lines = [line for line in text.split("\n") if not line.strip().startswith("```")]
        text = "\n".join(lines).strip()
    if not text:
        raise AIResponseError("Empty response from AI service")
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise AIResponseError(f"Invalid JSON response from AI service: {e}") from e


def _should_retry(error: BaseException) -> bool:
    return isinstance(error, AIResponseError) or is_retryable_error(error)


class AIService:
    """Structured AI calls used by the name and metadata resolver agents.

    Args:
        llm: Client used for name resolution.
        retry: Retry policy for every call.
        metadata_llm: Optional separate client for enrichment (defaults to llm).
        max_tokens: Output token cap per call.
        temperature: Sampling temperature.
    """

    def __init__(
        self,
        llm: BaseLLMClient,
        retry: RetryConfig | None = None,
        metadata_llm: BaseLLMClient | None = None,
        max_tokens: int = 16384,
        temperature: float = 0.3,
    ) -> None:
        self._llm = llm
        self._metadata_llm = metadata_llm or llm
        self._retry = retry or RetryConfig()
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._templates: dict[str, str] = {}

    def _load_prompt(self, name: str) -> str:
        if name not in self._templates:
            self._templates[name] = (_PROMPTS_DIR / f"{name}.txt").read_text(encoding="utf-8")
        return self._templates[name]

    async def resolve_names(
        self, inputs: list[NameResolverRequestItem],
    ) -> list[NameResolverItemOutput]:
        """Ask the AI service for author/title/series guesses per file path."""
        payload = json.dumps([i.model_dump(by_alias=True) for i in inputs], indent=2)
        prompt = self._load_prompt("name_resolver").format(inputs=payload)

        response = await self._call(
            self._llm,
            build_system_prompt(_NAME_RESOLVER_ROLE),
            prompt,
            NameResolverResponse,
            operation="ai.resolve_names",
        )
        logger.info(
            "Name resolution response: %d inputs, %d results",
            len(inputs), len(response.results),
        )
        return response.results

    async def resolve_metadata(self, request: MetadataRequest) -> MetadataResponse:
        """Ask the AI service for enrichment text; truncates text fields."""
        payload = json.dumps(request.model_dump(by_alias=True), indent=2, ensure_ascii=False)
        prompt = self._load_prompt("metadata_resolver").format(
            inputs=payload,
            author_bio_max=AUTHOR_BIO_MAX,
            book_description_max=BOOK_DESCRIPTION_MAX,
            series_description_max=SERIES_DESCRIPTION_MAX,
        )

        response = await self._call(
            self._metadata_llm,
            build_system_prompt(_METADATA_ROLE),
            prompt,
            MetadataResponse,
            operation="ai.resolve_metadata",
        )

        for author in response.authors:
            author.bio = truncate(author.bio, AUTHOR_BIO_MAX)
        for book in response.books:
            book.description = truncate(book.description, BOOK_DESCRIPTION_MAX)
        for series in response.series:
            series.description = truncate(series.description, SERIES_DESCRIPTION_MAX)

        logger.info(
            "Metadata response: %d/%d authors, %d/%d books, %d/%d series",
            len(response.authors), len(request.authors),
            len(response.books), len(request.books),
            len(response.series), len(request.series),
        )
        return response

    async def _call(
        self,
        llm: BaseLLMClient,
        system: str,
        prompt: str,
        response_model: type[ResponseT],
        operation: str,
    ) -> ResponseT:
        async def attempt() -> ResponseT:
            response = await llm.complete(
                messages=[Message(role="user", content=prompt)],
                system=system,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                response_format=response_model,
            )
            data = parse_json_payload(response.content)
            # Some models return the bare list instead of {"results": [...]}
            if isinstance(data, list) and "results" in response_model.model_fields:
                data = {"results": data}
            try:
                return response_model.model_validate(data)
            except ValidationError as e:
                raise AIResponseError(
                    f"AI response does not match {response_model.__name__}: {e}"
                ) from e

        return await with_retry(
            attempt,
            operation=operation,
            max_retries=self._retry.max_retries,
            base_delay_s=self._retry.base_delay_s,
            should_retry=_should_retry,
        )
