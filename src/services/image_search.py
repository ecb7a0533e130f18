# src/services/image_search.py — v1
"""Image search collaborator backed by the Open Library search API.

Returns at most one candidate URL per query. A miss, an HTTP error or a
malformed payload all yield None: absence of an image is a normal outcome.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from booknest.core.retry import RetryConfig, is_retryable_error, with_retry
from booknest.services.models import ImageCandidate

logger = logging.getLogger(__name__)


def is_transient_http_error(error: BaseException) -> bool:
    """Transport failures and 429/5xx responses are worth retrying."""
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code == 429 or error.response.status_code >= 500
    return is_retryable_error(error)


class BaseImageSearch(ABC):
    """Interface for cover/portrait lookups."""

    @abstractmethod
    async def search_author_image(self, author_name: str) -> ImageCandidate | None:
        """Return a portrait candidate for an author, or None."""

    @abstractmethod
    async def search_book_cover(self, title: str, author_name: str) -> ImageCandidate | None:
        """Return a cover candidate for a (title, author) pair, or None."""


class OpenLibraryImageSearch(BaseImageSearch):
    """Open Library author photos and book covers.

    Args:
        client: Shared httpx.AsyncClient.
        search_base_url: Base URL of the search API.
        covers_base_url: Base URL of the covers CDN.
        retry: Retry policy for search requests.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        search_base_url: str = "https://openlibrary.org",
        covers_base_url: str = "https://covers.openlibrary.org",
        retry: RetryConfig | None = None,
    ) -> None:
        self._client = client
        self._search_base = search_base_url.rstrip("/")
        self._covers_base = covers_base_url.rstrip("/")
        self._retry = retry or RetryConfig()

    async def search_author_image(self, author_name: str) -> ImageCandidate | None:
        data = await self._get_json(
            f"{self._search_base}/search/authors.json",
            {"q": author_name, "limit": 5},
            operation="image_search.author",
        )
        docs = (data or {}).get("docs") or []
        if not docs:
            logger.debug("No Open Library author match for %r", author_name)
            return None

        # Entries with a birth date are usually the real person, not a stub.
        doc = next((d for d in docs if d.get("birth_date")), docs[0])
        photos = [p for p in doc.get("photos") or [] if isinstance(p, int) and p > 0]
        key = doc.get("key")
        if photos:
            return ImageCandidate(
                url=f"{self._covers_base}/a/id/{photos[0]}-L.jpg?default=false",
                source_key=key,
            )
        if key:
            olid = str(key).rsplit("/", 1)[-1]
            return ImageCandidate(
                url=f"{self._covers_base}/a/olid/{olid}-L.jpg?default=false",
                source_key=key,
            )
        return None

    async def search_book_cover(self, title: str, author_name: str) -> ImageCandidate | None:
        data = await self._get_json(
            f"{self._search_base}/search.json",
            {"q": f"{title} {author_name}", "limit": 5, "fields": "key,cover_i,cover_edition_key"},
            operation="image_search.book",
        )
        docs = (data or {}).get("docs") or []
        for doc in docs:
            if doc.get("cover_i"):
                return ImageCandidate(
                    url=f"{self._covers_base}/b/id/{doc['cover_i']}-L.jpg?default=false",
                    source_key=doc.get("key"),
                )
            if doc.get("cover_edition_key"):
                return ImageCandidate(
                    url=f"{self._covers_base}/b/olid/{doc['cover_edition_key']}-L.jpg?default=false",
                    source_key=doc.get("key"),
                )
        logger.debug("No Open Library cover for %r by %r", title, author_name)
        return None

    async def _get_json(
        self, url: str, params: dict[str, Any], operation: str,
    ) -> dict[str, Any] | None:
        async def attempt() -> dict[str, Any]:
            resp = await self._client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()

        try:
            return await with_retry(
                attempt,
                operation=operation,
                max_retries=self._retry.max_retries,
                base_delay_s=self._retry.base_delay_s,
                should_retry=is_transient_http_error,
            )
        except Exception as e:
            logger.warning("%s failed for %s: %s", operation, params.get("q"), e)
            return None
