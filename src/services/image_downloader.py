# src/services/image_downloader.py — v1
"""Download and validate images before they land in the library.

A payload is accepted only when it is served over http(s) with an
``image/*`` content type and its size lies within [min_bytes, max_bytes].
The lower bound rejects the tiny placeholder images cover services return
for unknown ids.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from urllib.parse import urlparse

import httpx

from booknest.core.errors import ImageRejectedError
from booknest.core.retry import RetryConfig, with_retry
from booknest.services.image_search import is_transient_http_error

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_MIN_BYTES = 1000


class ImageDownloader:
    """Fetch an image URL into a file with size and type checks."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_bytes: int = DEFAULT_MAX_BYTES,
        min_bytes: int = DEFAULT_MIN_BYTES,
        retry: RetryConfig | None = None,
    ) -> None:
        self._client = client
        self._max_bytes = max_bytes
        self._min_bytes = min_bytes
        self._retry = retry or RetryConfig()

    async def download(self, url: str, dest: Path) -> bool:
        """Download *url* to *dest*. Returns False on any rejection or error."""
        try:
            data = await with_retry(
                lambda: self.fetch(url),
                operation="image_download",
                max_retries=self._retry.max_retries,
                base_delay_s=self._retry.base_delay_s,
                should_retry=is_transient_http_error,
            )
        except ImageRejectedError as e:
            logger.info("Image rejected (%s): %s", url, e)
            return False
        except Exception as e:
            logger.warning("Image download failed (%s): %s", url, e)
            return False

        try:
            await asyncio.to_thread(_write_bytes, dest, data)
        except OSError as e:
            logger.warning("Cannot save image %s: %s", dest, e)
            return False
        logger.debug("Image saved: %s (%d bytes)", dest, len(data))
        return True

    async def fetch(self, url: str) -> bytes:
        """Fetch and validate an image payload.

        Raises:
            ImageRejectedError: Bad scheme, content type or size.
            httpx.HTTPError: Transport or status failures.
        """
        scheme = urlparse(url).scheme
        if scheme not in ("http", "https"):
            raise ImageRejectedError(f"Unsupported URL scheme: {scheme or '(none)'}")

        async with self._client.stream("GET", url, follow_redirects=True) as resp:
            resp.raise_for_status()

            content_type = resp.headers.get("content-type", "")
            if not content_type.lower().startswith("image/"):
                raise ImageRejectedError(f"Not an image: {content_type or '(no content-type)'}")

            declared = resp.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > self._max_bytes:
                raise ImageRejectedError(f"Image too large: {declared} bytes")

            buffer = bytearray()
            async for chunk in resp.aiter_bytes():
                buffer.extend(chunk)
                if len(buffer) > self._max_bytes:
                    raise ImageRejectedError(f"Image too large: > {self._max_bytes} bytes")

        if len(buffer) < self._min_bytes:
            raise ImageRejectedError(f"Image too small ({len(buffer)} bytes), likely a placeholder")
        return bytes(buffer)


def _write_bytes(dest: Path, data: bytes) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(data)


def build_http_client(user_agent: str = "BookNest/1.0", timeout_s: float = 15.0) -> httpx.AsyncClient:
    """Shared client for image search and download."""
    return httpx.AsyncClient(
        headers={"User-Agent": user_agent},
        timeout=httpx.Timeout(timeout_s),
        follow_redirects=True,
    )
