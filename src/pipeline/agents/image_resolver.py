# src/pipeline/agents/image_resolver.py — v1
"""Image resolver agent.

For every distinct author and book of the persisted items: search for a
portrait/cover, download it, and fall back to a bundled placeholder on a
miss or any rejection. Series images are derived afterwards from the
first book of the series that has a cover. An image already present in
the library is kept. Nothing here fails an item.
"""

from __future__ import annotations

import asyncio
import logging
import random
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from booknest.batch.agent_results import ImagesResult
from booknest.batch.status import BatchItemStatus
from booknest.pipeline.plugin_kit.base_agent import BaseAgent
from booknest.pipeline.plugin_kit.models import AgentOutput
from booknest.storage import layout

if TYPE_CHECKING:
    from booknest.pipeline.state import ChunkState
    from booknest.services.image_downloader import ImageDownloader
    from booknest.services.image_search import BaseImageSearch
    from booknest.storage.batch_repo import BatchRepository

logger = logging.getLogger(__name__)

ImageSource = Literal["download", "default", "existing"]

DOWNLOAD_CONFIDENCE = 0.9
DEFAULT_CONFIDENCE = 0.5


@dataclass
class ResolvedImage:
    path: Path
    source: ImageSource

    @property
    def confidence(self) -> float:
        return DEFAULT_CONFIDENCE if self.source == "default" else DOWNLOAD_CONFIDENCE


def _copy_file(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, target)


class ImageResolverAgent(BaseAgent):
    """Resolve author portraits, book covers and series images.

    Args:
        image_search: Candidate URL lookups.
        downloader: Validating image downloader.
        batch_repo: Item status/results writer.
        ebooks_dir: Library root.
        assets_dir: Directory holding the bundled default images.
        rng: Random source for picking a default book cover.
    """

    def __init__(
        self,
        image_search: BaseImageSearch,
        downloader: ImageDownloader,
        batch_repo: BatchRepository,
        ebooks_dir: Path,
        assets_dir: Path,
        rng: random.Random | None = None,
    ) -> None:
        self._search = image_search
        self._downloader = downloader
        self._batch_repo = batch_repo
        self._ebooks_dir = ebooks_dir
        self._assets_dir = assets_dir
        self._rng = rng or random.Random()

    @property
    def name(self) -> str:
        return "image_resolver"

    @property
    def version(self) -> str:
        return "1.0.0"

    @property
    def description(self) -> str:
        return "Fetch author portraits and book covers, defaulting to placeholders"

    async def execute(self, state: ChunkState) -> AgentOutput:
        started = time.perf_counter()
        entries = state.persisted_entries()

        authors: dict[str, str] = {}
        books: dict[tuple[str, str], tuple[str, str]] = {}
        series_first_book: dict[tuple[str, str], str] = {}
        for entry in entries:
            r = state.resolutions[entry.item_id]
            authors.setdefault(r.author.slug, r.author.normalized_name)
            books.setdefault((r.author.slug, r.title.slug), (r.title.english_title, r.author.normalized_name))
            if r.series.slug:
                series_first_book.setdefault((r.author.slug, r.series.slug), r.title.slug)

        author_images: dict[str, ResolvedImage] = {}
        for author_slug, author_name in authors.items():
            image = await self._resolve_author(author_slug, author_name)
            if image is not None:
                author_images[author_slug] = image

        book_images: dict[tuple[str, str], ResolvedImage] = {}
        for (author_slug, book_slug), (title, author_name) in books.items():
            image = await self._resolve_book(author_slug, book_slug, title, author_name)
            if image is not None:
                book_images[(author_slug, book_slug)] = image

        # Needs the book covers above
        series_images: dict[tuple[str, str], Path] = {}
        for (author_slug, series_slug), book_slug in series_first_book.items():
            path = await self._resolve_series(author_slug, series_slug, book_slug)
            if path is not None:
                series_images[(author_slug, series_slug)] = path

        for entry in entries:
            r = state.resolutions[entry.item_id]
            author_image = author_images.get(r.author.slug)
            book_image = book_images.get((r.author.slug, r.title.slug))
            series_image = series_images.get((r.author.slug, r.series.slug or ""))
            images = ImagesResult(
                author_image=str(author_image.path) if author_image else None,
                author_image_source=author_image.source if author_image else None,
                book_image=str(book_image.path) if book_image else None,
                book_image_source=book_image.source if book_image else None,
                series_image=str(series_image) if series_image else None,
            )
            results = entry.item.agent_results.model_copy(update={"images": images})
            item = self._batch_repo.advance_item(entry.item_id, BatchItemStatus.IMAGES_FETCHED, results)
            state.update_item(item)

        resolved = list(author_images.values()) + list(book_images.values())
        downloads = sum(1 for i in resolved if i.source == "download")
        defaults = sum(1 for i in resolved if i.source == "default")
        logger.info(
            "Images resolved: %d authors, %d books, %d series (%d downloaded, %d defaults)",
            len(author_images), len(book_images), len(series_images), downloads, defaults,
        )
        confidence = (
            round(sum(i.confidence for i in resolved) / len(resolved), 2) if resolved else 0.0
        )
        return self.build_output(
            started,
            {
                "authors": len(author_images),
                "books": len(book_images),
                "series": len(series_images),
                "downloaded": downloads,
                "defaults": defaults,
            },
            confidence=confidence,
            items_processed=len(entries),
        )

    # ------------------------------------------------------------------

    async def _resolve_author(self, author_slug: str, author_name: str) -> ResolvedImage | None:
        target = layout.author_image_path(self._ebooks_dir, author_slug)
        if target.exists():
            return ResolvedImage(target, "existing")
        try:
            candidate = await self._search.search_author_image(author_name)
            if candidate is not None and await self._downloader.download(candidate.url, target):
                return ResolvedImage(target, "download")
            logger.info("Using default author image for %s", author_name)
            await self._copy_default(layout.DEFAULT_AUTHOR_IMAGE, target)
            return ResolvedImage(target, "default")
        except Exception as e:
            logger.warning("Author image failed for %s: %s", author_name, e)
            return None

    async def _resolve_book(
        self, author_slug: str, book_slug: str, title: str, author_name: str,
    ) -> ResolvedImage | None:
        target = layout.book_image_path(self._ebooks_dir, author_slug, book_slug)
        if target.exists():
            return ResolvedImage(target, "existing")
        try:
            candidate = await self._search.search_book_cover(title, author_name)
            if candidate is not None and await self._downloader.download(candidate.url, target):
                return ResolvedImage(target, "download")
            logger.info("Using default book cover for %s", title)
            await self._copy_default(self._rng.choice(layout.DEFAULT_BOOK_IMAGES), target)
            return ResolvedImage(target, "default")
        except Exception as e:
            logger.warning("Book cover failed for %s: %s", title, e)
            return None

    async def _resolve_series(
        self, author_slug: str, series_slug: str, first_book_slug: str,
    ) -> Path | None:
        target = layout.series_image_path(self._ebooks_dir, author_slug, series_slug)
        if target.exists():
            return target
        cover = layout.book_image_path(self._ebooks_dir, author_slug, first_book_slug)
        try:
            if cover.exists():
                await asyncio.to_thread(_copy_file, cover, target)
            else:
                await self._copy_default(layout.DEFAULT_SERIES_IMAGE, target)
        except OSError as e:
            logger.warning("Series image failed for %s/%s: %s", author_slug, series_slug, e)
            return None
        return target

    async def _copy_default(self, asset_name: str, target: Path) -> None:
        await asyncio.to_thread(_copy_file, self._assets_dir / asset_name, target)
