# src/batch/crawler.py — v1
"""Crawler: source directory discovery and content hashing.

Walks the source directory for supported ebook formats, stats each
candidate and computes its SHA-256. Unreadable files are soft errors:
they are logged, reported in ``CrawlResult.errors`` and dropped, so no
file that failed hashing reaches later phases.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import Path

from booknest.core.formats import detect_format
from booknest.core.hasher import hash_file_async
from booknest.core.models import CrawlResult, DiscoveredFile, HashedFile

logger = logging.getLogger(__name__)


class Crawler:
    """Discover and hash ebook files below a source root.

    Workflow:
        1. List all files recursively, keep supported extensions
        2. Stat each survivor for its size (failures skipped)
        3. Hash each file off the event loop (failures dropped)
        4. Flag groups of identical content found in the same crawl
    """

    def __init__(self, source_dir: Path) -> None:
        self._source_dir = source_dir

    @property
    def source_dir(self) -> Path:
        return self._source_dir

    def discover_files(self, errors: list[str] | None = None) -> list[DiscoveredFile]:
        """List supported files under the source root, sorted by path.

        Args:
            errors: Optional sink collecting soft error messages.

        Returns:
            Discovered files; a missing source root yields an empty list.
        """
        sink = errors if errors is not None else []
        if not self._source_dir.is_dir():
            msg = f"Source directory does not exist: {self._source_dir}"
            logger.warning(msg)
            sink.append(msg)
            return []

        discovered: list[DiscoveredFile] = []
        for path in sorted(self._source_dir.rglob("*")):
            fmt = detect_format(path)
            if fmt is None:
                continue
            try:
                if not path.is_file():
                    continue
                size = path.stat().st_size
            except OSError as e:
                msg = f"Cannot stat {path}: {e}"
                logger.warning(msg)
                sink.append(msg)
                continue
            discovered.append(DiscoveredFile(path=str(path), format=fmt, size=size))

        logger.info("Discovered %d supported files in %s", len(discovered), self._source_dir)
        return discovered

    async def hash_files(
        self, files: list[DiscoveredFile], errors: list[str] | None = None,
    ) -> list[HashedFile]:
        """Hash every file; a file that cannot be read is dropped."""
        sink = errors if errors is not None else []
        hashed: list[HashedFile] = []
        for f in files:
            try:
                digest = await hash_file_async(f.path)
            except OSError as e:
                msg = f"Cannot hash {f.path}: {e}"
                logger.warning(msg)
                sink.append(msg)
                continue
            hashed.append(HashedFile(path=f.path, format=f.format, size=f.size, sha256=digest))
        return hashed

    async def crawl(self) -> CrawlResult:
        """Discover and hash; returns files, total size and soft errors."""
        errors: list[str] = []
        discovered = self.discover_files(errors)
        hashed = await self.hash_files(discovered, errors)

        groups = find_duplicate_groups(hashed)
        for group in groups:
            # Same bytes twice in one crawl: both become batch items
            logger.warning("Identical content in %d files: %s", len(group), ", ".join(group))

        result = CrawlResult(
            files=hashed,
            total_size=sum(f.size for f in hashed),
            errors=errors,
            duplicate_groups=groups,
        )
        logger.info(
            "Crawl complete: %d files, %d bytes, %d errors",
            len(result.files), result.total_size, len(errors),
        )
        return result


def find_duplicate_groups(files: list[HashedFile]) -> list[list[str]]:
    """Paths sharing a digest, one group per digest seen more than once."""
    by_digest: dict[str, list[str]] = defaultdict(list)
    for f in files:
        by_digest[f.sha256].append(f.path)
    return [paths for paths in by_digest.values() if len(paths) > 1]
