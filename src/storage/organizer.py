# src/storage/organizer.py — v1
"""File organizer: place book files into the library and tidy the source tree.

All filesystem work runs in worker threads so the event loop never blocks.
Copies and moves never overwrite; the library layout is content addressed,
so an existing target is treated as already done.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from booknest.core.errors import PathSafetyError
from booknest.services.converter import best_source_format, conversion_targets
from booknest.services.models import ConversionResult
from booknest.storage import layout

if TYPE_CHECKING:
    from booknest.services.converter import BaseConverter

logger = logging.getLogger(__name__)


class MoveResult(BaseModel):
    original_path: str
    new_path: str | None = None
    success: bool
    error: str | None = None


class OrganizedFile(BaseModel):
    original_path: str
    new_path: str
    format: str
    sha256: str
    success: bool
    error: str | None = None


class OrganizeBookResult(BaseModel):
    author_slug: str
    book_slug: str
    files: list[OrganizedFile] = Field(default_factory=list)
    conversions: dict[str, ConversionResult] = Field(default_factory=dict)


def _copy_no_overwrite(source: Path, target: Path) -> bool:
    """Copy *source* to *target*; returns False when target already existed."""
    target.parent.mkdir(parents=True, exist_ok=True)
    if target.exists():
        return False
    tmp = target.with_name(f".{target.name}.part")
    shutil.copy2(source, tmp)
    os.replace(tmp, target)
    return True


def _move_no_overwrite(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    if target.exists():
        raise FileExistsError(f"Target already exists: {target}")
    shutil.move(str(source), str(target))


class FileOrganizer:
    """Library file placement, processed-area moves and conversions.

    Args:
        ebooks_dir: Library root.
        source_dir: Root the crawler walks; moves never leave it.
        processed_dir: Holding area for originals after ingestion.
        converter: Format conversion collaborator (None disables conversion).
    """

    def __init__(
        self,
        ebooks_dir: Path,
        source_dir: Path,
        processed_dir: Path,
        converter: BaseConverter | None = None,
    ) -> None:
        self._ebooks_dir = ebooks_dir
        self._source_dir = source_dir
        self._processed_dir = processed_dir
        self._converter = converter

    @property
    def ebooks_dir(self) -> Path:
        return self._ebooks_dir

    def conversion_available(self) -> bool:
        return self._converter is not None and self._converter.is_available()

    # ------------------------------------------------------------------
    # Library placement
    # ------------------------------------------------------------------

    async def copy_file(
        self, source_path: Path, author_slug: str, book_slug: str, sha256: str, fmt: str,
    ) -> Path:
        """Copy a source file to its content-addressed library path.

        Raises:
            OSError: If the copy fails.
        """
        target = layout.book_file_path(self._ebooks_dir, author_slug, book_slug, sha256, fmt)
        copied = await asyncio.to_thread(_copy_no_overwrite, source_path, target)
        if copied:
            logger.debug("Copied %s -> %s", source_path, target)
        else:
            logger.debug("Already in library: %s", target)
        return target

    async def organize_book(
        self,
        files: list[tuple[Path, str, str]],
        author_slug: str,
        book_slug: str,
        convert: bool = True,
    ) -> OrganizeBookResult:
        """Copy every (path, format, sha256) of one book, then fill missing formats."""
        result = OrganizeBookResult(author_slug=author_slug, book_slug=book_slug)
        for path, fmt, sha256 in files:
            try:
                target = await self.copy_file(path, author_slug, book_slug, sha256, fmt)
                result.files.append(OrganizedFile(
                    original_path=str(path), new_path=str(target), format=fmt,
                    sha256=sha256, success=True,
                ))
            except OSError as e:
                logger.error("Failed to copy %s: %s", path, e)
                result.files.append(OrganizedFile(
                    original_path=str(path),
                    new_path=str(layout.book_file_path(
                        self._ebooks_dir, author_slug, book_slug, sha256, fmt)),
                    format=fmt, sha256=sha256, success=False, error=str(e),
                ))

        copied = [f for f in result.files if f.success]
        if convert and copied:
            result.conversions = await self.convert_book(
                author_slug, book_slug, copied[0].sha256, [f.format for f in copied],
            )
        return result

    async def convert_book(
        self, author_slug: str, book_slug: str, sha256: str, existing_formats: list[str],
    ) -> dict[str, ConversionResult]:
        """Convert the best available format into each missing target format.

        Individual failures are recorded, never raised.
        """
        results: dict[str, ConversionResult] = {}
        if self._converter is None:
            return results

        source_format = best_source_format(existing_formats)
        if source_format is None:
            logger.warning("No source format to convert %s/%s", author_slug, book_slug)
            return results

        source = layout.book_file_path(
            self._ebooks_dir, author_slug, book_slug, sha256, source_format,
        )
        for target_format in conversion_targets(source_format, existing_formats):
            output = layout.book_file_path(
                self._ebooks_dir, author_slug, book_slug, sha256, target_format,
            )
            try:
                results[target_format] = await self._converter.convert(source, target_format, output)
            except Exception as e:
                logger.warning("Conversion to %s crashed for %s: %s", target_format, source, e)
                results[target_format] = ConversionResult(success=False, error=str(e))
        return results

    # ------------------------------------------------------------------
    # Source tree maintenance
    # ------------------------------------------------------------------

    def _relative_to_source(self, source_path: Path) -> Path:
        """Path of *source_path* relative to the source root.

        Raises:
            PathSafetyError: If it resolves outside the source root.
        """
        base = self._source_dir.resolve()
        resolved = source_path.resolve()
        relative = Path(os.path.relpath(resolved, base))
        if relative.is_absolute() or relative.parts[:1] == ("..",) or relative == Path("."):
            raise PathSafetyError(f"File is outside source directory: {source_path}")
        return relative

    async def move_processed_file(self, source_path: Path) -> MoveResult:
        """Move an ingested original into the processed area, keeping its sub-path.

        Raises:
            PathSafetyError: If *source_path* resolves outside the source root.
        """
        relative = self._relative_to_source(source_path)
        target = self._processed_dir / relative
        try:
            await asyncio.to_thread(_move_no_overwrite, source_path, target)
        except OSError as e:
            logger.warning("Could not move %s to processed area: %s", source_path, e)
            return MoveResult(original_path=str(source_path), success=False, error=str(e))
        logger.debug("Moved %s -> %s", source_path, target)
        return MoveResult(original_path=str(source_path), new_path=str(target), success=True)

    def source_author_folder(self, source_path: Path) -> str | None:
        """First path component below the source root, if the file is nested."""
        try:
            relative = self._relative_to_source(source_path)
        except PathSafetyError:
            return None
        return relative.parts[0] if len(relative.parts) > 1 else None

    async def clean_empty_folders(self, folders: list[str]) -> int:
        """Remove now-empty folders (and empty sub-folders) under the source root.

        Best effort: errors are logged. Returns the number of removed folders.
        """
        return await asyncio.to_thread(self._clean_empty_folders_sync, folders)

    def _clean_empty_folders_sync(self, folders: list[str]) -> int:
        base = self._source_dir.resolve()
        removed = 0
        for name in sorted(set(folders)):
            folder = (base / name).resolve()
            if folder == base or base not in folder.parents or not folder.is_dir():
                continue
            # Deepest first so nested empty folders collapse upwards
            for dirpath, _, _ in sorted(os.walk(folder), key=lambda w: -len(w[0])):
                try:
                    if not any(Path(dirpath).iterdir()):
                        Path(dirpath).rmdir()
                        removed += 1
                except OSError as e:
                    logger.debug("Could not remove %s: %s", dirpath, e)
        if removed:
            logger.info("Removed %d empty source folders", removed)
        return removed

    # ------------------------------------------------------------------
    # Library cleanup
    # ------------------------------------------------------------------

    async def remove_book(self, author_slug: str, book_slug: str) -> bool:
        return await self._remove_tree(layout.book_dir(self._ebooks_dir, author_slug, book_slug))

    async def remove_author(self, author_slug: str) -> bool:
        return await self._remove_tree(layout.author_dir(self._ebooks_dir, author_slug))

    async def _remove_tree(self, path: Path) -> bool:
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error("Failed to remove %s: %s", path, e)
            return False
        logger.info("Removed %s", path)
        return True
