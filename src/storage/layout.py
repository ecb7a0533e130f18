# src/storage/layout.py — v1
"""Library directory structure.

    <ebooks>/<author_slug>/author.jpg
    <ebooks>/<author_slug>/series-<series_slug>.jpg
    <ebooks>/<author_slug>/<book_slug>/book.jpg
    <ebooks>/<author_slug>/<book_slug>/<sha256>.<format>

Book files are content addressed: the name is the digest of the bytes,
so an existing file at the target path is already the right file.
"""

from __future__ import annotations

from pathlib import Path

AUTHOR_IMAGE = "author.jpg"
BOOK_IMAGE = "book.jpg"
SERIES_IMAGE_PREFIX = "series-"

DEFAULT_AUTHOR_IMAGE = "default_author.jpg"
DEFAULT_SERIES_IMAGE = "default_series.jpg"
DEFAULT_BOOK_IMAGES: tuple[str, ...] = (
    "default_book_01.jpg",
    "default_book_02.jpg",
    "default_book_03.jpg",
    "default_book_04.jpg",
)


def author_dir(ebooks_dir: Path, author_slug: str) -> Path:
    return ebooks_dir / author_slug


def book_dir(ebooks_dir: Path, author_slug: str, book_slug: str) -> Path:
    return author_dir(ebooks_dir, author_slug) / book_slug


def book_file_path(
    ebooks_dir: Path, author_slug: str, book_slug: str, sha256: str, fmt: str,
) -> Path:
    """Content-addressed location of one format of a book."""
    return book_dir(ebooks_dir, author_slug, book_slug) / f"{sha256}.{fmt}"


def author_image_path(ebooks_dir: Path, author_slug: str) -> Path:
    return author_dir(ebooks_dir, author_slug) / AUTHOR_IMAGE


def book_image_path(ebooks_dir: Path, author_slug: str, book_slug: str) -> Path:
    return book_dir(ebooks_dir, author_slug, book_slug) / BOOK_IMAGE


def series_image_path(ebooks_dir: Path, author_slug: str, series_slug: str) -> Path:
    return author_dir(ebooks_dir, author_slug) / f"{SERIES_IMAGE_PREFIX}{series_slug}.jpg"


def processed_path(source_dir: Path, processed_dir: Path, source_file: Path) -> Path:
    """Mirror of *source_file*'s location under the processed area.

    Raises:
        ValueError: If *source_file* is not under *source_dir*.
    """
    relative = source_file.resolve().relative_to(source_dir.resolve())
    return processed_dir / relative
