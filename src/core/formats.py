# src/core/formats.py — v1
"""Format detector: map file extensions to supported ebook formats."""

from __future__ import annotations

from pathlib import Path
from typing import Literal, get_args

from booknest.core.errors import UnsupportedFormatError

EbookFormat = Literal["epub", "mobi", "txt", "pdf", "azw", "azw3", "pdb"]

SUPPORTED_FORMATS: tuple[str, ...] = get_args(EbookFormat)

# Extension (with dot) -> format name
_EXTENSION_MAP: dict[str, str] = {f".{fmt}": fmt for fmt in SUPPORTED_FORMATS}


def detect_format(path: str | Path) -> str | None:
    """Return the ebook format for *path*, or None when unsupported."""
    return _EXTENSION_MAP.get(Path(path).suffix.lower())


def is_supported_format(path: str | Path) -> bool:
    return detect_format(path) is not None


def get_format_from_path(path: str | Path) -> str:
    """Like detect_format() but raises for unsupported extensions.

    Raises:
        UnsupportedFormatError: If the extension is not supported.
    """
    fmt = detect_format(path)
    if fmt is None:
        raise UnsupportedFormatError(str(path))
    return fmt
