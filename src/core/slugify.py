# src/core/slugify.py — v1
"""URL-safe slugs for authors, books and series."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Collection

_NON_SLUG = re.compile(r"[^\w\s-]")
_SEPARATORS = re.compile(r"[\s_-]+")


def slugify(text: str) -> str:
    """Lowercase, transliterate accents, drop punctuation, hyphenate.

    >>> slugify("Harry Potter & the Philosopher's Stone")
    'harry-potter-the-philosophers-stone'
    """
    normalized = unicodedata.normalize("NFKD", text)
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii")
    cleaned = _NON_SLUG.sub("", ascii_text.lower().strip())
    return _SEPARATORS.sub("-", cleaned).strip("-")


def generate_unique_slug(base_slug: str, existing: Collection[str]) -> str:
    """Append -1, -2, ... to *base_slug* until it is not in *existing*."""
    if base_slug not in existing:
        return base_slug
    counter = 1
    while f"{base_slug}-{counter}" in existing:
        counter += 1
    return f"{base_slug}-{counter}"
