# src/core/hasher.py — v1
"""Content digests used as the deduplication and content-addressing key."""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path

_BLOCK_SIZE = 1024 * 1024


def hash_file(path: str | Path) -> str:
    """Return the hex SHA-256 of a file's bytes, read in blocks."""
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for block in iter(lambda: fh.read(_BLOCK_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()


async def hash_file_async(path: str | Path) -> str:
    """Hash a file in a worker thread so the event loop is not blocked."""
    return await asyncio.to_thread(hash_file, path)


def hash_string(text: str) -> str:
    """Return the hex SHA-256 of a UTF-8 string."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
