# tests/unit/core/test_unit_formats.py — v1
"""Tests for core/formats.py, core/hasher.py and core/ids.py."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from pathlib import Path

import pytest

from booknest.core.errors import UnsupportedFormatError
from booknest.core.formats import (
    SUPPORTED_FORMATS,
    detect_format,
    get_format_from_path,
    is_supported_format,
)
from booknest.core.hasher import hash_file, hash_file_async, hash_string
from booknest.core.ids import generate_batch_id, generate_id


class TestDetectFormat:
    @pytest.mark.parametrize("name, expected", [
        ("book.epub", "epub"),
        ("book.EPUB", "epub"),
        ("dir/book.mobi", "mobi"),
        ("notes.txt", "txt"),
        ("scan.pdf", "pdf"),
        ("kindle.azw", "azw"),
        ("kindle.azw3", "azw3"),
        ("palm.pdb", "pdb"),
    ])
    def test_supported(self, name, expected):
        assert detect_format(name) == expected
        assert is_supported_format(name)

    @pytest.mark.parametrize("name", ["cover.jpg", "archive.zip", "README", "book.epub.part"])
    def test_unsupported(self, name):
        assert detect_format(name) is None
        assert not is_supported_format(name)

    def test_get_format_raises(self):
        with pytest.raises(UnsupportedFormatError) as exc_info:
            get_format_from_path("image.png")
        assert exc_info.value.path == "image.png"

    def test_supported_set(self):
        assert set(SUPPORTED_FORMATS) == {"epub", "mobi", "txt", "pdf", "azw", "azw3", "pdb"}


class TestHasher:
    def test_hash_file_matches_hashlib(self, tmp_path: Path):
        path = tmp_path / "book.epub"
        data = b"x" * (3 * 1024 * 1024 + 17)
        path.write_bytes(data)
        assert hash_file(path) == hashlib.sha256(data).hexdigest()

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "empty.txt"
        path.write_bytes(b"")
        assert hash_file(path) == hashlib.sha256(b"").hexdigest()

    @pytest.mark.asyncio
    async def test_async_variant(self, tmp_path: Path):
        path = tmp_path / "book.txt"
        path.write_bytes(b"hello")
        assert await hash_file_async(path) == hashlib.sha256(b"hello").hexdigest()

    def test_missing_file_raises_oserror(self, tmp_path: Path):
        with pytest.raises(OSError):
            hash_file(tmp_path / "nope.epub")

    def test_hash_string(self):
        assert hash_string("abc") == hashlib.sha256(b"abc").hexdigest()


class TestIds:
    def test_generate_id_unique(self):
        assert len({generate_id() for _ in range(50)}) == 50

    def test_batch_id_format(self):
        batch_id = generate_batch_id(datetime(2024, 3, 9, tzinfo=timezone.utc))
        assert re.fullmatch(r"batch-2024-03-09-[0-9a-f]{8}", batch_id)
