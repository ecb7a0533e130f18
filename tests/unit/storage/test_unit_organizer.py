# tests/unit/storage/test_unit_organizer.py — v1
"""Tests for storage/organizer.py — library placement and source tidying."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeConverter, write_book

from booknest.core.errors import PathSafetyError
from booknest.storage import layout
from booknest.storage.organizer import FileOrganizer


@pytest.fixture
def organizer(dirs) -> FileOrganizer:
    return FileOrganizer(dirs.ebooks, dirs.source, dirs.processed)


class TestCopyFile:
    @pytest.mark.asyncio
    async def test_copies_to_content_addressed_path(self, organizer, dirs):
        source = write_book(dirs.source, "King/It.epub", b"book bytes")
        target = await organizer.copy_file(source, "stephen-king", "it", "abc", "epub")
        assert target == dirs.ebooks / "stephen-king" / "it" / "abc.epub"
        assert target.read_bytes() == b"book bytes"
        assert source.exists()
        assert not list(target.parent.glob(".*.part"))

    @pytest.mark.asyncio
    async def test_existing_target_is_not_overwritten(self, organizer, dirs):
        source = write_book(dirs.source, "It.epub", b"new")
        target = layout.book_file_path(dirs.ebooks, "a", "b", "abc", "epub")
        target.parent.mkdir(parents=True)
        target.write_bytes(b"old")
        assert await organizer.copy_file(source, "a", "b", "abc", "epub") == target
        assert target.read_bytes() == b"old"

    @pytest.mark.asyncio
    async def test_missing_source_raises(self, organizer, dirs):
        with pytest.raises(OSError):
            await organizer.copy_file(dirs.source / "gone.epub", "a", "b", "abc", "epub")


class TestOrganizeBook:
    @pytest.mark.asyncio
    async def test_copies_and_converts_missing_formats(self, dirs):
        converter = FakeConverter(fail={"txt"})
        organizer = FileOrganizer(dirs.ebooks, dirs.source, dirs.processed, converter)
        source = write_book(dirs.source, "It.epub", b"epub")

        result = await organizer.organize_book([(source, "epub", "abc")], "king", "it")

        assert [f.success for f in result.files] == [True]
        assert set(result.conversions) == {"mobi", "txt"}
        assert result.conversions["mobi"].success
        assert not result.conversions["txt"].success
        assert (dirs.ebooks / "king" / "it" / "abc.mobi").exists()

    @pytest.mark.asyncio
    async def test_failed_copy_is_recorded(self, organizer, dirs):
        result = await organizer.organize_book(
            [(dirs.source / "missing.epub", "epub", "abc")], "king", "it", convert=False,
        )
        assert result.files[0].success is False
        assert result.files[0].error
        assert result.conversions == {}


class TestConvertBook:
    @pytest.mark.asyncio
    async def test_no_converter(self, organizer):
        assert await organizer.convert_book("a", "b", "sha", ["epub"]) == {}
        assert organizer.conversion_available() is False

    @pytest.mark.asyncio
    async def test_uses_best_source_and_skips_existing(self, dirs):
        converter = FakeConverter()
        organizer = FileOrganizer(dirs.ebooks, dirs.source, dirs.processed, converter)
        pdf = layout.book_file_path(dirs.ebooks, "a", "b", "sha", "pdf")
        mobi = layout.book_file_path(dirs.ebooks, "a", "b", "sha", "mobi")
        pdf.parent.mkdir(parents=True)
        pdf.write_bytes(b"pdf")
        mobi.write_bytes(b"mobi")

        results = await organizer.convert_book("a", "b", "sha", ["pdf", "mobi"])

        assert set(results) == {"epub", "txt"}
        assert all(path == mobi for path, _ in converter.calls)

    @pytest.mark.asyncio
    async def test_crashing_converter_is_recorded(self, dirs):
        class Exploding(FakeConverter):
            async def convert(self, input_path, output_format, output_path=None):
                raise RuntimeError("segfault")

        organizer = FileOrganizer(dirs.ebooks, dirs.source, dirs.processed, Exploding())
        results = await organizer.convert_book("a", "b", "sha", ["epub"])
        assert {fmt: r.success for fmt, r in results.items()} == {"mobi": False, "txt": False}
        assert results["mobi"].error == "segfault"


class TestMoveProcessedFile:
    @pytest.mark.asyncio
    async def test_keeps_sub_path(self, organizer, dirs):
        source = write_book(dirs.source, "King/Horror/It.epub")
        result = await organizer.move_processed_file(source)
        assert result.success
        assert Path(result.new_path) == dirs.processed / "King" / "Horror" / "It.epub"
        assert not source.exists()

    @pytest.mark.asyncio
    async def test_outside_source_raises(self, organizer, tmp_path):
        outside = write_book(tmp_path, "elsewhere/x.epub")
        with pytest.raises(PathSafetyError):
            await organizer.move_processed_file(outside)
        assert outside.exists()

    @pytest.mark.asyncio
    async def test_dot_dot_traversal_raises(self, organizer, dirs, tmp_path):
        write_book(tmp_path, "secret.epub")
        with pytest.raises(PathSafetyError):
            await organizer.move_processed_file(dirs.source / ".." / "secret.epub")

    @pytest.mark.asyncio
    async def test_existing_target_reports_failure(self, organizer, dirs):
        source = write_book(dirs.source, "It.epub")
        write_book(dirs.processed, "It.epub")
        result = await organizer.move_processed_file(source)
        assert result.success is False
        assert source.exists()


class TestSourceFolders:
    def test_source_author_folder(self, organizer, dirs):
        assert organizer.source_author_folder(dirs.source / "King" / "It.epub") == "King"
        assert organizer.source_author_folder(dirs.source / "It.epub") is None
        assert organizer.source_author_folder(Path("/elsewhere/x.epub")) is None

    @pytest.mark.asyncio
    async def test_clean_empty_folders(self, organizer, dirs):
        (dirs.source / "King" / "Horror").mkdir(parents=True)
        write_book(dirs.source, "Rowling/HP.epub")

        removed = await organizer.clean_empty_folders(["King", "Rowling", "Missing"])

        assert removed == 2
        assert not (dirs.source / "King").exists()
        assert (dirs.source / "Rowling" / "HP.epub").exists()
        assert dirs.source.exists()

    @pytest.mark.asyncio
    async def test_never_removes_source_root_or_outside(self, organizer, dirs, tmp_path):
        (tmp_path / "outside").mkdir()
        assert await organizer.clean_empty_folders(["", ".", "../outside"]) == 0
        assert dirs.source.exists()
        assert (tmp_path / "outside").exists()


class TestRemoval:
    @pytest.mark.asyncio
    async def test_remove_book_and_author(self, organizer, dirs):
        write_book(dirs.ebooks, "king/it/abc.epub")
        assert await organizer.remove_book("king", "it") is True
        assert not (dirs.ebooks / "king" / "it").exists()
        assert await organizer.remove_book("king", "it") is False
        assert await organizer.remove_author("king") is True
        assert not (dirs.ebooks / "king").exists()
