# tests/unit/storage/test_unit_library_repo.py — v1
"""Tests for storage/library_repo.py — lookup-or-create library rows."""

from __future__ import annotations

from pathlib import Path

from booknest.storage.database import Database


class TestDatabase:
    def test_file_database_creates_parent(self, tmp_path: Path):
        db = Database(tmp_path / "nested" / "lib.db")
        try:
            assert (tmp_path / "nested" / "lib.db").exists()
            assert db.scalar("SELECT COUNT(*) FROM authors") == 0
        finally:
            db.close()


class TestAuthorRepository:
    def test_get_or_create_is_idempotent(self, repos):
        first, created = repos.authors.get_or_create("Stephen King", "stephen-king")
        again, created_again = repos.authors.get_or_create("Stephen King", "stephen-king")
        assert created and not created_again
        assert first.id == again.id
        assert repos.authors.count() == 1

    def test_matches_by_name_when_slug_differs(self, repos):
        first, _ = repos.authors.get_or_create("Stephen King", "stephen-king")
        found, created = repos.authors.get_or_create("Stephen King", "stephen-king-1")
        assert not created
        assert found.slug == "stephen-king"

    def test_update_metadata_never_overwrites_with_null(self, repos):
        author, _ = repos.authors.get_or_create("A", "a")
        repos.authors.update_metadata(author.id, bio="Bio", nationality="British")
        repos.authors.update_metadata(author.id, bio=None, date_of_birth="1947-09-21")
        stored = repos.authors.find_by_id(author.id)
        assert stored.bio == "Bio"
        assert stored.nationality == "British"
        assert stored.date_of_birth == "1947-09-21"


class TestSeriesRepository:
    def test_scoped_to_author(self, repos):
        a, _ = repos.authors.get_or_create("A", "a")
        b, _ = repos.authors.get_or_create("B", "b")
        s1, _ = repos.series.get_or_create(a.id, "Saga", "saga")
        s2, created = repos.series.get_or_create(b.id, "Saga", "saga")
        assert created
        assert s1.id != s2.id
        assert repos.series.get_or_create(a.id, "Saga", "saga")[0].id == s1.id
        assert [s.id for s in repos.series.find_by_author(a.id)] == [s1.id]

    def test_description_update(self, repos):
        a, _ = repos.authors.get_or_create("A", "a")
        s, _ = repos.series.get_or_create(a.id, "Saga", "saga", original_name="Sága")
        repos.series.update_description(s.id, "A long saga")
        repos.series.update_description(s.id, None)
        stored = repos.series.find_by_id(s.id)
        assert stored.description == "A long saga"
        assert stored.original_name == "Sága"


class TestBookRepository:
    def test_get_or_create_by_author_and_slug(self, repos):
        a, _ = repos.authors.get_or_create("A", "a")
        book, created = repos.books.get_or_create(a.id, "Origins", "origins", original_title="Orígenes")
        again, created_again = repos.books.get_or_create(a.id, "Origins", "origins")
        assert created and not created_again
        assert book.id == again.id
        assert book.original_title == "Orígenes"

    def test_existing_book_linked_to_series(self, repos):
        a, _ = repos.authors.get_or_create("A", "a")
        book, _ = repos.books.get_or_create(a.id, "One", "one")
        series, _ = repos.series.get_or_create(a.id, "Saga", "saga")
        linked, _ = repos.books.get_or_create(a.id, "One", "one", series_id=series.id)
        assert linked.series_id == series.id
        assert [b.id for b in repos.books.find_by_series(series.id)] == [book.id]

    def test_unlink_series_keeps_book(self, repos):
        a, _ = repos.authors.get_or_create("A", "a")
        series, _ = repos.series.get_or_create(a.id, "Saga", "saga")
        book, _ = repos.books.get_or_create(a.id, "One", "one", series_id=series.id)
        repos.books.set_series(book.id, None)
        assert repos.books.find_by_id(book.id).series_id is None

    def test_metadata_update(self, repos):
        a, _ = repos.authors.get_or_create("A", "a")
        book, _ = repos.books.get_or_create(a.id, "One", "one")
        repos.books.update_metadata(book.id, description="Desc", first_publish_year=1986)
        stored = repos.books.find_by_id(book.id)
        assert (stored.description, stored.first_publish_year) == ("Desc", 1986)


class TestFileRepository:
    def test_get_or_create_and_lookup(self, repos):
        a, _ = repos.authors.get_or_create("A", "a")
        book, _ = repos.books.get_or_create(a.id, "One", "one")
        record, created = repos.files.get_or_create(book.id, "epub", "/lib/x.epub", "sha", 42)
        again, created_again = repos.files.get_or_create(book.id, "epub", "/lib/x.epub", "sha", 42)
        assert created and not created_again
        assert record.id == again.id
        assert record.type == "book"
        assert repos.files.exists_by_sha256("sha")
        assert repos.files.find_by_sha256("sha").id == record.id

    def test_same_digest_different_format(self, repos):
        a, _ = repos.authors.get_or_create("A", "a")
        book, _ = repos.books.get_or_create(a.id, "One", "one")
        repos.files.get_or_create(book.id, "epub", "/lib/x.epub", "sha", 42)
        repos.files.get_or_create(book.id, "mobi", "/lib/x.mobi", "sha", 50)
        assert [f.format for f in repos.files.find_by_book(book.id)] == ["epub", "mobi"]

    def test_existing_sha256_in_chunks(self, repos):
        a, _ = repos.authors.get_or_create("A", "a")
        book, _ = repos.books.get_or_create(a.id, "One", "one")
        repos.files.get_or_create(book.id, "epub", "/lib/x.epub", "sha-700", 1)
        digests = [f"sha-{i}" for i in range(1200)]
        assert repos.files.existing_sha256(digests) == {"sha-700"}
