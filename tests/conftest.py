# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides a scripted LLM client, fake image/convert collaborators, an
in-memory database with its repositories, and a source tree under tmp_path.
No network and no external binaries: all collaborators are local fakes.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import pytest

from booknest.batch.crawler import Crawler
from booknest.config.settings import Settings, load_settings
from booknest.core.formats import detect_format
from booknest.core.hasher import hash_file, hash_string
from booknest.core.models import HashedFile
from booknest.core.retry import RetryConfig
from booknest.llm.base_client import BaseLLMClient
from booknest.llm.models import LLMResponse, Message
from booknest.pipeline.agents.image_resolver import ImageResolverAgent
from booknest.pipeline.agents.metadata_resolver import MetadataResolverAgent
from booknest.pipeline.agents.name_resolver import NameResolverAgent
from booknest.pipeline.chunk_pipeline import ChunkPipeline, PersistenceStage
from booknest.pipeline.orchestrator import BatchOrchestrator
from booknest.pipeline.stages import StageRunner
from booknest.pipeline.state import ChunkEntry, ChunkState
from booknest.services.ai_service import AIService
from booknest.services.converter import BaseConverter
from booknest.services.image_search import BaseImageSearch
from booknest.services.models import ConversionResult, ImageCandidate
from booknest.storage.batch_repo import BatchRepository
from booknest.storage.database import Database
from booknest.storage.library_repo import (
    AuthorRepository,
    BookRepository,
    FileRepository,
    SeriesRepository,
)
from booknest.storage.organizer import FileOrganizer

ASSETS_DIR = Path(__file__).resolve().parent.parent / "src" / "assets"

_FILE_PATH = re.compile(r'"filePath": "([^"]+)"')

NO_RETRY = RetryConfig(max_retries=1, base_delay_s=0.0)


# === FAKE COLLABORATORS ===


class ScriptedLLM(BaseLLMClient):
    """LLM client returning queued replies in order.

    A reply may be a JSON string, a dict/list (serialized), an exception
    (raised) or a callable receiving the prompt. When the queue is empty
    the ``default`` reply is used, if any.
    """

    def __init__(self, replies: list[Any] | None = None, default: Any = None) -> None:
        self.replies: list[Any] = list(replies or [])
        self.default = default
        self.prompts: list[str] = []
        self.systems: list[str | None] = []

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.3,
        response_format: Any = None,
    ) -> LLMResponse:
        prompt = messages[-1].content
        self.prompts.append(prompt)
        self.systems.append(system)
        if self.replies:
            reply = self.replies.pop(0)
        elif self.default is not None:
            reply = self.default
        else:
            raise AssertionError("ScriptedLLM has no reply left")
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(prompt)
        if not isinstance(reply, str):
            reply = json.dumps(reply)
        return LLMResponse(content=reply, model="scripted", provider="scripted")

    @property
    def provider_name(self) -> str:
        return "scripted"

    @property
    def call_count(self) -> int:
        return len(self.prompts)


def prompt_file_paths(prompt: str) -> list[str]:
    """File paths of the INPUT FILES section of a name-resolution prompt."""
    return _FILE_PATH.findall(prompt.split("RESPONSE FORMAT", 1)[0])


def guess_from_filename(path: str) -> dict[str, Any]:
    """Name guess for a file named '<Author> - <Title>[ - <Series>].<ext>'."""
    parts = [p.strip() for p in Path(path).stem.split(" - ")]
    author = parts[0] if len(parts) > 1 else None
    title = parts[1] if len(parts) > 1 else parts[0]
    series = parts[2] if len(parts) > 2 else None
    return {
        "filePath": path,
        "confidence": 0.9,
        "author": {"name": author, "confidence": 0.9},
        "title": {"original": title, "english": title, "confidence": 0.9},
        "series": {"name": series, "englishName": series, "confidence": 0.8} if series else None,
    }


def name_reply(guess: Callable[[str], dict[str, Any]] = guess_from_filename) -> Callable[[str], Any]:
    """Reply builder answering every file path found in the prompt."""
    def reply(prompt: str) -> dict[str, Any]:
        return {"results": [guess(p) for p in prompt_file_paths(prompt)]}
    return reply


EMPTY_METADATA = {"authors": [], "books": [], "series": []}


class RoutingLLM(ScriptedLLM):
    """Answers name prompts from file names and metadata prompts with a fixed reply."""

    def __init__(self, metadata: Any = None, fail_names: bool = False) -> None:
        super().__init__()
        self.metadata = metadata if metadata is not None else EMPTY_METADATA
        self.fail_names = fail_names
        self._names = name_reply()

    async def complete(self, messages, system=None, max_tokens=4096, temperature=0.3,
                       response_format=None) -> LLMResponse:
        prompt = messages[-1].content
        if prompt_file_paths(prompt):
            self.default = RuntimeError("AI unavailable") if self.fail_names else self._names
        else:
            self.default = self.metadata
        return await super().complete(messages, system, max_tokens, temperature, response_format)


class FakeImageSearch(BaseImageSearch):
    """Returns the configured candidates; None means a miss."""

    def __init__(
        self,
        author: ImageCandidate | None = None,
        book: ImageCandidate | None = None,
        error: Exception | None = None,
    ) -> None:
        self.author = author
        self.book = book
        self.error = error
        self.author_queries: list[str] = []
        self.book_queries: list[tuple[str, str]] = []

    async def search_author_image(self, author_name: str) -> ImageCandidate | None:
        self.author_queries.append(author_name)
        if self.error is not None:
            raise self.error
        return self.author

    async def search_book_cover(self, title: str, author_name: str) -> ImageCandidate | None:
        self.book_queries.append((title, author_name))
        if self.error is not None:
            raise self.error
        return self.book


class FakeDownloader:
    """Writes a fixed payload to the destination, or refuses."""

    def __init__(self, succeed: bool = True, payload: bytes = b"\xff\xd8\xff" + b"0" * 2048) -> None:
        self.succeed = succeed
        self.payload = payload
        self.calls: list[tuple[str, Path]] = []

    async def download(self, url: str, dest: Path) -> bool:
        self.calls.append((url, dest))
        if not self.succeed:
            return False
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(self.payload)
        return True


class FakeConverter(BaseConverter):
    """Writes '<input bytes> as <format>' to the output; formats in ``fail`` fail."""

    def __init__(self, available: bool = True, fail: set[str] | None = None) -> None:
        self.available = available
        self.fail = fail or set()
        self.calls: list[tuple[Path, str]] = []

    def is_available(self) -> bool:
        return self.available

    async def convert(
        self, input_path: Path, output_format: str, output_path: Path | None = None,
    ) -> ConversionResult:
        self.calls.append((input_path, output_format))
        if output_format in self.fail:
            return ConversionResult(success=False, error=f"cannot produce {output_format}")
        target = output_path or input_path.with_suffix(f".{output_format}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(input_path.read_bytes() + f" as {output_format}".encode())
        return ConversionResult(success=True, output_path=str(target))


# === FIXTURES: Storage ===


@pytest.fixture
def db() -> Iterator[Database]:
    database = Database()
    yield database
    database.close()


@dataclass
class Repos:
    batches: BatchRepository
    authors: AuthorRepository
    series: SeriesRepository
    books: BookRepository
    files: FileRepository


@pytest.fixture
def repos(db: Database) -> Repos:
    return Repos(
        batches=BatchRepository(db),
        authors=AuthorRepository(db),
        series=SeriesRepository(db),
        books=BookRepository(db),
        files=FileRepository(db),
    )


# === FIXTURES: Directories and settings ===


@dataclass
class LibraryDirs:
    source: Path
    ebooks: Path
    processed: Path


@pytest.fixture
def dirs(tmp_path: Path) -> LibraryDirs:
    d = LibraryDirs(
        source=tmp_path / "source",
        ebooks=tmp_path / "ebooks",
        processed=tmp_path / "processed",
    )
    d.source.mkdir()
    return d


@pytest.fixture
def settings(tmp_path: Path, dirs: LibraryDirs) -> Settings:
    return load_settings(
        source_dir=dirs.source,
        ebooks_dir=dirs.ebooks,
        processed_dir=dirs.processed,
        db_path=tmp_path / "data" / "booknest.db",
        retry_max_retries=1,
        retry_base_delay_s=0.0,
        conversion_enabled=False,
    )


def write_book(root: Path, relative: str, content: str | bytes | None = None) -> Path:
    """Create a book file below *root*; content defaults to its relative path."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    data = content if content is not None else f"contents of {relative}"
    if isinstance(data, str):
        data = data.encode("utf-8")
    path.write_bytes(data)
    return path


# === HELPERS: Chunks ===


def make_chunk(repos: Repos, paths: list[Path | str]) -> ChunkState:
    """Create a batch with one pending item per path and wrap it in a ChunkState.

    Existing files are hashed; missing ones get a digest of their path.
    """
    batch = repos.batches.create_batch()
    files: list[HashedFile] = []
    for p in paths:
        path = Path(p)
        exists = path.is_file()
        files.append(HashedFile(
            path=str(path),
            format=detect_format(path) or "epub",
            size=path.stat().st_size if exists else 0,
            sha256=hash_file(path) if exists else hash_string(str(path)),
        ))
    items = repos.batches.create_items(batch.id, files)
    return ChunkState(
        batch_id=batch.id,
        entries=[ChunkEntry(item=i, format=f.format, size=f.size) for i, f in zip(items, files)],
    )


async def persist_chunk(repos: Repos, organizer: FileOrganizer, paths: list[Path]) -> ChunkState:
    """make_chunk() followed by name resolution and persistence."""
    state = make_chunk(repos, paths)
    ai = AIService(ScriptedLLM(default=name_reply()), retry=NO_RETRY)
    await NameResolverAgent(ai, repos.batches).execute(state)
    stage = PersistenceStage(
        repos.batches, repos.authors, repos.series, repos.books, repos.files, organizer,
    )
    await StageRunner([stage], repos.batches).run(state)
    return state


def build_pipeline(
    repos: Repos,
    dirs: LibraryDirs,
    llm: BaseLLMClient,
    converter: BaseConverter | None = None,
    conversion_enabled: bool = False,
    image_search: BaseImageSearch | None = None,
    downloader: FakeDownloader | None = None,
) -> ChunkPipeline:
    """ChunkPipeline over local fakes; defaults give placeholder images."""
    organizer = FileOrganizer(dirs.ebooks, dirs.source, dirs.processed, converter)
    ai = AIService(llm, retry=NO_RETRY)
    return ChunkPipeline(
        repos.batches, repos.authors, repos.series, repos.books, repos.files, organizer,
        name_agent=NameResolverAgent(ai, repos.batches),
        image_agent=ImageResolverAgent(
            image_search or FakeImageSearch(), downloader or FakeDownloader(),
            repos.batches, dirs.ebooks, ASSETS_DIR,
        ),
        metadata_agent=MetadataResolverAgent(
            ai, repos.batches, repos.authors, repos.books, repos.series,
        ),
        conversion_enabled=conversion_enabled,
    )


def build_orchestrator(
    repos: Repos, dirs: LibraryDirs, llm: BaseLLMClient, batch_size: int = 25, **kwargs: Any,
) -> BatchOrchestrator:
    pipeline = build_pipeline(repos, dirs, llm, **kwargs)
    return BatchOrchestrator(
        repos.batches, repos.files, Crawler(dirs.source), pipeline, batch_size=batch_size,
    )
