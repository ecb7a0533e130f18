# src/batch/dedup.py — v1
"""Cross-batch deduplication against ingested file records.

A crawled file whose SHA-256 already exists as a FileRecord has been
ingested by an earlier batch and is skipped. Files sharing a digest
inside the same crawl are not collapsed here; the crawler only flags
them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from booknest.core.models import HashedFile
    from booknest.storage.library_repo import FileRepository

logger = logging.getLogger(__name__)


def filter_new_files(files: list[HashedFile], file_repo: FileRepository) -> list[HashedFile]:
    """Return the files whose digest is not yet recorded, in crawl order."""
    if not files:
        return []
    known = file_repo.existing_sha256(sorted({f.sha256 for f in files}))
    new_files = [f for f in files if f.sha256 not in known]
    skipped = len(files) - len(new_files)
    if skipped:
        logger.info("Skipping %d already ingested files", skipped)
    return new_files
