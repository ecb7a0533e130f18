# src/storage/batch_repo.py — v1
"""Batch repository: persisted state of batches and their items.

Status writes are validated against the transition tables in
batch/status.py; the repository is the only writer of status columns.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from typing import TYPE_CHECKING

from booknest.batch.agent_results import AgentResults
from booknest.batch.models import Batch, BatchItem, BatchPage
from booknest.batch.status import (
    BatchItemStatus,
    BatchStatus,
    can_requeue_item,
    ensure_batch_transition,
    resolve_item_advance,
)
from booknest.core.errors import BatchNotFoundError, InvalidTransitionError
from booknest.core.ids import generate_batch_id, generate_id, utc_now

if TYPE_CHECKING:
    from booknest.core.models import HashedFile
    from booknest.storage.database import Database

logger = logging.getLogger(__name__)


def _row_to_batch(row: sqlite3.Row) -> Batch:
    return Batch(
        id=row["id"],
        status=BatchStatus(row["status"]),
        total_books=row["total_books"],
        processed_books=row["processed_books"],
        failed_books=row["failed_books"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        created_at=row["created_at"],
    )


def _row_to_item(row: sqlite3.Row) -> BatchItem:
    return BatchItem(
        id=row["id"],
        batch_id=row["batch_id"],
        file_path=row["file_path"],
        source_sha256=row["source_sha256"],
        status=BatchItemStatus(row["status"]),
        agent_results=AgentResults.decode(row["agent_results"], item_id=row["id"]),
        error_message=row["error_message"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class BatchRepository:
    """CRUD and state transitions for indexing_batches / indexing_batch_items."""

    def __init__(self, db: Database) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def create_batch(self) -> Batch:
        batch_id = generate_batch_id()
        self._db.execute(
            "INSERT INTO indexing_batches (id, status, created_at) VALUES (?, ?, ?)",
            (batch_id, BatchStatus.PENDING.value, utc_now()),
        )
        logger.info("Created batch %s", batch_id)
        return self.get_batch(batch_id)

    def find_batch(self, batch_id: str) -> Batch | None:
        row = self._db.fetch_one("SELECT * FROM indexing_batches WHERE id = ?", (batch_id,))
        return _row_to_batch(row) if row else None

    def get_batch(self, batch_id: str) -> Batch:
        """Like find_batch() but raises BatchNotFoundError."""
        batch = self.find_batch(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def find_by_status(self, status: BatchStatus) -> list[Batch]:
        """Batches in *status*, oldest first."""
        rows = self._db.fetch_all(
            "SELECT * FROM indexing_batches WHERE status = ? ORDER BY created_at, rowid",
            (status.value,),
        )
        return [_row_to_batch(r) for r in rows]

    def find_latest(self) -> Batch | None:
        row = self._db.fetch_one(
            "SELECT * FROM indexing_batches ORDER BY created_at DESC, rowid DESC LIMIT 1"
        )
        return _row_to_batch(row) if row else None

    def list_batches(self, limit: int = 20, offset: int = 0) -> BatchPage:
        """Paginated history, newest first."""
        rows = self._db.fetch_all(
            "SELECT * FROM indexing_batches ORDER BY created_at DESC, rowid DESC "
            "LIMIT ? OFFSET ?",
            (limit, offset),
        )
        total = self._db.scalar("SELECT COUNT(*) FROM indexing_batches") or 0
        return BatchPage(
            batches=[_row_to_batch(r) for r in rows], total=total, limit=limit, offset=offset,
        )

    def transition_batch(self, batch_id: str, target: BatchStatus) -> Batch:
        """Move a batch to *target*, stamping started_at/completed_at.

        Raises:
            BatchNotFoundError: Unknown batch id.
            InvalidTransitionError: Transition not in the table.
        """
        batch = self.get_batch(batch_id)
        ensure_batch_transition(batch.status, target)

        now = utc_now()
        if target is BatchStatus.PROCESSING:
            self._db.execute(
                "UPDATE indexing_batches SET status = ?, started_at = ?, completed_at = NULL "
                "WHERE id = ?",
                (target.value, now, batch_id),
            )
        else:
            self._db.execute(
                "UPDATE indexing_batches SET status = ?, completed_at = ? WHERE id = ?",
                (target.value, now, batch_id),
            )
        logger.info("Batch %s: %s -> %s", batch_id, batch.status.value, target.value)
        return self.get_batch(batch_id)

    def update_counters(
        self,
        batch_id: str,
        total_books: int | None = None,
        processed_books: int | None = None,
        failed_books: int | None = None,
    ) -> None:
        """Overwrite the given counters; None leaves a counter unchanged."""
        self._db.execute(
            "UPDATE indexing_batches SET "
            "total_books = COALESCE(?, total_books), "
            "processed_books = COALESCE(?, processed_books), "
            "failed_books = COALESCE(?, failed_books) "
            "WHERE id = ?",
            (total_books, processed_books, failed_books, batch_id),
        )

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def create_items(self, batch_id: str, files: Iterable[HashedFile]) -> list[BatchItem]:
        now = utc_now()
        ids: list[str] = []
        for f in files:
            item_id = generate_id()
            self._db.execute(
                "INSERT INTO indexing_batch_items "
                "(id, batch_id, file_path, source_sha256, status, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (item_id, batch_id, f.path, f.sha256, BatchItemStatus.PENDING.value, now, now),
            )
            ids.append(item_id)
        logger.info("Batch %s: created %d items", batch_id, len(ids))
        return [self.get_item(i) for i in ids]

    def find_item(self, item_id: str) -> BatchItem | None:
        row = self._db.fetch_one("SELECT * FROM indexing_batch_items WHERE id = ?", (item_id,))
        return _row_to_item(row) if row else None

    def get_item(self, item_id: str) -> BatchItem:
        item = self.find_item(item_id)
        if item is None:
            raise LookupError(f"Batch item not found: {item_id}")
        return item

    def find_items(
        self, batch_id: str, statuses: Iterable[BatchItemStatus] | None = None,
    ) -> list[BatchItem]:
        """Items of a batch in creation order, optionally filtered by status."""
        sql = "SELECT * FROM indexing_batch_items WHERE batch_id = ?"
        params: list[str] = [batch_id]
        if statuses is not None:
            values = [s.value for s in statuses]
            if not values:
                return []
            sql += f" AND status IN ({', '.join('?' for _ in values)})"
            params.extend(values)
        sql += " ORDER BY rowid"
        return [_row_to_item(r) for r in self._db.fetch_all(sql, params)]

    def find_incomplete_items(self, batch_id: str) -> list[BatchItem]:
        return [
            i for i in self.find_items(batch_id) if i.status is not BatchItemStatus.COMPLETED
        ]

    def find_last_touched_item(self, batch_id: str) -> BatchItem | None:
        row = self._db.fetch_one(
            "SELECT * FROM indexing_batch_items WHERE batch_id = ? "
            "ORDER BY updated_at DESC, rowid DESC LIMIT 1",
            (batch_id,),
        )
        return _row_to_item(row) if row else None

    def count_items_by_status(self, batch_id: str) -> dict[str, int]:
        rows = self._db.fetch_all(
            "SELECT status, COUNT(*) AS n FROM indexing_batch_items "
            "WHERE batch_id = ? GROUP BY status",
            (batch_id,),
        )
        return {r["status"]: r["n"] for r in rows}

    def advance_item(
        self,
        item_id: str,
        target: BatchItemStatus,
        agent_results: AgentResults | None = None,
    ) -> BatchItem:
        """Advance an item's status; stores *agent_results* when given.

        Advancing to a status the item already reached only updates the
        results. Raises InvalidTransitionError for illegal moves.
        """
        item = self.get_item(item_id)
        new_status = resolve_item_advance(item.status, target)
        status = new_status or item.status
        results_json = agent_results.to_json() if agent_results is not None else None
        self._db.execute(
            "UPDATE indexing_batch_items SET status = ?, "
            "agent_results = COALESCE(?, agent_results), updated_at = ? WHERE id = ?",
            (status.value, results_json, utc_now(), item_id),
        )
        if new_status is not None:
            logger.debug("Item %s: %s -> %s", item_id, item.status.value, status.value)
        return item.model_copy(
            update={
                "status": status,
                "agent_results": agent_results or item.agent_results,
            }
        )

    def save_agent_results(self, item_id: str, agent_results: AgentResults) -> None:
        """Store results without touching the status."""
        self._db.execute(
            "UPDATE indexing_batch_items SET agent_results = ?, updated_at = ? WHERE id = ?",
            (agent_results.to_json(), utc_now(), item_id),
        )

    def fail_item(self, item_id: str, error_message: str) -> BatchItem:
        """Mark an item failed (absorbing) with its error text."""
        item = self.get_item(item_id)
        resolve_item_advance(item.status, BatchItemStatus.FAILED)
        self._db.execute(
            "UPDATE indexing_batch_items SET status = ?, error_message = ?, updated_at = ? "
            "WHERE id = ?",
            (BatchItemStatus.FAILED.value, error_message, utc_now(), item_id),
        )
        logger.warning("Item %s failed: %s", item_id, error_message)
        return item.model_copy(
            update={"status": BatchItemStatus.FAILED, "error_message": error_message}
        )

    def requeue_item(self, item_id: str, target: BatchItemStatus) -> BatchItem:
        """Re-open an unfinished item for a resumed run, clearing its error."""
        item = self.get_item(item_id)
        if not can_requeue_item(item.status, target):
            raise InvalidTransitionError("batch item", item.status.value, target.value)
        self._db.execute(
            "UPDATE indexing_batch_items SET status = ?, error_message = NULL, updated_at = ? "
            "WHERE id = ?",
            (target.value, utc_now(), item_id),
        )
        return item.model_copy(update={"status": target, "error_message": None})
