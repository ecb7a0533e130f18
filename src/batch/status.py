# src/batch/status.py — v1
"""Batch and batch-item state machines.

Statuses are closed enums and every change goes through an explicit
transition table, so moves such as ``completed -> name_resolved`` are
rejected instead of silently written.

Batch:
    pending -> processing -> completed | failed
    failed -> processing            (resume)
    pending | processing -> rolled_back
    completed, rolled_back are terminal

Item (within one run, forward only; phases may be skipped when a
best-effort phase produced nothing):
    pending -> name_resolved -> persisted -> images_fetched
        -> metadata_fetched -> completed
    any non-terminal -> failed      (absorbing for the rest of the run)

Resume re-opens unfinished items through the separate requeue edge
(anything but completed -> pending | name_resolved).
"""

from __future__ import annotations

from enum import Enum

from booknest.core.errors import InvalidTransitionError


class BatchStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class BatchItemStatus(str, Enum):
    PENDING = "pending"
    NAME_RESOLVED = "name_resolved"
    PERSISTED = "persisted"
    IMAGES_FETCHED = "images_fetched"
    METADATA_FETCHED = "metadata_fetched"
    COMPLETED = "completed"
    FAILED = "failed"


BATCH_TRANSITIONS: dict[BatchStatus, frozenset[BatchStatus]] = {
    BatchStatus.PENDING: frozenset({BatchStatus.PROCESSING, BatchStatus.ROLLED_BACK}),
    BatchStatus.PROCESSING: frozenset(
        {BatchStatus.COMPLETED, BatchStatus.FAILED, BatchStatus.ROLLED_BACK}
    ),
    BatchStatus.FAILED: frozenset({BatchStatus.PROCESSING}),
    BatchStatus.COMPLETED: frozenset(),
    BatchStatus.ROLLED_BACK: frozenset(),
}

_S = BatchItemStatus
ITEM_TRANSITIONS: dict[BatchItemStatus, frozenset[BatchItemStatus]] = {
    _S.PENDING: frozenset({_S.NAME_RESOLVED, _S.FAILED}),
    _S.NAME_RESOLVED: frozenset({_S.PERSISTED, _S.FAILED}),
    _S.PERSISTED: frozenset(
        {_S.IMAGES_FETCHED, _S.METADATA_FETCHED, _S.COMPLETED, _S.FAILED}
    ),
    _S.IMAGES_FETCHED: frozenset({_S.METADATA_FETCHED, _S.COMPLETED, _S.FAILED}),
    _S.METADATA_FETCHED: frozenset({_S.COMPLETED, _S.FAILED}),
    _S.COMPLETED: frozenset(),
    _S.FAILED: frozenset(),
}

# Progress order of the non-failed item statuses.
ITEM_PROGRESS: tuple[BatchItemStatus, ...] = (
    _S.PENDING,
    _S.NAME_RESOLVED,
    _S.PERSISTED,
    _S.IMAGES_FETCHED,
    _S.METADATA_FETCHED,
    _S.COMPLETED,
)

REQUEUE_TARGETS: frozenset[BatchItemStatus] = frozenset({_S.PENDING, _S.NAME_RESOLVED})

CANCELLABLE_BATCH_STATUSES: frozenset[BatchStatus] = frozenset(
    {BatchStatus.PENDING, BatchStatus.PROCESSING}
)


def is_terminal_batch_status(status: BatchStatus) -> bool:
    return not BATCH_TRANSITIONS[status]


def can_transition_batch(current: BatchStatus, target: BatchStatus) -> bool:
    return target in BATCH_TRANSITIONS[current]


def ensure_batch_transition(current: BatchStatus, target: BatchStatus) -> None:
    """Raises InvalidTransitionError unless current -> target is allowed."""
    if not can_transition_batch(current, target):
        raise InvalidTransitionError("batch", current.value, target.value)


def can_transition_item(current: BatchItemStatus, target: BatchItemStatus) -> bool:
    return target in ITEM_TRANSITIONS[current]


def item_rank(status: BatchItemStatus) -> int:
    """Position in ITEM_PROGRESS; failed ranks after everything."""
    if status is BatchItemStatus.FAILED:
        return len(ITEM_PROGRESS)
    return ITEM_PROGRESS.index(status)


def resolve_item_advance(
    current: BatchItemStatus, target: BatchItemStatus,
) -> BatchItemStatus | None:
    """Decide the effect of advancing an item from *current* to *target*.

    Returns the status to write, or None when the item is already at or
    past *target* (re-running a phase on resume is a no-op).

    Raises:
        InvalidTransitionError: For moves out of a terminal status or
            forward jumps the table does not allow.
    """
    if current in (BatchItemStatus.COMPLETED, BatchItemStatus.FAILED):
        if current is target:
            return None
        raise InvalidTransitionError("batch item", current.value, target.value)
    if target is not BatchItemStatus.FAILED and item_rank(target) <= item_rank(current):
        return None
    if not can_transition_item(current, target):
        raise InvalidTransitionError("batch item", current.value, target.value)
    return target


def can_requeue_item(current: BatchItemStatus, target: BatchItemStatus) -> bool:
    return current is not BatchItemStatus.COMPLETED and target in REQUEUE_TARGETS
