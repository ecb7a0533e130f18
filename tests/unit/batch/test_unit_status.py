# tests/unit/batch/test_unit_status.py — v1
"""Tests for batch/status.py — batch and item transition tables."""

from __future__ import annotations

import pytest

from booknest.batch.status import (
    BatchItemStatus,
    BatchStatus,
    can_requeue_item,
    can_transition_batch,
    ensure_batch_transition,
    is_terminal_batch_status,
    resolve_item_advance,
)
from booknest.core.errors import InvalidTransitionError

S = BatchItemStatus


class TestBatchTransitions:
    @pytest.mark.parametrize("current, target", [
        (BatchStatus.PENDING, BatchStatus.PROCESSING),
        (BatchStatus.PROCESSING, BatchStatus.COMPLETED),
        (BatchStatus.PROCESSING, BatchStatus.FAILED),
        (BatchStatus.FAILED, BatchStatus.PROCESSING),
        (BatchStatus.PENDING, BatchStatus.ROLLED_BACK),
        (BatchStatus.PROCESSING, BatchStatus.ROLLED_BACK),
    ])
    def test_allowed(self, current, target):
        assert can_transition_batch(current, target)
        ensure_batch_transition(current, target)

    @pytest.mark.parametrize("current, target", [
        (BatchStatus.COMPLETED, BatchStatus.PROCESSING),
        (BatchStatus.ROLLED_BACK, BatchStatus.PROCESSING),
        (BatchStatus.FAILED, BatchStatus.ROLLED_BACK),
        (BatchStatus.PENDING, BatchStatus.COMPLETED),
    ])
    def test_rejected(self, current, target):
        assert not can_transition_batch(current, target)
        with pytest.raises(InvalidTransitionError):
            ensure_batch_transition(current, target)

    def test_terminal(self):
        assert is_terminal_batch_status(BatchStatus.COMPLETED)
        assert is_terminal_batch_status(BatchStatus.ROLLED_BACK)
        assert not is_terminal_batch_status(BatchStatus.FAILED)


class TestItemAdvance:
    def test_forward_step(self):
        assert resolve_item_advance(S.PENDING, S.NAME_RESOLVED) is S.NAME_RESOLVED
        assert resolve_item_advance(S.NAME_RESOLVED, S.PERSISTED) is S.PERSISTED

    def test_skip_best_effort_phases(self):
        assert resolve_item_advance(S.PERSISTED, S.COMPLETED) is S.COMPLETED
        assert resolve_item_advance(S.PERSISTED, S.METADATA_FETCHED) is S.METADATA_FETCHED

    def test_rerun_is_noop(self):
        assert resolve_item_advance(S.PERSISTED, S.NAME_RESOLVED) is None
        assert resolve_item_advance(S.PERSISTED, S.PERSISTED) is None

    def test_cannot_skip_persistence(self):
        with pytest.raises(InvalidTransitionError):
            resolve_item_advance(S.PENDING, S.PERSISTED)

    def test_completed_is_terminal(self):
        with pytest.raises(InvalidTransitionError):
            resolve_item_advance(S.COMPLETED, S.NAME_RESOLVED)
        assert resolve_item_advance(S.COMPLETED, S.COMPLETED) is None

    def test_failed_is_absorbing(self):
        with pytest.raises(InvalidTransitionError):
            resolve_item_advance(S.FAILED, S.COMPLETED)

    @pytest.mark.parametrize("current", [S.PENDING, S.NAME_RESOLVED, S.PERSISTED, S.IMAGES_FETCHED])
    def test_any_non_terminal_can_fail(self, current):
        assert resolve_item_advance(current, S.FAILED) is S.FAILED


class TestRequeue:
    def test_failed_can_be_requeued(self):
        assert can_requeue_item(S.FAILED, S.PENDING)
        assert can_requeue_item(S.FAILED, S.NAME_RESOLVED)

    def test_completed_cannot_be_requeued(self):
        assert not can_requeue_item(S.COMPLETED, S.PENDING)

    def test_only_early_targets(self):
        assert not can_requeue_item(S.FAILED, S.PERSISTED)
