# tests/unit/test_main.py — v1
"""Tests for main.py — CLI parsing, output and exit codes."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from unittest.mock import MagicMock, patch

import pytest

from booknest.api.models import IndexingStatus
from booknest.batch.models import Batch, BatchPage, BatchRunResult
from booknest.batch.status import BatchStatus
from booknest.core.errors import BatchNotCancellableError
from booknest.main import _build_parser, main
from booknest.version import __version__


def _service_patch(service: MagicMock):
    @asynccontextmanager
    async def fake_open(settings):
        yield service

    return patch("booknest.api.facade.open_indexing_service", fake_open)


@pytest.fixture(autouse=True)
def _quiet_cli():
    with patch("booknest.main._load_settings", return_value=MagicMock(log_file=None)), \
            patch("booknest.main._setup_logging"):
        yield


def _run_result(status: BatchStatus, **kwargs) -> BatchRunResult:
    return BatchRunResult(batch_id="batch-2026-10-18-abcd1234", status=status, **kwargs)


class TestParser:
    def test_subcommands(self):
        parser = _build_parser()
        assert parser.parse_args(["index"]).command == "index"
        args = parser.parse_args(["history", "--limit", "5", "--offset", "10", "--json"])
        assert (args.limit, args.offset, args.json) == (5, 10, True)
        assert parser.parse_args(["cancel", "batch-x"]).batch_id == "batch-x"

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_no_command(self, capsys):
        assert main([]) == 1


class TestCommands:
    def test_index_completed(self, capsys):
        service = MagicMock()

        async def start():
            return _run_result(BatchStatus.COMPLETED, total_books=2, processed_books=2)

        service.start_indexing.side_effect = start
        with _service_patch(service):
            assert main(["index"]) == 0
        out = capsys.readouterr().out
        assert "completed" in out
        assert "Processed:  2" in out

    def test_index_failed_batch_exits_1(self, capsys):
        service = MagicMock()

        async def start():
            return _run_result(BatchStatus.FAILED, errors=[f"error {i}" for i in range(12)])

        service.start_indexing.side_effect = start
        with _service_patch(service):
            assert main(["index"]) == 1
        out = capsys.readouterr().out
        assert "! error 9" in out
        assert "... 2 more" in out

    def test_status_json(self, capsys):
        service = MagicMock()
        service.get_status.return_value = IndexingStatus()
        with _service_patch(service):
            assert main(["status", "--json"]) == 0
        assert json.loads(capsys.readouterr().out)["is_running"] is False

    def test_history(self, capsys):
        service = MagicMock()
        service.get_history.return_value = BatchPage(
            batches=[Batch(id="batch-1", status=BatchStatus.COMPLETED, total_books=3, processed_books=3)],
            total=1,
        )
        with _service_patch(service):
            assert main(["history", "--limit", "1"]) == 0
        service.get_history.assert_called_once_with(limit=1, offset=0)
        assert "batch-1" in capsys.readouterr().out

    def test_cancel_error_exits_1(self):
        service = MagicMock()
        service.cancel_batch.side_effect = BatchNotCancellableError("batch-1", "completed")
        with _service_patch(service):
            assert main(["cancel", "batch-1"]) == 1

    def test_invalid_configuration(self, capsys):
        with patch("booknest.main._load_settings", side_effect=ValueError("bad BATCH_SIZE")):
            assert main(["index"]) == 1
        assert "Invalid configuration" in capsys.readouterr().err
