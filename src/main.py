# src/main.py — v1
"""CLI entry point — index, status, history, cancel commands.

Usage:
    booknest index
    booknest status [--json]
    booknest history [--limit N] [--offset N] [--json]
    booknest cancel <batch_id>

Exit codes: 0 ok, 1 error (including a failed batch), 130 interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from booknest.version import __version__

if TYPE_CHECKING:
    from booknest.batch.models import BatchProgress
    from booknest.config.settings import Settings

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = _load_settings()
    except Exception as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="booknest",
        description=f"BookNest v{__version__}: ebook library indexer",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- index ---
    p_index = subparsers.add_parser(
        "index", help="Index new files, or resume the failed batch",
    )
    p_index.set_defaults(func=_cmd_index)

    # --- status ---
    p_status = subparsers.add_parser(
        "status", help="Show the running and latest batch",
    )
    p_status.add_argument("--json", action="store_true", help="Print raw JSON")
    p_status.set_defaults(func=_cmd_status)

    # --- history ---
    p_history = subparsers.add_parser(
        "history", help="List past batches, newest first",
    )
    p_history.add_argument(
        "--limit", type=int, default=20, help="Batches per page (default: 20)",
    )
    p_history.add_argument(
        "--offset", type=int, default=0, help="Batches to skip (default: 0)",
    )
    p_history.add_argument("--json", action="store_true", help="Print raw JSON")
    p_history.set_defaults(func=_cmd_history)

    # --- cancel ---
    p_cancel = subparsers.add_parser(
        "cancel", help="Roll back a pending or processing batch",
    )
    p_cancel.add_argument("batch_id", help="Batch to cancel")
    p_cancel.set_defaults(func=_cmd_cancel)

    return parser


async def _cmd_index(args: argparse.Namespace, settings: Settings) -> int:
    """Start or resume an indexing run."""
    from booknest.api.facade import open_indexing_service

    async with open_indexing_service(settings) as service:
        result = await service.start_indexing()

    print(f"\nBatch {result.batch_id} {result.status.value}"
          f"{' (resumed)' if result.resumed else ''}:")
    print(f"  Total:      {result.total_books}")
    print(f"  Processed:  {result.processed_books}")
    print(f"  Failed:     {result.failed_books}")
    print(f"  Duration:   {result.duration_s:.1f}s")
    for error in result.errors[:10]:
        print(f"  ! {error}")
    if len(result.errors) > 10:
        print(f"  ... {len(result.errors) - 10} more")
    return 0 if result.status.value == "completed" else 1


async def _cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    from booknest.api.facade import open_indexing_service

    async with open_indexing_service(settings) as service:
        status = service.get_status()

    if args.json:
        print(status.model_dump_json(indent=2))
        return 0
    print(f"\nIndexing running: {'yes' if status.is_running else 'no'}")
    if status.current_batch is not None:
        _print_progress("Current batch", status.current_batch)
    if status.last_batch is not None:
        _print_progress("Last batch", status.last_batch)
    return 0


async def _cmd_history(args: argparse.Namespace, settings: Settings) -> int:
    from booknest.api.facade import open_indexing_service

    async with open_indexing_service(settings) as service:
        page = service.get_history(limit=args.limit, offset=args.offset)

    if args.json:
        print(page.model_dump_json(indent=2))
        return 0
    print(f"\n{page.total} batches (showing {len(page.batches)} from {page.offset}):")
    for batch in page.batches:
        print(
            f"  {batch.id}  {batch.status.value:<12} "
            f"{batch.processed_books}/{batch.total_books} processed, "
            f"{batch.failed_books} failed  {batch.created_at or ''}"
        )
    return 0


async def _cmd_cancel(args: argparse.Namespace, settings: Settings) -> int:
    from booknest.api.facade import open_indexing_service

    async with open_indexing_service(settings) as service:
        batch = service.cancel_batch(args.batch_id)
    print(f"Batch {batch.id} is now {batch.status.value}")
    return 0


def _print_progress(label: str, progress: BatchProgress) -> None:
    batch = progress.batch
    print(f"  {label}: {batch.id} ({batch.status.value})")
    print(f"    Processed: {batch.processed_books}/{batch.total_books}, "
          f"failed: {batch.failed_books}")
    if progress.current_phase is not None:
        print(f"    Last item status: {progress.current_phase.value}")


def _load_settings() -> Settings:
    from booknest.config.settings import load_settings

    return load_settings()


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from booknest.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
        stream=sys.stderr,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
