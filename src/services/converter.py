# src/services/converter.py — v1
"""External format converter (calibre ``ebook-convert``).

Invoked as ``<converter> <input> <output>``. Success means exit code 0 and
an output file on disk; anything else becomes a failed ConversionResult.
A hard wall-clock timeout kills the subprocess.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from abc import ABC, abstractmethod
from pathlib import Path

from booknest.core.errors import ConversionTimeoutError
from booknest.core.retry import RetryConfig, is_retryable_error, with_retry
from booknest.services.models import ConversionResult

logger = logging.getLogger(__name__)

# Best source first when a book has several formats.
FORMAT_PRIORITY: tuple[str, ...] = ("epub", "mobi", "azw3", "txt", "pdf")

# Formats the library tries to offer for every book.
CONVERSION_TARGETS: tuple[str, ...] = ("epub", "mobi", "txt")

DEFAULT_FALLBACK_PATHS: tuple[str, ...] = (
    "/opt/calibre/ebook-convert",
    "/usr/local/bin/ebook-convert",
    "/Applications/calibre.app/Contents/MacOS/ebook-convert",
)


def best_source_format(available: list[str]) -> str | None:
    """Pick the conversion source by FORMAT_PRIORITY, else the first available."""
    for fmt in FORMAT_PRIORITY:
        if fmt in available:
            return fmt
    return available[0] if available else None


def conversion_targets(source_format: str, existing: list[str]) -> list[str]:
    return [f for f in CONVERSION_TARGETS if f != source_format and f not in existing]


class BaseConverter(ABC):
    """Interface of the format conversion collaborator."""

    @abstractmethod
    async def convert(self, input_path: Path, output_format: str, output_path: Path | None = None) -> ConversionResult:
        """Convert *input_path* to *output_format*."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the converter can run at all."""


class CalibreConverter(BaseConverter):
    """Run calibre's ebook-convert as a subprocess.

    Args:
        calibre_path: Preferred executable path.
        timeout_s: Hard wall-clock limit per conversion.
        fallback_paths: Other locations searched when calibre_path is missing.
        retry: Retry policy for transient failures (timeouts included).
    """

    def __init__(
        self,
        calibre_path: str = "/usr/bin/ebook-convert",
        timeout_s: float = 120.0,
        fallback_paths: tuple[str, ...] = DEFAULT_FALLBACK_PATHS,
        retry: RetryConfig | None = None,
    ) -> None:
        self._calibre_path = calibre_path
        self._timeout_s = timeout_s
        self._fallback_paths = fallback_paths
        self._retry = retry or RetryConfig(max_retries=2, base_delay_s=1.0)
        self._resolved: str | None = None
        self._checked = False

    def _find_executable(self) -> str | None:
        for candidate in (self._calibre_path, *self._fallback_paths):
            if candidate and Path(candidate).is_file():
                return candidate
        return shutil.which("ebook-convert")

    def is_available(self) -> bool:
        if not self._checked:
            self._resolved = self._find_executable()
            self._checked = True
            if self._resolved is None:
                logger.warning(
                    "Calibre not found; format conversion will be skipped "
                    "(set CALIBRE_PATH). Searched: %s",
                    [self._calibre_path, *self._fallback_paths],
                )
            else:
                logger.info("Calibre found: %s", self._resolved)
        return self._resolved is not None

    async def convert(
        self, input_path: Path, output_format: str, output_path: Path | None = None,
    ) -> ConversionResult:
        t0 = time.monotonic()

        if input_path.suffix.lower().lstrip(".") == output_format:
            return ConversionResult(success=True, output_path=str(input_path))

        if not self.is_available():
            return ConversionResult(
                success=False, error="Calibre not installed. Set CALIBRE_PATH in .env",
            )

        executable = self._resolved
        target = output_path or input_path.with_suffix(f".{output_format}")
        try:
            await with_retry(
                lambda: self._run(executable, input_path, target),
                operation="convert",
                max_retries=self._retry.max_retries,
                base_delay_s=self._retry.base_delay_s,
                should_retry=is_retryable_error,
            )
        except Exception as e:
            duration = int((time.monotonic() - t0) * 1000)
            logger.warning("Conversion failed %s -> %s: %s", input_path, output_format, e)
            return ConversionResult(success=False, error=str(e), duration_ms=duration)

        duration = int((time.monotonic() - t0) * 1000)
        logger.info("Converted %s -> %s in %dms", input_path.name, target.name, duration)
        return ConversionResult(success=True, output_path=str(target), duration_ms=duration)

    async def _run(self, executable: str, input_path: Path, output_path: Path) -> None:
        """Run one conversion subprocess.

        Raises:
            ConversionTimeoutError: The process exceeded the timeout and was killed.
            RuntimeError: Non-zero exit or missing output file.
        """
        proc = await asyncio.create_subprocess_exec(
            executable,
            str(input_path),
            str(output_path),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout_s)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ConversionTimeoutError(
                f"Conversion timed out after {int(self._timeout_s * 1000)}ms"
            ) from None

        if proc.returncode != 0:
            tail = stderr.decode("utf-8", "replace").strip()[-500:]
            raise RuntimeError(f"Converter exited with code {proc.returncode}: {tail}")
        if not output_path.exists():
            raise RuntimeError(f"Converter produced no output file: {output_path}")
