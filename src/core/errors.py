# src/core/errors.py — v1
"""Exception hierarchy shared across the indexing engine.

Errors are grouped by how the pipeline treats them: soft file errors are
absorbed by the crawler, transient transport errors by the retry helper,
phase-fatal errors fail the batch, and path-safety errors are never retried.
"""

from __future__ import annotations


class BookNestError(Exception):
    """Base class for all BookNest errors."""


class ConfigurationError(BookNestError):
    """Raised when configuration is internally inconsistent."""


class UnsupportedFormatError(BookNestError):
    """Raised when a file extension is not a supported ebook format."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Unsupported ebook format: {path}")


class RetryExhaustedError(BookNestError):
    """All attempts of a retried operation failed."""

    def __init__(self, operation: str, attempts: int, last_error: Exception) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Operation '{operation}' failed after {attempts} attempts: {last_error}"
        )


class AIResponseError(BookNestError):
    """The AI service returned an empty or unparsable payload."""


class InvalidTransitionError(BookNestError):
    """A status change is not allowed by the transition table."""

    def __init__(self, entity: str, current: str, target: str) -> None:
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Invalid {entity} transition: {current} -> {target}")


class BatchNotFoundError(BookNestError):
    """Raised when a batch id does not exist."""

    def __init__(self, batch_id: str) -> None:
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class BatchNotCancellableError(BookNestError):
    """Raised when rollback is requested for a batch outside pending/processing."""

    def __init__(self, batch_id: str, status: str) -> None:
        self.batch_id = batch_id
        self.status = status
        super().__init__(f"Batch {batch_id} cannot be cancelled in status '{status}'")


class IndexingInProgressError(BookNestError):
    """Raised when a new run is requested while another batch is processing."""

    def __init__(self, batch_id: str) -> None:
        self.batch_id = batch_id
        super().__init__(f"Indexing already in progress: {batch_id}")


class PathSafetyError(BookNestError):
    """A move target resolves outside the configured source root."""


class ConversionTimeoutError(BookNestError):
    """The external converter exceeded its wall-clock limit."""


class ImageRejectedError(BookNestError):
    """A downloaded payload failed content-type or size validation."""
