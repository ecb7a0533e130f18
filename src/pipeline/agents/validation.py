# src/pipeline/agents/validation.py — v1
"""Normalization of raw AI name guesses before they are trusted.

Confidences are clamped into [0, 1] (a missing value counts as 0) and
missing names get placeholders so every item can still be persisted.
"""

from __future__ import annotations

from pathlib import PurePath

from booknest.services.models import (
    AIAuthorGuess,
    AISeriesGuess,
    AITitleGuess,
    NameResolverItemOutput,
)

UNKNOWN_AUTHOR = "Unknown Author"
UNKNOWN_TITLE = "Unknown Title"


def clamp_confidence(value: float | None) -> float:
    """Clamp *value* into [0, 1]; None and NaN become 0."""
    if value is None or value != value:
        return 0.0
    return max(0.0, min(1.0, float(value)))


def normalize_name_output(output: NameResolverItemOutput) -> NameResolverItemOutput:
    """Return a copy with clamped confidences and filled-in names."""
    original_title = output.title.original or PurePath(output.file_path).stem or UNKNOWN_TITLE

    series = output.series
    if series is not None and series.name:
        normalized_series = AISeriesGuess(
            name=series.name,
            english_name=series.english_name or series.name,
            confidence=clamp_confidence(series.confidence),
        )
    else:
        normalized_series = AISeriesGuess(name=None, english_name=None, confidence=0.0)

    return NameResolverItemOutput(
        file_path=output.file_path,
        confidence=clamp_confidence(output.confidence),
        author=AIAuthorGuess(
            name=output.author.name or UNKNOWN_AUTHOR,
            confidence=clamp_confidence(output.author.confidence),
        ),
        title=AITitleGuess(
            original=original_title,
            english=output.title.english or original_title,
            confidence=clamp_confidence(output.title.confidence),
        ),
        series=normalized_series,
    )
