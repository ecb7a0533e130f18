# src/services/models.py — v1
"""Input/output contracts of the external collaborators.

AI payloads use camelCase keys on the wire; models accept both the alias
and the field name, ignore unknown keys, and coerce sloppy scalar values
to None instead of failing the whole response.
"""

from __future__ import annotations

import re
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

_YEAR = re.compile(r"-?\d{1,4}")


def _to_float_or_none(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int_or_none(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    match = _YEAR.search(str(value))
    return int(match.group(0)) if match else None


def _to_str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


LenientFloat = Annotated[float | None, BeforeValidator(_to_float_or_none)]
LenientInt = Annotated[int | None, BeforeValidator(_to_int_or_none)]
LenientStr = Annotated[str | None, BeforeValidator(_to_str_or_none)]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# === AI: NAME RESOLUTION ===


class NameResolverRequestItem(_WireModel):
    file_path: str = Field(alias="filePath")


class AIAuthorGuess(_WireModel):
    name: LenientStr = None
    confidence: LenientFloat = None


class AITitleGuess(_WireModel):
    original: LenientStr = None
    english: LenientStr = None
    confidence: LenientFloat = None


class AISeriesGuess(_WireModel):
    name: LenientStr = None
    english_name: LenientStr = Field(default=None, alias="englishName")
    confidence: LenientFloat = None


class NameResolverItemOutput(_WireModel):
    """One AI guess, matched back to its input by file_path."""

    file_path: str = Field(alias="filePath")
    confidence: LenientFloat = None
    author: AIAuthorGuess = Field(default_factory=AIAuthorGuess)
    title: AITitleGuess = Field(default_factory=AITitleGuess)
    series: AISeriesGuess | None = None


class NameResolverResponse(_WireModel):
    results: list[NameResolverItemOutput] = Field(default_factory=list)


# === AI: METADATA ENRICHMENT ===


class MetadataBookRequest(_WireModel):
    author: str
    title: str


class MetadataSeriesRequest(_WireModel):
    author: str
    name: str


class MetadataRequest(_WireModel):
    authors: list[str] = Field(default_factory=list)
    books: list[MetadataBookRequest] = Field(default_factory=list)
    series: list[MetadataSeriesRequest] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.authors or self.books or self.series)


class AuthorMetadataOutput(_WireModel):
    name: LenientStr = None
    bio: LenientStr = None
    nationality: LenientStr = None
    date_of_birth: LenientStr = Field(default=None, alias="dateOfBirth")
    open_library_key: LenientStr = Field(default=None, alias="openLibraryKey")


class BookMetadataOutput(_WireModel):
    author: LenientStr = None
    title: LenientStr = None
    description: LenientStr = None
    first_publish_year: LenientInt = Field(default=None, alias="firstPublishYear")


class SeriesMetadataOutput(_WireModel):
    author: LenientStr = None
    name: LenientStr = None
    description: LenientStr = None


class MetadataResponse(_WireModel):
    authors: list[AuthorMetadataOutput] = Field(default_factory=list)
    books: list[BookMetadataOutput] = Field(default_factory=list)
    series: list[SeriesMetadataOutput] = Field(default_factory=list)


# === IMAGES ===


class ImageCandidate(BaseModel):
    """At most one candidate image URL returned by a search."""

    url: str
    source: str = "openlibrary"
    source_key: str | None = None


# === CONVERSION ===


class ConversionResult(BaseModel):
    success: bool
    output_path: str | None = None
    error: str | None = None
    duration_ms: int = 0
