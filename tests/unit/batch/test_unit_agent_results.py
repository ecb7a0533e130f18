# tests/unit/batch/test_unit_agent_results.py — v1
"""Tests for batch/agent_results.py — versioned per-phase results."""

from __future__ import annotations

import json

from booknest.batch.agent_results import (
    AgentResults,
    ConversionEntry,
    MetadataEntry,
    NamesResult,
    PersistenceResult,
)
from booknest.core.models import ResolvedAuthor, ResolvedSeries, ResolvedTitle


def _names() -> NamesResult:
    return NamesResult(
        author=ResolvedAuthor(
            original_name="stephen king", normalized_name="Stephen King",
            slug="stephen-king", confidence=0.9,
        ),
        title=ResolvedTitle(
            original_title="It", english_title="It", slug="it", confidence=0.8,
        ),
        series=ResolvedSeries(),
        overall_confidence=0.85,
    )


class TestAgentResultsEncoding:
    def test_to_json_omits_missing_phases(self):
        results = AgentResults(names=_names())
        data = json.loads(results.to_json())
        assert set(data) == {"names"}
        assert data["names"]["version"] == 1

    def test_decode_roundtrip_of_stored_blob(self):
        results = AgentResults(
            names=_names(),
            persistence=PersistenceResult(
                author_id="a1", book_id="b1", file_id="f1", library_path="/lib/x.epub",
            ),
            conversion=ConversionEntry(converted=["mobi"], failed={"txt": "boom"}),
            metadata=MetadataEntry(author_enriched=True),
        )
        decoded = AgentResults.decode(results.to_json())
        assert decoded == results


class TestAgentResultsDecode:
    def test_empty_and_none(self):
        assert AgentResults.decode(None) == AgentResults()
        assert AgentResults.decode("") == AgentResults()

    def test_not_json(self):
        assert AgentResults.decode("{not json") == AgentResults()

    def test_not_an_object(self):
        assert AgentResults.decode("[1, 2]") == AgentResults()

    def test_unknown_key_dropped(self):
        raw = json.dumps({"names": json.loads(_names().model_dump_json()), "legacy": {"x": 1}})
        decoded = AgentResults.decode(raw)
        assert decoded.names == _names()

    def test_unsupported_version_dropped(self):
        names = json.loads(_names().model_dump_json())
        names["version"] = 2
        assert AgentResults.decode(json.dumps({"names": names})).names is None

    def test_malformed_entry_dropped_others_kept(self):
        raw = json.dumps({
            "persistence": {"author_id": "a1"},
            "metadata": {"version": 1, "book_enriched": True},
        })
        decoded = AgentResults.decode(raw, item_id="item-1")
        assert decoded.persistence is None
        assert decoded.metadata == MetadataEntry(book_enriched=True)
