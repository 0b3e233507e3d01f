from __future__ import annotations

import logging

import pytest

from icd_extractor import terminology
from icd_extractor.terminology import (
    DEFAULT_REFERENCE_SET,
    InitializationError,
    ReferenceEntry,
    TerminologyIndex,
    normalize_text,
)


def test_exact_description_word_has_zero_distance(small_index: TerminologyIndex) -> None:
    diabetes = small_index.best("diabetes")
    hypertension = small_index.best("Hypertension")

    assert diabetes is not None and diabetes.entry.code == "E11.9"
    assert diabetes.distance == pytest.approx(0.0)
    assert diabetes.field == "description"
    assert hypertension is not None and hypertension.entry.code == "I10"
    assert hypertension.confidence == pytest.approx(1.0)


def test_code_lookup_prefers_code_field(small_index: TerminologyIndex) -> None:
    candidate = small_index.best("i10")

    assert candidate is not None
    assert candidate.entry.code == "I10"
    assert candidate.field == "code"
    assert candidate.distance == pytest.approx(0.0)


def test_unrelated_words_are_far(small_index: TerminologyIndex) -> None:
    candidate = small_index.best("Patient")

    assert candidate is not None
    assert candidate.distance >= 0.5


def test_extra_words_in_query_are_penalised(small_index: TerminologyIndex) -> None:
    phrase = small_index.best("primary hypertension")
    padded = small_index.best("primary hypertension noted")

    assert phrase is not None and phrase.distance < 0.1
    assert padded is not None and padded.distance > 0.25


def test_ties_follow_insertion_order() -> None:
    index = TerminologyIndex([ReferenceEntry("A1", "Cough"), ReferenceEntry("A2", "Cough")])

    assert [candidate.entry.code for candidate in index.query("cough")] == ["A1", "A2"]


def test_query_respects_limit_and_max_distance() -> None:
    index = TerminologyIndex(DEFAULT_REFERENCE_SET)

    results = index.query("unspecified", limit=2, max_distance=0.4)

    assert [candidate.entry.code for candidate in results] == ["J45.909", "L20.9"]
    assert all(candidate.distance <= 0.4 for candidate in index.query("unspecified", max_distance=0.4))


def test_search_uses_instant_search_defaults() -> None:
    index = TerminologyIndex(DEFAULT_REFERENCE_SET)

    results = index.search("diabet")

    assert results and results[0].entry.code == "E11.9"
    assert len(results) <= 20
    assert all(candidate.distance <= 0.4 for candidate in results)
    assert index.search("") == []
    assert index.search("   ") == []


def test_rows_without_code_are_dropped_and_defaults_applied() -> None:
    index = TerminologyIndex(
        [
            {"code": "  ", "description": "Ghost row"},
            {"code": "A00", "description": ""},
            {"description": "No code at all"},
            ReferenceEntry("B00", "Herpes simplex", "Infectious"),
        ]
    )

    assert len(index) == 2
    first, second = index.entries
    assert first == ReferenceEntry("A00", "No description", "General")
    assert second.category == "Infectious"
    assert not index.used_fallback


def test_empty_input_falls_back_to_default_set(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="icd_extractor.terminology"):
        index = TerminologyIndex([])

    assert index.used_fallback
    assert len(index) == len(DEFAULT_REFERENCE_SET) == 15
    assert "default set" in caplog.text


def test_missing_fallback_raises_initialization_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(terminology, "DEFAULT_REFERENCE_SET", ())

    with pytest.raises(InitializationError):
        TerminologyIndex(None)
    assert issubclass(InitializationError, RuntimeError)


def test_normalize_text() -> None:
    assert normalize_text("  Essential\t(Primary)\n Hypertension ") == "essential (primary) hypertension"
    assert normalize_text("") == ""
