from __future__ import annotations

import asyncio
import logging
from typing import List

import pytest

from icd_extractor.config import ExtractorConfig
from icd_extractor.extractor import ExtractionEngine, assemble_entities
from icd_extractor.matcher import Entity
from icd_extractor.terminology import TerminologyIndex

NOTES = [
    "Patient has diabetes and hypertension.",
    "Complains of headache and cough for three days. Low grade fever overnight.",
    "Known hyperlipidemia, started statin. History of generalized anxiety disorder.",
    "Shortness of breath and chest pain on exertion; atrial fibrillation suspected.",
]


@pytest.fixture()
def sample_engine(sample_index: TerminologyIndex) -> ExtractionEngine:
    return ExtractionEngine(sample_index)


@pytest.mark.parametrize("text", NOTES)
def test_entities_are_sorted_non_overlapping_and_faithful(sample_engine: ExtractionEngine, text: str) -> None:
    progress: List[int] = []

    entities = sample_engine.extract(text, progress.append)

    assert entities == sorted(entities, key=lambda entity: entity.start)
    for left, right in zip(entities, entities[1:]):
        assert left.end <= right.start
    for entity in entities:
        assert text[entity.start : entity.end] == entity.term
        assert 0.0 <= entity.confidence <= 1.0
    assert progress == sorted(progress)
    assert progress[-1] == 100


def test_extraction_is_deterministic(sample_engine: ExtractionEngine) -> None:
    text = " ".join(NOTES)

    assert sample_engine.extract(text) == sample_engine.extract(text)


def test_scenario_note(engine: ExtractionEngine) -> None:
    entities = engine.extract("Patient has diabetes and hypertension.")

    assert [(entity.term, entity.start, entity.end, entity.code) for entity in entities] == [
        ("diabetes", 12, 20, "E11.9"),
        ("hypertension", 25, 37, "I10"),
    ]


@pytest.mark.parametrize("text", ["", "   \n\t ", "and the but for with", "a b c of to is"])
def test_degenerate_input_yields_nothing(engine: ExtractionEngine, text: str) -> None:
    progress: List[int] = []

    assert engine.extract(text, progress.append) == []
    assert progress == [100]


def test_long_input_is_truncated(small_index: TerminologyIndex, caplog: pytest.LogCaptureFixture) -> None:
    engine = ExtractionEngine(small_index, ExtractorConfig(max_text_length=20))

    with caplog.at_level(logging.WARNING, logger="icd_extractor.extractor"):
        entities = engine.extract("Patient has diabetes and hypertension.")

    assert [entity.term for entity in entities] == ["diabetes"]
    assert "truncated" in caplog.text


def test_superseded_session_stops_emitting(small_index: TerminologyIndex) -> None:
    engine = ExtractionEngine(small_index, ExtractorConfig(batch_size=1))
    session = engine.new_session()
    progress: List[int] = []

    def on_progress(percent: int) -> None:
        progress.append(percent)
        engine.new_session()

    result = session.run("diabetes hypertension", on_progress)

    assert result is None
    assert progress == [50]
    assert not session.is_current()


def test_session_superseded_before_start_emits_nothing(engine: ExtractionEngine) -> None:
    stale = engine.new_session()
    current = engine.new_session()
    progress: List[int] = []

    assert stale.run("diabetes", progress.append) is None
    assert stale.run("   ", progress.append) is None
    assert progress == []
    assert current.is_current()
    assert current.sequence == stale.sequence + 1


def test_async_extraction_matches_sync(engine: ExtractionEngine) -> None:
    text = "Patient has diabetes and hypertension."

    assert asyncio.run(engine.extract_async(text)) == engine.extract(text)


def test_newer_async_run_supersedes_older(small_index: TerminologyIndex) -> None:
    engine = ExtractionEngine(small_index, ExtractorConfig(batch_size=1))
    first_progress: List[int] = []

    async def scenario():
        first = asyncio.create_task(engine.extract_async("diabetes hypertension", first_progress.append))
        await asyncio.sleep(0)
        second = await engine.extract_async("hypertension")
        return await first, second

    first_result, second_result = asyncio.run(scenario())

    assert first_result is None
    assert first_progress == [50]
    assert [entity.code for entity in second_result] == ["I10"]


def test_explicit_sequence_never_moves_backwards(engine: ExtractionEngine) -> None:
    newest = engine.new_session(10)
    older = engine.new_session(3)

    assert engine.current_sequence == 10
    assert newest.is_current()
    assert not older.is_current()


def test_assemble_entities_orders_by_offset() -> None:
    late = Entity("cough", 20, 25, "R05", "Cough", 1.0)
    early = Entity("fever", 0, 5, "R50.9", "Fever, unspecified", 0.9)

    assert assemble_entities([late, early]) == [early, late]


def test_engine_search_uses_configured_limits(sample_index: TerminologyIndex) -> None:
    engine = ExtractionEngine(sample_index, ExtractorConfig(search_limit=3, search_threshold=0.3))

    results = engine.search("unspecified")

    assert len(results) == 3
    assert all(candidate.distance <= 0.3 for candidate in results)
    assert engine.search("") == []
