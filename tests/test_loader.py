from __future__ import annotations

import logging
from pathlib import Path

import pytest

from icd_extractor.config import ExtractorConfig
from icd_extractor.loader import load_reference_entries, load_terminology, resolve_columns
from icd_extractor.terminology import ReferenceEntry


def _write(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


def test_reads_icd_export_and_drops_rows_without_code(tmp_path: Path) -> None:
    source = _write(
        tmp_path / "icd.csv",
        "ICDCode,Description\n"
        "E11.9,Type 2 diabetes mellitus without complications\n"
        ",Orphan description\n"
        "I10,\n",
    )

    entries = load_reference_entries(source)

    assert entries == [
        ReferenceEntry("E11.9", "Type 2 diabetes mellitus without complications", "General"),
        ReferenceEntry("I10", "No description", "General"),
    ]


def test_header_aliases_are_case_and_space_insensitive(tmp_path: Path) -> None:
    source = _write(
        tmp_path / "aliases.csv",
        " Code ,TITLE,Chapter\n"
        'R05,Cough,Symptoms\n'
        'J18.9,"Pneumonia, unspecified organism",Respiratory\n',
    )

    entries = load_reference_entries(source)

    assert [entry.code for entry in entries] == ["R05", "J18.9"]
    assert entries[1].description == "Pneumonia, unspecified organism"
    assert entries[1].category == "Respiratory"


def test_resolve_columns_prefers_first_alias() -> None:
    columns = resolve_columns(["desc", "icd10", "Description", "group"])

    assert columns == {"code": "icd10", "description": "Description", "category": "group"}


@pytest.mark.parametrize(
    "content",
    [
        "",
        "name,notes\nfoo,bar\n",
        "code,description\n",
    ],
)
def test_unusable_files_yield_no_entries(tmp_path: Path, content: str, caplog: pytest.LogCaptureFixture) -> None:
    source = _write(tmp_path / "broken.csv", content)

    with caplog.at_level(logging.WARNING, logger="icd_extractor.loader"):
        assert load_reference_entries(source) == []
    assert caplog.records


def test_undecodable_file_yields_no_entries(tmp_path: Path) -> None:
    source = tmp_path / "binary.csv"
    source.write_bytes(b"code,description\n\xff\xfe\x00bad\n")

    assert load_reference_entries(source) == []


def test_missing_source_falls_back_to_default_set(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        index = load_terminology(tmp_path / "absent.csv")

    assert index.used_fallback
    assert len(index) == 15
    assert "not found" in caplog.text


def test_configured_path_is_resolved_from_project_root() -> None:
    config = ExtractorConfig(terminology_path="data/icd10_sample.csv", code_weight=0.8)

    index = load_terminology(config=config)

    assert len(index) == 24
    assert index.code_weight == 0.8
    assert not index.used_fallback


def test_no_configured_path_uses_default_set() -> None:
    index = load_terminology()

    assert index.used_fallback
    assert len(index) == 15
