"""Shared pytest fixtures for the extraction test suite."""

from __future__ import annotations

import json
from pathlib import Path
import sys
from typing import List

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from icd_extractor.config import ExtractorConfig
from icd_extractor.extractor import ExtractionEngine
from icd_extractor.loader import load_terminology
from icd_extractor.terminology import ReferenceEntry, TerminologyIndex


@pytest.fixture(scope="session")
def project_root() -> Path:
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def config() -> ExtractorConfig:
    return ExtractorConfig()


@pytest.fixture(scope="session")
def small_index() -> TerminologyIndex:
    return TerminologyIndex(
        [
            ReferenceEntry("E11.9", "Type 2 diabetes mellitus without complications", "Endocrine"),
            ReferenceEntry("I10", "Essential (primary) hypertension", "Circulatory"),
        ]
    )


@pytest.fixture(scope="session")
def sample_index(project_root: Path) -> TerminologyIndex:
    return load_terminology(project_root / "data" / "icd10_sample.csv")


@pytest.fixture()
def engine(small_index: TerminologyIndex) -> ExtractionEngine:
    return ExtractionEngine(small_index)


@pytest.fixture(scope="session")
def annotated_notes(project_root: Path) -> List[dict]:
    path = project_root / "data" / "annotated_notes.json"
    if not path.exists():
        raise FileNotFoundError(f"Annotated dataset missing: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError("Annotated dataset must be a list of documents.")
    return data
