"""Fuzzy extraction of ICD-10 coded entities from clinical free text."""

from .config import ExtractorConfig, load_config
from .extractor import Entity, ExtractionEngine, ExtractionSession, assemble_entities
from .loader import load_reference_entries, load_terminology
from .matcher import PhraseMatcher
from .terminology import (
    DEFAULT_REFERENCE_SET,
    InitializationError,
    MatchCandidate,
    ReferenceEntry,
    TerminologyIndex,
)
from .tokenizer import Token, tokenize
from .worker import AnalyzerWorker, MessageType, Request, Response

__version__ = "0.1.0"

__all__ = [
    "AnalyzerWorker",
    "DEFAULT_REFERENCE_SET",
    "Entity",
    "ExtractionEngine",
    "ExtractionSession",
    "ExtractorConfig",
    "InitializationError",
    "MatchCandidate",
    "MessageType",
    "PhraseMatcher",
    "ReferenceEntry",
    "Request",
    "Response",
    "TerminologyIndex",
    "Token",
    "assemble_entities",
    "load_config",
    "load_reference_entries",
    "load_terminology",
    "tokenize",
]
