"""Load reference entries from a CSV terminology export."""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import ExtractorConfig
from .terminology import ReferenceEntry, TerminologyIndex

logger = logging.getLogger(__name__)

COLUMN_ALIASES: Dict[str, tuple[str, ...]] = {
    "code": ("icdcode", "icd_code", "code", "icd10", "icd10code"),
    "description": ("description", "desc", "long_description", "title"),
    "category": ("category", "chapter", "group"),
}


def resolve_columns(header: Sequence[str]) -> Dict[str, str]:
    """Map canonical field names to the header columns that carry them.

    Header names are compared case-insensitively after trimming; the first
    column matching any alias wins.
    """
    normalized = {}
    for column in header:
        if column is None:
            continue
        normalized.setdefault(column.strip().lower(), column)

    resolved: Dict[str, str] = {}
    for field_name, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in normalized:
                resolved[field_name] = normalized[alias]
                break
    return resolved


def load_reference_entries(path: str | Path | None) -> List[ReferenceEntry]:
    """Read reference entries from ``path``.

    Missing, unreadable or unparsable files yield an empty list and a
    warning, leaving the fallback decision to :class:`TerminologyIndex`.
    Rows without a code are dropped.
    """
    if path is None:
        logger.warning("No terminology source configured")
        return []

    resolved = Path(path)
    if not resolved.exists():
        logger.warning("Terminology source not found: %s", resolved)
        return []

    try:
        with resolved.open("r", encoding="utf-8", newline="") as handle:
            reader = csv.DictReader(handle)
            columns = resolve_columns(reader.fieldnames or [])
            if "code" not in columns:
                logger.warning("Terminology source %s has no code column", resolved)
                return []
            entries, dropped = _read_rows(reader, columns)
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        logger.warning("Could not read terminology source %s: %s", resolved, exc)
        return []

    if dropped:
        logger.debug("Dropped %d rows without a code from %s", dropped, resolved)
    if not entries:
        logger.warning("Terminology source %s contains no usable rows", resolved)
    return entries


def _read_rows(reader: csv.DictReader, columns: Dict[str, str]) -> tuple[List[ReferenceEntry], int]:
    entries: List[ReferenceEntry] = []
    dropped = 0
    for row in reader:
        entry = ReferenceEntry.from_mapping(
            {field_name: row.get(column) for field_name, column in columns.items()}
        )
        if entry is None:
            dropped += 1
            continue
        entries.append(entry)
    return entries, dropped


def load_terminology(
    path: str | Path | None = None,
    config: Optional[ExtractorConfig] = None,
) -> TerminologyIndex:
    """Build a :class:`TerminologyIndex` from a CSV file or the embedded set.

    When ``path`` is omitted the configured ``terminology_path`` is used.
    """
    config = config or ExtractorConfig()
    source = Path(path) if path is not None else config.resolved_terminology_path()
    entries = load_reference_entries(source)
    return TerminologyIndex(entries, code_weight=config.code_weight)


__all__ = ["COLUMN_ALIASES", "load_reference_entries", "load_terminology", "resolve_columns"]
