"""Fuzzy-searchable index over the coded reference set."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from rapidfuzz import fuzz, process

logger = logging.getLogger(__name__)

_WORD_PATTERN = re.compile(r"[a-z0-9]+")
_WHITESPACE = re.compile(r"\s+")

DEFAULT_CATEGORY = "General"
DEFAULT_DESCRIPTION = "No description"
FIELD_CODE = "code"
FIELD_DESCRIPTION = "description"


class InitializationError(RuntimeError):
    """Raised when no usable reference set is available, not even the embedded one."""


@dataclass(frozen=True)
class ReferenceEntry:
    """One coded concept of the terminology."""

    code: str
    description: str
    category: str = DEFAULT_CATEGORY

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> Optional["ReferenceEntry"]:
        """Build an entry from a loose mapping; ``None`` when the code is missing."""
        code = str(row.get("code") or "").strip()
        if not code:
            return None
        description = str(row.get("description") or "").strip() or DEFAULT_DESCRIPTION
        category = str(row.get("category") or "").strip() or DEFAULT_CATEGORY
        return cls(code=code, description=description, category=category)


@dataclass(frozen=True)
class MatchCandidate:
    """A scored reference entry returned by :meth:`TerminologyIndex.query`."""

    entry: ReferenceEntry
    distance: float
    field: str = FIELD_DESCRIPTION

    @property
    def confidence(self) -> float:
        return 1.0 - self.distance


DEFAULT_REFERENCE_SET: Tuple[ReferenceEntry, ...] = (
    ReferenceEntry("E11.9", "Type 2 diabetes mellitus without complications", "Endocrine"),
    ReferenceEntry("I10", "Essential (primary) hypertension", "Circulatory"),
    ReferenceEntry("J45.909", "Unspecified asthma, uncomplicated", "Respiratory"),
    ReferenceEntry("M54.5", "Low back pain", "Musculoskeletal"),
    ReferenceEntry("R51", "Headache", "Symptoms"),
    ReferenceEntry(
        "Z00.00",
        "Encounter for general adult medical examination without abnormal findings",
        "Factors",
    ),
    ReferenceEntry("K21.9", "Gastro-esophageal reflux disease without esophagitis", "Digestive"),
    ReferenceEntry("F41.1", "Generalized anxiety disorder", "Mental"),
    ReferenceEntry("N39.0", "Urinary tract infection, site not specified", "Genitourinary"),
    ReferenceEntry("H10.1", "Acute atopic conjunctivitis", "Eye"),
    ReferenceEntry("L20.9", "Atopic dermatitis, unspecified", "Skin"),
    ReferenceEntry("R05", "Cough", "Symptoms"),
    ReferenceEntry("R50.9", "Fever, unspecified", "Symptoms"),
    ReferenceEntry("B34.9", "Viral infection, unspecified", "Infectious"),
    ReferenceEntry("E78.5", "Hyperlipidemia, unspecified", "Endocrine"),
)


def normalize_text(text: str) -> str:
    """Case-fold, trim and collapse whitespace."""
    return _WHITESPACE.sub(" ", (text or "").casefold().strip())


@dataclass(frozen=True)
class _IndexedField:
    text: str
    words: Tuple[str, ...]

    @classmethod
    def build(cls, raw: str) -> "_IndexedField":
        normalized = normalize_text(raw)
        return cls(text=normalized, words=tuple(_WORD_PATTERN.findall(normalized)))


@dataclass(frozen=True)
class _IndexedEntry:
    entry: ReferenceEntry
    code: _IndexedField
    description: _IndexedField


class TerminologyIndex:
    """Immutable fuzzy index over a reference set.

    The index is built once and only read afterwards, so a single instance can
    be shared by every extraction session and by instant search without
    locking.

    Distances combine two rapidfuzz measures: a directional character-level
    score (the query is looked up inside the field) and a word-level floor (the
    weakest query word's best match among the field's words). Code matches are
    scaled by ``code_weight`` so that they win against description matches of
    similar distance.
    """

    def __init__(
        self,
        entries: Iterable[ReferenceEntry | Mapping[str, Any]] | None,
        *,
        code_weight: float = 0.9,
    ) -> None:
        self.code_weight = code_weight
        usable = self._coerce_entries(entries or ())
        self.used_fallback = not usable
        if not usable:
            logger.warning("No usable reference rows supplied, using the embedded default set")
            usable = list(DEFAULT_REFERENCE_SET)
        if not usable:
            raise InitializationError("Embedded reference set is empty")

        self._entries: Tuple[ReferenceEntry, ...] = tuple(usable)
        self._indexed: Tuple[_IndexedEntry, ...] = tuple(
            _IndexedEntry(
                entry=entry,
                code=_IndexedField.build(entry.code),
                description=_IndexedField.build(entry.description),
            )
            for entry in self._entries
        )
        logger.info("Terminology index built with %d entries", len(self._entries))

    @staticmethod
    def _coerce_entries(entries: Iterable[Any]) -> List[ReferenceEntry]:
        usable: List[ReferenceEntry] = []
        dropped = 0
        for item in entries:
            if isinstance(item, ReferenceEntry):
                entry: Optional[ReferenceEntry] = item if item.code.strip() else None
            elif isinstance(item, Mapping):
                entry = ReferenceEntry.from_mapping(item)
            else:
                entry = None
            if entry is None:
                dropped += 1
                continue
            usable.append(entry)
        if dropped:
            logger.debug("Dropped %d reference rows without a code", dropped)
        return usable

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Tuple[ReferenceEntry, ...]:
        return self._entries

    def query(
        self,
        text: str,
        *,
        limit: int | None = None,
        max_distance: float = 1.0,
    ) -> List[MatchCandidate]:
        """Score every entry against ``text`` and return the best first.

        Ties are broken by the entries' insertion order, so results are
        deterministic for an unchanged index.
        """
        needle = normalize_text(text)
        if not needle:
            return []
        needle_words = tuple(_WORD_PATTERN.findall(needle))
        min_score = max(0.0, (1.0 - max_distance) * 100.0)

        scored: List[Tuple[float, int, MatchCandidate]] = []
        for position, indexed in enumerate(self._indexed):
            description_distance = _field_distance(needle, needle_words, indexed.description, min_score)
            code_distance = _field_distance(needle, needle_words, indexed.code, min_score)
            if code_distance < 1.0:
                code_distance *= self.code_weight
            if code_distance <= description_distance:
                distance, field = code_distance, FIELD_CODE
            else:
                distance, field = description_distance, FIELD_DESCRIPTION
            if distance > max_distance:
                continue
            scored.append((distance, position, MatchCandidate(indexed.entry, distance, field)))

        scored.sort(key=lambda item: (item[0], item[1]))
        candidates = [candidate for _distance, _position, candidate in scored]
        if limit is not None:
            candidates = candidates[:limit]
        return candidates

    def best(self, text: str) -> Optional[MatchCandidate]:
        """Return the closest entry, or ``None`` for an empty query."""
        results = self.query(text, limit=1)
        return results[0] if results else None

    def search(self, text: str, *, limit: int = 20, max_distance: float = 0.4) -> List[MatchCandidate]:
        """Instant-search lookup: one fuzzy query, no phrase scanning."""
        return self.query(text, limit=limit, max_distance=max_distance)


def _field_distance(
    needle: str,
    needle_words: Tuple[str, ...],
    field: _IndexedField,
    min_score: float,
) -> float:
    if not field.text or not needle_words:
        return 1.0

    if len(needle) <= len(field.text):
        char_score = fuzz.partial_ratio(needle, field.text, score_cutoff=min_score)
    else:
        char_score = fuzz.ratio(needle, field.text, score_cutoff=min_score)
    if not char_score:
        return 1.0

    weakest = 100.0
    for word in needle_words:
        best = process.extractOne(word, field.words, scorer=fuzz.ratio)
        word_score = best[1] if best else 0.0
        weakest = min(weakest, word_score)
        if weakest < min_score:
            return 1.0

    similarity = min(char_score, weakest) / 100.0
    return 1.0 - similarity


__all__ = [
    "DEFAULT_REFERENCE_SET",
    "InitializationError",
    "MatchCandidate",
    "ReferenceEntry",
    "TerminologyIndex",
    "normalize_text",
]
