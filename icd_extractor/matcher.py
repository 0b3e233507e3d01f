"""Greedy longest-phrase-first matcher over a terminology index."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from .config import ExtractorConfig
from .terminology import MatchCandidate, TerminologyIndex
from .tokenizer import Token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Entity:
    """A coded span of the analysed text."""

    term: str
    start: int
    end: int
    code: str
    description: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ScanProgress:
    """Progress reported at a batch boundary."""

    processed: int
    total: int
    percent: int


@dataclass
class PhraseScan:
    """One cooperative pass of :class:`PhraseMatcher` over a token sequence.

    Iterating the scan processes start positions batch by batch and yields a
    :class:`ScanProgress` after each batch; the host may suspend between
    items. Accepted entities accumulate in :attr:`entities` in scan order.
    """

    matcher: "PhraseMatcher"
    text: str
    tokens: Sequence[Token]
    entities: List[Entity] = field(default_factory=list)
    covered: Set[int] = field(default_factory=set)
    position: int = 0
    finished: bool = False

    def __iter__(self) -> Iterator[ScanProgress]:
        total = len(self.tokens)
        if total == 0:
            self.finished = True
            yield ScanProgress(processed=0, total=0, percent=100)
            return

        batch_size = self.matcher.batch_size
        while self.position < total:
            batch_end = min(self.position + batch_size, total)
            for index in range(self.position, batch_end):
                if index not in self.covered:
                    self._advance(index)
            self.position = batch_end
            if self.position == total:
                self.finished = True
            yield ScanProgress(processed=batch_end, total=total, percent=batch_end * 100 // total)

    def _advance(self, index: int) -> None:
        accepted = self.matcher.match_at(self.tokens, index, self.covered)
        if accepted is None:
            return

        length, candidate = accepted
        first = self.tokens[index]
        last = self.tokens[index + length - 1]
        logger.debug(
            "Accepted %d-token phrase at %d as %s (distance %.3f, %s)",
            length,
            first.start,
            candidate.entry.code,
            candidate.distance,
            candidate.field,
        )
        self.entities.append(
            Entity(
                term=self.text[first.start : last.end],
                start=first.start,
                end=last.end,
                code=candidate.entry.code,
                description=candidate.entry.description,
                confidence=candidate.confidence,
            )
        )
        self.covered.update(range(index, index + length))


class PhraseMatcher:
    """Scan tokens left to right, trying the longest phrase window first.

    At every uncovered start position windows of ``max_phrase_length`` down to
    one token are looked up in the index. A window is accepted when its best
    candidate's distance is strictly below ``single_token_threshold`` (one
    token) or ``multi_token_threshold`` (several tokens).

    With ``prefer_longest`` (the default) the first passing window wins, so a
    longer phrase beats a shorter one even when the shorter one scores
    better. Disabling it accepts the passing window with the smallest
    distance instead, longer windows winning ties.
    """

    def __init__(
        self,
        index: TerminologyIndex,
        *,
        max_phrase_length: int = 6,
        single_token_threshold: float = 0.15,
        multi_token_threshold: float = 0.25,
        batch_size: int = 50,
        min_single_query_length: int = 4,
        prefer_longest: bool = True,
    ) -> None:
        if max_phrase_length < 1:
            raise ValueError(f"max_phrase_length must be >= 1, received {max_phrase_length}.")
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, received {batch_size}.")
        self.index = index
        self.max_phrase_length = max_phrase_length
        self.single_token_threshold = single_token_threshold
        self.multi_token_threshold = multi_token_threshold
        self.batch_size = batch_size
        self.min_single_query_length = min_single_query_length
        self.prefer_longest = prefer_longest

    @classmethod
    def from_config(cls, index: TerminologyIndex, config: ExtractorConfig) -> "PhraseMatcher":
        return cls(
            index,
            max_phrase_length=config.max_phrase_length,
            single_token_threshold=config.single_token_threshold,
            multi_token_threshold=config.multi_token_threshold,
            batch_size=config.batch_size,
            min_single_query_length=config.min_single_query_length,
            prefer_longest=config.prefer_longest,
        )

    def scan(self, text: str, tokens: Sequence[Token]) -> PhraseScan:
        return PhraseScan(matcher=self, text=text, tokens=tokens)

    def match(self, text: str, tokens: Sequence[Token]) -> List[Entity]:
        """Run a complete scan without suspending and return entities in scan order."""
        scan = self.scan(text, tokens)
        for _progress in scan:
            pass
        return scan.entities

    def threshold_for(self, length: int) -> float:
        return self.single_token_threshold if length == 1 else self.multi_token_threshold

    def match_at(
        self,
        tokens: Sequence[Token],
        index: int,
        covered: Set[int],
    ) -> Optional[Tuple[int, MatchCandidate]]:
        """Return ``(window_length, candidate)`` accepted at ``index``, if any."""
        total = len(tokens)
        chosen: Optional[Tuple[int, MatchCandidate]] = None

        for length in range(self.max_phrase_length, 0, -1):
            if index + length > total:
                continue
            if any(position in covered for position in range(index, index + length)):
                continue
            if length == 1 and len(tokens[index].text) < self.min_single_query_length:
                continue

            query = " ".join(token.text for token in tokens[index : index + length])
            candidate = self.index.best(query)
            if candidate is None or candidate.distance >= self.threshold_for(length):
                continue

            if self.prefer_longest:
                return length, candidate
            if chosen is None or candidate.distance < chosen[1].distance:
                chosen = (length, candidate)

        return chosen


__all__ = ["Entity", "PhraseMatcher", "PhraseScan", "ScanProgress"]
