"""Score extracted entities against gold annotations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence


@dataclass(frozen=True)
class _Span:
    """Coded span with half-open offsets."""

    code: str
    start: int
    end: int

    def overlaps(self, other: "_Span") -> bool:
        return self.start < other.end and other.start < self.end


def _to_span(record: Any) -> _Span:
    """Accept an :class:`~icd_extractor.matcher.Entity` or a plain mapping."""

    if hasattr(record, "to_dict"):
        record = record.to_dict()
    if not isinstance(record, Mapping):
        raise TypeError(f"Unsupported entity record: {type(record).__name__}")

    missing = sorted(key for key in ("code", "start", "end") if key not in record)
    if missing:
        raise ValueError(f"Entity record is missing required keys: {missing}")

    code = str(record["code"]).strip().upper()
    start = int(record["start"])
    end = int(record["end"])
    if start >= end:
        raise ValueError(f"Invalid entity span for code {code}: start={start}, end={end}")
    return _Span(code=code, start=start, end=end)


def _scores(true_positive: int, predicted: int, gold: int) -> dict[str, float]:
    false_positive = predicted - true_positive
    false_negative = gold - true_positive
    precision = true_positive / predicted if predicted else 0.0
    recall = true_positive / gold if gold else 0.0
    f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0
    return {
        "precision": precision,
        "recall": recall,
        "f1": f1,
        "tp": float(true_positive),
        "fp": float(false_positive),
        "fn": float(false_negative),
    }


class EntityDetectionValidator:
    """Precision/recall of extracted entities at three levels of strictness.

    * ``exact_match``: same offsets and same code.
    * ``partial_match``: overlapping offsets and same code.
    * ``code_accuracy``: of the predictions overlapping any gold span, the
      share that carries the gold code.
    """

    def calculate_metrics(
        self,
        predicted_entities: Sequence[Any],
        gold_entities: Sequence[Any],
    ) -> dict[str, object]:
        predicted = [_to_span(entity) for entity in predicted_entities]
        gold = [_to_span(entity) for entity in gold_entities]

        return {
            "exact_match": self._exact(predicted, gold),
            "partial_match": self._partial(predicted, gold),
            "code_accuracy": self._code_accuracy(predicted, gold),
            "entity_count": len(predicted),
            "gold_count": len(gold),
        }

    @staticmethod
    def _exact(predicted: List[_Span], gold: List[_Span]) -> dict[str, float]:
        remaining = {(span.start, span.end, span.code): idx for idx, span in enumerate(gold)}
        matched = 0
        for span in predicted:
            if remaining.pop((span.start, span.end, span.code), None) is not None:
                matched += 1
        return _scores(matched, len(predicted), len(gold))

    @staticmethod
    def _partial(predicted: List[_Span], gold: List[_Span]) -> dict[str, float]:
        used: set[int] = set()
        for span in predicted:
            for idx, candidate in enumerate(gold):
                if idx in used or candidate.code != span.code:
                    continue
                if span.overlaps(candidate):
                    used.add(idx)
                    break
        return _scores(len(used), len(predicted), len(gold))

    @staticmethod
    def _code_accuracy(predicted: List[_Span], gold: List[_Span]) -> dict[str, float]:
        located = 0
        correct = 0
        for span in predicted:
            overlapping = [candidate for candidate in gold if span.overlaps(candidate)]
            if not overlapping:
                continue
            located += 1
            if any(candidate.code == span.code for candidate in overlapping):
                correct += 1
        return {
            "accuracy": correct / located if located else 0.0,
            "located": float(located),
            "correct": float(correct),
        }
