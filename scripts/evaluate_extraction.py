#!/usr/bin/env python
"""Evaluate extracted entities against a labelled dataset."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from icd_extractor.config import DEFAULT_CONFIG_PATH, load_config
from icd_extractor.extractor import ExtractionEngine
from icd_extractor.loader import load_terminology
from icd_extractor.testing_framework import EntityDetectionValidator


def _load_dataset(path: Path) -> List[Dict[str, Any]]:
    if not path.exists():
        raise FileNotFoundError(f"Dataset file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, list):
        raise ValueError("Dataset must be a list of records with 'text' and 'entities'.")
    return data


def evaluate_dataset(
    samples: Sequence[Dict[str, Any]],
    engine: ExtractionEngine,
) -> Tuple[Dict[str, object], List[Dict[str, Any]]]:
    validator = EntityDetectionValidator()
    all_predicted: List[Dict[str, Any]] = []
    all_gold: List[Dict[str, Any]] = []
    per_sample: List[Dict[str, Any]] = []
    offset = 0

    for sample in samples:
        text = str(sample.get("text") or "")
        gold = list(sample.get("entities") or [])
        predicted = [entity.to_dict() for entity in engine.extract(text)]

        per_sample.append(
            {
                "text": text,
                "predicted": predicted,
                "gold": gold,
                "metrics": validator.calculate_metrics(predicted, gold),
            }
        )

        # Shift spans so that samples never overlap in the pooled metrics.
        all_predicted.extend(_shifted(predicted, offset))
        all_gold.extend(_shifted(gold, offset))
        offset += len(text) + 1

    return validator.calculate_metrics(all_predicted, all_gold), per_sample


def _shifted(records: Sequence[Dict[str, Any]], offset: int) -> List[Dict[str, Any]]:
    return [
        {**record, "start": int(record["start"]) + offset, "end": int(record["end"]) + offset}
        for record in records
    ]


def _print_metrics(metrics: Dict[str, Any]) -> None:
    exact = metrics["exact_match"]
    partial = metrics["partial_match"]
    print("Extraction evaluation metrics")
    print("-----------------------------")
    print(f"Exact   P/R/F1 : {exact['precision']:.3f} / {exact['recall']:.3f} / {exact['f1']:.3f}")
    print(f"Partial P/R/F1 : {partial['precision']:.3f} / {partial['recall']:.3f} / {partial['f1']:.3f}")
    print(f"Code accuracy  : {metrics['code_accuracy']['accuracy']:.3f}")
    print(f"Predicted={metrics['entity_count']} Gold={metrics['gold_count']}")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--dataset",
        type=Path,
        default=PROJECT_ROOT / "data" / "annotated_notes.json",
        help="Evaluation dataset with 'text' and 'entities' fields.",
    )
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Extractor YAML config.")
    parser.add_argument("--terminology", type=Path, help="CSV terminology source.")
    parser.add_argument("--output", type=Path, default=None, help="Optional path for the full JSON report.")
    args = parser.parse_args()

    config = load_config(args.config)
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(threadName)s - %(levelname)s - %(message)s",
    )

    engine = ExtractionEngine(load_terminology(args.terminology, config), config)
    metrics, sample_details = evaluate_dataset(_load_dataset(args.dataset), engine)
    _print_metrics(metrics)

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        with args.output.open("w", encoding="utf-8") as handle:
            json.dump({"metrics": metrics, "samples": sample_details}, handle, ensure_ascii=False, indent=2)
        print(f"Wrote detailed report to {args.output}")


if __name__ == "__main__":
    main()
