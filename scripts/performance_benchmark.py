#!/usr/bin/env python
"""Benchmark extraction throughput and memory across matcher batch sizes."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Sequence

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from icd_extractor.config import DEFAULT_CONFIG_PATH, load_config
from icd_extractor.loader import load_terminology
from icd_extractor.testing_framework import PerformanceBenchmark


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Extractor YAML config.",
    )
    parser.add_argument(
        "--terminology",
        type=Path,
        help="CSV terminology source; defaults to the configured path.",
    )
    parser.add_argument(
        "--documents",
        type=Path,
        default=PROJECT_ROOT / "data" / "test_docs",
        help="Directory of .txt files or JSON(.l) file containing benchmark texts.",
    )
    parser.add_argument(
        "--batch-sizes",
        type=int,
        nargs="+",
        default=(10, 50, 200),
        help="Matcher batch sizes to evaluate.",
    )
    parser.add_argument(
        "--repeat",
        type=int,
        default=1,
        help="Repeat the document set this many times.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("reports/performance_benchmark.json"),
        help="Where to write the benchmark JSON report.",
    )
    parser.add_argument(
        "--baseline",
        type=Path,
        help="Optional baseline JSON file for comparison.",
    )
    return parser.parse_args()


def load_documents(path: Path) -> List[str]:
    if not path.exists():
        raise FileNotFoundError(f"Benchmark source not found: {path}")

    if path.is_dir():
        documents = [
            text
            for text in (file.read_text(encoding="utf-8").strip() for file in sorted(path.glob("*.txt")))
            if text
        ]
        if not documents:
            raise ValueError(f"No .txt documents found in directory: {path}")
        return documents

    suffix = path.suffix.lower()
    if suffix == ".jsonl":
        records = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]
    elif suffix == ".json":
        data = json.loads(path.read_text(encoding="utf-8"))
        records = data if isinstance(data, list) else [data]
    else:
        raise ValueError(f"Unsupported documents source: {path}")

    documents = _extract_texts(records)
    if not documents:
        raise ValueError(f"No document texts found in {path}")
    return documents


def _extract_texts(items: Sequence[object]) -> List[str]:
    texts: List[str] = []
    for item in items:
        if isinstance(item, str):
            text = item
        elif isinstance(item, dict):
            text = str(item.get("text") or "")
        else:
            raise ValueError(f"Unsupported JSON record: {item!r}")
        if text.strip():
            texts.append(text)
    return texts


def compare_results(
    current: Dict[int, Dict[str, float]], baseline: Dict[str, dict] | None
) -> Dict[str, Dict[str, float]]:
    if baseline is None:
        return {}

    deltas: Dict[str, Dict[str, float]] = {}
    for batch_size, metrics in current.items():
        baseline_metrics = baseline.get("results", baseline).get(str(batch_size))
        if not baseline_metrics:
            continue
        deltas[str(batch_size)] = {
            key: metrics[key] - baseline_metrics.get(key, 0.0)
            for key in ("docs_per_second", "total_time", "peak_memory_mb")
        }
    return deltas


def main() -> None:
    args = parse_args()
    config = load_config(args.config)
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(threadName)s - %(levelname)s - %(message)s",
    )
    # Per-document INFO lines would dominate the timing output.
    logging.getLogger("icd_extractor.extractor").setLevel(logging.WARNING)

    documents = load_documents(args.documents) * max(args.repeat, 1)
    index = load_terminology(args.terminology, config)
    results = PerformanceBenchmark(index, config).benchmark_processing_speed(
        documents, batch_sizes=args.batch_sizes
    )

    baseline = None
    if args.baseline:
        if not args.baseline.exists():
            raise FileNotFoundError(f"Baseline file not found: {args.baseline}")
        baseline = json.loads(args.baseline.read_text(encoding="utf-8"))
    deltas = compare_results(results, baseline)

    args.output.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "results": {str(batch): metrics for batch, metrics in results.items()},
        "deltas": deltas,
        "document_count": len(documents),
        "terminology_size": len(index),
    }
    args.output.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    print("✅ Performance benchmarking complete")
    print(f"   Documents: {len(documents)} | Terminology entries: {len(index)}")
    for batch_size, metrics in results.items():
        print(
            f"   Batch {batch_size}: {metrics['docs_per_second']:.2f} docs/s | "
            f"peak {metrics['peak_memory_mb']:.1f} MB | entities {metrics['entities_found']:.0f}"
        )
    if deltas:
        print("   Compared against baseline:")
        for batch_size, metrics in deltas.items():
            print(f"     Batch {batch_size}: Δdocs/s {metrics['docs_per_second']:+.2f}")


if __name__ == "__main__":
    main()
