#!/usr/bin/env python
"""Extract ICD-10 coded entities from clinical text, or look up a single query."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from icd_extractor.config import DEFAULT_CONFIG_PATH, ExtractorConfig, load_config
from icd_extractor.extractor import ExtractionEngine
from icd_extractor.loader import load_terminology
from icd_extractor.worker import AnalyzerWorker, MessageType, Request, Response


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", help="Clinical text to analyse.")
    source.add_argument("--file", type=Path, help="UTF-8 text file to analyse.")
    source.add_argument("--search", help="Instant-search query; no phrase scanning.")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Extractor YAML config.")
    parser.add_argument("--terminology", type=Path, help="CSV terminology source.")
    parser.add_argument(
        "--worker",
        action="store_true",
        help="Route the analysis through the background worker and print every protocol message.",
    )
    parser.add_argument("--log-level", help="Override the configured log level.")
    return parser.parse_args()


def run_search(config: ExtractorConfig, terminology: Path | None, query: str) -> List[Dict[str, Any]]:
    engine = ExtractionEngine(load_terminology(terminology, config), config)
    return [
        {
            "code": candidate.entry.code,
            "description": candidate.entry.description,
            "category": candidate.entry.category,
            "confidence": round(candidate.confidence, 4),
            "field": candidate.field,
        }
        for candidate in engine.search(query)
    ]


def run_engine(config: ExtractorConfig, terminology: Path | None, text: str) -> List[Dict[str, Any]]:
    engine = ExtractionEngine(load_terminology(terminology, config), config)
    return [entity.to_dict() for entity in engine.extract(text)]


def run_worker(config: ExtractorConfig, terminology: Path | None, text: str) -> List[Dict[str, Any]]:
    worker = AnalyzerWorker(config, terminology_path=terminology)
    worker.start()
    messages: List[Dict[str, Any]] = []
    try:
        worker.post(Request(MessageType.INIT))
        worker.post(Request(MessageType.ANALYZE, sequence=1, text=text))
        while True:
            response: Response = worker.responses.get(timeout=60)
            messages.append(response.to_dict())
            if response.type in (MessageType.RESULT, MessageType.ERROR) and response.sequence == 1:
                break
    finally:
        worker.stop(timeout=5)
    return messages


def main() -> None:
    args = parse_args()
    config = load_config(args.config).with_overrides(log_level=args.log_level)
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(threadName)s - %(levelname)s - %(message)s",
    )

    if args.search is not None:
        payload = run_search(config, args.terminology, args.search)
    else:
        text = args.text if args.text is not None else args.file.read_text(encoding="utf-8")
        runner = run_worker if args.worker else run_engine
        payload = runner(config, args.terminology, text)

    print(json.dumps(payload, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
