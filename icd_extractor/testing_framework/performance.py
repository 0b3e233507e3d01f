"""Throughput and memory measurements for the extraction engine."""

from __future__ import annotations

import time
from typing import Iterable, Optional, Sequence

import psutil

from ..config import ExtractorConfig
from ..extractor import ExtractionEngine
from ..terminology import TerminologyIndex


class PerformanceBenchmark:
    """Time :meth:`ExtractionEngine.extract` across matcher batch sizes."""

    def __init__(self, index: TerminologyIndex, config: Optional[ExtractorConfig] = None) -> None:
        self.index = index
        self.config = config or ExtractorConfig()
        self._process = psutil.Process()

    def benchmark_processing_speed(
        self,
        documents: Sequence[str],
        batch_sizes: Iterable[int] = (10, 50, 200),
    ) -> dict[int, dict[str, float]]:
        """Run every document once per batch size and collect timing and RSS metrics."""

        if not documents:
            raise ValueError("At least one document is required for benchmarking.")

        results: dict[int, dict[str, float]] = {}
        for batch_size in batch_sizes:
            if batch_size <= 0:
                raise ValueError(f"Batch size must be positive, received {batch_size}.")
            engine = ExtractionEngine(self.index, self.config.with_overrides(batch_size=batch_size))
            results[batch_size] = self._benchmark_single_run(engine, documents, batch_size)
        return results

    def _benchmark_single_run(
        self,
        engine: ExtractionEngine,
        documents: Sequence[str],
        batch_size: int,
    ) -> dict[str, float]:
        start_time = time.perf_counter()
        start_memory = self._memory_mb()
        peak_memory = start_memory
        entity_count = 0
        progress_events = 0

        def count_progress(_percent: int) -> None:
            nonlocal progress_events
            progress_events += 1

        for document in documents:
            entity_count += len(engine.extract(document, count_progress))
            peak_memory = max(peak_memory, self._memory_mb())

        total_time = time.perf_counter() - start_time
        end_memory = self._memory_mb()
        docs_per_second = len(documents) / total_time if total_time else float("inf")

        return {
            "batch_size": float(batch_size),
            "total_time": total_time,
            "docs_per_second": docs_per_second,
            "start_memory_mb": start_memory,
            "end_memory_mb": end_memory,
            "memory_delta_mb": end_memory - start_memory,
            "peak_memory_mb": peak_memory,
            "documents_processed": float(len(documents)),
            "entities_found": float(entity_count),
            "progress_events": float(progress_events),
        }

    def _memory_mb(self) -> float:
        return self._process.memory_info().rss / (1024 * 1024)
