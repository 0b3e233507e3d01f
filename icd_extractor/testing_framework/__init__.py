"""Evaluation helpers for extraction quality and throughput."""

from .entity_detection import EntityDetectionValidator
from .performance import PerformanceBenchmark

__all__ = ["EntityDetectionValidator", "PerformanceBenchmark"]
