"""Cycle segmentation: point construction, discharge detection and cycle building."""

from freezecycle.cycles.types import CycleDraft, CyclePoint, ProcessedPoint, SegmentationResult
from freezecycle.cycles.points import build_processed_points
from freezecycle.cycles.detection import detect_discharges, filter_discharges
from freezecycle.cycles.segmenter import (
    CycleSegmenter,
    build_cycle_points,
    calculate_cycle_metrics,
)

__all__ = [
    "CycleDraft",
    "CyclePoint",
    "ProcessedPoint",
    "SegmentationResult",
    "build_processed_points",
    "detect_discharges",
    "filter_discharges",
    "CycleSegmenter",
    "build_cycle_points",
    "calculate_cycle_metrics",
]
