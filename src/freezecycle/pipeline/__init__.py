"""Pipeline modules.

- orchestrator: Engine controller and worker threads
- scheduler: Watermark-driven incremental processing
- processor: Cycle segmentation and reconciliation
- worker: Periodic background thread
"""

from freezecycle.pipeline.orchestrator import PipelineOrchestrator
from freezecycle.pipeline.processor import CycleProcessor, ProcessingSummary
from freezecycle.pipeline.scheduler import IncrementalScheduler
from freezecycle.pipeline.worker import PeriodicWorker

__all__ = [
    "PipelineOrchestrator",
    "CycleProcessor",
    "ProcessingSummary",
    "IncrementalScheduler",
    "PeriodicWorker",
]
