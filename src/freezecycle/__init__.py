"""`freezecycle` - cycle segmentation for industrial freezing tunnels.

Subpackages:
- formulas: Expression evaluation and dependency ordering
- sources: Raw time-series sources (InfluxDB)
- derived: Derived-variable computation with per-variable watermarks
- cycles: Discharge detection and cycle segmentation
- pipeline: Processor, incremental scheduler, orchestrator
- store: SQLite persistence
- notifications: Cycle event rules
"""

__version__ = "0.1.0"
