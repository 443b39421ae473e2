"""Value types flowing through cycle segmentation."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class ProcessedPoint:
    """A raw point merged with its derived values, reduced to segmentation fields."""

    timestamp: datetime
    serpentine_temp: float
    door_temp: float
    operation_state: float
    energy_instant: float
    min_real: float = 0.0


@dataclass
class CyclePoint:
    """One sample of a cycle's energy-accumulation trace."""

    timestamp: datetime
    avg_serpentin: float
    avg_door: float
    operation_state: float
    energy_instant: float
    energy_accumulated: float
    hour_from_cycle_start: float
    cycle_id: Optional[int] = None


@dataclass
class CycleDraft:
    """A cycle produced by the segmenter, not yet reconciled with the store.

    ``end_real`` is None for an open cycle unless a sustained stop has set
    a tentative end. ``discharge_time`` is the discharge that terminates a
    closed cycle, or the discharge that opened the current one.
    """

    tunnel_id: str
    start_real: datetime
    end_real: Optional[datetime]
    is_current: bool
    discharge_time: Optional[datetime]
    end_estimated: Optional[datetime]
    energy_accumulated_total: float
    set_point: float
    active_time_minutes: float
    overfrozen_time_minutes: float
    avg_serpentin_total: float
    avg_door_total: float
    points: list = field(default_factory=list)


@dataclass
class SegmentationResult:
    """Output of one segmentation run."""

    discharges: list = field(default_factory=list)
    valid_discharges: list = field(default_factory=list)
    cycles: list = field(default_factory=list)

    @property
    def closed_cycles(self) -> int:
        return sum(1 for c in self.cycles if not c.is_current)

    @property
    def open_cycles(self) -> int:
        return sum(1 for c in self.cycles if c.is_current)
