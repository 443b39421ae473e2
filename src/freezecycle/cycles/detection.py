"""Discharge (defrost) detection on the serpentine temperature signal."""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Sequence

import numpy as np

from freezecycle.cycles.types import ProcessedPoint

logger = logging.getLogger(__name__)


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROS_PER_MINUTE = 60_000_000


def _epoch_micros(points: Sequence[ProcessedPoint]) -> np.ndarray:
    """Integer timestamps, so window boundaries compare exactly."""
    return np.array(
        [(p.timestamp - _EPOCH) // timedelta(microseconds=1) for p in points], dtype=np.int64
    )


def _window(minutes: float) -> int:
    return int(round(minutes * _MICROS_PER_MINUTE))


def detect_discharges(points: Sequence[ProcessedPoint], logic) -> List[datetime]:
    """Timestamps where a defrost starts, in chronological order.

    A point is a discharge when all of the following hold:

    - its temperature is above ``min_defrost_temperature``
    - some earlier point within ``rise_window_minutes`` is at least
      ``min_rise_degrees`` colder (rise)
    - measured against the latest point at least ``slope_duration_minutes``
      earlier, the temperature rose at ``min_slope`` °C/min or faster (slope)
    - it is at least ``min_defrost_separation_minutes`` after the previously
      accepted discharge

    Parameters
    ----------
    points : sequence of ProcessedPoint
        Chronologically sorted.
    logic : CycleLogicConfig
    """
    if not points:
        return []

    times = _epoch_micros(points)
    temps = np.array([p.serpentine_temp for p in points], dtype=float)
    discharges: List[datetime] = []
    last_accepted = None

    for i in range(len(points)):
        if temps[i] <= logic.min_defrost_temperature:
            continue

        # Rise: any earlier point inside the window cold enough
        lo = int(np.searchsorted(times, times[i] - _window(logic.rise_window_minutes), side="left"))
        if lo >= i or not np.any(temps[i] - temps[lo:i] >= logic.min_rise_degrees):
            continue

        # Slope: nearest point at least the slope duration back
        j = int(np.searchsorted(times, times[i] - _window(logic.slope_duration_minutes), side="right")) - 1
        j = min(j, i - 1)
        if j < 0:
            continue
        elapsed = (times[i] - times[j]) / _MICROS_PER_MINUTE
        if elapsed <= 0 or (temps[i] - temps[j]) / elapsed < logic.min_slope:
            continue

        if last_accepted is not None and times[i] - last_accepted < _window(logic.min_defrost_separation_minutes):
            continue

        logger.debug(
            "Discharge at %s (temp %.2f)", points[i].timestamp.isoformat(), temps[i]
        )
        discharges.append(points[i].timestamp)
        last_accepted = times[i]

    return discharges


def filter_discharges(discharges: Sequence[datetime], min_cycle_hours: float) -> List[datetime]:
    """Merge discharges closer than ``min_cycle_hours``, keeping the first of each cluster."""
    valid: List[datetime] = []
    gap = timedelta(hours=min_cycle_hours)

    for discharge in discharges:
        if valid and discharge - valid[-1] < gap:
            logger.debug(
                "Ignoring short interval discharge %s (previous %s)",
                discharge.isoformat(), valid[-1].isoformat(),
            )
            continue
        valid.append(discharge)

    return valid
