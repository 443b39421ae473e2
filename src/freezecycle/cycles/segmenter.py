"""Cycle segmentation: discharges to closed and open cycles with energy traces."""

import logging
import math
from datetime import datetime
from typing import List, Optional, Sequence

from freezecycle.cycles.detection import detect_discharges, filter_discharges
from freezecycle.cycles.types import CycleDraft, CyclePoint, ProcessedPoint, SegmentationResult
from freezecycle.timeutils import minutes_between

logger = logging.getLogger(__name__)


def build_cycle_points(slice_: Sequence[ProcessedPoint]) -> List[CyclePoint]:
    """Energy trace of a cycle: a running sum of per-sample energy.

    Each sample already carries its own interval's energy, so samples are
    summed, never integrated over time.
    """
    if not slice_:
        return []

    start = slice_[0].timestamp
    accumulated = 0.0
    points = []
    for p in slice_:
        accumulated += p.energy_instant
        points.append(CyclePoint(
            timestamp=p.timestamp,
            avg_serpentin=p.serpentine_temp,
            avg_door=p.door_temp,
            operation_state=p.operation_state,
            energy_instant=p.energy_instant,
            energy_accumulated=accumulated,
            hour_from_cycle_start=(p.timestamp - start).total_seconds() / 3600.0,
        ))
    return points


def calculate_cycle_metrics(slice_: Sequence[ProcessedPoint], logic, effective_end: datetime) -> dict:
    """Metrics shared by closed and open cycles.

    Returns
    -------
    dict
        ``points``, ``energy_accumulated_total``, ``end_estimated``,
        ``active_time_minutes``, ``overfrozen_time_minutes``.
    """
    points = build_cycle_points(slice_)
    total = points[-1].energy_accumulated if points else 0.0

    end_estimated = next(
        (p.timestamp for p in points if p.energy_accumulated >= logic.cycle_energy_set_point),
        None,
    )

    active = 0.0
    for prev, cur in zip(slice_, slice_[1:]):
        if prev.operation_state == logic.operation_start_value:
            active += minutes_between(prev.timestamp, cur.timestamp)

    overfrozen = 0.0
    if end_estimated is not None and end_estimated < effective_end:
        overfrozen = minutes_between(end_estimated, effective_end)

    return {
        "points": points,
        "energy_accumulated_total": total,
        "end_estimated": end_estimated,
        "active_time_minutes": active,
        "overfrozen_time_minutes": overfrozen,
    }


class CycleSegmenter:
    """Splits a processed point stream into cycles for one tunnel.

    Parameters
    ----------
    logic : CycleLogicConfig
        Thresholds read at the start of the processing pass.
    tunnel_id : str
    """

    def __init__(self, logic, tunnel_id: str):
        self.logic = logic
        self.tunnel_id = tunnel_id

    def segment(self, points: Sequence[ProcessedPoint]) -> SegmentationResult:
        discharges = detect_discharges(points, self.logic)
        valid = filter_discharges(discharges, self.logic.min_cycle_hours)
        logger.info("Detected %d discharges (%d after filtering)", len(discharges), len(valid))

        cycles = []
        for current, following in zip(valid, valid[1:]):
            draft = self._closed_cycle(points, current, following)
            if draft is not None:
                cycles.append(draft)

        if valid:
            draft = self._open_cycle(points, valid[-1])
            if draft is not None:
                cycles.append(draft)

        return SegmentationResult(discharges=discharges, valid_discharges=valid, cycles=cycles)

    def _draft(self, slice_, effective_end, **fields) -> CycleDraft:
        metrics = calculate_cycle_metrics(slice_, self.logic, effective_end)
        points = metrics["points"]
        return CycleDraft(
            tunnel_id=self.tunnel_id,
            start_real=slice_[0].timestamp,
            end_estimated=metrics["end_estimated"],
            energy_accumulated_total=metrics["energy_accumulated_total"],
            set_point=self.logic.cycle_energy_set_point,
            active_time_minutes=metrics["active_time_minutes"],
            overfrozen_time_minutes=metrics["overfrozen_time_minutes"],
            avg_serpentin_total=sum(p.avg_serpentin for p in points) / len(points),
            avg_door_total=sum(p.avg_door for p in points) / len(points),
            points=points,
            **fields,
        )

    def _closed_cycle(self, points, discharge: datetime, next_discharge: datetime) -> Optional[CycleDraft]:
        logic = self.logic
        start = next(
            (p for p in points
             if p.timestamp > discharge and p.operation_state == logic.operation_start_value),
            None,
        )
        end = next(
            (p for p in reversed(points)
             if p.timestamp < next_discharge and p.operation_state == logic.operation_end_value),
            None,
        )
        if start is None or end is None or end.timestamp <= start.timestamp:
            return None

        hours = (end.timestamp - start.timestamp).total_seconds() / 3600.0
        if hours < logic.min_cycle_hours or hours > logic.max_cycle_hours:
            logger.debug(
                "Rejecting cycle %s → %s: %.2f h outside [%s, %s]",
                start.timestamp.isoformat(), end.timestamp.isoformat(), hours,
                logic.min_cycle_hours, logic.max_cycle_hours,
            )
            return None

        slice_ = [p for p in points if start.timestamp <= p.timestamp <= end.timestamp]
        return self._draft(
            slice_,
            end.timestamp,
            end_real=end.timestamp,
            is_current=False,
            discharge_time=next_discharge,
        )

    def _find_open_start(self, candidates) -> Optional[int]:
        logic = self.logic
        window = logic.start_confirmation_points
        required = math.ceil(window * 0.5)

        for i, p in enumerate(candidates):
            if p.operation_state != logic.operation_start_value:
                continue
            operating = p.serpentine_temp < logic.operating_temperature_threshold
            sustained = sum(
                1 for q in candidates[i:i + window] if q.operation_state == logic.operation_start_value
            ) >= required
            if operating or sustained:
                logger.debug(
                    "Open cycle start at %s (%s)", p.timestamp.isoformat(),
                    "temperature" if operating else "sustained operation",
                )
                return i
        return None

    def _tentative_end(self, slice_) -> Optional[datetime]:
        """First point where the stopped streak reaches the configured minutes."""
        streak = 0.0
        for p in slice_:
            if p.operation_state == self.logic.operation_end_value:
                streak += p.min_real
                if streak >= self.logic.min_operation_zero_minutes_for_end_real:
                    return p.timestamp
            else:
                streak = 0.0
        return None

    def _open_cycle(self, points, last_discharge: datetime) -> Optional[CycleDraft]:
        candidates = [p for p in points if p.timestamp > last_discharge]
        start_idx = self._find_open_start(candidates)
        if start_idx is None:
            logger.info("No valid cycle start after last discharge %s", last_discharge.isoformat())
            return None

        slice_ = candidates[start_idx:]
        hours = (slice_[-1].timestamp - slice_[0].timestamp).total_seconds() / 3600.0
        if hours <= 0 or hours > self.logic.max_cycle_hours:
            logger.info(
                "Open cycle discarded by duration: %.2f h (max %s)", hours, self.logic.max_cycle_hours
            )
            return None

        tentative_end = self._tentative_end(slice_)
        effective_end = tentative_end or slice_[-1].timestamp
        return self._draft(
            slice_,
            effective_end,
            end_real=tentative_end,
            is_current=True,
            discharge_time=last_discharge,
        )
