"""Merge raw points with derived values into segmentation points."""

import logging
from datetime import datetime
from typing import Dict, Iterable, List

import numpy as np
import pandas as pd

from freezecycle.cycles.types import ProcessedPoint
from freezecycle.sources.base import RawPoint

logger = logging.getLogger(__name__)


def _coalesce(frame: pd.DataFrame, names: List[str]) -> pd.Series:
    """First numeric value across the alias columns, row by row."""
    present = [n for n in names if n in frame.columns]
    if not present:
        return pd.Series(np.nan, index=frame.index, dtype=float)
    values = frame[present].apply(pd.to_numeric, errors="coerce")
    return values.bfill(axis=1).iloc[:, 0].astype(float)


def build_processed_points(
    raw_points: Iterable[RawPoint],
    derived: Dict[datetime, Dict[str, float]],
    fields,
) -> List[ProcessedPoint]:
    """Build the chronological point stream consumed by the segmenter.

    Derived values override raw fields of the same name at the same
    timestamp. A point without serpentine temperature, operation state or
    instantaneous energy is dropped; a missing door temperature reads 0.

    Parameters
    ----------
    raw_points : iterable of RawPoint
    derived : dict
        ``{timestamp: {variable name: value}}`` from the store.
    fields : InternalPointFieldsConfig
        Alias lists for each segmentation field.
    """
    raw_points = list(raw_points)
    if not raw_points:
        return []

    index = pd.DatetimeIndex([p.timestamp for p in raw_points], name="timestamp")
    raw = pd.DataFrame(
        [{**p.fields, "min_real": p.min_real} for p in raw_points],
        index=index,
    )
    raw = raw[~raw.index.duplicated(keep="last")]

    if derived:
        derived_frame = pd.DataFrame.from_dict(derived, orient="index")
        derived_frame.index = pd.DatetimeIndex(derived_frame.index)
        merged = derived_frame.reindex(raw.index).combine_first(raw)
    else:
        merged = raw

    frame = pd.DataFrame({
        "serpentine_temp": _coalesce(merged, fields.serpentine_temperature),
        "door_temp": _coalesce(merged, fields.door_temperature),
        "operation_state": _coalesce(merged, fields.operation_state),
        "energy_instant": _coalesce(merged, fields.energy_instant),
        "min_real": _coalesce(merged, ["min_real"]),
    }, index=merged.index).replace([np.inf, -np.inf], np.nan)

    complete = frame.dropna(subset=["serpentine_temp", "operation_state", "energy_instant"])
    dropped = len(frame) - len(complete)
    if dropped:
        logger.debug("Dropped %d of %d points with missing required fields", dropped, len(frame))

    complete = complete.assign(
        door_temp=complete["door_temp"].fillna(0.0),
        min_real=complete["min_real"].fillna(0.0).clip(lower=0.0),
    ).sort_index()

    return [
        ProcessedPoint(
            timestamp=ts.to_pydatetime(),
            serpentine_temp=float(row.serpentine_temp),
            door_temp=float(row.door_temp),
            operation_state=float(row.operation_state),
            energy_instant=float(row.energy_instant),
            min_real=float(row.min_real),
        )
        for ts, row in zip(complete.index, complete.itertuples(index=False))
    ]
