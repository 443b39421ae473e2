"""Raw point model and windowed fetching helpers.

A raw point source is anything that can return the pivoted sensor rows of
a time window and the earliest timestamp it holds. Sources are queried in
bounded chunks so that no single external call runs unbounded.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Iterable, Optional, Protocol

from freezecycle.timeutils import ensure_utc, minutes_between

logger = logging.getLogger(__name__)


class SourceUnavailable(RuntimeError):
    """Raised when the raw point source cannot be reached or queried.

    Treated as transient: the scheduler logs it and retries on the next tick.
    """
    pass


@dataclass(frozen=True)
class RawPoint:
    """One pivoted sensor row.

    ``min_real`` is the elapsed minutes since the previous point; it is
    filled by :func:`annotate_min_real` when the source does not supply it.
    """

    timestamp: datetime
    fields: dict = field(default_factory=dict)
    min_real: Optional[float] = None

    def as_context(self) -> dict:
        """Field values plus ``min_real`` for formula evaluation."""
        context = dict(self.fields)
        if self.min_real is not None:
            context["min_real"] = self.min_real
        return context


class RawPointSource(Protocol):
    """Interface of an external raw time-series source."""

    def fetch_window(self, start: datetime, end: datetime) -> list:
        """Return the RawPoints in [start, end], ordered by timestamp."""
        ...

    def fetch_earliest_timestamp(self) -> Optional[datetime]:
        ...


def annotate_min_real(points: Iterable[RawPoint], previous_timestamp: Optional[datetime] = None) -> list:
    """Sort points and fill ``min_real`` where the source did not.

    The first point gets 0 unless ``previous_timestamp`` precedes it, in
    which case the delta to that timestamp is used. Deltas are never
    negative.
    """
    ordered = sorted(points, key=lambda p: p.timestamp)
    previous = ensure_utc(previous_timestamp) if previous_timestamp is not None else None
    annotated = []

    for point in ordered:
        if point.min_real is None:
            if previous is None or previous >= point.timestamp:
                delta = 0.0
            else:
                delta = minutes_between(previous, point.timestamp)
            point = replace(point, min_real=delta)
        annotated.append(point)
        previous = point.timestamp

    return annotated


def fetch_in_chunks(source: RawPointSource, start: datetime, end: datetime, chunk_hours: int = 168) -> list:
    """Fetch [start, end] as sequential windows of ``chunk_hours``.

    Each window starts 1 ms after the previous one ended. The concatenated
    result is sorted by timestamp.
    """
    step = timedelta(hours=chunk_hours)
    cursor = start
    points = []

    while cursor < end:
        chunk_end = min(cursor + step, end)
        logger.debug("Fetching raw chunk %s → %s", cursor.isoformat(), chunk_end.isoformat())
        points.extend(source.fetch_window(cursor, chunk_end))
        cursor = chunk_end + timedelta(milliseconds=1)

    points.sort(key=lambda p: p.timestamp)
    return points
