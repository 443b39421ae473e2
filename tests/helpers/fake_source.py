from datetime import datetime, timedelta, timezone

from freezecycle.sources.base import RawPoint, SourceUnavailable

BASE_TIME = datetime(2025, 12, 1, 4, 30, tzinfo=timezone.utc)


def at(minutes: float) -> datetime:
    """Timestamp ``minutes`` after BASE_TIME."""
    return BASE_TIME + timedelta(minutes=minutes)


def make_point(minute, serpentin, operacion, energia=0.0, puerta=-5.0, min_real=5.0, **extra):
    """A raw row with the default field names used by the segmentation aliases."""
    fields = {
        "Promedio_Serpentin": serpentin,
        "Promedio_Puerta": puerta,
        "Operacion": operacion,
        "Energia": energia,
    }
    fields.update(extra)
    return RawPoint(timestamp=at(minute), fields=fields, min_real=min_real)


def make_points(rows):
    """Build raw points from ``(minute, serpentin, operacion[, energia])`` tuples."""
    return [make_point(*row) for row in rows]


class FakeRawSource:
    """In-memory raw point source.

    Records every window it was asked for. Set ``fail`` to make every
    call raise SourceUnavailable.
    """

    def __init__(self, points=None):
        self.points = sorted(points or [], key=lambda p: p.timestamp)
        self.calls = []
        self.fail = False
        self.closed = False

    def extend(self, points):
        self.points = sorted(self.points + list(points), key=lambda p: p.timestamp)

    def fetch_window(self, start, end):
        self.calls.append((start, end))
        if self.fail:
            raise SourceUnavailable("influx down")
        return [p for p in self.points if start <= p.timestamp <= end]

    def fetch_earliest_timestamp(self):
        if self.fail:
            raise SourceUnavailable("influx down")
        return self.points[0].timestamp if self.points else None

    def close(self):
        self.closed = True
