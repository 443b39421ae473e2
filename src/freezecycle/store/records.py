"""Persisted record types returned by :class:`EngineStore`."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from freezecycle.timeutils import from_iso


@dataclass
class VariableDefinition:
    """A named derived variable and the formula that computes it."""

    id: int
    name: str
    expression: str
    enabled: bool = True
    last_processed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row["id"],
            name=row["name"],
            expression=row["expression"],
            enabled=bool(row["enabled"]),
            last_processed_at=from_iso(row["last_processed_at"]),
        )


@dataclass
class Cycle:
    """A stored cycle."""

    id: int
    tunnel_id: str
    start_real: datetime
    end_real: Optional[datetime]
    end_estimated: Optional[datetime]
    discharge_time: Optional[datetime]
    is_current: bool
    energy_accumulated_total: float
    set_point: float
    active_time_minutes: float
    overfrozen_time_minutes: float
    avg_serpentin_total: float
    avg_door_total: float

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row["id"],
            tunnel_id=row["tunnel_id"],
            start_real=from_iso(row["start_real"]),
            end_real=from_iso(row["end_real"]),
            end_estimated=from_iso(row["end_estimated"]),
            discharge_time=from_iso(row["discharge_time"]),
            is_current=bool(row["is_current"]),
            energy_accumulated_total=row["energy_accumulated_total"],
            set_point=row["set_point"],
            active_time_minutes=row["active_time_minutes"],
            overfrozen_time_minutes=row["overfrozen_time_minutes"],
            avg_serpentin_total=row["avg_serpentin_total"],
            avg_door_total=row["avg_door_total"],
        )


@dataclass
class NotificationRule:
    """An enabled rule fires one notification per cycle and event."""

    id: int
    tunnel_id: str
    event: str
    recipients: list = field(default_factory=list)
    percentage_threshold: Optional[float] = None
    enabled: bool = True

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row["id"],
            tunnel_id=row["tunnel_id"],
            event=row["event"],
            recipients=json.loads(row["recipients"] or "[]"),
            percentage_threshold=row["percentage_threshold"],
            enabled=bool(row["enabled"]),
        )
