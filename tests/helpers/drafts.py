"""Cycle drafts for store, notifier and pipeline tests."""

from freezecycle.cycles import CycleDraft, CyclePoint

from tests.helpers.fake_source import at


def make_draft(start_minute, end_minute=None, is_current=False, energies=(1.0, 2.0), tunnel_id="T1"):
    points = []
    accumulated = 0.0
    for i, energy in enumerate(energies):
        accumulated += energy
        points.append(CyclePoint(
            timestamp=at(start_minute + 5 * i),
            avg_serpentin=-20.0,
            avg_door=-5.0,
            operation_state=1.0,
            energy_instant=energy,
            energy_accumulated=accumulated,
            hour_from_cycle_start=5 * i / 60.0,
        ))
    return CycleDraft(
        tunnel_id=tunnel_id,
        start_real=at(start_minute),
        end_real=at(end_minute) if end_minute is not None else None,
        is_current=is_current,
        discharge_time=None,
        end_estimated=None,
        energy_accumulated_total=accumulated,
        set_point=0.0,
        active_time_minutes=0.0,
        overfrozen_time_minutes=0.0,
        avg_serpentin_total=-20.0,
        avg_door_total=-5.0,
        points=points,
    )
