"""Tests for merging raw points and derived values into segmentation points."""

import pytest

from freezecycle.cycles import build_processed_points
from freezecycle.sources import RawPoint

from tests.helpers.fake_source import at, make_point

pytestmark = pytest.mark.unit


def test_default_aliases(internal_config):
    raw = [make_point(0, -20.0, 1, energia=2.5, puerta=-6.0, min_real=5.0)]
    [point] = build_processed_points(raw, {}, internal_config.points)

    assert point.timestamp == at(0)
    assert point.serpentine_temp == -20.0
    assert point.door_temp == -6.0
    assert point.operation_state == 1.0
    assert point.energy_instant == 2.5
    assert point.min_real == 5.0


def test_second_alias_used_when_first_missing(internal_config):
    raw = [RawPoint(at(0), {
        "Promedio_Serpentin_C": -18.0,
        "Estado_Operacion": 0,
        "Energia_Instantanea": "1.5",
    }, min_real=1.0)]
    [point] = build_processed_points(raw, {}, internal_config.points)

    assert point.serpentine_temp == -18.0
    assert point.operation_state == 0.0
    assert point.energy_instant == 1.5
    assert point.door_temp == 0.0


def test_derived_values_override_raw_fields(internal_config):
    raw = [make_point(0, -20.0, 1, energia=1.0), make_point(5, -21.0, 1, energia=1.0)]
    derived = {at(5): {"Energia": 9.0, "Promedio_Serpentin": -30.0}}

    points = build_processed_points(raw, derived, internal_config.points)

    assert [p.energy_instant for p in points] == [1.0, 9.0]
    assert [p.serpentine_temp for p in points] == [-20.0, -30.0]


def test_derived_only_fields_complete_a_point(internal_config):
    raw = [RawPoint(at(0), {"Promedio_Serpentin": -20.0, "Operacion": 1}, min_real=0.0)]
    derived = {at(0): {"Energia": 3.0}}

    [point] = build_processed_points(raw, derived, internal_config.points)
    assert point.energy_instant == 3.0


def test_points_missing_required_fields_are_dropped(internal_config):
    raw = [
        make_point(0, -20.0, 1),
        RawPoint(at(5), {"Promedio_Serpentin": -20.0, "Energia": 1.0}, min_real=5.0),
        RawPoint(at(10), {"Operacion": 1, "Energia": 1.0}, min_real=5.0),
        RawPoint(at(15), {"Promedio_Serpentin": "n/a", "Operacion": 1, "Energia": 1.0}, min_real=5.0),
        make_point(20, -19.0, 0),
    ]
    points = build_processed_points(raw, {}, internal_config.points)
    assert [p.timestamp for p in points] == [at(0), at(20)]


def test_output_is_chronological_and_min_real_non_negative(internal_config):
    raw = [make_point(10, -20.0, 1, min_real=-3.0), make_point(0, -20.0, 1, min_real=None)]
    points = build_processed_points(raw, {}, internal_config.points)

    assert [p.timestamp for p in points] == [at(0), at(10)]
    assert [p.min_real for p in points] == [0.0, 0.0]


def test_empty_input(internal_config):
    assert build_processed_points([], {}, internal_config.points) == []
