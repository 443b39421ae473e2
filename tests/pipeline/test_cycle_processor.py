"""Tests for window processing and reconciliation of stored cycles."""

import dataclasses

import pytest

from freezecycle.pipeline import CycleProcessor
from freezecycle.pipeline.processor import preserve_end_real
from freezecycle.sources.base import SourceUnavailable
from freezecycle.timeutils import to_iso

from tests.helpers.series import NO_DISCHARGE, ONE_DISCHARGE, TWO_DISCHARGES
from tests.helpers.fake_source import at, make_points
from tests.helpers.drafts import make_draft

pytestmark = [pytest.mark.unit, pytest.mark.pipeline]


class RecordingNotifier:

    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def notify(self, cycle, points):
        self.calls.append((cycle.id, len(points)))
        if self.fail:
            raise RuntimeError("mail relay rejected message")
        return 1


@pytest.fixture
def set_point_logic(test_logic):
    return test_logic.model_copy(update={"cycle_energy_set_point": 5.0})


@pytest.fixture
def processor(store, source, logic_store, internal_config):
    return CycleProcessor(store, source, logic_store, internal_config)


def test_no_discharges_writes_nothing(processor, source, store):
    source.extend(make_points(NO_DISCHARGE))

    summary = processor.process_cycles(at(0), at(60))

    assert summary.descargas_count == 0
    assert summary.cycles_created == 0
    assert store.list_cycles("T1") == []


def test_single_discharge_creates_current_cycle(processor, source, store):
    source.extend(make_points(ONE_DISCHARGE))

    summary = processor.process_cycles(at(0), at(60))

    assert summary.descargas_count == 1
    assert summary.cycles_created == 1
    assert summary.open_cycles == 1
    [cycle] = store.list_cycles("T1")
    assert cycle.is_current
    assert cycle.start_real == at(30)
    assert cycle.end_real is None
    assert len(store.get_cycle_points(cycle.id)) == 2


def test_start_is_clamped_to_available_data(processor, source):
    source.extend(make_points(ONE_DISCHARGE))

    summary = processor.process_cycles(at(-600), at(60))

    assert summary.processed_from == at(0)
    assert source.calls[0][0] == at(0)


def test_empty_range_is_a_no_op(processor, source, store):
    source.extend(make_points(ONE_DISCHARGE))

    summary = processor.process_cycles(at(60), at(60))

    assert summary.cycles_created == 0
    assert source.calls == []
    assert store.list_cycles("T1") == []


def test_second_pass_updates_instead_of_creating(processor, source, store, set_point_logic):
    source.extend(make_points(TWO_DISCHARGES))

    first = processor.process_cycles(at(0), at(200), logic=set_point_logic)
    ids = [c.id for c in store.list_cycles("T1")]
    second = processor.process_cycles(at(0), at(200), logic=set_point_logic)

    assert (first.cycles_created, first.cycles_updated) == (2, 0)
    assert (second.cycles_created, second.cycles_updated, second.cycles_deleted) == (0, 2, 0)
    assert [c.id for c in store.list_cycles("T1")] == ids


def test_confirmed_end_is_preserved(processor, source, store, set_point_logic):
    source.extend(make_points(TWO_DISCHARGES))
    processor.process_cycles(at(0), at(200), logic=set_point_logic)

    closed = store.list_cycles("T1")[0]
    draft = dataclasses.replace(make_draft(25, 100), discharge_time=at(120), end_estimated=at(30))
    store.replace_cycle(closed.id, draft)

    processor.process_cycles(at(0), at(200), logic=set_point_logic)

    closed = store.get_cycle(closed.id)
    assert closed.end_real == at(100)
    assert closed.overfrozen_time_minutes == pytest.approx(70.0)


def test_unreproduced_cycles_are_deleted(processor, source, store):
    source.extend(make_points(ONE_DISCHARGE))
    ghost = store.create_cycle(make_draft(40, 45))
    outside = store.create_cycle(make_draft(500, 560))

    summary = processor.process_cycles(at(0), at(60))

    assert summary.cycles_deleted == 1
    assert store.get_cycle(ghost.id) is None
    assert store.get_cycle(outside.id) is not None


def test_recalculate_deletes_all_cycles_first(processor, source, store):
    source.extend(make_points(ONE_DISCHARGE))
    store.create_cycle(make_draft(500, 560))

    summary = processor.process_cycles(at(0), at(60), recalculate=True)

    assert summary.cycles_deleted == 1
    assert summary.cycles_created == 1
    [cycle] = store.list_cycles("T1")
    assert cycle.start_real == at(30)


def test_notifier_called_per_saved_cycle(store, source, logic_store, internal_config):
    notifier = RecordingNotifier()
    processor = CycleProcessor(store, source, logic_store, internal_config, notifier=notifier)
    source.extend(make_points(ONE_DISCHARGE))

    processor.process_cycles(at(0), at(60))

    [cycle] = store.list_cycles("T1")
    assert notifier.calls == [(cycle.id, 2)]


def test_notifier_failure_does_not_abort_pass(store, source, logic_store, internal_config, caplog):
    processor = CycleProcessor(
        store, source, logic_store, internal_config, notifier=RecordingNotifier(fail=True)
    )
    source.extend(make_points(ONE_DISCHARGE))

    summary = processor.process_cycles(at(0), at(60))

    assert summary.cycles_created == 1
    assert "Notification failed for cycle" in caplog.text


def test_preserve_end_real_without_estimate():
    draft = make_draft(0, 60)
    kept = preserve_end_real(draft, at(50))
    assert kept.end_real == at(50)
    assert kept.overfrozen_time_minutes == 0.0


def test_summary_to_dict_formats_timestamps(processor, source):
    source.extend(make_points(ONE_DISCHARGE))
    data = processor.process_cycles(at(0), at(60)).to_dict()

    assert data["processed_from"] == to_iso(at(0))
    assert data["watermark"] is None
    assert data["descargas_count"] == 1


def test_recalculate_keeps_cycles_when_source_fails(processor, source, store):
    source.extend(make_points(ONE_DISCHARGE))
    processor.process_cycles(at(0), at(60))
    before = store.list_cycles("T1")

    source.fail = True
    with pytest.raises(SourceUnavailable):
        processor.process_cycles(at(0), at(60), recalculate=True)

    assert [c.id for c in store.list_cycles("T1")] == [c.id for c in before]


def test_recalculate_without_points_clears_cycles(processor, source, store):
    source.extend(make_points(NO_DISCHARGE))
    store.create_cycle(make_draft(0, 20))

    summary = processor.process_cycles(at(0), at(60), recalculate=True)

    assert summary.cycles_deleted == 1
    assert store.list_cycles("T1") == []
