"""Tests for the SQLite engine store."""

import sqlite3

import pytest

from freezecycle.store import EngineStore

from tests.helpers.drafts import make_draft
from tests.helpers.fake_source import at

pytestmark = pytest.mark.unit


class TestVariables:

    def test_create_and_list(self, store):
        a = store.create_variable("a", "x + 1")
        store.create_variable("b", "a * 2", enabled=False)

        assert a.id is not None and a.enabled and a.last_processed_at is None
        assert [v.name for v in store.list_variables()] == ["a", "b"]
        assert [v.name for v in store.list_variables(enabled_only=True)] == ["a"]

    def test_names_are_unique(self, store):
        store.create_variable("a", "1")
        with pytest.raises(sqlite3.IntegrityError):
            store.create_variable("a", "2")

    def test_set_last_processed(self, store):
        v = store.create_variable("a", "1")
        store.set_last_processed(v.id, at(10))
        assert store.get_variable(v.id).last_processed_at == at(10)
        store.set_last_processed(v.id, None)
        assert store.get_variable(v.id).last_processed_at is None


class TestDerivedValues:

    def test_upsert_overwrites_same_timestamp(self, store):
        v = store.create_variable("a", "1")
        store.upsert_derived_values(v.id, [(at(0), 1.0), (at(5), 2.0)])
        store.upsert_derived_values(v.id, [(at(5), 3.0)])

        assert store.get_derived_values(v.id) == {at(0): 1.0, at(5): 3.0}
        assert store.latest_derived_timestamp(v.id) == at(5)
        assert store.earliest_derived_timestamp() == at(0)

    def test_load_grouped_by_timestamp(self, store):
        a = store.create_variable("a", "1")
        b = store.create_variable("b", "2")
        store.upsert_derived_values(a.id, [(at(0), 1.0), (at(5), 2.0), (at(60), 9.0)])
        store.upsert_derived_values(b.id, [(at(5), 7.0)])

        grouped = store.load_derived_values(["a", "b"], at(0), at(10))
        assert grouped == {at(0): {"a": 1.0}, at(5): {"a": 2.0, "b": 7.0}}
        assert store.load_derived_values([], at(0), at(10)) == {}

    def test_delete_values(self, store):
        v = store.create_variable("a", "1")
        store.upsert_derived_values(v.id, [(at(0), 1.0)])
        assert store.delete_derived_values(v.id) == 1
        assert store.latest_derived_timestamp(v.id) is None


class TestCycles:

    def test_create_cycle_with_points(self, store):
        cycle = store.create_cycle(make_draft(0, 60, energies=(1.0, 2.0, 3.0)))

        assert cycle.start_real == at(0)
        assert cycle.end_real == at(60)
        assert cycle.energy_accumulated_total == 6.0
        points = store.get_cycle_points(cycle.id)
        assert [p.energy_accumulated for p in points] == [1.0, 3.0, 6.0]
        assert all(p.cycle_id == cycle.id for p in points)

    def test_replace_cycle_replaces_points(self, store):
        cycle = store.create_cycle(make_draft(0, 60, energies=(1.0, 2.0, 3.0)))
        updated = store.replace_cycle(cycle.id, make_draft(0, 90, energies=(4.0,)))

        assert updated.id == cycle.id
        assert updated.end_real == at(90)
        assert [p.energy_instant for p in store.get_cycle_points(cycle.id)] == [4.0]

    def test_only_one_current_cycle_per_tunnel(self, store):
        first = store.create_cycle(make_draft(0, is_current=True))
        other_tunnel = store.create_cycle(make_draft(0, is_current=True, tunnel_id="T2"))
        second = store.create_cycle(make_draft(100, is_current=True))

        assert not store.get_cycle(first.id).is_current
        assert store.get_cycle(second.id).is_current
        assert store.get_cycle(other_tunnel.id).is_current

    def test_list_cycles_half_open_range(self, store):
        for minute in (0, 100, 200):
            store.create_cycle(make_draft(minute, minute + 50))

        cycles = store.list_cycles("T1", at(100), at(200))
        assert [c.start_real for c in cycles] == [at(100)]
        assert len(store.list_cycles("T1")) == 3
        assert store.list_cycles("T2") == []

    def test_delete_cycles(self, store):
        ids = [store.create_cycle(make_draft(m, m + 50)).id for m in (0, 100)]
        assert store.delete_cycles([ids[0]]) == 1
        assert store.get_cycle(ids[0]) is None
        assert store.get_cycle_points(ids[0]) == []
        assert store.delete_cycles([]) == 0

    def test_delete_all_cycles_of_tunnel(self, store):
        store.create_cycle(make_draft(0, 50))
        store.create_cycle(make_draft(100, 150))
        store.create_cycle(make_draft(0, 50, tunnel_id="T2"))

        assert store.delete_all_cycles("T1") == 2
        assert store.list_cycles("T1") == []
        assert len(store.list_cycles("T2")) == 1

    def test_replace_all_cycles(self, store):
        old = store.create_cycle(make_draft(0, 50))
        store.create_cycle(make_draft(0, 50, tunnel_id="T2"))

        deleted, saved = store.replace_all_cycles(
            "T1", [make_draft(10, 60), make_draft(70, is_current=True)]
        )

        assert deleted == 1
        assert [c.start_real for c in saved] == [at(10), at(70)]
        assert store.get_cycle(old.id) is None
        assert [c.is_current for c in store.list_cycles("T1")] == [False, True]
        assert len(store.get_cycle_points(saved[0].id)) == 2
        assert len(store.list_cycles("T2")) == 1

    def test_first_cycle_and_closed_end(self, store):
        assert store.first_cycle("T1") is None
        store.create_cycle(make_draft(100, 150))
        store.create_cycle(make_draft(0, 50))
        store.create_cycle(make_draft(200, 260, is_current=True))

        assert store.first_cycle("T1").start_real == at(0)
        # A current cycle with a tentative end does not move the watermark
        assert store.latest_closed_cycle_end("T1") == at(150)


class TestWatermark:

    def test_roundtrip_per_tunnel(self, store):
        assert store.get_watermark("T1") is None
        store.set_watermark("T1", at(10))
        store.set_watermark("T1", at(20))
        store.set_watermark("T2", at(5))

        assert store.get_watermark("T1") == at(20)
        assert store.get_watermark("T2") == at(5)

    def test_missing_state_table_degrades(self, store, caplog):
        store._get_connection().execute("DROP TABLE cycle_processing_state")
        store.set_watermark("T1", at(10))
        assert store.get_watermark("T1") is None
        assert "cycle_processing_state table missing" in caplog.text


class TestNotifications:

    def test_rules_and_log(self, store):
        rule = store.create_notification_rule("T1", "CYCLE_STARTED", ["ops@example.com"])
        store.create_notification_rule("T1", "CYCLE_COMPLETED", ["x@example.com"], enabled=False)
        cycle = store.create_cycle(make_draft(0, 60))

        assert [r.id for r in store.list_notification_rules("T1")] == [rule.id]
        assert rule.recipients == ["ops@example.com"]

        assert not store.notification_sent(rule.id, "T1", at(0))
        store.record_notification(rule, cycle)
        store.record_notification(rule, cycle)
        assert store.notification_sent(rule.id, "T1", at(0))

    def test_missing_rule_table_degrades(self, store, caplog):
        store._get_connection().execute("DROP TABLE notification_rule")
        assert store.list_notification_rules("T1") == []
        assert "notification_rule table missing" in caplog.text


def test_file_store_and_context_manager(tmp_path):
    db_path = tmp_path / "data" / "T1_engine.db"
    with EngineStore(db_path) as store:
        store.create_variable("a", "1")
        stats = store.get_statistics("T1")
    assert db_path.exists()
    assert stats["variables"] == 1
    assert stats["cycles"] == 0

    with EngineStore(db_path) as reopened:
        assert [v.name for v in reopened.list_variables()] == ["a"]
    reopened.close()
