"""Tests for engine wiring and lifecycle."""

from unittest.mock import Mock

import pytest

from freezecycle.pipeline import PipelineOrchestrator

from tests.helpers.series import TWO_DISCHARGES
from tests.helpers.fake_source import at, make_points

pytestmark = [pytest.mark.unit, pytest.mark.pipeline]


@pytest.fixture
def orchestrator(internal_config, output_dirs, source):
    orch = PipelineOrchestrator(internal_config, output_dirs, source=source)
    yield orch
    orch.stop()


def test_files_live_under_output_dirs(orchestrator, output_dirs):
    assert orchestrator.db_path == output_dirs["data"] / "T1_engine.db"
    assert orchestrator.db_path.exists()
    assert orchestrator.logic_path.parent == output_dirs["config"]
    assert orchestrator.derived_worker is None
    assert orchestrator.cycle_worker is None


def test_run_once_on_empty_source(orchestrator):
    summary = orchestrator.run_once()
    assert summary.cycles_created == 0
    assert summary.watermark is None


def test_rebuild_processes_full_history(orchestrator, source, test_logic):
    orchestrator.logic_store.write(test_logic.model_dump())
    source.extend(make_points(TWO_DISCHARGES))

    summary = orchestrator.run_once(rebuild=True)

    assert summary.processed_from == at(0)
    assert summary.closed_cycles == 1
    assert summary.open_cycles == 1
    assert orchestrator.store.get_watermark("T1") == at(110)


def test_stop_is_idempotent(orchestrator, source):
    orchestrator.stop()
    assert orchestrator._stop_event
    assert source.closed

    source.closed = False
    orchestrator.stop()
    assert not source.closed


def test_stop_leaves_store_open_while_worker_is_mid_pass(orchestrator, source, caplog):
    stuck = Mock()
    stuck.is_alive.return_value = True
    orchestrator.cycle_worker = stuck

    orchestrator.stop()

    stuck.stop.assert_called_once()
    stuck.join.assert_called_once_with(timeout=5)
    assert "Cycle worker did not stop cleanly" in caplog.text
    assert "Leaving store and source open" in caplog.text
    assert orchestrator.store._conn is not None
    assert orchestrator.store.get_watermark("T1") is None
    assert not source.closed

    orchestrator.store.close()
