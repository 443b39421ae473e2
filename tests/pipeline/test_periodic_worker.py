"""Tests for the periodic worker thread."""

import threading

import pytest

from freezecycle.pipeline import PeriodicWorker

pytestmark = [pytest.mark.unit, pytest.mark.pipeline]


def test_worker_runs_until_stopped():
    calls = []
    ran = threading.Event()

    def func():
        calls.append(1)
        ran.set()

    worker = PeriodicWorker(func, interval_sec=60, name="TestWorker")
    worker.start()
    assert ran.wait(timeout=5)

    worker.stop()
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert worker.stopped()
    assert calls == [1]


def test_worker_survives_failing_iteration(caplog):
    attempts = []
    recovered = threading.Event()

    def func():
        attempts.append(1)
        if len(attempts) == 1:
            raise ValueError("first call fails")
        recovered.set()

    worker = PeriodicWorker(func, interval_sec=0.01, name="FlakyWorker")
    worker.start()
    try:
        assert recovered.wait(timeout=5)
    finally:
        worker.stop()
        worker.join(timeout=5)

    assert "FlakyWorker iteration failed" in caplog.text
