"""Background thread that calls a function on a fixed interval."""

import logging
import threading
from typing import Callable

__all__ = ['PeriodicWorker']

logger = logging.getLogger(__name__)


class PeriodicWorker(threading.Thread):
    """Runs ``func`` immediately, then every ``interval_sec`` until stopped.

    Exceptions raised by ``func`` are logged and the loop keeps going.
    """

    def __init__(self, func: Callable[[], object], interval_sec: float, name: str):
        super().__init__(daemon=True, name=name)
        self.func = func
        self.interval_sec = interval_sec
        self._stop_event = threading.Event()

    def stop(self):
        """Signal the worker to stop after the current call."""
        self._stop_event.set()

    def stopped(self):
        return self._stop_event.is_set()

    def run(self):
        logger.info("%s started (every %ss)", self.name, self.interval_sec)

        while not self.stopped():
            try:
                self.func()
            except Exception:
                logger.exception("%s iteration failed", self.name)
            self._stop_event.wait(self.interval_sec)

        logger.info("%s stopped", self.name)
