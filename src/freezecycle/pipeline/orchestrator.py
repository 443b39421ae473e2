"""Threaded engine orchestration.

Wires the store, raw source, derived value engine and cycle scheduler
together and runs the two periodic workers until stopped.
"""

import logging
import time
from pathlib import Path
from typing import Optional

from freezecycle.derived import DerivedValueEngine
from freezecycle.notifications import CycleNotifier
from freezecycle.pipeline.processor import CycleProcessor, ProcessingSummary
from freezecycle.pipeline.scheduler import IncrementalScheduler
from freezecycle.pipeline.worker import PeriodicWorker
from freezecycle.schemas import InternalConfig
from freezecycle.sources.influx import InfluxRawPointSource
from freezecycle.store import CycleLogicStore, EngineStore

__all__ = ['PipelineOrchestrator']

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Runs the freeze cycle engine for one tunnel.

    Two worker threads share one SQLite store:

    1. **Derived worker**: every ``derived.poll_interval_sec`` evaluates all
       enabled variable formulas over new raw points, in dependency order.

    2. **Cycle worker**: every ``scheduler.poll_interval_sec`` calls
       ``IncrementalScheduler.tick()``, which re-segments the window since
       the watermark and reconciles the stored cycles.

    Files live under ``output_dirs``: the database in ``data/``, the
    editable cycle logic in ``config/`` and the log in ``logs/``.

    Example usage::

        config = resolve_config(ParamConfig(), user, cli)
        orch = PipelineOrchestrator(config, setup_output_directories(config.base_dir))
        orch.start(max_runtime=60)  # Run for 60 minutes then stop
    """

    def __init__(self, config: InternalConfig, output_dirs: dict, source=None, sender=None):
        """Initialize the orchestrator.

        Parameters
        ----------
        config : InternalConfig
        output_dirs : dict
            Paths from ``setup_output_directories()`` (``data``, ``config``, ``logs``).
        source : RawPointSource, optional
            Raw point source. An InfluxDB source is built from
            ``config.source`` when omitted.
        sender : callable, optional
            Notification delivery ``(recipients, subject, body)``. Messages
            are only logged when omitted.
        """
        self.config = config
        self.output_dirs = output_dirs
        self.tunnel_id = config.tunnel_id

        db_name = config.storage.db_filename_pattern.format(tunnel_id=self.tunnel_id)
        self.db_path = Path(output_dirs["data"]) / db_name
        self.logic_path = Path(output_dirs["config"]) / config.storage.logic_filename

        self.store = EngineStore(self.db_path)
        self.logic_store = CycleLogicStore(self.logic_path, defaults=config.cycle_logic)
        self.source = source if source is not None else InfluxRawPointSource(config)
        self.derived_engine = DerivedValueEngine(self.store, self.source, config)
        self.notifier = CycleNotifier(self.store, sender=sender)
        self.processor = CycleProcessor(
            self.store, self.source, self.logic_store, config, notifier=self.notifier
        )
        self.scheduler = IncrementalScheduler(self.processor, self.store, config)

        # Threads (created in start())
        self.derived_worker = None
        self.cycle_worker = None

        # Lifecycle state
        self._stop_event = False
        self._start_time = None
        self._max_duration = None

    def _setup_logging(self):
        """Configure the root logger with file and console handlers."""
        log_level = getattr(logging, self.config.logging.level.upper(), logging.INFO)

        log_dir = Path(self.output_dirs.get("logs", "."))
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / f"engine_{self.tunnel_id}.log"

        formatter = logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        # Clear existing handlers and add new ones
        root = logging.getLogger()
        root.setLevel(log_level)
        for handler in root.handlers[:]:
            root.removeHandler(handler)

        fh = logging.FileHandler(log_path)
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        root.addHandler(fh)

        ch = logging.StreamHandler()
        ch.setLevel(log_level)
        ch.setFormatter(formatter)
        root.addHandler(ch)

        logger.info("Logging: level=%s, file=%s", logging.getLevelName(log_level), log_path)
        logger.info("Engine store: %s", self.db_path)
        logger.info("Cycle logic: %s", self.logic_path)

    def run_once(self, rebuild: bool = False) -> ProcessingSummary:
        """One derived pass followed by one cycle pass, synchronously.

        Unlike ``tick()``, source errors propagate to the caller.
        """
        written = self.derived_engine.run_pass()
        logger.info("Derived pass: %s", written)
        if rebuild:
            return self.scheduler.rebuild()
        return self.scheduler.ensure_up_to_date()

    def start(self, max_runtime: Optional[int] = None):
        """Start both workers and block until interrupted or ``max_runtime`` minutes.

        Status is logged every 30 seconds. ``stop()`` runs on exit.
        """
        self._setup_logging()

        logger.info("=" * 60)
        logger.info("Starting freeze cycle engine for %s", self.tunnel_id)
        logger.info("=" * 60)

        self._start_time = time.time()
        self._max_duration = max_runtime * 60 if max_runtime else None

        if self._max_duration:
            logger.info("Max runtime: %d minutes", max_runtime)
        else:
            logger.info("Max runtime: Until interrupted")

        logger.info("Starting derived value worker...")
        self.derived_worker = PeriodicWorker(
            self.derived_engine.run_pass,
            self.config.derived.poll_interval_sec,
            name="DerivedWorker",
        )
        self.derived_worker.start()

        logger.info("Starting cycle worker...")
        self.cycle_worker = PeriodicWorker(
            self.scheduler.tick,
            self.config.scheduler.poll_interval_sec,
            name="CycleWorker",
        )
        self.cycle_worker.start()

        logger.info("Engine running. Press Ctrl+C to stop.")

        try:
            self._main_loop()
        except KeyboardInterrupt:
            logger.info("Shutdown signal received (Ctrl+C)")
        finally:
            self.stop()

    def _main_loop(self):
        while True:
            if self._max_duration:
                elapsed = time.time() - self._start_time
                if elapsed > self._max_duration:
                    logger.info("Max duration reached")
                    break

            time.sleep(30)
            self._log_status()

    def stop(self):
        """Stop workers, close the store and log a summary. Safe to call multiple times."""
        if self._stop_event:
            return

        self._stop_event = True
        logger.info("Stopping engine...")

        still_running = []
        for name, thread in [("Derived worker", self.derived_worker),
                             ("Cycle worker", self.cycle_worker)]:
            if thread and thread.is_alive():
                logger.info("Stopping %s...", name)
                thread.stop()
                thread.join(timeout=5)
                if thread.is_alive():
                    logger.warning("%s did not stop cleanly", name)
                    still_running.append(name)

        elapsed = time.time() - self._start_time if self._start_time else 0
        logger.info("=" * 60)
        logger.info("Engine stopped. Runtime: %.1f seconds", elapsed)

        stats = self.store.get_statistics(self.tunnel_id)
        logger.info(
            "Statistics: cycles=%d, closed=%d, derived values=%d",
            stats.get("cycles", 0), stats.get("closed_cycles", 0), stats.get("derived_values", 0),
        )
        if still_running:
            # The pass in flight still holds the store and source; the daemon
            # threads end with the process.
            logger.warning(
                "Leaving store and source open: %s still mid-pass", ", ".join(still_running)
            )
        else:
            self.store.close()
            close_source = getattr(self.source, "close", None)
            if close_source is not None:
                close_source()

        logger.info("=" * 60)

    def _log_status(self):
        logger.info(
            "Status: D=%s C=%s watermark=%s",
            "✓" if self.derived_worker and self.derived_worker.is_alive() else "✗",
            "✓" if self.cycle_worker and self.cycle_worker.is_alive() else "✗",
            self.store.get_watermark(self.tunnel_id),
        )
