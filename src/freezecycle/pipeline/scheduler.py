"""Watermark-driven incremental cycle processing."""

import logging
import threading
from datetime import datetime, timedelta
from typing import Optional

from freezecycle.pipeline.processor import CycleProcessor, ProcessingSummary
from freezecycle.sources.base import SourceUnavailable
from freezecycle.timeutils import ensure_utc, utc_now

__all__ = ['IncrementalScheduler']

logger = logging.getLogger(__name__)


class IncrementalScheduler:
    """Keeps stored cycles consistent with the latest data.

    The watermark is the ``end_real`` of the most recent closed cycle. Each
    pass re-processes from ``watermark - overlap`` to now so cycles near the
    boundary are re-validated, then moves the watermark forward.

    All passes for a tunnel serialize on one lock. ``tick()`` skips a pass
    instead of waiting when another one is already running.
    """

    def __init__(self, processor: CycleProcessor, store, config):
        self.processor = processor
        self.store = store
        self.source = processor.source
        self.tunnel_id = config.tunnel_id
        self.overlap = timedelta(minutes=config.scheduler.overlap_minutes)
        self.fallback_lookback = timedelta(days=config.scheduler.fallback_lookback_days)
        self._lock = threading.Lock()

    def resolve_start(self, now: datetime) -> datetime:
        """Start of the next pass.

        Without a watermark only an open cycle can exist; the pass then
        starts ``overlap`` before the discharge that opened it, so the
        discharge is detected again and the cycle is matched, not deleted.
        """
        watermark = self.store.get_watermark(self.tunnel_id)
        if watermark is not None:
            return watermark - self.overlap

        first = self.store.first_cycle(self.tunnel_id)
        if first is not None:
            anchor = first.start_real
            if first.discharge_time is not None and first.discharge_time < anchor:
                anchor = first.discharge_time
            return anchor - self.overlap
        return now - self.fallback_lookback

    def refresh_watermark(self) -> Optional[datetime]:
        watermark = self.store.latest_closed_cycle_end(self.tunnel_id)
        self.store.set_watermark(self.tunnel_id, watermark)
        return watermark

    def _run(self, start: datetime, now: datetime, recalculate: bool) -> ProcessingSummary:
        summary = self.processor.process_cycles(start, now, recalculate=recalculate)
        summary.watermark = self.refresh_watermark()
        logger.info("Cycle pass complete: %s", summary.to_dict())
        return summary

    def ensure_up_to_date(self, now: Optional[datetime] = None) -> ProcessingSummary:
        """Process (watermark - overlap) → now and advance the watermark.

        Raises
        ------
        SourceUnavailable
            If the raw source cannot be queried. Nothing is written.
        """
        now = ensure_utc(now) if now is not None else utc_now()
        with self._lock:
            return self._run(self.resolve_start(now), now, recalculate=False)

    def rebuild(self, now: Optional[datetime] = None, start: Optional[datetime] = None) -> ProcessingSummary:
        """Delete every cycle of the tunnel and recompute the full history."""
        now = ensure_utc(now) if now is not None else utc_now()
        with self._lock:
            if start is None:
                start = self.source.fetch_earliest_timestamp() or now - self.fallback_lookback
            logger.warning("Rebuilding all cycles of %s from %s", self.tunnel_id, start.isoformat())
            return self._run(ensure_utc(start), now, recalculate=True)

    def tick(self, now: Optional[datetime] = None) -> Optional[ProcessingSummary]:
        """Periodic entry point. Never raises.

        Returns None when the pass was skipped (another pass running) or
        failed; the next tick retries.
        """
        if not self._lock.acquire(blocking=False):
            logger.debug("Cycle pass already running for %s; skipping tick", self.tunnel_id)
            return None

        now = ensure_utc(now) if now is not None else utc_now()
        try:
            return self._run(self.resolve_start(now), now, recalculate=False)
        except SourceUnavailable as e:
            logger.warning("Raw source unavailable, deferring cycle pass: %s", e)
        except Exception:
            logger.exception("Cycle pass failed for %s", self.tunnel_id)
        finally:
            self._lock.release()
        return None
