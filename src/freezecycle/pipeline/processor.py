"""Cycle processing: segmentation of a window and reconciliation with the store."""

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from freezecycle.contracts import assert_cycle_drafts, assert_processed_points
from freezecycle.cycles import CycleDraft, CycleSegmenter, build_processed_points
from freezecycle.sources.base import annotate_min_real, fetch_in_chunks
from freezecycle.timeutils import ensure_utc, minutes_between, to_iso

__all__ = ['CycleProcessor', 'ProcessingSummary']

logger = logging.getLogger(__name__)


@dataclass
class ProcessingSummary:
    """Counts and watermark of one processing pass."""

    processed_from: Optional[datetime]
    processed_to: datetime
    descargas_count: int = 0
    cycles_created: int = 0
    cycles_updated: int = 0
    cycles_deleted: int = 0
    closed_cycles: int = 0
    open_cycles: int = 0
    watermark: Optional[datetime] = None

    def to_dict(self) -> dict:
        data = dataclasses.asdict(self)
        for key in ("processed_from", "processed_to", "watermark"):
            data[key] = to_iso(data[key])
        return data


def preserve_end_real(draft: CycleDraft, end_real: datetime) -> CycleDraft:
    """Keep a previously confirmed end, recomputing over-freeze against it."""
    overfrozen = 0.0
    if draft.end_estimated is not None and draft.end_estimated < end_real:
        overfrozen = minutes_between(draft.end_estimated, end_real)
    return dataclasses.replace(draft, end_real=end_real, overfrozen_time_minutes=overfrozen)


class CycleProcessor:
    """Builds cycles for a window and writes them to the store.

    Parameters
    ----------
    store : EngineStore
    source : RawPointSource
    logic_store : CycleLogicStore
        Re-read at the start of every pass.
    config : InternalConfig
    notifier : CycleNotifier, optional
        Called once per saved cycle.
    """

    def __init__(self, store, source, logic_store, config, notifier=None):
        self.store = store
        self.source = source
        self.logic_store = logic_store
        self.notifier = notifier
        self.tunnel_id = config.tunnel_id
        self.point_fields = config.points
        self.chunk_hours = config.source.chunk_hours
        self.match_tolerance = timedelta(seconds=config.scheduler.start_match_tolerance_sec)

    def resolve_available_start(self, requested: datetime) -> datetime:
        """Clamp ``requested`` to the earliest data the engine can see."""
        baseline = self.store.earliest_derived_timestamp()
        if baseline is None:
            baseline = self.source.fetch_earliest_timestamp()
        if baseline is None or baseline <= requested:
            return requested

        logger.info(
            "Adjusting processing start from %s to %s based on available data",
            requested.isoformat(), baseline.isoformat(),
        )
        return baseline

    def load_points(self, start: datetime, end: datetime):
        raw = annotate_min_real(fetch_in_chunks(self.source, start, end, self.chunk_hours))
        names = [v.name for v in self.store.list_variables(enabled_only=True)]
        derived = self.store.load_derived_values(names, start, end)
        points = build_processed_points(raw, derived, self.point_fields)
        assert_processed_points(points)
        return points

    def process_cycles(
        self,
        start: datetime,
        end: datetime,
        recalculate: bool = False,
        logic=None,
    ) -> ProcessingSummary:
        """Segment [start, end] and persist the resulting cycles.

        Parameters
        ----------
        start, end : datetime
            Requested window. ``start`` is clamped to available data.
        recalculate : bool
            Replace every cycle of the tunnel with the results, without
            reconciliation. The swap happens in one transaction after the
            window was fetched and segmented, so a failed fetch leaves the
            stored cycles untouched.
        logic : CycleLogicConfig, optional
            Thresholds for this pass. Read from the logic store when omitted.

        Raises
        ------
        SourceUnavailable
            If the raw source cannot be queried. Nothing is written.
        """
        start, end = ensure_utc(start), ensure_utc(end)
        logic = logic or self.logic_store.read()
        summary = ProcessingSummary(processed_from=start, processed_to=end)

        effective_start = self.resolve_available_start(start)
        summary.processed_from = effective_start
        points, drafts = [], []

        if effective_start >= end:
            logger.warning(
                "Invalid processing range %s → %s", effective_start.isoformat(), end.isoformat()
            )
        else:
            points = self.load_points(effective_start, end)
            if points:
                result = CycleSegmenter(logic, self.tunnel_id).segment(points)
                assert_cycle_drafts(result.cycles)
                drafts = result.cycles
                summary.descargas_count = len(result.valid_discharges)
                summary.closed_cycles = result.closed_cycles
                summary.open_cycles = result.open_cycles
            else:
                logger.info("No usable points in %s → %s", effective_start.isoformat(), end.isoformat())

        if recalculate:
            self._replace_all(drafts, summary)
        elif points:
            self._reconcile(drafts, effective_start, end, summary)
        else:
            return summary

        logger.info(
            "Processed %s → %s: %d discharges, %d created, %d updated, %d deleted",
            effective_start.isoformat(), end.isoformat(), summary.descargas_count,
            summary.cycles_created, summary.cycles_updated, summary.cycles_deleted,
        )
        return summary

    def _match(self, draft: CycleDraft, candidates: dict):
        best = None
        for cycle in candidates.values():
            gap = abs(cycle.start_real - draft.start_real)
            if gap <= self.match_tolerance and (best is None or gap < abs(best.start_real - draft.start_real)):
                best = cycle
        return best

    def _reconcile(self, drafts: List[CycleDraft], start: datetime, end: datetime, summary: ProcessingSummary):
        candidates = {c.id: c for c in self.store.list_cycles(self.tunnel_id, start, end)}

        plan = []
        for draft in drafts:
            match = self._match(draft, candidates)
            if match is not None:
                del candidates[match.id]
                if match.end_real is not None and draft.end_real != match.end_real:
                    draft = preserve_end_real(draft, match.end_real)
            plan.append((draft, match))

        if candidates:
            ghosts = sorted(candidates)
            logger.info("Removing %d cycles no longer reproduced: %s", len(ghosts), ghosts)
            summary.cycles_deleted += self.store.delete_cycles(ghosts)

        for draft, match in plan:
            self._save(draft, match, summary)

    def _replace_all(self, drafts: List[CycleDraft], summary: ProcessingSummary):
        deleted, saved = self.store.replace_all_cycles(self.tunnel_id, drafts)
        summary.cycles_deleted += deleted
        summary.cycles_created += len(saved)
        logger.info("Recalculation: replaced %d cycles with %d", deleted, len(saved))
        for cycle, draft in zip(saved, drafts):
            self._notify(cycle, draft)

    def _save(self, draft: CycleDraft, existing, summary: ProcessingSummary):
        if existing is None:
            saved = self.store.create_cycle(draft)
            summary.cycles_created += 1
        else:
            saved = self.store.replace_cycle(existing.id, draft)
            summary.cycles_updated += 1
        self._notify(saved, draft)
        return saved

    def _notify(self, cycle, draft: CycleDraft):
        if self.notifier is None:
            return
        try:
            self.notifier.notify(cycle, draft.points)
        except Exception:
            logger.exception("Notification failed for cycle %s", cycle.id)
