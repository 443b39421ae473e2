"""Derived value engine: evaluates variable formulas over raw points.

Each enabled variable keeps its own ``last_processed_at`` watermark so a
pass only computes points newer than the previous one. Variables are
evaluated sequentially in dependency order, so a formula can read values
that an earlier variable wrote for the same timestamps.
"""

import logging
import math
from datetime import datetime
from typing import Dict, Iterable, Optional

import pandas as pd

from freezecycle.formulas import evaluate, sort_by_dependency, validate
from freezecycle.sources.base import RawPoint, annotate_min_real, fetch_in_chunks
from freezecycle.timeutils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


def build_context(point: RawPoint, derived_for_timestamp: Dict[str, float], exclude: Optional[str] = None) -> dict:
    """Raw fields, ``min_real`` and timestamp, overlaid with derived values.

    The value of ``exclude`` (the variable being evaluated) is left out so a
    formula never reads its own previous result for the same timestamp.
    """
    context = point.as_context()
    context["timestamp"] = point.timestamp
    for name, value in derived_for_timestamp.items():
        if name != exclude:
            context[name] = value
    return context


class DerivedValueEngine:
    """Computes and persists derived values.

    Parameters
    ----------
    store : EngineStore
    source : RawPointSource
    config : InternalConfig
        Uses ``config.derived`` (batch size, bootstrap epoch, elapsed
        variable name) and ``config.source.chunk_hours``.
    """

    def __init__(self, store, source, config):
        self.store = store
        self.source = source
        self.batch_size = config.derived.batch_size
        self.bootstrap_start = ensure_utc(config.derived.bootstrap_start)
        self.elapsed_name = config.derived.elapsed_variable_name
        self.chunk_hours = config.source.chunk_hours

    def purge(self, variable) -> int:
        """Delete every value of ``variable`` and reset its watermark."""
        deleted = self.store.delete_derived_values(variable.id)
        self.store.set_last_processed(variable.id, None)
        variable.last_processed_at = None
        logger.info("Purged %d derived values of %s", deleted, variable.name)
        return deleted

    def _finish(self, variable, end: datetime):
        self.store.set_last_processed(variable.id, end)
        variable.last_processed_at = end

    def recompute(
        self,
        variable,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        from_scratch: bool = False,
        all_definitions: Optional[Iterable] = None,
    ) -> int:
        """Evaluate ``variable`` over a window and upsert the results.

        The window defaults to (watermark or bootstrap epoch, now). The
        watermark always advances to the window end, even when the window
        held no data.

        Returns
        -------
        int
            Number of values written.
        """
        if not variable.enabled or not (variable.expression or "").strip():
            return 0

        if from_scratch:
            self.purge(variable)

        start = ensure_utc(start) if start is not None else (variable.last_processed_at or self.bootstrap_start)
        end = ensure_utc(end) if end is not None else utc_now()

        if start >= end:
            self._finish(variable, end)
            return 0

        previous = self.store.latest_derived_timestamp(variable.id)
        raw = fetch_in_chunks(self.source, start, end, self.chunk_hours)
        if not raw:
            logger.debug("No raw points for %s in %s → %s", variable.name, start.isoformat(), end.isoformat())
            self._finish(variable, end)
            return 0

        points = annotate_min_real(raw, previous_timestamp=previous)
        definitions = list(all_definitions) if all_definitions is not None else self.store.list_variables()
        derived = self.store.load_derived_values(
            [d.name for d in definitions if d.enabled], start, end
        )

        is_elapsed = variable.name == self.elapsed_name
        values = []
        for point in points:
            if is_elapsed:
                value = point.min_real
            else:
                context = build_context(point, derived.get(point.timestamp, {}), variable.name)
                value = evaluate(variable.expression, context)
            if value is None or not math.isfinite(value):
                value = 0.0
            values.append((point.timestamp, value))

        for i in range(0, len(values), self.batch_size):
            chunk = values[i:i + self.batch_size]
            self.store.upsert_derived_values(variable.id, chunk)
            for ts, value in chunk:
                derived.setdefault(ts, {})[variable.name] = value

        self._finish(variable, end)
        logger.info("Derived %s: %d values up to %s", variable.name, len(values), end.isoformat())
        return len(values)

    def run_pass(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Recompute every enabled variable in dependency order up to ``now``.

        A failing variable is logged and skipped; the remaining variables
        still run.
        """
        end = ensure_utc(now) if now is not None else utc_now()
        definitions = self.store.list_variables(enabled_only=True)
        written = {}

        for variable in sort_by_dependency(definitions, self.elapsed_name):
            try:
                written[variable.name] = self.recompute(variable, end=end, all_definitions=definitions)
            except Exception:
                logger.exception("Derived value recompute failed for %s", variable.name)

        return written

    def preview(self, expression: str, start: datetime, end: datetime) -> pd.DataFrame:
        """Evaluate ``expression`` over a window without persisting anything.

        Returns
        -------
        pandas.DataFrame
            Columns ``timestamp`` and ``value`` (NaN where evaluation failed).
            Empty when the expression does not parse.
        """
        columns = ["timestamp", "value"]
        if not validate(expression):
            return pd.DataFrame(columns=columns)

        start, end = ensure_utc(start), ensure_utc(end)
        points = annotate_min_real(fetch_in_chunks(self.source, start, end, self.chunk_hours))
        names = [d.name for d in self.store.list_variables(enabled_only=True)]
        derived = self.store.load_derived_values(names, start, end)

        rows = []
        for point in points:
            value = evaluate(expression, build_context(point, derived.get(point.timestamp, {})))
            rows.append((point.timestamp, math.nan if value is None else value))

        return pd.DataFrame(rows, columns=columns)
