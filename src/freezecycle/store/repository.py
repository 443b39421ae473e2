"""SQLite persistence for variable definitions, derived values and cycles.

One database per tunnel deployment holds everything the engine writes:
formula definitions and their per-timestamp results, reconciled cycles
with their point traces, the cycle processing watermark, and the
notification rules and delivery log.
"""

import json
import sqlite3
import logging
import threading
from pathlib import Path
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from freezecycle.store.records import Cycle, NotificationRule, VariableDefinition
from freezecycle.cycles.types import CycleDraft, CyclePoint
from freezecycle.timeutils import from_iso, to_iso, utc_now

logger = logging.getLogger(__name__)


def _is_missing_table(error: sqlite3.OperationalError) -> bool:
    return "no such table" in str(error)


class EngineStore:
    """Thread-safe SQLite store used by every engine component.

    **Database Schema:**

    - ``variable_definition``: named formulas with a per-variable
      ``last_processed_at`` watermark
    - ``derived_value``: one value per (variable, timestamp), upserted
    - ``cycle`` / ``cycle_point``: reconciled cycles and their traces
    - ``cycle_processing_state``: closed-cycle watermark, one row per tunnel
    - ``notification_rule`` / ``notification_log``: rule definitions and
      the record of notifications already sent

    Timestamps are stored as fixed-width ISO-8601 UTC text, so text order
    is time order.

    **Thread Safety:**

    All methods are thread-safe via internal locking. Multi-statement writes
    run in a single transaction.

    Notification and processing-state tables may be absent in a database
    created by an older deployment; reads from them degrade to defaults
    with a warning.
    """

    def __init__(self, db_path: Path | str):
        """Initialize store.

        Parameters
        ----------
        db_path : Path or str
            Path to SQLite database file, or ``":memory:"``. Created if it
            doesn't exist.
        """
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path)
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = None
        self._lock = threading.Lock()

        self._init_database()
        logger.info("Engine store initialized: %s", self.db_path)

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        return self._conn

    def _init_database(self):
        """Create database schema if it doesn't exist."""
        conn = self._get_connection()

        with self._lock, conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS variable_definition (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    expression TEXT NOT NULL,
                    enabled INTEGER NOT NULL DEFAULT 1,
                    last_processed_at TEXT
                );

                CREATE TABLE IF NOT EXISTS derived_value (
                    variable_id INTEGER NOT NULL
                        REFERENCES variable_definition(id) ON DELETE CASCADE,
                    timestamp TEXT NOT NULL,
                    value REAL NOT NULL,
                    PRIMARY KEY (variable_id, timestamp)
                );
                CREATE INDEX IF NOT EXISTS idx_derived_timestamp ON derived_value(timestamp);

                CREATE TABLE IF NOT EXISTS cycle (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tunnel_id TEXT NOT NULL,
                    start_real TEXT NOT NULL,
                    end_real TEXT,
                    end_estimated TEXT,
                    discharge_time TEXT,
                    is_current INTEGER NOT NULL DEFAULT 0,
                    energy_accumulated_total REAL NOT NULL DEFAULT 0,
                    set_point REAL NOT NULL DEFAULT 0,
                    active_time_minutes REAL NOT NULL DEFAULT 0,
                    overfrozen_time_minutes REAL NOT NULL DEFAULT 0,
                    avg_serpentin_total REAL NOT NULL DEFAULT 0,
                    avg_door_total REAL NOT NULL DEFAULT 0,
                    created_at TEXT,
                    updated_at TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_cycle_start ON cycle(tunnel_id, start_real);

                CREATE TABLE IF NOT EXISTS cycle_point (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    cycle_id INTEGER NOT NULL REFERENCES cycle(id) ON DELETE CASCADE,
                    timestamp TEXT NOT NULL,
                    avg_serpentin REAL,
                    avg_door REAL,
                    operation_state REAL,
                    energy_instant REAL,
                    energy_accumulated REAL,
                    hour_from_cycle_start REAL
                );
                CREATE INDEX IF NOT EXISTS idx_cycle_point_cycle ON cycle_point(cycle_id);

                CREATE TABLE IF NOT EXISTS cycle_processing_state (
                    tunnel_id TEXT PRIMARY KEY,
                    last_processed_timestamp TEXT,
                    updated_at TEXT
                );

                CREATE TABLE IF NOT EXISTS notification_rule (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tunnel_id TEXT NOT NULL,
                    event TEXT NOT NULL,
                    percentage_threshold REAL,
                    recipients TEXT NOT NULL DEFAULT '[]',
                    enabled INTEGER NOT NULL DEFAULT 1
                );

                CREATE TABLE IF NOT EXISTS notification_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    rule_id INTEGER NOT NULL,
                    cycle_id INTEGER,
                    tunnel_id TEXT NOT NULL,
                    cycle_start TEXT NOT NULL,
                    event TEXT NOT NULL,
                    percentage_threshold REAL,
                    sent_at TEXT NOT NULL,
                    UNIQUE (rule_id, tunnel_id, cycle_start)
                );
            """)

    # ------------------------------------------------------------------
    # Variable definitions
    # ------------------------------------------------------------------

    def create_variable(self, name: str, expression: str, enabled: bool = True) -> VariableDefinition:
        conn = self._get_connection()
        with self._lock, conn:
            cursor = conn.execute(
                "INSERT INTO variable_definition (name, expression, enabled) VALUES (?, ?, ?)",
                (name, expression, int(enabled)),
            )
            row = conn.execute(
                "SELECT * FROM variable_definition WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
        return VariableDefinition.from_row(row)

    def get_variable(self, variable_id: int) -> Optional[VariableDefinition]:
        conn = self._get_connection()
        with self._lock:
            row = conn.execute(
                "SELECT * FROM variable_definition WHERE id = ?", (variable_id,)
            ).fetchone()
        return VariableDefinition.from_row(row) if row else None

    def list_variables(self, enabled_only: bool = False) -> List[VariableDefinition]:
        conn = self._get_connection()
        query = "SELECT * FROM variable_definition"
        if enabled_only:
            query += " WHERE enabled = 1"
        query += " ORDER BY id"
        with self._lock:
            rows = conn.execute(query).fetchall()
        return [VariableDefinition.from_row(r) for r in rows]

    def set_last_processed(self, variable_id: int, timestamp: Optional[datetime]):
        """Move (or reset, with None) a variable's derived-value watermark."""
        conn = self._get_connection()
        with self._lock, conn:
            conn.execute(
                "UPDATE variable_definition SET last_processed_at = ? WHERE id = ?",
                (to_iso(timestamp), variable_id),
            )

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def upsert_derived_values(self, variable_id: int, values: Iterable[tuple]) -> int:
        """Insert or overwrite ``(timestamp, value)`` rows in one transaction."""
        rows = [(variable_id, to_iso(ts), float(value)) for ts, value in values]
        if not rows:
            return 0

        conn = self._get_connection()
        with self._lock, conn:
            conn.executemany("""
                INSERT INTO derived_value (variable_id, timestamp, value)
                VALUES (?, ?, ?)
                ON CONFLICT (variable_id, timestamp)
                DO UPDATE SET value = excluded.value
            """, rows)
        return len(rows)

    def delete_derived_values(self, variable_id: int) -> int:
        conn = self._get_connection()
        with self._lock, conn:
            cursor = conn.execute("DELETE FROM derived_value WHERE variable_id = ?", (variable_id,))
        return cursor.rowcount

    def latest_derived_timestamp(self, variable_id: int) -> Optional[datetime]:
        conn = self._get_connection()
        with self._lock:
            row = conn.execute(
                "SELECT MAX(timestamp) AS ts FROM derived_value WHERE variable_id = ?",
                (variable_id,),
            ).fetchone()
        return from_iso(row["ts"])

    def earliest_derived_timestamp(self) -> Optional[datetime]:
        conn = self._get_connection()
        with self._lock:
            row = conn.execute("SELECT MIN(timestamp) AS ts FROM derived_value").fetchone()
        return from_iso(row["ts"])

    def get_derived_values(self, variable_id: int) -> Dict[datetime, float]:
        conn = self._get_connection()
        with self._lock:
            rows = conn.execute(
                "SELECT timestamp, value FROM derived_value WHERE variable_id = ? ORDER BY timestamp",
                (variable_id,),
            ).fetchall()
        return {from_iso(r["timestamp"]): r["value"] for r in rows}

    def load_derived_values(
        self,
        names: Iterable[str],
        start: datetime,
        end: datetime,
    ) -> Dict[datetime, Dict[str, float]]:
        """Values of the named variables in [start, end], grouped by timestamp."""
        names = list(names)
        if not names:
            return {}

        placeholders = ", ".join("?" for _ in names)
        conn = self._get_connection()
        with self._lock:
            rows = conn.execute(f"""
                SELECT v.name AS name, d.timestamp AS timestamp, d.value AS value
                FROM derived_value d
                JOIN variable_definition v ON v.id = d.variable_id
                WHERE v.name IN ({placeholders})
                  AND d.timestamp >= ? AND d.timestamp <= ?
                ORDER BY d.timestamp
            """, (*names, to_iso(start), to_iso(end))).fetchall()

        grouped: Dict[datetime, Dict[str, float]] = {}
        for row in rows:
            grouped.setdefault(from_iso(row["timestamp"]), {})[row["name"]] = row["value"]
        return grouped

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    def list_cycles(
        self,
        tunnel_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Cycle]:
        """Cycles of a tunnel whose start falls in [start, end), oldest first."""
        query = "SELECT * FROM cycle WHERE tunnel_id = ?"
        params: list = [tunnel_id]
        if start is not None:
            query += " AND start_real >= ?"
            params.append(to_iso(start))
        if end is not None:
            query += " AND start_real < ?"
            params.append(to_iso(end))
        query += " ORDER BY start_real"

        conn = self._get_connection()
        with self._lock:
            rows = conn.execute(query, params).fetchall()
        return [Cycle.from_row(r) for r in rows]

    def get_cycle(self, cycle_id: int) -> Optional[Cycle]:
        conn = self._get_connection()
        with self._lock:
            row = conn.execute("SELECT * FROM cycle WHERE id = ?", (cycle_id,)).fetchone()
        return Cycle.from_row(row) if row else None

    def get_cycle_points(self, cycle_id: int) -> List[CyclePoint]:
        conn = self._get_connection()
        with self._lock:
            rows = conn.execute(
                "SELECT * FROM cycle_point WHERE cycle_id = ? ORDER BY timestamp", (cycle_id,)
            ).fetchall()
        return [
            CyclePoint(
                timestamp=from_iso(r["timestamp"]),
                avg_serpentin=r["avg_serpentin"],
                avg_door=r["avg_door"],
                operation_state=r["operation_state"],
                energy_instant=r["energy_instant"],
                energy_accumulated=r["energy_accumulated"],
                hour_from_cycle_start=r["hour_from_cycle_start"],
                cycle_id=r["cycle_id"],
            )
            for r in rows
        ]

    def first_cycle(self, tunnel_id: str) -> Optional[Cycle]:
        """Earliest-starting cycle of a tunnel."""
        conn = self._get_connection()
        with self._lock:
            row = conn.execute(
                "SELECT * FROM cycle WHERE tunnel_id = ? ORDER BY start_real LIMIT 1", (tunnel_id,)
            ).fetchone()
        return Cycle.from_row(row) if row else None

    def latest_closed_cycle_end(self, tunnel_id: str) -> Optional[datetime]:
        """``end_real`` of the most recent closed (non-current) cycle."""
        conn = self._get_connection()
        with self._lock:
            row = conn.execute(
                "SELECT MAX(end_real) AS ts FROM cycle "
                "WHERE tunnel_id = ? AND end_real IS NOT NULL AND is_current = 0",
                (tunnel_id,),
            ).fetchone()
        return from_iso(row["ts"])

    @staticmethod
    def _cycle_values(draft: CycleDraft) -> tuple:
        return (
            draft.tunnel_id,
            to_iso(draft.start_real),
            to_iso(draft.end_real),
            to_iso(draft.end_estimated),
            to_iso(draft.discharge_time),
            int(draft.is_current),
            draft.energy_accumulated_total,
            draft.set_point,
            draft.active_time_minutes,
            draft.overfrozen_time_minutes,
            draft.avg_serpentin_total,
            draft.avg_door_total,
        )

    @staticmethod
    def _insert_points(conn, cycle_id: int, points: List[CyclePoint]):
        conn.executemany("""
            INSERT INTO cycle_point (
                cycle_id, timestamp, avg_serpentin, avg_door, operation_state,
                energy_instant, energy_accumulated, hour_from_cycle_start
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            (
                cycle_id, to_iso(p.timestamp), p.avg_serpentin, p.avg_door, p.operation_state,
                p.energy_instant, p.energy_accumulated, p.hour_from_cycle_start,
            )
            for p in points
        ])

    def _insert_cycle(self, conn, draft: CycleDraft, now: str) -> sqlite3.Row:
        if draft.is_current:
            conn.execute(
                "UPDATE cycle SET is_current = 0 WHERE tunnel_id = ? AND is_current = 1",
                (draft.tunnel_id,),
            )
        cursor = conn.execute("""
            INSERT INTO cycle (
                tunnel_id, start_real, end_real, end_estimated, discharge_time, is_current,
                energy_accumulated_total, set_point, active_time_minutes,
                overfrozen_time_minutes, avg_serpentin_total, avg_door_total,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (*self._cycle_values(draft), now, now))
        cycle_id = cursor.lastrowid
        self._insert_points(conn, cycle_id, draft.points)
        return conn.execute("SELECT * FROM cycle WHERE id = ?", (cycle_id,)).fetchone()

    def create_cycle(self, draft: CycleDraft) -> Cycle:
        """Insert a cycle and its points in one transaction.

        A current cycle first clears the flag on every other cycle of the tunnel.
        """
        conn = self._get_connection()
        with self._lock, conn:
            row = self._insert_cycle(conn, draft, to_iso(utc_now()))

        logger.debug("Created cycle %s starting %s", row["id"], draft.start_real.isoformat())
        return Cycle.from_row(row)

    def replace_cycle(self, cycle_id: int, draft: CycleDraft) -> Cycle:
        """Overwrite a stored cycle and fully replace its points in one transaction."""
        now = to_iso(utc_now())
        conn = self._get_connection()
        with self._lock, conn:
            if draft.is_current:
                conn.execute(
                    "UPDATE cycle SET is_current = 0 WHERE tunnel_id = ? AND is_current = 1 AND id != ?",
                    (draft.tunnel_id, cycle_id),
                )
            conn.execute("""
                UPDATE cycle SET
                    tunnel_id = ?, start_real = ?, end_real = ?, end_estimated = ?,
                    discharge_time = ?, is_current = ?, energy_accumulated_total = ?,
                    set_point = ?, active_time_minutes = ?, overfrozen_time_minutes = ?,
                    avg_serpentin_total = ?, avg_door_total = ?, updated_at = ?
                WHERE id = ?
            """, (*self._cycle_values(draft), now, cycle_id))
            conn.execute("DELETE FROM cycle_point WHERE cycle_id = ?", (cycle_id,))
            self._insert_points(conn, cycle_id, draft.points)
            row = conn.execute("SELECT * FROM cycle WHERE id = ?", (cycle_id,)).fetchone()

        logger.debug("Updated cycle %s starting %s", cycle_id, draft.start_real.isoformat())
        return Cycle.from_row(row)

    def delete_cycles(self, cycle_ids: Iterable[int]) -> int:
        ids = list(cycle_ids)
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        conn = self._get_connection()
        with self._lock, conn:
            conn.execute(f"DELETE FROM cycle_point WHERE cycle_id IN ({placeholders})", ids)
            cursor = conn.execute(f"DELETE FROM cycle WHERE id IN ({placeholders})", ids)
        return cursor.rowcount

    @staticmethod
    def _delete_tunnel_cycles(conn, tunnel_id: str) -> int:
        conn.execute("""
            DELETE FROM cycle_point
            WHERE cycle_id IN (SELECT id FROM cycle WHERE tunnel_id = ?)
        """, (tunnel_id,))
        return conn.execute("DELETE FROM cycle WHERE tunnel_id = ?", (tunnel_id,)).rowcount

    def delete_all_cycles(self, tunnel_id: str) -> int:
        """Remove every cycle and point of a tunnel."""
        conn = self._get_connection()
        with self._lock, conn:
            return self._delete_tunnel_cycles(conn, tunnel_id)

    def replace_all_cycles(self, tunnel_id: str, drafts: Iterable[CycleDraft]) -> tuple:
        """Swap the whole cycle set of a tunnel in one transaction (full rebuild).

        Returns
        -------
        tuple
            (number of cycles deleted, list of saved Cycle)
        """
        now = to_iso(utc_now())
        conn = self._get_connection()
        with self._lock, conn:
            deleted = self._delete_tunnel_cycles(conn, tunnel_id)
            rows = [self._insert_cycle(conn, draft, now) for draft in drafts]

        logger.debug("Replaced %d cycles of %s with %d", deleted, tunnel_id, len(rows))
        return deleted, [Cycle.from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Processing watermark
    # ------------------------------------------------------------------

    def get_watermark(self, tunnel_id: str) -> Optional[datetime]:
        conn = self._get_connection()
        try:
            with self._lock:
                row = conn.execute(
                    "SELECT last_processed_timestamp FROM cycle_processing_state WHERE tunnel_id = ?",
                    (tunnel_id,),
                ).fetchone()
        except sqlite3.OperationalError as e:
            if not _is_missing_table(e):
                raise
            logger.warning("cycle_processing_state table missing; treating watermark as unset")
            return None
        return from_iso(row["last_processed_timestamp"]) if row else None

    def set_watermark(self, tunnel_id: str, timestamp: Optional[datetime]):
        conn = self._get_connection()
        try:
            with self._lock, conn:
                conn.execute("""
                    INSERT INTO cycle_processing_state (tunnel_id, last_processed_timestamp, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT (tunnel_id) DO UPDATE SET
                        last_processed_timestamp = excluded.last_processed_timestamp,
                        updated_at = excluded.updated_at
                """, (tunnel_id, to_iso(timestamp), to_iso(utc_now())))
        except sqlite3.OperationalError as e:
            if not _is_missing_table(e):
                raise
            logger.warning("cycle_processing_state table missing; watermark not persisted")

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def create_notification_rule(
        self,
        tunnel_id: str,
        event: str,
        recipients: List[str],
        percentage_threshold: Optional[float] = None,
        enabled: bool = True,
    ) -> NotificationRule:
        conn = self._get_connection()
        with self._lock, conn:
            cursor = conn.execute("""
                INSERT INTO notification_rule (tunnel_id, event, percentage_threshold, recipients, enabled)
                VALUES (?, ?, ?, ?, ?)
            """, (tunnel_id, event, percentage_threshold, json.dumps(list(recipients)), int(enabled)))
            row = conn.execute(
                "SELECT * FROM notification_rule WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
        return NotificationRule.from_row(row)

    def list_notification_rules(self, tunnel_id: str) -> List[NotificationRule]:
        """Enabled rules of a tunnel; empty when the rule table is missing."""
        conn = self._get_connection()
        try:
            with self._lock:
                rows = conn.execute(
                    "SELECT * FROM notification_rule WHERE tunnel_id = ? AND enabled = 1 ORDER BY id",
                    (tunnel_id,),
                ).fetchall()
        except sqlite3.OperationalError as e:
            if not _is_missing_table(e):
                raise
            logger.warning(
                "notification_rule table missing. Skipping notifications until the schema is created."
            )
            return []
        return [NotificationRule.from_row(r) for r in rows]

    def notification_sent(self, rule_id: int, tunnel_id: str, cycle_start: datetime) -> bool:
        conn = self._get_connection()
        with self._lock:
            row = conn.execute("""
                SELECT 1 FROM notification_log
                WHERE rule_id = ? AND tunnel_id = ? AND cycle_start = ?
            """, (rule_id, tunnel_id, to_iso(cycle_start))).fetchone()
        return row is not None

    def record_notification(self, rule: NotificationRule, cycle: Cycle):
        conn = self._get_connection()
        with self._lock, conn:
            conn.execute("""
                INSERT OR IGNORE INTO notification_log (
                    rule_id, cycle_id, tunnel_id, cycle_start, event, percentage_threshold, sent_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                rule.id, cycle.id, cycle.tunnel_id, to_iso(cycle.start_real),
                rule.event, rule.percentage_threshold, to_iso(utc_now()),
            ))

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def get_statistics(self, tunnel_id: str) -> Dict:
        """Summary counts used by the orchestrator status line."""
        conn = self._get_connection()
        with self._lock:
            cycles = conn.execute("""
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN end_real IS NOT NULL AND is_current = 0 THEN 1 ELSE 0 END) AS closed,
                    SUM(CASE WHEN is_current = 1 THEN 1 ELSE 0 END) AS current
                FROM cycle WHERE tunnel_id = ?
            """, (tunnel_id,)).fetchone()
            variables = conn.execute(
                "SELECT COUNT(*) AS n FROM variable_definition WHERE enabled = 1"
            ).fetchone()
            derived = conn.execute("SELECT COUNT(*) AS n FROM derived_value").fetchone()

        return {
            "cycles": cycles["total"] or 0,
            "closed_cycles": cycles["closed"] or 0,
            "current_cycles": cycles["current"] or 0,
            "variables": variables["n"] or 0,
            "derived_values": derived["n"] or 0,
        }

    def close(self):
        """Close database connection. Safe to call multiple times."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
