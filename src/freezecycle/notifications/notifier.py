"""Cycle notification decisions.

The notifier decides which rule events a saved cycle has reached, sends
each one at most once per (rule, tunnel, cycle start), and records what
was sent. Delivery is delegated to a sender callable.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence

from freezecycle.timeutils import ensure_utc

logger = logging.getLogger(__name__)


class NotificationEvent(str, Enum):
    CYCLE_STARTED = "CYCLE_STARTED"
    SETPOINT_REACHED = "SETPOINT_REACHED"
    CYCLE_COMPLETED = "CYCLE_COMPLETED"
    SETPOINT_PERCENT = "SETPOINT_PERCENT"


EVENT_TITLES = {
    NotificationEvent.CYCLE_STARTED: "Cycle started",
    NotificationEvent.SETPOINT_REACHED: "Set point reached",
    NotificationEvent.CYCLE_COMPLETED: "Cycle completed",
    NotificationEvent.SETPOINT_PERCENT: "Cycle reached configured percentage",
}


@dataclass(frozen=True)
class NotificationMessage:
    timestamp: datetime
    subject: str
    body: str


Sender = Callable[[List[str], str, str], None]


def log_sender(recipients: List[str], subject: str, body: str) -> None:
    """Default sender: write the notification to the log."""
    logger.info("Notification to %s: %s\n%s", ", ".join(recipients), subject, body)


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "N/A"
    return ensure_utc(value).strftime("%Y-%m-%d %H:%M:%S UTC")


def _point_reaching(points: Sequence, target: float):
    return next((p for p in points if (p.energy_accumulated or 0.0) >= target), None)


class CycleNotifier:
    """Fires rule-based notifications for reconciled cycles.

    Parameters
    ----------
    store : EngineStore
        Source of rules and the notification log.
    sender : callable, optional
        ``sender(recipients, subject, body)``. Defaults to :func:`log_sender`.
    subject_prefix : str
    """

    def __init__(self, store, sender: Optional[Sender] = None, subject_prefix: str = "[freezecycle]"):
        self.store = store
        self.sender = sender or log_sender
        self.subject_prefix = subject_prefix

    def _base_message(self, cycle) -> str:
        return "\n".join([
            f"Tunnel: {cycle.tunnel_id}",
            f"Real start: {format_timestamp(cycle.start_real)}",
            f"Real end: {format_timestamp(cycle.end_real)}",
            f"Accumulated energy: {cycle.energy_accumulated_total or 0.0:.2f} kWh",
            f"Configured set point: {cycle.set_point or 0.0:.2f} kWh",
        ])

    def build_message(self, rule, cycle, points: Sequence) -> Optional[NotificationMessage]:
        """The message for ``rule`` if the cycle has reached its event, else None."""
        try:
            event = NotificationEvent(rule.event)
        except ValueError:
            logger.warning("Unknown notification event %r on rule %s", rule.event, rule.id)
            return None

        title = EVENT_TITLES[event]
        subject = f"{self.subject_prefix} {title} ({cycle.tunnel_id})"
        base = self._base_message(cycle)

        if event is NotificationEvent.CYCLE_STARTED:
            return NotificationMessage(cycle.start_real, subject, f"{title} detected.\n{base}")

        if event is NotificationEvent.SETPOINT_REACHED:
            if not cycle.set_point or cycle.set_point <= 0:
                return None
            point = _point_reaching(points, cycle.set_point)
            if point is None:
                return None
            return NotificationMessage(
                point.timestamp, subject,
                f"{title} at {format_timestamp(point.timestamp)}.\n{base}",
            )

        if event is NotificationEvent.CYCLE_COMPLETED:
            if cycle.end_real is None:
                return None
            return NotificationMessage(
                cycle.end_real, subject,
                f"{title} at {format_timestamp(cycle.end_real)}.\n{base}",
            )

        # SETPOINT_PERCENT
        if not rule.percentage_threshold or not cycle.set_point or cycle.set_point <= 0:
            return None
        required = cycle.set_point * (rule.percentage_threshold / 100.0)
        point = _point_reaching(points, required)
        if point is None:
            return None
        return NotificationMessage(
            point.timestamp,
            f"{self.subject_prefix} {rule.percentage_threshold:g}% of set point ({cycle.tunnel_id})",
            "\n".join([
                f"The cycle reached {rule.percentage_threshold:g}% of the set point "
                f"at {format_timestamp(point.timestamp)}.",
                f"Partial target energy: {required:.2f} kWh",
                base,
            ]),
        )

    def notify(self, cycle, points: Sequence) -> int:
        """Send every due, not-yet-sent notification for ``cycle``.

        Returns
        -------
        int
            Number of notifications sent.
        """
        rules = self.store.list_notification_rules(cycle.tunnel_id)
        sent = 0

        for rule in rules:
            try:
                message = self.build_message(rule, cycle, points)
                if message is None:
                    continue
                if self.store.notification_sent(rule.id, cycle.tunnel_id, cycle.start_real):
                    continue

                recipients = [r.strip() for r in rule.recipients if isinstance(r, str) and r.strip()]
                if not recipients:
                    continue

                self.sender(recipients, message.subject, message.body)
                self.store.record_notification(rule, cycle)
                sent += 1
            except Exception:
                logger.exception("Failed to process notification rule %s (%s)", rule.id, rule.event)

        return sent
