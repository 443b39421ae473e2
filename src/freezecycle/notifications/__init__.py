"""Rule-based cycle notifications."""

from freezecycle.notifications.notifier import (
    CycleNotifier,
    NotificationEvent,
    NotificationMessage,
    log_sender,
)

__all__ = ["CycleNotifier", "NotificationEvent", "NotificationMessage", "log_sender"]
