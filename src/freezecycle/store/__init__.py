"""Persistence: SQLite engine store and the cycle logic config file."""

from freezecycle.store.records import Cycle, NotificationRule, VariableDefinition
from freezecycle.store.repository import EngineStore
from freezecycle.store.logic_config import CycleLogicStore

__all__ = [
    "Cycle",
    "NotificationRule",
    "VariableDefinition",
    "EngineStore",
    "CycleLogicStore",
]
