"""Pydantic configuration schemas for the freezecycle engine.

Exports
-------
resolve_config : function
    Single entrypoint for configuration resolution
InternalConfig : class
    Fully validated, authoritative runtime configuration
ParamConfig : class
    Expert defaults (complete)
UserConfig : class
    User-facing configuration (forgiving, minimal)
CLIConfig : class
    Command-line operational overrides
CycleLogicConfig : class
    Runtime-editable segmentation thresholds
"""

from freezecycle.schemas.resolve import resolve_config
from freezecycle.schemas.internal import InternalConfig
from freezecycle.schemas.param import ParamConfig
from freezecycle.schemas.user import UserConfig
from freezecycle.schemas.cli import CLIConfig
from freezecycle.schemas.cycle_logic import CycleLogicConfig

__all__ = [
    'resolve_config',
    'InternalConfig',
    'ParamConfig',
    'UserConfig',
    'CLIConfig',
    'CycleLogicConfig',
]
