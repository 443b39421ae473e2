"""Shared pydantic base for the engine's configuration models.

A misspelled key in a nested param section (``scheduler.overlap_minute``)
should stop the engine at start-up instead of silently running with the
default, so unknown fields are rejected here. Models that read files
written by other tools (``UserConfig``, ``CycleLogicConfig``) relax this
in their own ``model_config``.
"""

from pydantic import BaseModel, ConfigDict


class FreezeBaseModel(BaseModel):
    """Base model for ParamConfig, UserConfig, CLIConfig and InternalConfig sections.

    Re-validates on attribute assignment, so a threshold changed after
    construction is still range-checked.
    """

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        use_enum_values=True,
        str_strip_whitespace=True,  # tunnel ids and field names come from hand-edited files
    )
