"""CycleLogicConfig: thresholds that drive discharge detection and segmentation.

Unlike the rest of the configuration, these values are edited at runtime
(an operator tunes them against real defrost curves) and are persisted as a
camelCase JSON file. They are re-read at the start of every processing pass.
"""

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from freezecycle.schemas.base import FreezeBaseModel


class CycleLogicConfig(FreezeBaseModel):
    """Segmentation thresholds.

    Attributes
    ----------
    min_rise_degrees : float
        Minimum serpentine temperature rise (°C) inside ``rise_window_minutes``.
    rise_window_minutes : float
        Backward window for the rise condition.
    min_slope : float
        Minimum rise rate (°C/min) measured over ``slope_duration_minutes``.
    slope_duration_minutes : float
        Minimum span used to measure the slope.
    min_defrost_temperature : float
        A discharge cannot be detected at or below this temperature.
    min_defrost_separation_minutes : float
        Minimum gap between two accepted discharges.
    min_cycle_hours, max_cycle_hours : float
        Accepted cycle duration range. ``min_cycle_hours`` also merges
        discharges that are closer than this.
    operation_start_value, operation_end_value : float
        Operation-state values that mark running / stopped.
    cycle_energy_set_point : float
        Accumulated energy at which a cycle is estimated complete.
    min_operation_zero_minutes_for_end_real : float
        Stopped streak (minutes) that sets a tentative end on the open cycle.
    operating_temperature_threshold : float
        Open-cycle start is accepted immediately below this temperature.
    start_confirmation_points : int
        Window used to confirm a sustained start when still warm.
    """

    min_rise_degrees: float = 8.0
    rise_window_minutes: float = Field(30.0, gt=0)
    min_slope: float = 0.25
    slope_duration_minutes: float = Field(10.0, ge=0)
    min_defrost_temperature: float = -4.0
    min_defrost_separation_minutes: float = Field(10.0, ge=0)
    min_cycle_hours: float = Field(18.0, ge=0)
    max_cycle_hours: float = Field(40.0, gt=0)
    operation_start_value: float = 1.0
    operation_end_value: float = 0.0
    cycle_energy_set_point: float = 0.0
    min_operation_zero_minutes_for_end_real: float = Field(15.0, ge=0)
    operating_temperature_threshold: float = -10.0
    start_confirmation_points: int = Field(5, ge=1)

    # Logic files are shared with the admin surface, which writes camelCase
    # and may carry keys this version does not know yet.
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("cycle_energy_set_point", mode="before")
    @classmethod
    def none_set_point_is_zero(cls, v):
        """A cleared set point in the editor is stored as null."""
        return 0.0 if v is None else v
