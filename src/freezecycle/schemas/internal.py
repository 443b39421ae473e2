"""InternalConfig: Authoritative runtime configuration.

This is the ONLY config schema that runtime code sees. It is fully validated,
normalized, and contains NO optional fields that processing code depends on.

All .get() calls, fallback defaults, and validation logic are FORBIDDEN in
runtime code - everything is explicit here.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import Field, ConfigDict
from freezecycle.schemas.base import FreezeBaseModel
from freezecycle.schemas.cycle_logic import CycleLogicConfig


# =============================================================================
# Nested Configuration Models (Runtime)
# =============================================================================

class InternalSourceConfig(FreezeBaseModel):
    """Runtime raw point source configuration."""
    url: str
    token: str
    org: str
    bucket: str
    measurement: str
    fields: list[str]
    chunk_hours: int = Field(ge=1)
    timeout_ms: int


class InternalPointFieldsConfig(FreezeBaseModel):
    """Runtime field aliases for processed points."""
    serpentine_temperature: list[str] = Field(min_length=1)
    door_temperature: list[str] = Field(min_length=1)
    operation_state: list[str] = Field(min_length=1)
    energy_instant: list[str] = Field(min_length=1)


class InternalDerivedConfig(FreezeBaseModel):
    """Runtime derived value engine configuration."""
    batch_size: int = Field(ge=1)
    bootstrap_start: datetime
    elapsed_variable_name: str
    poll_interval_sec: int


class InternalSchedulerConfig(FreezeBaseModel):
    """Runtime incremental scheduler configuration."""
    overlap_minutes: float
    fallback_lookback_days: float
    start_match_tolerance_sec: float
    poll_interval_sec: int


class InternalLoggingConfig(FreezeBaseModel):
    """Runtime logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class InternalStorageConfig(FreezeBaseModel):
    """Runtime storage configuration."""
    db_filename_pattern: str = Field(default="{tunnel_id}_engine.db")
    logic_filename: str = Field(default="cycle-logic-config.json")


# =============================================================================
# Main InternalConfig
# =============================================================================

class InternalConfig(FreezeBaseModel):
    """Authoritative runtime configuration.

    This is the ONLY configuration schema that processing code sees.
    It is fully validated, immutable, and contains explicit values for
    all parameters (no None for fields that runtime depends on).

    Usage
    -----
    Runtime modules receive InternalConfig and access fields directly:

        def __init__(self, config: InternalConfig):
            self.overlap = config.scheduler.overlap_minutes  # NOT .get()

    ``cycle_logic`` holds the defaults written to the logic file when it
    does not exist yet. The processor re-reads the file on every pass.
    """

    tunnel_id: str
    base_dir: Optional[str]  # Required at runtime (validated by the orchestrator)
    source: InternalSourceConfig
    points: InternalPointFieldsConfig
    derived: InternalDerivedConfig
    scheduler: InternalSchedulerConfig
    cycle_logic: CycleLogicConfig
    logging: InternalLoggingConfig
    storage: InternalStorageConfig = Field(default_factory=InternalStorageConfig)

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        use_enum_values=True,
        str_strip_whitespace=True,
        frozen=True,  # Immutable after construction
    )
