"""ParamConfig: Expert defaults for the freezecycle engine.

This module defines the complete default configuration. ALL engine
parameters must have defaults here. No runtime code should define
fallback values - this is the single source of truth for defaults.

Runtime code NEVER reads from ParamConfig directly - it only receives InternalConfig.
"""

from datetime import datetime, timezone
from typing import Literal, Optional
from pydantic import Field, field_validator
from freezecycle.schemas.base import FreezeBaseModel
from freezecycle.schemas.cycle_logic import CycleLogicConfig


# =============================================================================
# Nested Configuration Models
# =============================================================================

DEFAULT_SOURCE_FIELDS = [
    "JPM_RTD1_Puerta_Izq_C",
    "JPM_RTD2_Serpentin_Izq_C",
    "JPM_RTD3_Serpentin_Der_C",
    "JPM_RTD4_Hacia_Puerta_Lado_Gemelo_C",
    "JVA_RTD1_C",
    "JVA_RTD2_C",
    "JVA_RTD3_C",
    "JVA_RTD4_C",
    "anemometro1_mA",
    "anemometro1_ms",
    "anemometro2_grados",
    "anemometro2_mA",
    "corriente_A",
    "corriente_mA",
    "min",
    "Anemometro_m_s",
    "Promedio_Serpentin_C",
]


class SourceConfig(FreezeBaseModel):
    """InfluxDB raw point source configuration."""
    url: str = "http://localhost:8086"
    token: str = ""
    org: str = ""
    bucket: str = "data_gemelo"
    measurement: str = "mediciones_plc"
    fields: list[str] = Field(default_factory=lambda: list(DEFAULT_SOURCE_FIELDS))
    chunk_hours: int = Field(168, ge=1, description="Window size of a single fetch")
    timeout_ms: int = Field(60000, ge=1000)


class PointFieldsConfig(FreezeBaseModel):
    """Field names read into processed points, first present alias wins."""
    serpentine_temperature: list[str] = Field(
        default_factory=lambda: ["Promedio_Serpentin", "Promedio_Serpentin_C"])
    door_temperature: list[str] = Field(
        default_factory=lambda: ["Promedio_Puerta", "Promedio_Puerta_C"])
    operation_state: list[str] = Field(
        default_factory=lambda: ["Operacion", "Estado_Operacion"])
    energy_instant: list[str] = Field(
        default_factory=lambda: ["Energia", "Energia_Instantanea"])


class DerivedConfig(FreezeBaseModel):
    """Derived value engine configuration."""
    batch_size: int = Field(400, ge=1, description="Rows per upsert transaction")
    bootstrap_start: datetime = datetime(2025, 10, 30, tzinfo=timezone.utc)
    elapsed_variable_name: str = "min_real"
    poll_interval_sec: int = Field(60, ge=1)


class SchedulerConfig(FreezeBaseModel):
    """Incremental cycle processing configuration."""
    overlap_minutes: float = Field(30.0, ge=0)
    fallback_lookback_days: float = Field(7.0, gt=0)
    start_match_tolerance_sec: float = Field(1.0, ge=0)
    poll_interval_sec: int = Field(300, ge=1)


class LoggingConfig(FreezeBaseModel):
    """Logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


# =============================================================================
# Main ParamConfig
# =============================================================================

class ParamConfig(FreezeBaseModel):
    """Complete expert configuration with all defaults.

    This is the single source of truth for all engine parameters.

    Usage
    -----
    This config is NOT used directly by runtime code. It serves as the
    base layer in config resolution:

        internal_cfg = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    tunnel_id: str = "tunnel-1"
    base_dir: Optional[str] = None
    source: SourceConfig = Field(default_factory=SourceConfig)
    points: PointFieldsConfig = Field(default_factory=PointFieldsConfig)
    derived: DerivedConfig = Field(default_factory=DerivedConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    cycle_logic: CycleLogicConfig = Field(default_factory=CycleLogicConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("tunnel_id", mode="before")
    @classmethod
    def coerce_tunnel_id(cls, v):
        """Tunnel ids are sometimes given as plain numbers."""
        return str(v)
