"""UserConfig: Forgiving, minimal user-facing configuration.

This schema accepts user inputs in a variety of formats, with aliases
for common naming patterns (e.g., TUNNEL_ID → tunnel_id, INFLUX_URL → source.url).

UserConfig is intentionally minimal - users only specify what they want
to override from the expert defaults.
"""

from typing import Literal, Optional, Any
from pydantic import Field, field_validator
from freezecycle.schemas.base import FreezeBaseModel
from freezecycle.schemas.cycle_logic import CycleLogicConfig


class UserSourceConfig(FreezeBaseModel):
    """User-facing source config."""
    url: Optional[str] = None
    token: Optional[str] = None
    org: Optional[str] = None
    bucket: Optional[str] = None
    measurement: Optional[str] = None
    fields: Optional[list[str]] = None
    chunk_hours: Optional[int] = None
    timeout_ms: Optional[int] = None


class UserPointFieldsConfig(FreezeBaseModel):
    """User-facing point field aliases."""
    serpentine_temperature: Optional[list[str]] = None
    door_temperature: Optional[list[str]] = None
    operation_state: Optional[list[str]] = None
    energy_instant: Optional[list[str]] = None

    @field_validator("*", mode="before")
    @classmethod
    def wrap_single_name(cls, v):
        """Accept a bare field name where a list of aliases is expected."""
        if isinstance(v, str):
            return [v]
        return v


class UserDerivedConfig(FreezeBaseModel):
    """User-facing derived engine config."""
    batch_size: Optional[int] = None
    bootstrap_start: Optional[str] = None
    elapsed_variable_name: Optional[str] = None
    poll_interval_sec: Optional[int] = None


class UserSchedulerConfig(FreezeBaseModel):
    """User-facing scheduler config."""
    overlap_minutes: Optional[float] = None
    fallback_lookback_days: Optional[float] = None
    start_match_tolerance_sec: Optional[float] = None
    poll_interval_sec: Optional[int] = None


class UserConfig(FreezeBaseModel):
    """User-facing configuration schema.

    Minimal, forgiving, and uses common aliases. Users only specify
    what they want to override from ParamConfig defaults.

    Usage
    -----
        user_cfg = UserConfig(
            tunnel_id="3",
            base_dir="/data/freezecycle",
            influx_url="http://influx:8086",
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    # Top-level operational settings
    tunnel_id: Optional[str] = Field(None, alias="TUNNEL_ID")
    base_dir: Optional[str] = Field(None, alias="BASE_DIR")
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = Field(
        None, alias="LOG_LEVEL")

    # Source settings (flat aliases)
    influx_url: Optional[str] = Field(None, alias="INFLUX_URL")
    influx_token: Optional[str] = Field(None, alias="INFLUX_TOKEN")
    influx_org: Optional[str] = Field(None, alias="INFLUX_ORG")
    influx_bucket: Optional[str] = Field(None, alias="INFLUX_BUCKET")
    influx_measurement: Optional[str] = Field(None, alias="INFLUX_MEASUREMENT")

    # Scheduling settings (flat aliases)
    overlap_minutes: Optional[float] = Field(None, alias="OVERLAP_MINUTES")
    cycle_poll_interval_sec: Optional[int] = Field(None, alias="CYCLE_POLL_INTERVAL_SEC")
    derived_poll_interval_sec: Optional[int] = Field(None, alias="DERIVED_POLL_INTERVAL_SEC")
    derived_batch_size: Optional[int] = Field(None, alias="DERIVED_BATCH_SIZE")

    # Nested overrides (advanced users)
    source: Optional[UserSourceConfig] = None
    points: Optional[UserPointFieldsConfig] = None
    derived: Optional[UserDerivedConfig] = None
    scheduler: Optional[UserSchedulerConfig] = None
    cycle_logic: Optional[dict[str, Any]] = None

    model_config = FreezeBaseModel.model_config.copy()
    # Allow forgiving input dictionaries (ignore unknown legacy keys)
    model_config.update({"populate_by_name": True, "extra": "ignore"})

    @field_validator("tunnel_id", mode="before")
    @classmethod
    def coerce_tunnel_id(cls, v):
        """Accept an integer tunnel id."""
        if v is not None:
            return str(v)
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.upper().strip()
        return v

    def to_internal_overrides(self) -> dict:
        """Convert flat UserConfig to nested InternalConfig structure.

        Returns
        -------
        dict
            Nested dictionary matching InternalConfig structure
        """
        overrides = {}

        if self.tunnel_id is not None:
            overrides["tunnel_id"] = self.tunnel_id

        if self.base_dir is not None:
            overrides["base_dir"] = str(self.base_dir)

        if self.log_level is not None:
            overrides["logging"] = {"level": self.log_level}

        # Source section
        source = {}
        if self.influx_url is not None:
            source["url"] = self.influx_url
        if self.influx_token is not None:
            source["token"] = self.influx_token
        if self.influx_org is not None:
            source["org"] = self.influx_org
        if self.influx_bucket is not None:
            source["bucket"] = self.influx_bucket
        if self.influx_measurement is not None:
            source["measurement"] = self.influx_measurement

        if self.source is not None:
            source.update(self.source.model_dump(exclude_none=True))

        if source:
            overrides["source"] = source

        if self.points is not None:
            points = self.points.model_dump(exclude_none=True)
            if points:
                overrides["points"] = points

        # Derived section
        derived = {}
        if self.derived_poll_interval_sec is not None:
            derived["poll_interval_sec"] = self.derived_poll_interval_sec
        if self.derived_batch_size is not None:
            derived["batch_size"] = self.derived_batch_size

        if self.derived is not None:
            derived.update(self.derived.model_dump(exclude_none=True))

        if derived:
            overrides["derived"] = derived

        # Scheduler section
        scheduler = {}
        if self.overlap_minutes is not None:
            scheduler["overlap_minutes"] = self.overlap_minutes
        if self.cycle_poll_interval_sec is not None:
            scheduler["poll_interval_sec"] = self.cycle_poll_interval_sec

        if self.scheduler is not None:
            scheduler.update(self.scheduler.model_dump(exclude_none=True))

        if scheduler:
            overrides["scheduler"] = scheduler

        if self.cycle_logic:
            # Accept camelCase keys as written in the logic file
            logic = CycleLogicConfig.model_validate(self.cycle_logic)
            overrides["cycle_logic"] = logic.model_dump(exclude_unset=True)

        return overrides
