"""Test config resolution and validation with Pydantic."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from freezecycle.schemas import CLIConfig, InternalConfig, ParamConfig, UserConfig, resolve_config
from freezecycle.schemas.resolve import deep_merge

pytestmark = pytest.mark.unit


class TestConfigResolution:
    """Test resolve_config() precedence and merging."""

    def test_resolve_config_all_defaults(self):
        config = resolve_config(ParamConfig(), None, None)

        assert isinstance(config, InternalConfig)
        assert config.source.bucket == "data_gemelo"
        assert config.source.measurement == "mediciones_plc"
        assert config.source.chunk_hours == 168
        assert config.derived.batch_size == 400
        assert config.derived.bootstrap_start == datetime(2025, 10, 30, tzinfo=timezone.utc)
        assert config.derived.elapsed_variable_name == "min_real"
        assert config.scheduler.overlap_minutes == 30.0
        assert config.scheduler.fallback_lookback_days == 7.0
        assert config.scheduler.start_match_tolerance_sec == 1.0
        assert config.cycle_logic.min_cycle_hours == 18.0
        assert config.points.serpentine_temperature == ["Promedio_Serpentin", "Promedio_Serpentin_C"]

    def test_flat_user_aliases(self):
        user = UserConfig.model_validate({
            "TUNNEL_ID": 4,
            "INFLUX_URL": "http://influx:8086",
            "OVERLAP_MINUTES": 45,
            "CYCLE_POLL_INTERVAL_SEC": 120,
            "DERIVED_BATCH_SIZE": 100,
            "LOG_LEVEL": "debug",
        })
        config = resolve_config(ParamConfig(), user, None)

        assert config.tunnel_id == "4"
        assert config.source.url == "http://influx:8086"
        assert config.scheduler.overlap_minutes == 45.0
        assert config.scheduler.poll_interval_sec == 120
        assert config.derived.batch_size == 100
        assert config.logging.level == "DEBUG"

    def test_unknown_user_keys_are_ignored(self):
        user = UserConfig.model_validate({"RADAR_ID": "KDIX", "TUNNEL_ID": "2"})
        assert resolve_config(ParamConfig(), user, None).tunnel_id == "2"

    def test_nested_point_aliases_accept_single_name(self):
        user = UserConfig.model_validate({"points": {"energy_instant": "kWh_intervalo"}})
        config = resolve_config(ParamConfig(), user, None)
        assert config.points.energy_instant == ["kWh_intervalo"]
        assert config.points.operation_state == ["Operacion", "Estado_Operacion"]

    def test_cycle_logic_camel_case_overrides(self):
        user = UserConfig.model_validate({"cycle_logic": {"minCycleHours": 12, "maxCycleHours": 30}})
        config = resolve_config(ParamConfig(), user, None)
        assert config.cycle_logic.min_cycle_hours == 12.0
        assert config.cycle_logic.max_cycle_hours == 30.0
        assert config.cycle_logic.min_rise_degrees == 8.0

    def test_cli_wins_over_user(self):
        user = UserConfig.model_validate({"TUNNEL_ID": "1", "LOG_LEVEL": "INFO"})
        cli = CLIConfig(tunnel_id="9", log_level="WARNING", base_dir="/tmp/out")
        config = resolve_config(ParamConfig(), user, cli)

        assert config.tunnel_id == "9"
        assert config.logging.level == "WARNING"
        assert config.base_dir == "/tmp/out"

    def test_dict_inputs_are_accepted(self):
        config = resolve_config({}, {"TUNNEL_ID": "3"}, {"log_level": "ERROR"})
        assert config.tunnel_id == "3"
        assert config.logging.level == "ERROR"

    def test_internal_config_is_frozen(self):
        config = resolve_config(ParamConfig(), None, None)
        with pytest.raises(ValidationError):
            config.tunnel_id = "other"

    def test_invalid_values_are_rejected(self):
        user = UserConfig.model_validate({"DERIVED_BATCH_SIZE": 0})
        with pytest.raises(ValidationError):
            resolve_config(ParamConfig(), user, None)

    def test_misspelled_param_key_is_rejected(self):
        with pytest.raises(ValidationError, match="overlap_minute"):
            ParamConfig.model_validate({"scheduler": {"overlap_minute": 10}})

    def test_assignment_is_revalidated(self):
        param = ParamConfig()
        with pytest.raises(ValidationError):
            param.scheduler.overlap_minutes = -1


def test_deep_merge_nested():
    base = {"a": 1, "b": {"c": 2, "d": 3}}
    merged = deep_merge(base, {"b": {"d": 4, "e": 5}, "f": 6})
    assert merged == {"a": 1, "b": {"c": 2, "d": 4, "e": 5}, "f": 6}
    assert base == {"a": 1, "b": {"c": 2, "d": 3}}
