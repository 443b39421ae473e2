"""Freeze cycle engine user configuration.

This is the user-facing configuration file. Modify settings here to customize
the engine. Advanced settings live in freezecycle.schemas.param.

Usage:
    python scripts/run_engine.py scripts/user_config.py
    python scripts/run_engine.py scripts/user_config.py --tunnel-id 2
"""

CONFIG = {
    # ========================================================================
    # TUNNEL & OUTPUT
    # ========================================================================
    "TUNNEL_ID": "tunnel-1",
    "BASE_DIR": "./output",     # data/, config/ and logs/ are created here
    "LOG_LEVEL": "INFO",

    # ========================================================================
    # INFLUXDB SOURCE
    # ========================================================================
    "INFLUX_URL": "http://localhost:8086",
    "INFLUX_TOKEN": "",
    "INFLUX_ORG": "gemelo",
    "INFLUX_BUCKET": "data_gemelo",
    "INFLUX_MEASUREMENT": "mediciones_plc",

    # ========================================================================
    # SCHEDULING
    # ========================================================================
    "OVERLAP_MINUTES": 30,            # Re-validated window before the watermark
    "CYCLE_POLL_INTERVAL_SEC": 300,
    "DERIVED_POLL_INTERVAL_SEC": 60,

    # ========================================================================
    # CYCLE LOGIC DEFAULTS
    # Only used to seed config/cycle-logic-config.json; edit that file to
    # change thresholds while the engine runs.
    # ========================================================================
    "cycle_logic": {
        "minCycleHours": 18,
        "maxCycleHours": 40,
        "cycleEnergySetPoint": 0,
    },
}
