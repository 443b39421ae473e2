#!/usr/bin/env python3
"""Freeze cycle engine runner.

Usage:
    python scripts/run_engine.py scripts/user_config.py
    python scripts/run_engine.py scripts/user_config.py --tunnel-id 4
    python scripts/run_engine.py scripts/user_config.py --once
    python scripts/run_engine.py scripts/user_config.py --rebuild

Note: User config in scripts/user_config.py, expert defaults in
freezecycle.schemas.param
"""

from freezecycle.cli.run_engine import main


if __name__ == "__main__":
    main()
