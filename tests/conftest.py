"""Root-level pytest fixtures for the freezecycle test suite.

Provides shared configuration fixtures following the Pydantic-based
architecture, an in-memory store and an in-memory raw point source.
"""

import pytest

from freezecycle.schemas import CycleLogicConfig, ParamConfig, UserConfig, resolve_config
from freezecycle.setup_directories import setup_output_directories
from freezecycle.store import CycleLogicStore, EngineStore

from tests.helpers.fake_source import FakeRawSource


# =============================================================================
# Configuration Fixtures (Pydantic-based)
# =============================================================================

@pytest.fixture
def param_config():
    """Expert configuration with all defaults."""
    return ParamConfig()


@pytest.fixture
def internal_config(param_config):
    """Fully validated runtime configuration for tunnel ``T1``."""
    return resolve_config(param_config, {"TUNNEL_ID": "T1"}, None)


@pytest.fixture
def make_config(param_config):
    """Factory fixture for custom test configs.

    Accepts UserConfig-compatible keys (aliases or field names).
    """
    def _make(**user_overrides):
        user_overrides.setdefault("tunnel_id", "T1")
        return resolve_config(param_config, UserConfig(**user_overrides), None)

    return _make


@pytest.fixture
def test_logic():
    """Thresholds for short synthetic series (minutes instead of hours)."""
    return CycleLogicConfig(
        min_defrost_separation_minutes=1,
        min_cycle_hours=0.01,
        max_cycle_hours=168,
    )


# =============================================================================
# Store and Source Fixtures
# =============================================================================

@pytest.fixture
def store():
    """In-memory engine store, closed after the test."""
    s = EngineStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def logic_store(tmp_path, test_logic):
    """Logic file seeded with the short-series thresholds."""
    return CycleLogicStore(tmp_path / "config" / "cycle-logic-config.json", defaults=test_logic)


@pytest.fixture
def source():
    return FakeRawSource()


@pytest.fixture
def output_dirs(tmp_path):
    """Standard output directory structure (data, config, logs)."""
    return setup_output_directories(tmp_path / "output")
