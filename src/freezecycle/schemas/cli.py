"""CLIConfig: Command-line operational overrides.

Minimal configuration for operational parameters that commonly change
between runs: tunnel ID, output paths, verbosity.
"""

from typing import Literal, Optional
from pydantic import field_validator
from freezecycle.schemas.base import FreezeBaseModel


class CLIConfig(FreezeBaseModel):
    """Command-line configuration overrides.

    Operational-only settings that override user and param configs.
    Highest priority in config resolution.
    """

    tunnel_id: Optional[str] = None
    base_dir: Optional[str] = None
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = None

    @field_validator("tunnel_id", mode="before")
    @classmethod
    def coerce_tunnel_id(cls, v):
        if v is not None:
            return str(v)
        return v

    def to_internal_overrides(self) -> dict:
        """Convert CLI config to internal config structure.

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

        # base_dir handled separately by setup_output_directories

        return overrides
