"""File-backed store for the runtime-editable cycle logic thresholds."""

import json
import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from freezecycle.schemas.cycle_logic import CycleLogicConfig

logger = logging.getLogger(__name__)


class CycleLogicStore:
    """Reads and writes ``cycle-logic-config.json`` (camelCase keys).

    Parameters
    ----------
    path : Path or str
        Location of the JSON file. Parent directories are created on write.
    defaults : CycleLogicConfig, optional
        Values used for keys the file does not set, and written out when the
        file is missing or unreadable.
    """

    def __init__(self, path: Path | str, defaults: Optional[CycleLogicConfig] = None):
        self.path = Path(path)
        self.defaults = defaults or CycleLogicConfig()
        self._lock = threading.Lock()

    def _normalize(self, values: dict) -> dict:
        """Validate a partial mapping and return only its keys, camelCased."""
        return CycleLogicConfig.model_validate(values).model_dump(exclude_unset=True, by_alias=True)

    def _write(self, config: CycleLogicConfig):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(config.model_dump(by_alias=True), indent=2), encoding="utf-8")

    def _valid_subset(self, stored: dict) -> dict:
        """Validated file values, camelCased. Invalid keys are dropped."""
        try:
            return self._normalize(stored)
        except ValidationError as e:
            invalid = {err["loc"][0] for err in e.errors() if err["loc"]}
            logger.warning(
                "Ignoring invalid cycle logic values in %s: %s",
                self.path, ", ".join(sorted(str(k) for k in invalid)),
            )
            return self._normalize({k: v for k, v in stored.items() if k not in invalid})

    def read(self) -> CycleLogicConfig:
        """Current thresholds: file values over defaults.

        A missing or unparsable file is replaced by the defaults. Keys with
        invalid values fall back to their defaults for this read only; the
        file keeps the operator's other values.
        """
        with self._lock:
            try:
                stored = json.loads(self.path.read_text(encoding="utf-8"))
                if not isinstance(stored, dict):
                    raise ValueError(f"expected a JSON object, got {type(stored).__name__}")
            except (OSError, ValueError) as e:
                logger.warning("Cycle logic config unreadable at %s (%s); writing defaults", self.path, e)
                self._write(self.defaults)
                return self.defaults

            merged = {**self.defaults.model_dump(by_alias=True), **self._valid_subset(stored)}
            return CycleLogicConfig.model_validate(merged)

    def write(self, overrides: dict) -> CycleLogicConfig:
        """Merge ``overrides`` (camelCase or snake_case) over the current values and persist."""
        current = self.read()
        with self._lock:
            merged = {**current.model_dump(by_alias=True), **self._normalize(overrides)}
            config = CycleLogicConfig.model_validate(merged)
            self._write(config)
        logger.info("Cycle logic config updated: %s", sorted(overrides))
        return config
