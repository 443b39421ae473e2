"""Core engine execution logic.

This module contains the actual engine runner, separated from argument parsing.
Scripts are thin wrappers; this is the real implementation.
"""

import argparse
import importlib.util
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from freezecycle.pipeline.orchestrator import PipelineOrchestrator
from freezecycle.schemas import CLIConfig, ParamConfig, UserConfig, resolve_config
from freezecycle.setup_directories import setup_output_directories

logger = logging.getLogger(__name__)


def load_user_config_dict(config_path: str) -> dict:
    """Load user config dict from Python file.

    Returns the raw dict before Pydantic validation.

    Raises
    ------
    FileNotFoundError
        If config file does not exist.
    ValueError
        If no CONFIG dict found in file.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    spec = importlib.util.spec_from_file_location("config_module", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    for name in dir(module):
        if name.startswith('CONFIG'):
            obj = getattr(module, name)
            if isinstance(obj, dict):
                return obj

    raise ValueError(f"No CONFIG dict found in {path}")


def build_config(user_config_path: Optional[str], cli_args: Optional[Dict[str, Any]] = None, verbose: bool = False):
    """Resolve Param < User < CLI into an InternalConfig."""
    param_cfg = ParamConfig()

    user_cfg = None
    if user_config_path:
        user_cfg = UserConfig.model_validate(load_user_config_dict(user_config_path))

    cli_args = dict(cli_args or {})
    if verbose and "log_level" not in cli_args:
        cli_args["log_level"] = "DEBUG"
    cli_dict = {k: v for k, v in cli_args.items() if v is not None}
    cli_cfg = CLIConfig.model_validate(cli_dict) if cli_dict else None

    return resolve_config(param_cfg, user_cfg, cli_cfg)


def run_engine(
    user_config_path: Optional[str],
    cli_args: Optional[Dict[str, Any]] = None,
    max_runtime: Optional[int] = None,
    once: bool = False,
    rebuild: bool = False,
    verbose: bool = False,
):
    """Execute the freeze cycle engine.

    1. Loads and resolves configuration (Param < User < CLI)
    2. Sets up output directories
    3. Runs either one synchronous pass (``once``/``rebuild``) or the
       threaded workers until interrupted

    Parameters
    ----------
    user_config_path : str, optional
        Python file with a CONFIG dict.
    cli_args : dict, optional
        Keys: tunnel_id, base_dir, log_level. None values are ignored.
    max_runtime : int, optional
        Minutes to run the workers. Runs until Ctrl+C when None.
    once : bool
        Run one derived pass and one cycle pass, then exit.
    rebuild : bool
        Delete all cycles of the tunnel and recompute them (implies ``once``).
    verbose : bool
        DEBUG logging and print the resolved configuration.

    Returns
    -------
    ProcessingSummary or None
        Summary of the synchronous pass, None after a threaded run.
    """
    config = build_config(user_config_path, cli_args, verbose)
    output_dirs = setup_output_directories(config.base_dir)

    print(f"\n{'='*60}")
    print("Freeze Cycle Engine")
    print('='*60)
    print(f"Config: {user_config_path or '(defaults)'}")
    print(f"Tunnel: {config.tunnel_id}")
    print(f"Source: {config.source.url} [{config.source.bucket}/{config.source.measurement}]")
    print(f"Output: {output_dirs['base']}")
    print('='*60)

    if verbose:
        print("\nFull Internal Configuration:")
        print(json.dumps(config.model_dump(mode="json"), indent=2))
        print('='*60)

    orchestrator = PipelineOrchestrator(config, output_dirs)
    if once or rebuild:
        orchestrator._setup_logging()
        try:
            summary = orchestrator.run_once(rebuild=rebuild)
        finally:
            orchestrator.stop()
        print(json.dumps(summary.to_dict(), indent=2))
        return summary

    orchestrator.start(max_runtime=max_runtime)
    return None


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run the freeze cycle engine")
    parser.add_argument("config", nargs="?", help="Path to user config file")
    parser.add_argument("--tunnel-id", help="Override tunnel ID")
    parser.add_argument("--base-dir", help="Output directory")
    parser.add_argument("--max-runtime", type=int, help="Max runtime in minutes")
    parser.add_argument("--once", action="store_true", help="Run one pass and exit")
    parser.add_argument("--rebuild", action="store_true", help="Delete and recompute all cycles, then exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    run_engine(
        args.config,
        cli_args={"tunnel_id": args.tunnel_id, "base_dir": args.base_dir},
        max_runtime=args.max_runtime,
        once=args.once,
        rebuild=args.rebuild,
        verbose=args.verbose,
    )


if __name__ == "__main__":
    main()
