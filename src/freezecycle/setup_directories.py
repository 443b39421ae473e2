"""Directory setup for the freeze cycle engine.

- data/: SQLite engine store
- config/: editable cycle logic JSON
- logs/: engine log files
"""

from pathlib import Path


def setup_output_directories(base_output_dir=None):
    """
    Set up the output directory structure.

    Parameters
    ----------
    base_output_dir : str or Path, optional
        Base output directory. Defaults to ``./output``.

    Returns
    -------
    dict
        Dictionary with paths: 'base', 'data', 'config', 'logs'
    """
    if base_output_dir is None:
        base_output_dir = Path.cwd() / "output"

    base_output_dir = Path(base_output_dir).expanduser().resolve()

    directories = {
        "base": base_output_dir,
        "data": base_output_dir / "data",
        "config": base_output_dir / "config",
        "logs": base_output_dir / "logs",
    }

    for path in directories.values():
        path.mkdir(parents=True, exist_ok=True)

    return directories
