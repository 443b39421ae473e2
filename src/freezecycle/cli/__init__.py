"""Command-line interface modules for the freeze cycle engine.

This package contains core execution logic, making scripts/ optional and deletable.
"""

from freezecycle.cli.run_engine import run_engine

__all__ = ['run_engine']
