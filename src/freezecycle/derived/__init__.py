"""Derived variable computation."""

from freezecycle.derived.engine import DerivedValueEngine, build_context

__all__ = ["DerivedValueEngine", "build_context"]
