"""Derived-variable formulas: parsing, evaluation and dependency ordering."""

from freezecycle.formulas.evaluator import (
    Environment,
    FormulaError,
    evaluate,
    sanitize_context,
    validate,
)
from freezecycle.formulas.dependencies import (
    ELAPSED_VARIABLE_NAME,
    extract_dependencies,
    sort_by_dependency,
)

__all__ = [
    "Environment",
    "FormulaError",
    "evaluate",
    "sanitize_context",
    "validate",
    "ELAPSED_VARIABLE_NAME",
    "extract_dependencies",
    "sort_by_dependency",
]
