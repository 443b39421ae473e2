"""Evaluation order for derived-variable definitions.

A definition depends on every other definition whose name appears as a
free variable in its formula. Definitions are ordered depth-first so that
dependencies come first; circular references are broken with a warning.
"""

import logging
from typing import Iterable, Optional

from lark.exceptions import LarkError

from freezecycle.formulas.evaluator import parse

logger = logging.getLogger(__name__)

ELAPSED_VARIABLE_NAME = "min_real"


def extract_dependencies(expression: str) -> set:
    """Return the free variable names referenced by ``expression``.

    Helper function names are not variables and are not reported. An
    expression that does not parse has no known dependencies.
    """
    if not isinstance(expression, str) or not expression.strip():
        return set()
    try:
        tree = parse(expression)
    except LarkError as e:
        logger.warning("Failed to parse expression %r for dependencies: %s", expression, e)
        return set()
    return {str(node.children[0]) for node in tree.find_data("var")}


def sort_by_dependency(definitions: Iterable, elapsed_name: Optional[str] = ELAPSED_VARIABLE_NAME) -> list:
    """Order definitions so that each one follows the definitions it references.

    Parameters
    ----------
    definitions : iterable
        Objects with ``name`` and ``expression`` attributes.
    elapsed_name : str, optional
        Name of the elapsed-minutes variable, visited first when present.

    Returns
    -------
    list
        Every definition exactly once. Self references are ignored and a
        circular reference is broken at the back edge.
    """
    definitions = list(definitions)
    by_name = {d.name: d for d in definitions}
    visited = set()
    in_progress = set()
    ordered = []

    def visit(name):
        if name in visited:
            return
        if name in in_progress:
            logger.warning("Circular dependency detected involving %s. Breaking cycle.", name)
            return

        in_progress.add(name)
        definition = by_name.get(name)
        if definition is not None:
            for dep in sorted(extract_dependencies(definition.expression)):
                if dep != name and dep in by_name:
                    visit(dep)
        in_progress.discard(name)
        visited.add(name)
        if definition is not None:
            ordered.append(definition)

    if elapsed_name and elapsed_name in by_name:
        visit(elapsed_name)

    for definition in definitions:
        visit(definition.name)

    return ordered
