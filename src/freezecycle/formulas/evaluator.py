"""Formula evaluation over a named-variable context.

Every identifier that is not present in the context resolves to 0, so a
formula keeps producing numbers while optional or late-arriving fields are
missing. Failures never propagate: ``evaluate`` logs them and returns None.
"""

import logging
import math
import numbers
from datetime import datetime
from functools import lru_cache
from typing import Any, Mapping, Optional

from lark import Tree, v_args
from lark.visitors import Transformer_NonRecursive
from lark.exceptions import LarkError

from freezecycle.formulas.grammar import formula_parser
from freezecycle.timeutils import epoch_millis

logger = logging.getLogger(__name__)


class FormulaError(ValueError):
    """Raised inside the evaluator for formulas that cannot be computed."""
    pass


def _number(value) -> float:
    """Coerce a helper argument to a number, falling back to 0."""
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(result) else result


def _avg(*args):
    if not args:
        return 0.0
    return sum(_number(v) for v in args) / len(args)


def _sum(*args):
    return sum(_number(v) for v in args)


def _iff(condition, when_true, when_false):
    return when_true if condition else when_false


HELPERS = {
    "avg": _avg,
    "sum": _sum,
    "iff": _iff,
    "if": _iff,
    "abs": abs,
    "min": min,
    "max": max,
    "pow": math.pow,
}


def sanitize_context(context: Optional[Mapping[str, Any]]) -> dict:
    """Reduce a raw context to numeric and boolean values.

    - ``None`` entries are skipped
    - datetimes become epoch milliseconds
    - booleans pass through
    - numbers and numeric strings become floats (NaN is dropped)
    - anything else is dropped
    """
    out = {}
    for key, value in (context or {}).items():
        if value is None:
            continue
        if isinstance(value, datetime):
            out[key] = float(epoch_millis(value))
            continue
        if isinstance(value, bool):
            out[key] = value
            continue
        if isinstance(value, numbers.Number):
            number = float(value)
        elif isinstance(value, str) and value.strip():
            try:
                number = float(value.strip())
            except ValueError:
                continue
        else:
            continue
        if not math.isnan(number):
            out[key] = number
    return out


class Environment:
    """Name resolution for one evaluation.

    Variables come from a sanitized context; unknown names resolve to 0.
    Functions are limited to the fixed helper allow-list.
    """

    def __init__(self, context: Optional[Mapping[str, Any]] = None):
        self.variables = sanitize_context(context)

    def resolve(self, name: str):
        return self.variables.get(name, 0.0)

    def function(self, name: str):
        try:
            return HELPERS[name]
        except KeyError:
            raise FormulaError(f"Unknown function '{name}'") from None


def _divide(a, b):
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


@v_args(inline=True)
class _Calculator(Transformer_NonRecursive):
    """Bottom-up evaluation of a parsed formula tree.

    Non-recursive, so long flat formulas (hundreds of terms) evaluate
    without hitting the interpreter recursion limit.
    """

    def __init__(self, env: Environment):
        super().__init__()
        self.env = env

    def number(self, token):
        return float(token)

    def true(self):
        return True

    def false(self):
        return False

    def var(self, name):
        return self.env.resolve(str(name))

    def arguments(self, *values):
        return list(values)

    def call(self, name, arguments):
        func = self.env.function(str(name))
        return func(*(arguments or []))

    def conditional(self, condition, when_true, when_false):
        return when_true if condition else when_false

    def or_op(self, a, b):
        return bool(a) or bool(b)

    def and_op(self, a, b):
        return bool(a) and bool(b)

    def not_op(self, a):
        return not a

    def eq(self, a, b):
        return a == b

    def ne(self, a, b):
        return a != b

    def lt(self, a, b):
        return a < b

    def le(self, a, b):
        return a <= b

    def gt(self, a, b):
        return a > b

    def ge(self, a, b):
        return a >= b

    def add(self, a, b):
        return a + b

    def sub(self, a, b):
        return a - b

    def mul(self, a, b):
        return a * b

    def div(self, a, b):
        return _divide(a, b)

    def mod(self, a, b):
        if b == 0:
            return math.nan
        return math.fmod(a, b)

    def neg(self, a):
        return -a

    def pos(self, a):
        return +a

    def power(self, a, b):
        return math.pow(a, b)


@lru_cache(maxsize=512)
def parse(expression: str) -> Tree:
    """Parse a formula, caching the tree per expression string.

    Raises
    ------
    lark.exceptions.LarkError
        If the expression is not valid syntax.
    """
    return formula_parser.parse(expression)


def evaluate(expression: str, context: Optional[Mapping[str, Any]] = None) -> Optional[float]:
    """Evaluate ``expression`` against ``context``.

    Returns
    -------
    float or None
        The numeric result (booleans become 1.0 / 0.0), or None when the
        expression is empty, does not parse, or fails at evaluation time.

    Examples
    --------
    >>> round(evaluate("7.44*8.47", {}), 2)
    63.02
    >>> evaluate("missing + 2", {})
    2.0
    """
    if not isinstance(expression, str) or not expression.strip():
        return None

    try:
        tree = parse(expression)
        result = _Calculator(Environment(context)).transform(tree)
    except (LarkError, FormulaError, ArithmeticError, RecursionError, TypeError, ValueError) as e:
        logger.error("Error evaluating formula %r: %s", expression, e)
        return None

    if isinstance(result, (bool, numbers.Number)):
        return float(result)

    logger.error("Formula %r produced a non-numeric result: %r", expression, result)
    return None


def validate(expression: str) -> bool:
    """Parse-only syntax check used for formula previews."""
    if not isinstance(expression, str) or not expression.strip():
        return False
    try:
        parse(expression)
    except LarkError:
        return False
    return True
