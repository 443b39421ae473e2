"""Tests for formula parsing and evaluation."""

import logging
import math
from datetime import datetime, timezone

import pytest

from freezecycle.formulas import Environment, FormulaError, evaluate, sanitize_context, validate

pytestmark = pytest.mark.unit


class TestArithmetic:

    def test_product_of_literals(self):
        assert evaluate("7.44*8.47", {}) == pytest.approx(63.0168)

    def test_operator_precedence(self):
        assert evaluate("2 + 3 * 4", {}) == 14.0
        assert evaluate("(2 + 3) * 4", {}) == 20.0
        assert evaluate("-2 ^ 2", {}) == -4.0
        assert evaluate("2 ** 3", {}) == 8.0

    def test_modulo(self):
        assert evaluate("10 % 4", {}) == 2.0

    def test_division_by_zero_follows_float_semantics(self):
        assert evaluate("1 / 0", {}) == math.inf
        assert evaluate("-1 / 0", {}) == -math.inf
        assert math.isnan(evaluate("0 / 0", {}))


class TestVariables:

    def test_variables_resolve_from_context(self):
        context = {"Promedio_Serpentin": -20.5, "offset": 0.5}
        assert evaluate("Promedio_Serpentin + offset", context) == -20.0

    def test_unknown_identifier_is_zero(self):
        assert evaluate("missing + 2", {}) == 2.0

    def test_none_and_nan_are_treated_as_missing(self):
        assert evaluate("a + b + 1", {"a": None, "b": float("nan")}) == 1.0

    def test_numeric_strings_are_coerced(self):
        assert evaluate("a * 2", {"a": " 1.5 "}) == 3.0

    def test_identifier_starting_with_keyword(self):
        assert evaluate("android + notes", {"android": 1, "notes": 2}) == 3.0


class TestHelpers:

    def test_avg_and_sum(self):
        context = {"a": 1, "b": 2, "c": 6}
        assert evaluate("avg(a, b, c)", context) == 3.0
        assert evaluate("sum(a, b, c)", context) == 9.0

    def test_avg_of_nothing_is_zero(self):
        assert evaluate("avg()", {}) == 0.0

    def test_iff_and_if(self):
        assert evaluate("iff(Operacion == 1, 10, 20)", {"Operacion": 1}) == 10.0
        assert evaluate("if(Operacion == 1, 10, 20)", {"Operacion": 0}) == 20.0

    def test_min_max_abs_pow(self):
        assert evaluate("max(1, 5, 3) - min(4, 2)", {}) == 3.0
        assert evaluate("abs(-4)", {}) == 4.0
        assert evaluate("pow(2, 10)", {}) == 1024.0

    def test_ternary_and_boolean_operators(self):
        assert evaluate("x > 1 && x < 5 ? 1 : 0", {"x": 3}) == 1.0
        assert evaluate("x > 1 and not (x < 5)", {"x": 3}) == 0.0
        assert evaluate("true || false", {}) == 1.0


class TestFailures:

    def test_bad_syntax_returns_none_and_logs(self, caplog):
        with caplog.at_level(logging.ERROR, logger="freezecycle.formulas.evaluator"):
            assert evaluate("2 +* 3", {}) is None
        assert "Error evaluating formula" in caplog.text

    def test_unknown_function_returns_none(self):
        assert evaluate("sqrt(4)", {}) is None

    def test_empty_expression_returns_none(self):
        assert evaluate("", {}) is None
        assert evaluate("   ", {}) is None

    def test_environment_rejects_unknown_function(self):
        with pytest.raises(FormulaError):
            Environment({}).function("exec")

    @pytest.mark.parametrize("terms", [600, 2000])
    def test_long_flat_formula_evaluates(self, terms):
        assert evaluate("+".join(["x"] * terms), {"x": 1}) == float(terms)

    def test_long_negation_chain_evaluates(self):
        assert evaluate("-" * 1001 + "2", {}) == -2.0


class TestValidateAndSanitize:

    def test_validate(self):
        assert validate("avg(a, b) * 0.38")
        assert not validate("avg(a, ")
        assert not validate("")

    def test_sanitize_context(self):
        ts = datetime(2025, 1, 1, tzinfo=timezone.utc)
        out = sanitize_context({
            "n": 3,
            "flag": True,
            "text": "2.5",
            "word": "abc",
            "none": None,
            "nan": float("nan"),
            "ts": ts,
        })
        assert out == {"n": 3.0, "flag": True, "text": 2.5, "ts": ts.timestamp() * 1000.0}
