"""Tests for expression module."""
import math

import pytest

from idleeconomy.expression import (
    BinaryOp,
    ExpressionError,
    Name,
    MAX_NESTING,
    Number,
    evaluate_expression,
    parse,
    tokenize,
)


def test_tokenize_numbers_and_names():
    kinds = [(t.kind, t.text) for t in tokenize("2.5e3 * owned")]
    assert kinds == [("num", "2.5e3"), ("op", "*"), ("name", "owned"), ("end", "")]


def test_double_star_is_power():
    assert [t.text for t in tokenize("2**3")][:3] == ["2", "^", "3"]


def test_parse_builds_tree():
    node = parse("owned + 1")
    assert node == BinaryOp("+", Name("owned"), Number(1.0))


def test_precedence():
    assert evaluate_expression("2 + 3 * 4", {}) == 14
    assert evaluate_expression("(2 + 3) * 4", {}) == 20


def test_power_right_associative():
    assert evaluate_expression("2 ^ 3 ^ 2", {}) == 512


def test_unary_minus_binds_looser_than_power():
    assert evaluate_expression("-2^2", {}) == -4


def test_variables():
    assert evaluate_expression("base * rate ^ owned", {"base": 10, "rate": 2, "owned": 3}) == 80


def test_constants():
    assert evaluate_expression("pi", {}) == pytest.approx(math.pi)
    assert evaluate_expression("e", {}) == pytest.approx(math.e)


def test_context_shadows_constant():
    assert evaluate_expression("e", {"e": 5}) == 5


def test_whitelisted_functions():
    assert evaluate_expression("max(1, 7, 3)", {}) == 7
    assert evaluate_expression("min(4, 2)", {}) == 2
    assert evaluate_expression("floor(2.7) + ceil(2.1)", {}) == 5
    assert evaluate_expression("sqrt(16)", {}) == 4
    assert evaluate_expression("log10(1000)", {}) == pytest.approx(3)
    assert evaluate_expression("pow(2, 10)", {}) == 1024
    assert evaluate_expression("abs(-3)", {}) == 3


def test_missing_variable_is_zero():
    assert evaluate_expression("missing + 2", {}) == 2


def test_malformed_expression_gives_zero():
    assert evaluate_expression("1 +", {}) == 0
    assert evaluate_expression("(1 + 2", {}) == 0
    assert evaluate_expression("1..2", {}) == 0


def test_disallowed_function_gives_zero():
    assert evaluate_expression("__import__('os')", {}) == 0
    assert evaluate_expression("exec(1)", {}) == 0


def test_attribute_access_rejected():
    assert evaluate_expression("owned.__class__", {"owned": 1}) == 0


def test_wrong_arity_gives_zero():
    assert evaluate_expression("sqrt(1, 2)", {}) == 0
    assert evaluate_expression("max()", {}) == 0


def test_division_by_zero_gives_zero():
    assert evaluate_expression("1 / 0", {}) == 0


def test_non_finite_result_gives_zero():
    assert evaluate_expression("exp(1000)", {}) == 0
    assert evaluate_expression("log(0)", {}) == 0


def test_parse_raises_on_bad_input():
    with pytest.raises(ExpressionError):
        parse("2 $ 3")
    with pytest.raises(ExpressionError):
        parse("system(1)")


def test_deep_nesting_gives_zero():
    assert evaluate_expression("(" * 2000 + "1" + ")" * 2000, {}) == 0
    assert evaluate_expression("-" * 5000 + "1", {}) == 0
    assert evaluate_expression("2^" * 3000 + "1", {}) == 0
    with pytest.raises(ExpressionError, match="nested"):
        parse("(" * (MAX_NESTING + 1) + "1" + ")" * (MAX_NESTING + 1))


def test_moderate_nesting_is_fine():
    depth = MAX_NESTING // 2
    assert evaluate_expression("(" * depth + "x" + ")" * depth, {"x": 3}) == 3
