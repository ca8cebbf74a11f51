"""Tests for the closed arithmetic evaluator."""

import pytest

from olang.exceptions import EvaluationError
from olang.runtime.mathexpr import evaluate, is_math_call, to_number


@pytest.mark.parametrize("expression,expected", [
    ("add(2, 3)", 5),
    ("subtract(10, 4)", 6),
    ("multiply(2.5, 4)", 10.0),
    ("divide(9, 3)", 3.0),
    ("sum(1, 2, 3)", 6),
    ("sum([1, 2], 3)", 6),
    ("sum()", 0),
    ("avg(2, 4)", 3.0),
    ("min(3, 1, 2)", 1),
    ("max([3, 1, 2])", 3),
    ("increment(1)", 2),
    ("decrement(1)", 0),
    ("round(2.5)", 3),
    ("round(1.2345, 2)", 1.23),
    ("floor(2.7)", 2),
    ("ceil(2.1)", 3),
    ("abs(-4)", 4),
    ("equals(2, 2.0)", True),
    ('eq("a", "a")', True),
    ("greater(3, 2)", True),
    ("gt(1, 2)", False),
    ("lt(1, 2)", True),
    ("less(2, 1)", False),
])
def test_functions(expression, expected):
    assert evaluate(expression) == expected


def test_operators_and_precedence():
    assert evaluate("1 + 2 * 3") == 7
    assert evaluate("(1 + 2) * 3") == 9
    assert evaluate("-2 + 5") == 3
    assert evaluate("add(1, 2) * 2") == 6


def test_numeric_strings_are_coerced():
    assert evaluate('add("2", "3")') == 5
    assert to_number(True) == 1


def test_string_escapes_preserved_for_non_ascii():
    assert evaluate('eq("café \\"x\\"", "café \\"x\\"")') is True


@pytest.mark.parametrize("expression", [
    "divide(1, 0)",
    "add(1)",
    "unknown(1)",
    "__import__('os')",
    "add(1, 2",
    "add(\"x\", 1)",
    "",
    "{missing}",
])
def test_invalid_expressions_raise(expression):
    with pytest.raises(EvaluationError):
        evaluate(expression)


@pytest.mark.parametrize("expression", [
    "(" * 3000 + "1" + ")" * 3000,
    "-" * 3000 + "1",
    "sum(" + "[" * 3000 + "1" + "]" * 3000 + ")",
    "add(" * 3000 + "1" + ", 1)" * 3000,
])
def test_excessive_nesting_raises_evaluation_error(expression):
    with pytest.raises(EvaluationError, match="nested deeper"):
        evaluate(expression)


def test_moderate_nesting_still_evaluates():
    assert evaluate("(" * 20 + "1 + 2" + ")" * 20) == 3
    assert evaluate("--1") == 1


def test_is_math_call():
    assert is_math_call("add(1, 2)")
    assert is_math_call("  sum([1,2])  ")
    assert not is_math_call("Search for add(1, 2)")
    assert not is_math_call("addition(1, 2)")
    assert not is_math_call("")
