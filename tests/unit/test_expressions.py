"""Tests for interpolation, conditions and context-aware arithmetic."""

import pytest

from olang.exceptions import EvaluationError
from olang.runtime.context import ExecutionContext, resolve_path
from olang.runtime.expressions import (
    evaluate_condition,
    evaluate_math,
    interpolate,
    stringify,
)


@pytest.fixture
def context():
    return ExecutionContext({
        "name": "Ada",
        "x": 5,
        "ratio": 2.0,
        "flag": True,
        "user": {"profile": {"city": "London"}, "tags": ["a", "b"]},
        "dotted.key": "literal",
        "text_number": "7",
    })


# ============================================================================
# PATHS / INTERPOLATION
# ============================================================================

def test_resolve_path_walks_mappings_and_sequences(context):
    assert context.resolve("user.profile.city") == "London"
    assert context.resolve("user.tags.1") == "b"
    assert context.resolve("user.tags.9") is None
    assert context.resolve("user.missing.city") is None
    assert context.resolve("dotted.key") == "literal"
    assert resolve_path({"a": {"b": 1}}, "a.b") == 1


def test_interpolate_known_and_unknown(context):
    assert interpolate("Hi {name} from {user.profile.city}", context) == "Hi Ada from London"
    assert interpolate("Keep {unknown} as is", context) == "Keep {unknown} as is"


def test_stringify():
    assert stringify(True) == "true"
    assert stringify(2.0) == "2"
    assert stringify(2.5) == "2.5"
    assert stringify({"a": 1}) == '{"a": 1}'


# ============================================================================
# CONDITIONS
# ============================================================================

def test_equals_compares_text(context):
    assert evaluate_condition('{x} equals "5"', context)
    assert not evaluate_condition('{x} equals "6"', context)
    assert evaluate_condition('{flag} equals "true"', context)
    assert not evaluate_condition('{missing} equals ""', context)


def test_greater_than_is_numeric(context):
    assert evaluate_condition("{x} greater than 3", context)
    assert not evaluate_condition("{x} greater than 5", context)
    assert evaluate_condition("{text_number} greater than 6.5", context)
    assert not evaluate_condition("{name} greater than 1", context)


def test_fallback_is_truthiness(context):
    assert evaluate_condition("{flag}", context)
    assert evaluate_condition("name", context)
    assert not evaluate_condition("{missing}", context)


# ============================================================================
# ARITHMETIC
# ============================================================================

def test_evaluate_math_uses_context(context):
    assert evaluate_math("add({x}, {ratio})", context) == 7.0
    assert evaluate_math("multiply({text_number}, 2)", context) == 14


def test_evaluate_math_unresolved_placeholder_raises(context):
    with pytest.raises(EvaluationError):
        evaluate_math("add({x}, {missing})", context)


def test_evaluate_math_quotes_strings(context):
    assert evaluate_math('equals({name}, "Ada")', context) is True
