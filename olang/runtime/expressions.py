"""Placeholder interpolation, conditions and arithmetic."""

import json
import math
import re
from typing import Any

from olang.exceptions import EvaluationError
from olang.runtime import mathexpr
from olang.runtime.context import ExecutionContext

PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")

EQUALS_RE = re.compile(r'^\{(.+)\}\s+equals\s+"(.*)"$')
GREATER_RE = re.compile(r"^\{(.+)\}\s+greater than\s+(-?\d+\.?\d*)$")


def stringify(value: Any) -> str:
    """Text form used when a value is spliced into an action string."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def interpolate(text: str, context: ExecutionContext) -> str:
    """Replace ``{path}`` placeholders; unresolved ones are left as-is."""
    if not text:
        return text

    def _replace(match: "re.Match") -> str:
        value = context.resolve(match.group(1).strip())
        if value is None:
            return match.group(0)
        return stringify(value)

    return PLACEHOLDER_RE.sub(_replace, text)


def evaluate_condition(condition: str, context: ExecutionContext) -> bool:
    """Evaluate an ``If`` condition.

    Supported forms are ``{path} equals "literal"`` and
    ``{path} greater than N``; anything else is a truthiness test of the
    brace-stripped path.
    """
    condition = (condition or "").strip()

    match = EQUALS_RE.match(condition)
    if match:
        value = context.resolve(match.group(1).strip())
        return value is not None and stringify(value) == match.group(2)

    match = GREATER_RE.match(condition)
    if match:
        value = context.resolve(match.group(1).strip())
        try:
            return mathexpr.to_number(value) > float(match.group(2))
        except EvaluationError:
            return False

    return bool(context.resolve(condition.replace("{", "").replace("}", "").strip()))


def math_literal(value: Any) -> str:
    """Literal form of a context value inside an arithmetic expression."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(math_literal(item) for item in value) + "]"
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def interpolate_math(expression: str, context: ExecutionContext) -> str:
    """Interpolate with numbers bare and strings quoted."""

    def _replace(match: "re.Match") -> str:
        value = context.resolve(match.group(1).strip())
        if value is None:
            return match.group(0)
        return math_literal(value)

    return PLACEHOLDER_RE.sub(_replace, expression)


def evaluate_math(expression: str, context: ExecutionContext) -> Any:
    """Interpolate then evaluate an arithmetic expression.

    Raises :class:`EvaluationError` on any failure.
    """
    prepared = interpolate_math(expression, context)
    try:
        return mathexpr.evaluate(prepared)
    except EvaluationError as e:
        raise EvaluationError(f"{e} in {prepared!r}", expression) from e
    except (TypeError, ValueError, OverflowError, RecursionError) as e:
        raise EvaluationError(f"{e} in {prepared!r}", expression) from e
