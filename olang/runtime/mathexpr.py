"""Closed arithmetic evaluator.

Expressions are tokenised and evaluated by a small recursive-descent parser.
The only callable names are the functions in ``FUNCTIONS``; there is no
attribute access, no variables and no way to reach the host interpreter.

Grammar::

    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/") unary)*
    unary   := ("-" | "+") unary | primary
    primary := NUMBER | STRING | "true" | "false"
             | NAME "(" [expr ("," expr)*] ")"
             | "(" expr ")"
             | "[" [expr ("," expr)*] "]"
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from olang.exceptions import EvaluationError

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>\d+\.\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?|\d+(?:[eE][+-]?\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<punct>[()\[\],+\-*/])
    """,
    re.VERBOSE,
)
_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)

# Parentheses, calls, lists and unary signs all count as one level.
MAX_DEPTH = 64


@dataclass
class Token:
    type: str
    value: str
    pos: int


def tokenize(expression: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(expression):
        match = _TOKEN_RE.match(expression, pos)
        if not match:
            raise EvaluationError(
                f"Unexpected character {expression[pos]!r} at {pos}", expression
            )
        kind = match.lastgroup
        if kind != "ws":
            tokens.append(Token(kind, match.group(kind), pos))
        pos = match.end()
    return tokens


# ---------------------------------------------------------------- functions

def to_number(value: Any) -> float:
    """Coerce a value to a number; numeric strings are accepted."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            raise EvaluationError(f"Not a number: {value!r}")
        if math.isnan(number) or math.isinf(number):
            raise EvaluationError(f"Not a finite number: {value!r}")
        return number
    raise EvaluationError(f"Not a number: {value!r}")


def _flatten(args) -> List[float]:
    values: List[float] = []
    for arg in args:
        if isinstance(arg, (list, tuple)):
            values.extend(_flatten(arg))
        else:
            values.append(to_number(arg))
    return values


def _divide(a, b):
    divisor = to_number(b)
    if divisor == 0:
        raise EvaluationError("Division by zero")
    return to_number(a) / divisor


def _round(value, digits=0):
    factor = 10 ** int(to_number(digits))
    rounded = math.floor(to_number(value) * factor + 0.5) / factor
    return int(rounded) if factor == 1 else rounded


def _avg(*args):
    values = _flatten(args)
    if not values:
        raise EvaluationError("avg() of no values")
    return sum(values) / len(values)


def _min(*args):
    values = _flatten(args)
    if not values:
        raise EvaluationError("min() of no values")
    return min(values)


def _max(*args):
    values = _flatten(args)
    if not values:
        raise EvaluationError("max() of no values")
    return max(values)


def _equals(a, b):
    try:
        return to_number(a) == to_number(b)
    except EvaluationError:
        return str(a) == str(b)


@dataclass(frozen=True)
class MathFunction:
    func: Callable[..., Any]
    min_args: int
    max_args: Optional[int]


FUNCTIONS: Dict[str, MathFunction] = {
    "add": MathFunction(lambda a, b: to_number(a) + to_number(b), 2, 2),
    "subtract": MathFunction(lambda a, b: to_number(a) - to_number(b), 2, 2),
    "multiply": MathFunction(lambda a, b: to_number(a) * to_number(b), 2, 2),
    "divide": MathFunction(_divide, 2, 2),
    "sum": MathFunction(lambda *args: sum(_flatten(args)), 0, None),
    "avg": MathFunction(_avg, 1, None),
    "min": MathFunction(_min, 1, None),
    "max": MathFunction(_max, 1, None),
    "increment": MathFunction(lambda a: to_number(a) + 1, 1, 1),
    "decrement": MathFunction(lambda a: to_number(a) - 1, 1, 1),
    "round": MathFunction(_round, 1, 2),
    "floor": MathFunction(lambda a: math.floor(to_number(a)), 1, 1),
    "ceil": MathFunction(lambda a: math.ceil(to_number(a)), 1, 1),
    "abs": MathFunction(lambda a: abs(to_number(a)), 1, 1),
    "equals": MathFunction(_equals, 2, 2),
    "greater": MathFunction(lambda a, b: to_number(a) > to_number(b), 2, 2),
    "less": MathFunction(lambda a, b: to_number(a) < to_number(b), 2, 2),
}
FUNCTIONS["eq"] = FUNCTIONS["equals"]
FUNCTIONS["gt"] = FUNCTIONS["greater"]
FUNCTIONS["lt"] = FUNCTIONS["less"]

MATH_CALL_RE = re.compile(
    r"^\s*(" + "|".join(sorted(FUNCTIONS, key=len, reverse=True)) + r")\s*\(.*\)\s*$",
    re.DOTALL,
)


def is_math_call(text: str) -> bool:
    """True when text has the shape ``function(args...)`` for a known function."""
    return bool(text) and bool(MATH_CALL_RE.match(text))


# ------------------------------------------------------------------- parser

class _Parser:
    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = tokenize(expression)
        self.pos = 0
        self.depth = 0

    def parse(self) -> Any:
        if not self.tokens:
            raise EvaluationError("Empty expression", self.expression)
        value = self._expr()
        if self.pos != len(self.tokens):
            token = self.tokens[self.pos]
            raise EvaluationError(
                f"Unexpected {token.value!r} at {token.pos}", self.expression
            )
        return value

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _accept(self, value: str) -> bool:
        token = self._peek()
        if token and token.type == "punct" and token.value == value:
            self.pos += 1
            return True
        return False

    def _expect(self, value: str) -> None:
        if not self._accept(value):
            token = self._peek()
            found = token.value if token else "end of expression"
            raise EvaluationError(f"Expected {value!r}, found {found!r}", self.expression)

    def _nest(self) -> None:
        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise EvaluationError(f"Expression nested deeper than {MAX_DEPTH} levels", self.expression)

    def _expr(self) -> Any:
        self._nest()
        try:
            return self._sum()
        finally:
            self.depth -= 1

    def _sum(self) -> Any:
        value = self._term()
        while True:
            if self._accept("+"):
                value = to_number(value) + to_number(self._term())
            elif self._accept("-"):
                value = to_number(value) - to_number(self._term())
            else:
                return value

    def _term(self) -> Any:
        value = self._unary()
        while True:
            if self._accept("*"):
                value = to_number(value) * to_number(self._unary())
            elif self._accept("/"):
                value = _divide(value, self._unary())
            else:
                return value

    def _unary(self) -> Any:
        if self._accept("-"):
            return -to_number(self._signed())
        if self._accept("+"):
            return to_number(self._signed())
        return self._primary()

    def _signed(self) -> Any:
        self._nest()
        try:
            return self._unary()
        finally:
            self.depth -= 1

    def _primary(self) -> Any:
        token = self._peek()
        if token is None:
            raise EvaluationError("Unexpected end of expression", self.expression)

        if token.type == "number":
            self.pos += 1
            return to_number(token.value)

        if token.type == "string":
            self.pos += 1
            return _ESCAPE_RE.sub(r"\1", token.value[1:-1])

        if token.type == "name":
            self.pos += 1
            if token.value == "true":
                return True
            if token.value == "false":
                return False
            if token.value not in FUNCTIONS:
                raise EvaluationError(f"Unknown function {token.value!r}", self.expression)
            self._expect("(")
            args = self._arguments(")")
            return self._call(token.value, args)

        if self._accept("("):
            value = self._expr()
            self._expect(")")
            return value

        if self._accept("["):
            return self._arguments("]")

        raise EvaluationError(f"Unexpected {token.value!r} at {token.pos}", self.expression)

    def _arguments(self, closer: str) -> List[Any]:
        args: List[Any] = []
        if self._accept(closer):
            return args
        while True:
            args.append(self._expr())
            if self._accept(closer):
                return args
            self._expect(",")

    def _call(self, name: str, args: List[Any]) -> Any:
        function = FUNCTIONS[name]
        if len(args) < function.min_args or (
            function.max_args is not None and len(args) > function.max_args
        ):
            raise EvaluationError(
                f"{name}() takes {function.min_args}"
                f"{'' if function.max_args == function.min_args else '+'} argument(s), "
                f"got {len(args)}",
                self.expression,
            )
        return function.func(*args)


def evaluate(expression: str) -> Any:
    """Evaluate a fully interpolated arithmetic expression."""
    return _Parser(expression).parse()
