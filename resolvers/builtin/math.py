"""Resolver that evaluates math-call actions such as ``add(2, 3)``."""

from typing import Any, Mapping

from olang.lang.parser import DEFAULT_MATH_RESOLVER
from olang.runtime import mathexpr
from resolvers.base import Resolver


class BuiltInMathResolver(Resolver):
    """Handles ``function(args...)`` text for the closed math function set.

    Any other action is declined with ``None``.
    """

    def __init__(self, name: str = DEFAULT_MATH_RESOLVER):
        self.name = name

    async def resolve(self, action: str, context: Mapping[str, Any]) -> Any:
        if not mathexpr.is_math_call(action):
            return None
        return mathexpr.evaluate(action)
