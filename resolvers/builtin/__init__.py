"""Resolvers shipped with the engine."""

from resolvers.builtin.math import BuiltInMathResolver
from resolvers.builtin.mock import MockResolver

__all__ = ["BuiltInMathResolver", "MockResolver"]
