"""Resolver base classes."""

import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

ResolverResult = Any
ResolverFunction = Callable[[str, Mapping[str, Any]], Union[ResolverResult, Awaitable[ResolverResult]]]


class Resolver(ABC):
    """Named capability provider.

    ``resolve`` returns ``None`` when the action is not handled; any other
    value (including ``False``, ``0`` and ``""``) counts as handled.
    """

    name: Optional[str] = None

    @abstractmethod
    async def resolve(self, action: str, context: Mapping[str, Any]) -> ResolverResult:
        """Handle an action string."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class FunctionResolver(Resolver):
    """Adapts a plain (sync or async) callable to :class:`Resolver`."""

    def __init__(self, name: Optional[str], func: ResolverFunction):
        self.name = name
        self.func = func

    async def resolve(self, action: str, context: Mapping[str, Any]) -> ResolverResult:
        result = self.func(action, context)
        if inspect.isawaitable(result):
            result = await result
        return result


def resolver(name: str) -> Callable[[ResolverFunction], FunctionResolver]:
    """Decorator turning a function into a named resolver."""

    def decorator(func: ResolverFunction) -> FunctionResolver:
        return FunctionResolver(name, func)

    return decorator


def as_resolver(candidate: Any, name: Optional[str] = None) -> Resolver:
    """Accept a Resolver, or a callable carrying ``resolver_name``/``name``."""
    if isinstance(candidate, Resolver):
        return candidate
    if callable(candidate):
        resolved_name = (
            name
            or getattr(candidate, "resolver_name", None)
            or getattr(candidate, "name", None)
        )
        return FunctionResolver(resolved_name, candidate)
    raise TypeError(f"Resolver must be callable, got {type(candidate).__name__}")
