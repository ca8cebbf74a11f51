"""Capability providers for O-Lang workflows."""

from resolvers.base import FunctionResolver, Resolver, as_resolver, resolver
from resolvers.registry import ResolverRegistry

__all__ = ["Resolver", "FunctionResolver", "resolver", "as_resolver", "ResolverRegistry"]
