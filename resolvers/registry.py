# resolvers/registry.py
"""Registry of resolvers available to a host application."""

import importlib
from typing import Any, Dict, Iterable, List, Optional

import structlog

from olang.exceptions import ResolverConfigurationError
from olang.lang.steps import Workflow
from resolvers.base import Resolver, as_resolver

logger = structlog.get_logger(__name__)


class ResolverRegistry:
    """Explicit name -> resolver table filled by the host.

    Workflows only name resolvers; the host decides which implementations
    exist and in which order a chain tries them.
    """

    def __init__(self, resolvers: Iterable[Any] = ()):
        self._resolvers: Dict[str, Resolver] = {}
        for candidate in resolvers:
            self.register(candidate)

    def register(self, candidate: Any, name: Optional[str] = None) -> Resolver:
        """Add a resolver (or named callable); a later registration replaces an earlier one."""
        resolver = as_resolver(candidate, name)
        if not resolver.name:
            raise ResolverConfigurationError(f"Cannot register unnamed resolver {resolver!r}")
        if resolver.name in self._resolvers:
            logger.debug("resolver_replaced", resolver=resolver.name)
        self._resolvers[resolver.name] = resolver
        return resolver

    def get(self, name: str) -> Optional[Resolver]:
        return self._resolvers.get(name)

    def names(self) -> List[str]:
        return list(self._resolvers)

    def __contains__(self, name: str) -> bool:
        return name in self._resolvers

    def __len__(self) -> int:
        return len(self._resolvers)

    def build_chain(
        self,
        names: Optional[Iterable[str]] = None,
        workflow: Optional[Workflow] = None,
        **kwargs,
    ):
        """Chain of the named resolvers (all registered ones by default).

        With a ``workflow`` the chain is bound to its declared allow-list.
        """
        from olang.runtime.chain import ResolverChain

        selected = []
        for name in (names if names is not None else self.names()):
            resolver = self.get(name)
            if resolver is None:
                raise ResolverConfigurationError(f"Unknown resolver: {name}")
            selected.append(resolver)

        if workflow is not None:
            return ResolverChain.for_workflow(workflow, selected, **kwargs)
        return ResolverChain(selected, **kwargs)

    def load_entry_point(self, spec: str) -> Resolver:
        """Import ``module:attr`` and register the object found there.

        A class is instantiated with no arguments first.
        """
        module_name, _, attr = spec.partition(":")
        if not module_name or not attr:
            raise ResolverConfigurationError(f"Expected 'module:attr', got {spec!r}")

        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise ResolverConfigurationError(f"Cannot import {module_name}: {e}") from e

        target = getattr(module, attr, None)
        if target is None:
            raise ResolverConfigurationError(f"{module_name} has no attribute {attr!r}")
        if isinstance(target, type):
            target = target()

        resolver = self.register(target)
        logger.info("resolver_loaded", resolver=resolver.name, source=spec)
        return resolver
