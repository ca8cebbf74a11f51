"""Exception hierarchy for the O-Lang engine."""

from typing import Optional


class OLangError(Exception):
    """Base class for all engine errors."""
    pass


class SyntaxRejection(OLangError):
    """Workflow source rejected before parsing (wrong file type)."""

    def __init__(self, source_name: str):
        self.source_name = source_name
        super().__init__(f"Expected .ol workflow, got: {source_name}")


class PolicyViolation(OLangError):
    """A resolver outside the capability allow-list was about to run."""

    def __init__(self, resolver_name: str, action: str):
        self.resolver_name = resolver_name
        self.action = action
        super().__init__(
            f"Resolver '{resolver_name}' is not allowed by this workflow "
            f"(action: {action!r})"
        )


class GenerationLimitExceeded(OLangError):
    """Workflow re-executed beyond its declared generation ceiling."""

    def __init__(self, workflow_name: str, generation: int, ceiling: int):
        self.workflow_name = workflow_name
        self.generation = generation
        self.ceiling = ceiling
        super().__init__(
            f"Workflow '{workflow_name}' generation {generation} exceeds "
            f"max_generations={ceiling}"
        )


class EvaluationError(OLangError):
    """Arithmetic or condition expression could not be evaluated."""

    def __init__(self, message: str, expression: Optional[str] = None):
        self.expression = expression
        super().__init__(message)


class ResolverConfigurationError(OLangError):
    """Resolver chain built from an unusable resolver."""
    pass


class SinkError(OLangError):
    """Persistence sink failed to write."""
    pass
