"""O-Lang: plain-English workflows run against a policy-checked resolver chain."""

from olang.config import Settings, get_settings
from olang.exceptions import (
    EvaluationError,
    GenerationLimitExceeded,
    OLangError,
    PolicyViolation,
    SyntaxRejection,
)
from olang.lang.parser import parse
from olang.runtime.chain import ResolverChain
from olang.runtime.interpreter import WorkflowInterpreter, execute_workflow

__version__ = "1.0.0"

__all__ = [
    "parse",
    "execute_workflow",
    "WorkflowInterpreter",
    "ResolverChain",
    "Settings",
    "get_settings",
    "OLangError",
    "SyntaxRejection",
    "PolicyViolation",
    "GenerationLimitExceeded",
    "EvaluationError",
]
