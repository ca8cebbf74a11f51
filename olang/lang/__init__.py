"""Workflow language: line filter, step model and parser."""

from olang.lang.parser import WorkflowParser, parse
from olang.lang.steps import Diagnostic, StepKind, Workflow

__all__ = ["parse", "WorkflowParser", "Workflow", "StepKind", "Diagnostic"]
