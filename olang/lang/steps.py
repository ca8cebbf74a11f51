"""Workflow and step definitions produced by the parser."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Union


class StepKind(str, Enum):
    """Step variants."""
    ACTION = "action"
    CALCULATE = "calculate"
    USE = "use"
    ASK = "ask"
    IF = "if"
    PARALLEL = "parallel"
    CONNECT = "connect"
    AGENT_USE = "agent_use"
    DEBRIEF = "debrief"
    EVOLVE = "evolve"
    PROMPT = "prompt"
    PERSIST = "persist"
    EMIT = "emit"


@dataclass
class Diagnostic:
    """Non-fatal warning recorded during parsing or execution."""
    message: str
    code: str = ""
    line: Optional[int] = None
    severity: str = "warning"

    def __str__(self) -> str:
        if self.line is not None:
            return f"line {self.line}: {self.message}"
        return self.message


@dataclass
class ActionStep:
    action: str
    number: Optional[int] = None
    save_as: Optional[str] = None
    constraints: Dict[str, Any] = field(default_factory=dict)
    line: Optional[int] = None
    kind: ClassVar[StepKind] = StepKind.ACTION


@dataclass
class CalculateStep:
    expression: str
    save_as: Optional[str] = None
    line: Optional[int] = None
    kind: ClassVar[StepKind] = StepKind.CALCULATE


@dataclass
class UseStep:
    tool: str
    save_as: Optional[str] = None
    constraints: Dict[str, Any] = field(default_factory=dict)
    line: Optional[int] = None
    kind: ClassVar[StepKind] = StepKind.USE


@dataclass
class AskStep:
    target: str
    save_as: Optional[str] = None
    constraints: Dict[str, Any] = field(default_factory=dict)
    line: Optional[int] = None
    kind: ClassVar[StepKind] = StepKind.ASK


@dataclass
class IfStep:
    condition: str
    body: List["Step"] = field(default_factory=list)
    line: Optional[int] = None
    kind: ClassVar[StepKind] = StepKind.IF


@dataclass
class ParallelStep:
    steps: List["Step"] = field(default_factory=list)
    line: Optional[int] = None
    kind: ClassVar[StepKind] = StepKind.PARALLEL


@dataclass
class ConnectStep:
    resource: str
    endpoint: str
    line: Optional[int] = None
    kind: ClassVar[StepKind] = StepKind.CONNECT


@dataclass
class AgentUseStep:
    logical_name: str
    resource: str
    line: Optional[int] = None
    kind: ClassVar[StepKind] = StepKind.AGENT_USE


@dataclass
class DebriefStep:
    agent: str
    message: str
    line: Optional[int] = None
    kind: ClassVar[StepKind] = StepKind.DEBRIEF


@dataclass
class EvolveStep:
    agent: str
    feedback: str
    save_as: Optional[str] = None
    constraints: Dict[str, Any] = field(default_factory=dict)
    line: Optional[int] = None
    kind: ClassVar[StepKind] = StepKind.EVOLVE


@dataclass
class PromptStep:
    question: str
    save_as: Optional[str] = None
    line: Optional[int] = None
    kind: ClassVar[StepKind] = StepKind.PROMPT


@dataclass
class PersistStep:
    variable: str
    destination: str
    line: Optional[int] = None
    kind: ClassVar[StepKind] = StepKind.PERSIST


@dataclass
class EmitStep:
    event: str
    payload: Optional[str] = None
    line: Optional[int] = None
    kind: ClassVar[StepKind] = StepKind.EMIT


Step = Union[
    ActionStep,
    CalculateStep,
    UseStep,
    AskStep,
    IfStep,
    ParallelStep,
    ConnectStep,
    AgentUseStep,
    DebriefStep,
    EvolveStep,
    PromptStep,
    PersistStep,
    EmitStep,
]


def child_steps(step: Step) -> List[Step]:
    """Direct children of a block step (empty for single-line steps)."""
    if isinstance(step, IfStep):
        return step.body
    if isinstance(step, ParallelStep):
        return step.steps
    return []


@dataclass
class Workflow:
    """Complete parsed workflow."""
    name: str = "Unnamed Workflow"
    parameters: List[str] = field(default_factory=list)
    steps: List[Step] = field(default_factory=list)
    return_values: List[str] = field(default_factory=list)
    allowed_resolvers: List[str] = field(default_factory=list)
    max_generations: Optional[int] = None
    warnings: List[Diagnostic] = field(default_factory=list)
    source_name: Optional[str] = None
    math_required: bool = False
    has_policy: bool = False

    def iter_steps(self) -> Iterator[Step]:
        """Depth-first walk over every step, nested bodies included."""
        stack = list(reversed(self.steps))
        while stack:
            step = stack.pop()
            yield step
            stack.extend(reversed(child_steps(step)))

    def warn(self, message: str, code: str = "", line: Optional[int] = None) -> None:
        self.warnings.append(Diagnostic(message=message, code=code, line=line))

    @property
    def warning_codes(self) -> List[str]:
        return [w.code for w in self.warnings]
