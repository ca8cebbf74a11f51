"""Parser for plain-English O-Lang workflow documents.

The parser is line oriented: every meaningful line is matched against a fixed
set of sentence templates, in order. ``If ... then`` / ``End If`` and
``Run in parallel`` / ``End`` open nested blocks whose bodies are parsed with
the same grammar, up to ``MAX_NESTING_DEPTH`` levels deep.

Parsing never fails on malformed text. Unknown lines are skipped and reported
through ``Workflow.warnings``.
"""

import re
from typing import Any, List, Optional, Tuple

import structlog

from olang.exceptions import SyntaxRejection
from olang.lang.lexer import SourceLine, tokenize_lines
from olang.lang.steps import (
    ActionStep,
    AgentUseStep,
    AskStep,
    CalculateStep,
    ConnectStep,
    DebriefStep,
    EmitStep,
    EvolveStep,
    IfStep,
    ParallelStep,
    PersistStep,
    PromptStep,
    Step,
    UseStep,
    Workflow,
)
from olang.runtime.mathexpr import is_math_call

logger = structlog.get_logger(__name__)

WORKFLOW_EXTENSION = ".ol"
DEFAULT_MATH_RESOLVER = "builtInMathResolver"
MAX_NESTING_DEPTH = 64

_I = re.IGNORECASE

ALLOW_RE = re.compile(r"^Allow resolvers\s*:\s*(.*)$", _I)
WORKFLOW_RE = re.compile(r'^Workflow\s+"([^"]+)"(?:\s+with\s+(.+))?', _I)
STEP_RE = re.compile(r"^Step\s+(\d+)\s*:\s*(.+)$", _I)
TRAILING_SAVE_RE = re.compile(r"^(.*?)\s+Save as\s+(\S+)\s*$", _I)
SAVE_RE = re.compile(r"^Save as\s+(.+)$", _I)
CONSTRAINT_RE = re.compile(r"^Constraint\s*:\s*(.+)$", _I)
CONSTRAINT_PAIR_RE = re.compile(r"^([^=]+)=\s*(.+)$")
IF_RE = re.compile(r"^If\s+(.+)\s+then$", _I)
END_IF_RE = re.compile(r"^End\s+If$", _I)
PARALLEL_RE = re.compile(r"^Run in parallel$", _I)
END_RE = re.compile(r"^End$", _I)
CONNECT_RE = re.compile(r'^Connect\s+"([^"]+)"\s+using\s+"([^"]+)"$', _I)
AGENT_USE_RE = re.compile(r'^Agent\s+"([^"]+)"\s+uses\s+"([^"]+)"$', _I)
DEBRIEF_RE = re.compile(r'^Debrief\s+(\w+)\s+with\s+"(.+)"$', _I)
EVOLVE_RE = re.compile(r'^Evolve\s+(\w+)\s+using\s+feedback:\s+"(.+)"$', _I)
PROMPT_RE = re.compile(r'^Prompt user to\s+"(.+)"$', _I)
PERSIST_RE = re.compile(r'^Persist\s+(.+)\s+to\s+"(.+)"$', _I)
EMIT_RE = re.compile(r'^Emit\s+"(.+?)"(?:\s+with\s+(.+))?$', _I)
RETURN_RE = re.compile(r"^Return\s+(.+)$", _I)
USE_RE = re.compile(r"^Use\s+(.+)$", _I)
ASK_RE = re.compile(r"^Ask\s+(.+)$", _I)

# (pattern, function, swap operands)
MATH_SENTENCES: List[Tuple[re.Pattern, str, bool]] = [
    (re.compile(r"^Add\s+\{(.+?)\}\s+and\s+\{(.+?)\}\s+Save as\s+(.+)$", _I), "add", False),
    (re.compile(r"^Subtract\s+\{(.+?)\}\s+from\s+\{(.+?)\}\s+Save as\s+(.+)$", _I), "subtract", True),
    (re.compile(r"^Multiply\s+\{(.+?)\}\s+and\s+\{(.+?)\}\s+Save as\s+(.+)$", _I), "multiply", False),
    (re.compile(r"^Divide\s+\{(.+?)\}\s+by\s+\{(.+?)\}\s+Save as\s+(.+)$", _I), "divide", False),
]

_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_BULLET_RE = re.compile(r"^[-*•]\s*")


def coerce_constraint_value(value: str) -> Any:
    """Convert a raw constraint value to a list, number or string."""
    value = value.strip()
    if value.startswith("[") and value.endswith("]"):
        inner = value[1:-1].strip()
        if not inner:
            return []
        return [_strip_quotes(item.strip()) for item in inner.split(",")]
    if _NUMBER_RE.match(value):
        if re.match(r"^[+-]?\d+$", value):
            return int(value)
        return float(value)
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def _strip_quotes(item: str) -> str:
    if item.startswith('"'):
        item = item[1:]
    if item.endswith('"'):
        item = item[:-1]
    return item


def match_math_sentence(text: str) -> Optional[CalculateStep]:
    """Recognise the four arithmetic sentence forms."""
    for pattern, function, swap in MATH_SENTENCES:
        match = pattern.match(text)
        if not match:
            continue
        left, right = match.group(1).strip(), match.group(2).strip()
        if swap:
            left, right = right, left
        return CalculateStep(
            expression=f"{function}({{{left}}}, {{{right}}})",
            save_as=match.group(3).strip(),
        )
    return None


class WorkflowParser:
    """Turns workflow text into a :class:`Workflow`."""

    def __init__(self, math_resolver_name: str = DEFAULT_MATH_RESOLVER):
        self.math_resolver_name = math_resolver_name
        self._header_seen = False
        self._return_seen = False

    def parse(self, source: str, source_name: Optional[str] = None) -> Workflow:
        """Parse workflow text; raises only for a non-.ol ``source_name``."""
        if source_name and not str(source_name).endswith(WORKFLOW_EXTENSION):
            raise SyntaxRejection(str(source_name))

        workflow = Workflow(source_name=str(source_name) if source_name else None)
        self._header_seen = False
        self._return_seen = False

        lines = tokenize_lines(source)
        workflow.steps = self._parse_block(lines, workflow, top_level=True)
        self._finalize(workflow)

        logger.debug(
            "workflow_parsed",
            workflow=workflow.name,
            steps=len(workflow.steps),
            warnings=len(workflow.warnings),
        )
        return workflow

    # ------------------------------------------------------------------ blocks

    def _parse_block(
        self,
        lines: List[SourceLine],
        workflow: Workflow,
        top_level: bool,
        depth: int = 0,
    ) -> List[Step]:
        steps: List[Step] = []
        current: Optional[Step] = None
        i = 0

        while i < len(lines):
            line = lines[i]
            text = line.text

            match = ALLOW_RE.match(text)
            if match:
                if not top_level:
                    workflow.warn("Capability declaration inside a block is ignored",
                                  code="misplaced_statement", line=line.number)
                i = self._parse_allow_block(lines, i, match.group(1), workflow, top_level)
                continue

            calc = match_math_sentence(text)
            if calc:
                calc.line = line.number
                workflow.math_required = True
                steps.append(calc)
                current = calc
                i += 1
                continue

            match = WORKFLOW_RE.match(text)
            if match:
                if top_level:
                    workflow.name = match.group(1)
                    params = match.group(2)
                    workflow.parameters = [p.strip() for p in params.split(",") if p.strip()] if params else []
                    self._header_seen = True
                else:
                    workflow.warn("Workflow header inside a block is ignored",
                                  code="misplaced_statement", line=line.number)
                i += 1
                continue

            match = STEP_RE.match(text)
            if match:
                current = self._parse_step_line(int(match.group(1)), match.group(2).strip(), line, workflow)
                steps.append(current)
                i += 1
                continue

            match = SAVE_RE.match(text)
            if match:
                if current is not None and hasattr(current, "save_as"):
                    current.save_as = match.group(1).strip()
                else:
                    workflow.warn("'Save as' has no step to attach to",
                                  code="orphan_save", line=line.number)
                i += 1
                continue

            match = CONSTRAINT_RE.match(text)
            if match:
                self._apply_constraint(match.group(1).strip(), current, line, workflow, top_level and not steps)
                i += 1
                continue

            match = IF_RE.match(text)
            if match:
                body, i, closed = self._collect_block(lines, i + 1, "if")
                if not closed:
                    workflow.warn("If block is never closed with 'End If'",
                                  code="unclosed_block", line=line.number)
                current = IfStep(
                    condition=match.group(1).strip(),
                    body=self._parse_body(body, workflow, depth, line),
                    line=line.number,
                )
                steps.append(current)
                continue

            if PARALLEL_RE.match(text):
                body, i, closed = self._collect_block(lines, i + 1, "parallel")
                if not closed:
                    workflow.warn("Parallel block is never closed with 'End'",
                                  code="unclosed_block", line=line.number)
                current = ParallelStep(
                    steps=self._parse_body(body, workflow, depth, line),
                    line=line.number,
                )
                steps.append(current)
                continue

            step = self._match_single_line(text, line)
            if step is not None:
                steps.append(step)
                current = step
                i += 1
                continue

            match = RETURN_RE.match(text)
            if match:
                if top_level:
                    workflow.return_values = [v.strip() for v in match.group(1).split(",") if v.strip()]
                    self._return_seen = True
                else:
                    workflow.warn("Return inside a block is ignored",
                                  code="misplaced_statement", line=line.number)
                i += 1
                continue

            step = self._match_use_or_ask(text, line)
            if step is not None:
                steps.append(step)
                current = step
                i += 1
                continue

            workflow.warn(f"Unrecognized line skipped: {text}",
                          code="unrecognized_line", line=line.number)
            i += 1

        return steps

    def _parse_body(
        self,
        body: List[SourceLine],
        workflow: Workflow,
        depth: int,
        opener: SourceLine,
    ) -> List[Step]:
        if depth + 1 > MAX_NESTING_DEPTH:
            workflow.warn(
                f"Blocks nested deeper than {MAX_NESTING_DEPTH} levels; inner body skipped",
                code="nesting_too_deep",
                line=opener.number,
            )
            return []
        return self._parse_block(body, workflow, top_level=False, depth=depth + 1)

    def _collect_block(
        self,
        lines: List[SourceLine],
        start: int,
        kind: str,
    ) -> Tuple[List[SourceLine], int, bool]:
        """Gather lines up to the sentinel that closes ``kind``.

        Returns the body, the index after the sentinel and whether the
        sentinel was found.
        """
        open_blocks = [kind]
        body: List[SourceLine] = []
        i = start
        while i < len(lines):
            text = lines[i].text
            if IF_RE.match(text):
                open_blocks.append("if")
            elif PARALLEL_RE.match(text):
                open_blocks.append("parallel")
            elif (END_IF_RE.match(text) and open_blocks[-1] == "if") or (
                END_RE.match(text) and open_blocks[-1] == "parallel"
            ):
                open_blocks.pop()
                if not open_blocks:
                    return body, i + 1, True
            body.append(lines[i])
            i += 1
        return body, i, False

    def _parse_allow_block(
        self,
        lines: List[SourceLine],
        index: int,
        inline: str,
        workflow: Workflow,
        record: bool,
    ) -> int:
        header = lines[index]
        names: List[str] = []

        inline = _BULLET_RE.sub("", inline.strip())
        if inline:
            names.extend(n.strip() for n in inline.split(","))

        i = index + 1
        while i < len(lines) and self._is_allow_entry(lines[i], header):
            names.append(_BULLET_RE.sub("", lines[i].text).strip())
            i += 1

        if record:
            workflow.has_policy = True
            for name in names:
                if name and name not in workflow.allowed_resolvers:
                    workflow.allowed_resolvers.append(name)
        return i

    @staticmethod
    def _is_allow_entry(line: SourceLine, header: SourceLine) -> bool:
        if _BULLET_RE.match(line.text):
            return True
        return line.indent > header.indent and " " not in line.text

    # ------------------------------------------------------------------ steps

    def _parse_step_line(self, number: int, body: str, line: SourceLine, workflow: Workflow) -> Step:
        calc = match_math_sentence(body)
        if calc:
            calc.line = line.number
            workflow.math_required = True
            return calc

        save_as = None
        match = TRAILING_SAVE_RE.match(body)
        if match:
            body, save_as = match.group(1).strip(), match.group(2).strip()
        if is_math_call(body):
            workflow.math_required = True

        return ActionStep(action=body, number=number, save_as=save_as, line=line.number)

    def _apply_constraint(
        self,
        raw: str,
        current: Optional[Step],
        line: SourceLine,
        workflow: Workflow,
        workflow_level: bool,
    ) -> None:
        pair = CONSTRAINT_PAIR_RE.match(raw)
        if not pair:
            workflow.warn(f"Malformed constraint: {raw}", code="malformed_constraint", line=line.number)
            return

        key = pair.group(1).strip()
        value = coerce_constraint_value(pair.group(2))

        if workflow_level:
            if key == "max_generations" and isinstance(value, int) and value > 0:
                workflow.max_generations = value
            else:
                workflow.warn(f"Workflow-level constraint ignored: {raw}",
                              code="orphan_constraint", line=line.number)
            return

        if current is None or not hasattr(current, "constraints"):
            workflow.warn(f"Constraint has no step to attach to: {raw}",
                          code="orphan_constraint", line=line.number)
            return
        current.constraints[key] = value

    @staticmethod
    def _match_single_line(text: str, line: SourceLine) -> Optional[Step]:
        match = CONNECT_RE.match(text)
        if match:
            return ConnectStep(resource=match.group(1), endpoint=match.group(2), line=line.number)

        match = AGENT_USE_RE.match(text)
        if match:
            return AgentUseStep(logical_name=match.group(1), resource=match.group(2), line=line.number)

        match = DEBRIEF_RE.match(text)
        if match:
            return DebriefStep(agent=match.group(1), message=match.group(2), line=line.number)

        match = EVOLVE_RE.match(text)
        if match:
            return EvolveStep(agent=match.group(1), feedback=match.group(2), line=line.number)

        match = PROMPT_RE.match(text)
        if match:
            return PromptStep(question=match.group(1), line=line.number)

        match = PERSIST_RE.match(text)
        if match:
            return PersistStep(variable=match.group(1).strip(), destination=match.group(2), line=line.number)

        match = EMIT_RE.match(text)
        if match:
            payload = match.group(2).strip() if match.group(2) else None
            return EmitStep(event=match.group(1), payload=payload, line=line.number)

        return None

    @staticmethod
    def _match_use_or_ask(text: str, line: SourceLine) -> Optional[Step]:
        match = USE_RE.match(text)
        if match:
            return UseStep(tool=match.group(1).strip(), line=line.number)

        match = ASK_RE.match(text)
        if match:
            return AskStep(target=match.group(1).strip(), line=line.number)

        return None

    # --------------------------------------------------------------- finalize

    def _finalize(self, workflow: Workflow) -> None:
        if not self._header_seen:
            workflow.warn("Missing 'Workflow \"name\"' header", code="missing_header")
        if not workflow.steps:
            workflow.warn("Workflow defines no steps", code="no_steps")
        if not self._return_seen:
            workflow.warn("Missing 'Return' clause", code="missing_return")

        if not workflow.has_policy:
            workflow.warn(
                "No 'Allow resolvers' declaration: running in restricted mode, "
                "only auto-injected capabilities are available",
                code="restricted_mode",
            )

        if workflow.math_required and self.math_resolver_name not in workflow.allowed_resolvers:
            workflow.allowed_resolvers.insert(0, self.math_resolver_name)
            workflow.warn(
                f"Arithmetic detected: '{self.math_resolver_name}' added to allowed resolvers",
                code="math_injected",
            )


def parse(
    source: str,
    source_name: Optional[str] = None,
    math_resolver_name: str = DEFAULT_MATH_RESOLVER,
) -> Workflow:
    """Parse workflow text into a :class:`Workflow`."""
    return WorkflowParser(math_resolver_name=math_resolver_name).parse(source, source_name)
