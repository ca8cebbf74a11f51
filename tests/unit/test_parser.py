"""
Tests for olang.lang.parser.

Tests cover:
- Header, parameters and Return clause
- Capability declarations (inline, bulleted, indented)
- Step lines, trailing Save as, constraints
- Arithmetic sentences and math auto-injection
- If / Run in parallel blocks, including nesting
- Single-line statements
- Diagnostics for malformed input
"""

import pytest

from olang.exceptions import SyntaxRejection
from olang.lang.parser import MAX_NESTING_DEPTH, WorkflowParser, coerce_constraint_value, parse
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
    StepKind,
    UseStep,
)


# ============================================================================
# HEADER / RETURN
# ============================================================================

def test_header_with_parameters():
    wf = parse('Workflow "Greeting" with name, city\nStep 1: Say hi\nReturn greeting')

    assert wf.name == "Greeting"
    assert wf.parameters == ["name", "city"]
    assert wf.return_values == ["greeting"]


def test_missing_header_and_return_are_warnings():
    wf = parse("Step 1: Do something")

    assert wf.name == "Unnamed Workflow"
    assert "missing_header" in wf.warning_codes
    assert "missing_return" in wf.warning_codes
    assert len(wf.steps) == 1


def test_empty_source_yields_empty_workflow():
    wf = parse("")

    assert wf.steps == []
    assert "no_steps" in wf.warning_codes


def test_non_ol_source_name_rejected():
    with pytest.raises(SyntaxRejection):
        parse('Workflow "X"', source_name="workflow.yaml")


def test_ol_source_name_accepted():
    wf = parse('Workflow "X"\nReturn a', source_name="flows/x.ol")
    assert wf.source_name == "flows/x.ol"


# ============================================================================
# CAPABILITY POLICY
# ============================================================================

def test_allow_block_with_bullets():
    wf = parse('Allow resolvers:\n- alpha\n- beta\nWorkflow "X"\nReturn a')

    assert wf.allowed_resolvers == ["alpha", "beta"]
    assert wf.has_policy
    assert "restricted_mode" not in wf.warning_codes


def test_allow_block_inline_and_indented():
    wf = parse('Allow resolvers: alpha, beta\n  gamma\nWorkflow "X"')
    assert wf.allowed_resolvers == ["alpha", "beta", "gamma"]


def test_indented_sentence_ends_allow_block():
    wf = parse("Allow resolvers:\n  alpha\n  Step 1: Do it\n")

    assert wf.allowed_resolvers == ["alpha"]
    assert isinstance(wf.steps[0], ActionStep)


def test_no_policy_is_restricted_mode():
    wf = parse('Workflow "X"\nStep 1: Search for cats\nReturn a')
    assert "restricted_mode" in wf.warning_codes
    assert wf.allowed_resolvers == []


# ============================================================================
# STEPS
# ============================================================================

def test_step_with_save_as_and_constraint():
    wf = parse(
        'Workflow "X"\n'
        "Step 1: Search for {topic}\n"
        "Save as results\n"
        "Constraint: max_results = 5\n"
        "Constraint: tags = [a, \"b\"]\n"
        "Return results"
    )
    step = wf.steps[0]

    assert isinstance(step, ActionStep)
    assert step.number == 1
    assert step.action == "Search for {topic}"
    assert step.save_as == "results"
    assert step.constraints == {"max_results": 5, "tags": ["a", "b"]}


def test_trailing_save_as_on_step_line():
    wf = parse("Step 1: Ask the oracle Save as answer")
    step = wf.steps[0]

    assert step.action == "Ask the oracle"
    assert step.save_as == "answer"


def test_orphan_save_and_malformed_constraint():
    wf = parse('Save as nothing\nStep 1: x\nConstraint: no equals sign')

    assert "orphan_save" in wf.warning_codes
    assert "malformed_constraint" in wf.warning_codes


def test_unrecognized_line_skipped():
    wf = parse('Workflow "X"\nthis is not a sentence\nStep 1: ok')

    assert len(wf.steps) == 1
    assert "unrecognized_line" in wf.warning_codes


@pytest.mark.parametrize("raw,expected", [
    ("5", 5),
    ("2.5", 2.5),
    ('"quoted"', "quoted"),
    ("[]", []),
    ("plain", "plain"),
])
def test_coerce_constraint_value(raw, expected):
    assert coerce_constraint_value(raw) == expected


def test_workflow_level_generation_constraint():
    wf = parse('Workflow "X"\nConstraint: max_generations = 3\nStep 1: x')
    assert wf.max_generations == 3


# ============================================================================
# ARITHMETIC
# ============================================================================

def test_math_sentences_become_calculate_steps():
    wf = parse(
        'Workflow "Calc" with a, b\n'
        "Add {a} and {b} Save as total\n"
        "Subtract {a} from {b} Save as diff\n"
        "Multiply {a} and {b} Save as product\n"
        "Divide {a} by {b} Save as ratio\n"
        "Return total"
    )
    expressions = [(s.expression, s.save_as) for s in wf.steps]

    assert all(isinstance(s, CalculateStep) for s in wf.steps)
    assert expressions == [
        ("add({a}, {b})", "total"),
        ("subtract({b}, {a})", "diff"),
        ("multiply({a}, {b})", "product"),
        ("divide({a}, {b})", "ratio"),
    ]


def test_math_injection_adds_capability_once():
    wf = parse(
        "Allow resolvers:\n- alpha\n"
        'Workflow "Calc"\n'
        "Step 1: Add {x} and {y} Save as sum\n"
        "Step 2: Multiply {sum} and {y} Save as p\n"
        "Return sum"
    )

    assert wf.allowed_resolvers == ["builtInMathResolver", "alpha"]
    assert wf.warning_codes.count("math_injected") == 1


def test_custom_math_resolver_name():
    wf = WorkflowParser(math_resolver_name="calc").parse("Add {a} and {b} Save as c")
    assert wf.allowed_resolvers == ["calc"]


# ============================================================================
# BLOCKS
# ============================================================================

def test_if_block():
    wf = parse(
        'Workflow "X"\n'
        'If {status} equals "ok" then\n'
        "  Step 1: Notify team\n"
        "End If\n"
        "Return a"
    )
    block = wf.steps[0]

    assert isinstance(block, IfStep)
    assert block.condition == '{status} equals "ok"'
    assert len(block.body) == 1
    assert block.body[0].action == "Notify team"


def test_parallel_block():
    wf = parse("Run in parallel\nStep 1: a\nStep 2: b\nEnd\nStep 3: c")

    assert isinstance(wf.steps[0], ParallelStep)
    assert [s.action for s in wf.steps[0].steps] == ["a", "b"]
    assert wf.steps[1].action == "c"


def test_nested_blocks():
    wf = parse(
        "Run in parallel\n"
        "  If {x} then\n"
        "    Run in parallel\n"
        "      Step 1: deep\n"
        "    End\n"
        "  End If\n"
        "  Step 2: shallow\n"
        "End\n"
    )
    outer = wf.steps[0]
    inner_if = outer.steps[0]
    inner_parallel = inner_if.body[0]

    assert isinstance(inner_if, IfStep)
    assert isinstance(inner_parallel, ParallelStep)
    assert inner_parallel.steps[0].action == "deep"
    assert outer.steps[1].action == "shallow"
    assert [s.kind for s in wf.iter_steps()] == [
        StepKind.PARALLEL, StepKind.IF, StepKind.PARALLEL, StepKind.ACTION, StepKind.ACTION,
    ]


def test_unclosed_block_warns_and_keeps_body():
    wf = parse("If {x} then\nStep 1: a")

    assert "unclosed_block" in wf.warning_codes
    assert len(wf.steps[0].body) == 1


@pytest.mark.parametrize("depth", [MAX_NESTING_DEPTH + 5, 1200])
def test_excessive_nesting_warns_instead_of_crashing(depth):
    source = "If {x} then\n" * depth + "Step 1: deep\n" + "End If\n" * depth

    wf = parse(source)

    assert "nesting_too_deep" in wf.warning_codes
    assert len(wf.steps) == 1
    assert isinstance(wf.steps[0], IfStep)
    assert "deep" not in [getattr(s, "action", None) for s in wf.iter_steps()]


def test_nesting_at_the_limit_is_kept():
    depth = MAX_NESTING_DEPTH
    wf = parse("If {x} then\n" * depth + "Step 1: deep\n" + "End If\n" * depth)

    assert "nesting_too_deep" not in wf.warning_codes
    assert [s.action for s in wf.iter_steps() if s.kind is StepKind.ACTION] == ["deep"]


# ============================================================================
# SINGLE-LINE STATEMENTS
# ============================================================================

def test_single_line_statements():
    wf = parse(
        'Connect "crm" using "https://crm.local/api"\n'
        'Agent "writer" uses "gpt"\n'
        'Debrief writer with "first pass done"\n'
        'Evolve writer using feedback: "be shorter"\n'
        'Prompt user to "Enter your name"\n'
        "Save as name\n"
        'Persist {name} to "names.json"\n'
        'Emit "done" with {name}\n'
        'Emit "bare"\n'
        "Use search_tool\n"
        "Ask summarizer\n"
    )
    steps = wf.steps

    assert isinstance(steps[0], ConnectStep) and steps[0].endpoint == "https://crm.local/api"
    assert isinstance(steps[1], AgentUseStep) and steps[1].resource == "gpt"
    assert isinstance(steps[2], DebriefStep) and steps[2].message == "first pass done"
    assert isinstance(steps[3], EvolveStep) and steps[3].feedback == "be shorter"
    assert isinstance(steps[4], PromptStep) and steps[4].save_as == "name"
    assert isinstance(steps[5], PersistStep) and steps[5].destination == "names.json"
    assert isinstance(steps[6], EmitStep) and steps[6].payload == "{name}"
    assert isinstance(steps[7], EmitStep) and steps[7].payload is None
    assert isinstance(steps[8], UseStep) and steps[8].tool == "search_tool"
    assert isinstance(steps[9], AskStep) and steps[9].target == "summarizer"


def test_case_insensitive_keywords():
    wf = parse('WORKFLOW "Loud"\nstep 1: whisper\nsave as w\nreturn w')

    assert wf.name == "Loud"
    assert wf.steps[0].save_as == "w"
    assert wf.return_values == ["w"]


def test_math_call_step_requires_math():
    wf = parse('Workflow "X"\nStep 1: sum({a}, {b}) Save as total\nReturn total')

    assert wf.steps[0].action == "sum({a}, {b})"
    assert wf.math_required
    assert wf.allowed_resolvers == ["builtInMathResolver"]
