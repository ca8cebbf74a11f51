"""
End-to-end workflow execution tests.

Each test parses workflow text and runs it through the public API, the way a
host application would.
"""

import asyncio

import pytest

import olang
from olang import PolicyViolation, execute_workflow, parse
from resolvers.base import FunctionResolver
from resolvers.builtin.mock import MockResolver


ADDITION_WORKFLOW = """
# adds two numbers
Workflow "Adder" with x, y

Step 1: Add {x} and {y} Save as sum

Return sum
"""

GUARDED_WORKFLOW = """
Allow resolvers:
- alpha

Workflow "Guarded"
Step 1: Ask something Save as r
Return r
"""

RESEARCH_WORKFLOW = """
Allow resolvers:
- mock

Workflow "Research" with topic, threshold

Step 1: Search for {topic}
Save as results

Step 2: Ask reviewer to "summarize {results.text}"
Save as summary

If {score} greater than 3 then
  Step 3: Notify editors
  Save as notified
End If

Run in parallel
  Step 4: Multiply {score} and {threshold} Save as product
  Step 5: Ask archivist about {topic}
  Save as archive_note
End

Debrief reviewer with "summary ready"
Return results.title, summary, product, archive_note, notified
"""


@pytest.mark.asyncio
async def test_addition_with_empty_chain(settings):
    workflow = parse(ADDITION_WORKFLOW, source_name="adder.ol")

    interpreter = olang.WorkflowInterpreter(settings=settings)
    result = await interpreter.execute_workflow(workflow, {"x": 2, "y": 3})

    assert result == {"sum": 5}
    assert len(interpreter.disallowed_attempts) == 0
    assert workflow.warning_codes.count("math_injected") == 1


@pytest.mark.asyncio
async def test_disallowed_resolver_aborts_run(settings):
    workflow = parse(GUARDED_WORKFLOW)
    beta = FunctionResolver("beta", lambda action, context: "should not run")
    interpreter = olang.WorkflowInterpreter(
        chain=olang.ResolverChain([beta]),
        settings=settings,
    )

    with pytest.raises(PolicyViolation):
        await interpreter.execute_workflow(workflow, {})

    assert len(interpreter.disallowed_attempts) == 1
    assert interpreter.disallowed_attempts[0].resolver == "beta"


@pytest.mark.asyncio
async def test_policy_is_per_execution(settings):
    permissive = parse('Allow resolvers:\n- beta\nWorkflow "Open"\nStep 1: go Save as r\nReturn r')
    strict = parse(GUARDED_WORKFLOW)
    beta = FunctionResolver("beta", lambda action, context: "ran")
    chain = olang.ResolverChain([beta])

    assert await execute_workflow(permissive, {}, chain, settings=settings) == {"r": "ran"}
    with pytest.raises(PolicyViolation):
        await execute_workflow(strict, {}, chain, settings=settings)


@pytest.mark.asyncio
async def test_concurrent_runs_on_one_chain_keep_their_own_policy(settings):
    permissive = parse('Allow resolvers:\n- beta\nWorkflow "Open"\nStep 1: go Save as r\nReturn r')
    strict = parse(
        'Allow resolvers:\n- alpha\nWorkflow "Guarded"\n'
        'Prompt user to "wait"\nSave as w\n'
        "Step 1: Ask secret Save as r\nReturn r"
    )
    seen = []
    beta = FunctionResolver("beta", lambda action, context: seen.append(action) or "ran")
    chain = olang.ResolverChain([beta])
    released = asyncio.Event()

    async def held(question):
        await released.wait()
        return "ok"

    async def run_permissive():
        try:
            return await execute_workflow(permissive, {}, chain, settings=settings)
        finally:
            released.set()

    strict_result, open_result = await asyncio.gather(
        execute_workflow(strict, {}, chain, settings=settings, input_provider=held),
        run_permissive(),
        return_exceptions=True,
    )

    assert open_result == {"r": "ran"}
    assert isinstance(strict_result, PolicyViolation)
    assert seen == ["go"]
    assert [entry.resolver for entry in chain.disallowed_attempts] == ["beta"]
    assert chain.allowed == []


@pytest.mark.asyncio
async def test_mixed_workflow_with_mock_resolver(settings):
    workflow = parse(RESEARCH_WORKFLOW, source_name="research.ol")
    debriefs = []
    interpreter = olang.WorkflowInterpreter(
        chain=olang.ResolverChain([MockResolver()]),
        settings=settings,
    )
    interpreter.on("debrief", debriefs.append)

    result = await interpreter.execute_workflow(
        workflow, {"topic": "owls", "threshold": 2, "score": 5}
    )

    assert result == {
        "results.title": "Results for owls",
        "summary": 'Mock answer to: reviewer to "summarize Mock search result about owls."',
        "product": 10,
        "archive_note": "Mock answer to: archivist about owls",
        "notified": "sent",
    }
    assert debriefs == [{"agent": "reviewer", "message": "summary ready"}]
    assert interpreter.warnings == []


@pytest.mark.asyncio
async def test_return_projection_of_absent_paths(settings):
    workflow = parse('Workflow "Empty"\nReturn a, b.c')

    assert await execute_workflow(workflow, {"b": {}}, None, settings=settings) == {"a": None, "b.c": None}
