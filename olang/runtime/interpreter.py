"""Tree-walking interpreter for parsed workflows."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

import structlog

from olang.config import Settings
from olang.exceptions import EvaluationError, GenerationLimitExceeded, PolicyViolation, SinkError
from olang.lang.steps import (
    ActionStep,
    AgentUseStep,
    AskStep,
    CalculateStep,
    ConnectStep,
    DebriefStep,
    Diagnostic,
    EmitStep,
    EvolveStep,
    IfStep,
    ParallelStep,
    PersistStep,
    PromptStep,
    Step,
    StepKind,
    UseStep,
    Workflow,
)
from olang.runtime import events as event_names
from olang.runtime.chain import DisallowedAttemptLog, ResolverChain
from olang.runtime.context import ExecutionContext
from olang.runtime.events import EventBus
from olang.runtime.expressions import evaluate_condition, evaluate_math, interpolate
from olang.runtime.mathexpr import is_math_call
from olang.storage.registry import SinkRegistry

logger = structlog.get_logger(__name__)

InputProvider = Callable[[str], Awaitable[str]]

# Errors that end the whole run instead of becoming warnings.
ABORTING_ERRORS = (PolicyViolation, GenerationLimitExceeded)


async def stdin_input(question: str) -> str:
    """Read one line from stdin without blocking the event loop."""
    reply = await asyncio.get_event_loop().run_in_executor(None, input, f"{question}: ")
    return reply.strip()


def _strip_braces(path: str) -> str:
    return path.strip().lstrip("{").rstrip("}").strip()


class WorkflowInterpreter:
    """Executes one workflow at a time against a resolver chain.

    Steps run in document order. ``Run in parallel`` bodies are started
    together and share this interpreter's context; the block finishes when
    every sibling has finished. Only :class:`PolicyViolation` and
    :class:`GenerationLimitExceeded` stop a run; every other fault is recorded
    in :attr:`warnings` and execution continues.
    """

    def __init__(
        self,
        chain: Optional[ResolverChain] = None,
        settings: Optional[Settings] = None,
        events: Optional[EventBus] = None,
        input_provider: Optional[InputProvider] = None,
        sinks: Optional[SinkRegistry] = None,
    ):
        self.settings = settings or Settings()
        self.chain = chain if chain is not None else ResolverChain(
            audit_log=DisallowedAttemptLog(self.settings.disallowed_log_path),
            math_resolver_name=self.settings.math_resolver_name,
        )
        self.events = events or EventBus()
        self.input_provider = input_provider or stdin_input
        self.sinks = sinks or SinkRegistry.from_settings(self.settings)

        self.context = ExecutionContext()
        self.resources: Dict[str, str] = {}
        self.agent_map: Dict[str, str] = {}
        self.workflow: Optional[Workflow] = None
        self._warnings: List[Diagnostic] = []
        self._history: List[Union[ActionStep, AskStep]] = []
        self.run_chain = self.chain.bind(())

        self._handlers: Dict[StepKind, Callable[[Any], Awaitable[None]]] = {
            StepKind.ACTION: self._run_action,
            StepKind.CALCULATE: self._run_calculate,
            StepKind.USE: self._run_use,
            StepKind.ASK: self._run_ask,
            StepKind.IF: self._run_if,
            StepKind.PARALLEL: self._run_parallel,
            StepKind.CONNECT: self._run_connect,
            StepKind.AGENT_USE: self._run_agent_use,
            StepKind.DEBRIEF: self._run_debrief,
            StepKind.EVOLVE: self._run_evolve,
            StepKind.PROMPT: self._run_prompt,
            StepKind.PERSIST: self._run_persist,
            StepKind.EMIT: self._run_emit,
        }
        missing = set(StepKind) - set(self._handlers)
        if missing:
            raise NotImplementedError(
                f"No handler for step kinds: {sorted(k.value for k in missing)}"
            )

    # ----------------------------------------------------------------- public

    @property
    def warnings(self) -> List[Diagnostic]:
        """Runtime warnings, resolver faults included."""
        return self._warnings + self.run_chain.warnings

    @property
    def disallowed_attempts(self):
        return self.chain.disallowed_attempts

    def on(self, event_name: str, callback: Callable[..., Any]) -> str:
        return self.events.on(event_name, callback)

    async def execute_workflow(
        self,
        workflow: Workflow,
        inputs: Optional[Dict[str, Any]] = None,
        generation: int = 1,
    ) -> Dict[str, Any]:
        """Run every step and project the ``Return`` paths."""
        ceiling = workflow.max_generations
        if ceiling is not None and generation > ceiling:
            raise GenerationLimitExceeded(workflow.name, generation, ceiling)

        self.workflow = workflow
        self.context = ExecutionContext(inputs)
        self.context["workflow_name"] = workflow.name
        self.resources = {}
        self.agent_map = {}
        self._warnings = []
        self._history = []
        self._apply_policy(workflow)

        logger.info(
            "workflow_started",
            workflow=workflow.name,
            steps=len(workflow.steps),
            generation=generation,
            allowed=list(self.run_chain.allowed),
        )
        await self.events.emit(event_names.WORKFLOW_STARTED, {"workflow": workflow.name}, workflow.name)

        try:
            for step in workflow.steps:
                await self.execute_step(step)
        finally:
            await self.sinks.close()

        result = {key: self.context.resolve(key) for key in workflow.return_values}

        logger.info("workflow_completed", workflow=workflow.name, warnings=len(self.warnings))
        await self.events.emit(event_names.WORKFLOW_COMPLETED, {"workflow": workflow.name, "result": result}, workflow.name)
        return result

    async def execute_step(self, step: Step) -> None:
        """Run one step; non-aborting faults become warnings."""
        handler = self._handlers[step.kind]
        try:
            await handler(step)
        except ABORTING_ERRORS:
            raise
        except Exception as e:
            self._warn(f"{step.kind.value} step failed: {e}", "step_failed", step)
            logger.warning("step_failed", kind=step.kind.value, line=step.line, error=str(e))

    # ----------------------------------------------------------------- policy

    def _apply_policy(self, workflow: Workflow) -> None:
        allowed = list(workflow.allowed_resolvers)
        math_name = self.settings.math_resolver_name
        if math_name not in allowed and self._needs_math(workflow):
            allowed.insert(0, math_name)
        self.run_chain = self.chain.bind(allowed, workflow.name)

    @staticmethod
    def _needs_math(workflow: Workflow) -> bool:
        if workflow.math_required:
            return True
        for step in workflow.iter_steps():
            if isinstance(step, CalculateStep):
                return True
            if isinstance(step, ActionStep) and is_math_call(step.action):
                return True
        return False

    # ---------------------------------------------------------------- helpers

    def _warn(self, message: str, code: str, step: Optional[Step] = None) -> None:
        line = getattr(step, "line", None) if step is not None else None
        self._warnings.append(Diagnostic(message=message, code=code, line=line))

    def _evaluate_math(self, expression: str, step: Step) -> Any:
        try:
            return evaluate_math(expression, self.context)
        except EvaluationError as e:
            self._warn(f"Could not evaluate {expression!r}: {e}", "evaluation_error", step)
            logger.warning("math_evaluation_failed", expression=expression, error=str(e))
            return 0

    def _save(self, step: Step, value: Any) -> None:
        save_as = getattr(step, "save_as", None)
        if save_as:
            self.context[save_as] = value

    async def _dispatch(self, action: str) -> Any:
        return await self.run_chain.invoke(action, self.context)

    async def _emit(self, name: str, payload: Any) -> None:
        workflow_name = self.workflow.name if self.workflow else None
        await self.events.emit(name, payload, workflow_name)

    # --------------------------------------------------------------- handlers

    async def _run_calculate(self, step: CalculateStep) -> None:
        self._save(step, self._evaluate_math(step.expression, step))

    async def _run_action(self, step: ActionStep) -> None:
        action = interpolate(step.action, self.context)
        if is_math_call(action):
            value = self._evaluate_math(step.action, step)
        else:
            value = await self._dispatch(action)
        self._history.append(step)
        self._save(step, value)

    async def _run_use(self, step: UseStep) -> None:
        value = await self._dispatch(f"Use {interpolate(step.tool, self.context)}")
        self._save(step, value)

    async def _run_ask(self, step: AskStep) -> None:
        value = await self._dispatch(f"Ask {interpolate(step.target, self.context)}")
        self._history.append(step)
        self._save(step, value)

    async def _run_if(self, step: IfStep) -> None:
        if not evaluate_condition(step.condition, self.context):
            logger.debug("if_skipped", condition=step.condition)
            return
        for child in step.body:
            await self.execute_step(child)

    async def _run_parallel(self, step: ParallelStep) -> None:
        results = await asyncio.gather(
            *(self.execute_step(child) for child in step.steps),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _run_connect(self, step: ConnectStep) -> None:
        self.resources[step.resource] = step.endpoint
        logger.debug("resource_connected", resource=step.resource, endpoint=step.endpoint)

    async def _run_agent_use(self, step: AgentUseStep) -> None:
        self.agent_map[step.logical_name] = step.resource
        logger.debug("agent_bound", agent=step.logical_name, resource=step.resource)

    async def _run_debrief(self, step: DebriefStep) -> None:
        await self._emit(event_names.DEBRIEF, {"agent": step.agent, "message": step.message})

    async def _run_evolve(self, step: EvolveStep) -> None:
        output_var = step.save_as or self.settings.evolve_output_variable
        max_generations = self._evolve_ceiling(step)
        target = self._find_last_ask_step()

        if target is None:
            self._warn("Evolve: no prior 'Ask ... Save as' step to evolve", "evolve_without_target", step)
            logger.warning("evolve_without_target", agent=step.agent)
            self.context[output_var] = self.context.get(output_var, "")
            return

        if max_generations < 1:
            self.context[output_var] = self._saved_value(target)
            return

        output = self._saved_value(target)
        for attempt in range(max_generations):
            action = _with_feedback(interpolate(self._action_text(target), self.context), step.feedback)
            output = await self._dispatch(action)
            self.context[target.save_as] = output

            preview = "" if output is None else str(output)[:80]
            await self._emit(event_names.DEBRIEF, {
                "agent": step.agent or "Evolver",
                "message": f"Evolve attempt {attempt + 1}/{max_generations}: {preview}...",
            })

        self.context[output_var] = output

    async def _run_prompt(self, step: PromptStep) -> None:
        question = interpolate(step.question, self.context)
        try:
            answer = await self.input_provider(question)
        except EOFError:
            self._warn(f"No input available for prompt {question!r}", "prompt_no_input", step)
            answer = ""
        self._save(step, answer)

    async def _run_persist(self, step: PersistStep) -> None:
        path = _strip_braces(step.variable)
        value = self.context.resolve(path)
        if value is None:
            self._warn(f"Persist: '{path}' has no value, nothing written", "persist_missing_value", step)
            return

        destination = interpolate(step.destination, self.context)
        try:
            sink, collection = await self.sinks.get(destination)
            await sink.write(collection, value, self.workflow.name if self.workflow else None)
        except (SinkError, OSError) as e:
            self._warn(f"Persist to {destination!r} failed: {e}", "sink_error", step)
            logger.warning("persist_failed", destination=destination, error=str(e))
            return
        logger.debug("value_persisted", variable=path, destination=destination)

    async def _run_emit(self, step: EmitStep) -> None:
        payload = None
        if step.payload:
            payload = self.context.resolve(_strip_braces(step.payload))
            if payload is None:
                payload = step.payload
        await self._emit(step.event, payload)

    # ----------------------------------------------------------------- evolve

    def _evolve_ceiling(self, step: EvolveStep) -> int:
        raw = step.constraints.get("max_generations", self.settings.default_max_generations)
        try:
            return int(raw)
        except (TypeError, ValueError):
            self._warn(f"Evolve: invalid max_generations {raw!r}", "evaluation_error", step)
            return self.settings.default_max_generations

    def _find_last_ask_step(self) -> Optional[Union[ActionStep, AskStep]]:
        for step in reversed(self._history):
            if not step.save_as:
                continue
            if isinstance(step, AskStep):
                return step
            if step.action.lower().startswith("ask "):
                return step
        return None

    @staticmethod
    def _action_text(step: Union[ActionStep, AskStep]) -> str:
        if isinstance(step, AskStep):
            return f"Ask {step.target}"
        return step.action

    def _saved_value(self, step: Optional[Union[ActionStep, AskStep]]) -> Any:
        if step is None or not step.save_as:
            return ""
        value = self.context.get(step.save_as)
        return "" if value is None else value


def _with_feedback(action: str, feedback: Optional[str]) -> str:
    """Append improvement feedback inside a trailing quoted prompt if present."""
    if not feedback:
        return action
    note = f"\n\n[IMPROVEMENT FEEDBACK: {feedback}]"
    if action.endswith('"'):
        return action[:-1] + note + '"'
    return action + note


async def execute_workflow(
    workflow: Workflow,
    inputs: Optional[Dict[str, Any]] = None,
    chain: Optional[Union[ResolverChain, Iterable[Any]]] = None,
    settings: Optional[Settings] = None,
    generation: int = 1,
    **kwargs,
) -> Dict[str, Any]:
    """Run a workflow with a fresh interpreter and return its outputs."""
    settings = settings or Settings()
    if not isinstance(chain, ResolverChain):
        chain = ResolverChain.for_workflow(
            workflow,
            chain or (),
            audit_log=DisallowedAttemptLog(settings.disallowed_log_path),
            math_resolver_name=settings.math_resolver_name,
        )
    interpreter = WorkflowInterpreter(chain=chain, settings=settings, **kwargs)
    return await interpreter.execute_workflow(workflow, inputs, generation)
