# cli/commands/run.py
"""Commands that parse and execute workflow files."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Tuple

import click

from olang.config import get_settings
from olang.exceptions import (
    GenerationLimitExceeded,
    PolicyViolation,
    ResolverConfigurationError,
    SyntaxRejection,
)
from olang.lang.parser import parse
from olang.lang.steps import Workflow
from olang.runtime.chain import DisallowedAttemptLog
from olang.runtime.interpreter import WorkflowInterpreter
from resolvers.builtin.mock import MockResolver
from resolvers.registry import ResolverRegistry


def _coerce_input(raw: str) -> Any:
    """Numbers become numbers; everything else stays text."""
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    return raw


def parse_inputs(pairs: Tuple[str, ...]) -> Dict[str, Any]:
    inputs = {}
    for pair in pairs:
        key, sep, value = pair.partition('=')
        if not sep or not key.strip():
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint='--input')
        inputs[key.strip()] = _coerce_input(value.strip())
    return inputs


def load_workflow(workflow_file: Path) -> Workflow:
    try:
        return parse(workflow_file.read_text(encoding='utf-8'), source_name=workflow_file.name)
    except SyntaxRejection as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)


def _print_warnings(warnings) -> None:
    for warning in warnings:
        click.echo(f"⚠️  {warning}", err=True)


@click.command()
@click.argument('workflow_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--resolver', '-r', 'resolver_specs', multiple=True,
              help='Resolver to add to the chain, as module:attr (repeatable, in order)')
@click.option('--input', '-i', 'input_pairs', multiple=True, help='Workflow input as key=value')
@click.option('--mock', is_flag=True, help='Append the mock resolver to the chain')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
def run(workflow_file: Path, resolver_specs: Tuple[str, ...], input_pairs: Tuple[str, ...],
        mock: bool, as_json: bool):
    """Run a .ol workflow file."""
    settings = get_settings()
    workflow = load_workflow(workflow_file)
    _print_warnings(workflow.warnings)

    registry = ResolverRegistry()
    try:
        for spec in resolver_specs:
            registry.load_entry_point(spec)
    except ResolverConfigurationError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)
    if mock:
        registry.register(MockResolver())

    chain = registry.build_chain(
        workflow=workflow,
        audit_log=DisallowedAttemptLog(settings.disallowed_log_path),
        math_resolver_name=settings.math_resolver_name,
    )
    interpreter = WorkflowInterpreter(chain=chain, settings=settings)
    interpreter.on('debrief', lambda payload: click.echo(
        f"💬 {payload.get('agent')}: {payload.get('message')}", err=True))

    if not as_json:
        click.echo(f"🚀 Running workflow: {workflow.name}")

    try:
        result = asyncio.run(interpreter.execute_workflow(workflow, parse_inputs(input_pairs)))
    except PolicyViolation as e:
        click.echo(f"🚫 {e}", err=True)
        sys.exit(2)
    except GenerationLimitExceeded as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(2)

    _print_warnings(interpreter.warnings)

    if as_json:
        click.echo(json.dumps(result, indent=2, default=str))
        return

    click.echo("✅ Workflow completed")
    for key, value in result.items():
        click.echo(f"  {key}: {value}")


@click.command()
@click.argument('workflow_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
def check(workflow_file: Path):
    """Parse a .ol workflow file and report what was found."""
    workflow = load_workflow(workflow_file)

    click.echo(f"📋 Workflow: {workflow.name}")
    if workflow.parameters:
        click.echo(f"   Parameters: {', '.join(workflow.parameters)}")
    click.echo(f"   Steps: {len(workflow.steps)} ({sum(1 for _ in workflow.iter_steps())} including nested)")
    click.echo(f"   Allowed resolvers: {', '.join(workflow.allowed_resolvers) or '(none)'}")
    if workflow.return_values:
        click.echo(f"   Returns: {', '.join(workflow.return_values)}")
    if workflow.max_generations is not None:
        click.echo(f"   Max generations: {workflow.max_generations}")

    if workflow.warnings:
        click.echo(f"\n⚠️  {len(workflow.warnings)} warning(s):")
        for warning in workflow.warnings:
            click.echo(f"   - {warning}")
    else:
        click.echo("\n✅ No warnings")
