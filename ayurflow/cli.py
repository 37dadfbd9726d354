#!/usr/bin/env python3
"""
ayurflow CLI

Submit research tasks and inspect templates and workers from the command line.
"""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .base.config import OrchestratorConfig, load_config, setup_logging
from .components.planner import WorkflowPlanner
from .coordinator import Coordinator
from .core.errors import AyurflowError
from .core.models import CoordinatedTask, TaskCategory, TaskPriority, TaskStatus
from .core.response import api_response

console = Console()


def _load(config_path: Optional[str]) -> OrchestratorConfig:
    try:
        config = load_config(config_path)
        config.validate()
    except AyurflowError as e:
        console.print(f"[red]❌ {e.message}[/red]")
        sys.exit(2)
    return config


@click.group()
@click.option('--config', 'config_path', type=click.Path(), default=None, help='Path to a YAML configuration file')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.version_option(version='0.1.0', prog_name='ayurflow')
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], verbose: bool, debug: bool):
    """
    ayurflow - research request orchestration

    Plans research requests into worker workflows, runs them and
    synthesizes the results.
    """
    config = _load(config_path)
    # Flags win; otherwise the file or AYURFLOW_LOG_LEVEL decides
    if debug:
        config.log_level = 'DEBUG'
    elif verbose:
        config.log_level = 'INFO'
    setup_logging(config)
    ctx.obj = config


@cli.command()
@click.argument('category', type=click.Choice([category.value for category in TaskCategory]))
@click.option('--input', 'input_json', default=None, help='Task input as a JSON object')
@click.option('--query', '-q', default=None, help='Search query (herb, topic)')
@click.option('--compound', '-c', default=None, help='Compound identifier')
@click.option('--priority', '-p', type=click.Choice([priority.value for priority in TaskPriority]), default='medium')
@click.option('--timeout', type=float, default=None, help='Seconds to wait for the result')
@click.option('--json', 'as_json', is_flag=True, help='Print the task as JSON')
@click.pass_obj
def run(config: OrchestratorConfig, category: str, input_json: Optional[str], query: Optional[str],
        compound: Optional[str], priority: str, timeout: Optional[float], as_json: bool):
    """Submit a task and wait for its synthesized result"""
    task_input: Dict[str, Any] = {}
    if input_json:
        try:
            task_input = json.loads(input_json)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"invalid JSON: {e}", param_hint='--input')
        if not isinstance(task_input, dict):
            raise click.BadParameter("must be a JSON object", param_hint='--input')
    if query:
        task_input['query'] = query
    if compound:
        task_input['compound'] = compound

    try:
        task = asyncio.run(_run_task(config, category, task_input, priority, timeout))
    except AyurflowError as e:
        console.print(f"[red]❌ {e.message}[/red]")
        sys.exit(2)
    except asyncio.TimeoutError:
        console.print(f"[red]❌ Task did not finish within {timeout}s[/red]")
        sys.exit(1)

    if as_json:
        envelope = api_response(
            success=task.status == TaskStatus.COMPLETED,
            data=task.to_dict(),
            error=task.error or f"Task {task.status.value}",
            message=f"Task {task.status.value}",
            request_id=task.id,
        )
        click.echo(json.dumps(envelope, indent=2))
    else:
        _print_task(task)

    if task.status != TaskStatus.COMPLETED:
        sys.exit(1)


async def _run_task(config: OrchestratorConfig, category: str, task_input: Dict[str, Any],
                    priority: str, timeout: Optional[float]) -> CoordinatedTask:
    async with Coordinator(config, log_events=logging.getLogger().isEnabledFor(logging.INFO)) as coordinator:
        task_id = coordinator.submit_task(category, task_input, priority)
        return await coordinator.wait_for_task(task_id, timeout)


def _print_task(task: CoordinatedTask):
    colour = {'completed': 'green', 'failed': 'red'}.get(task.status.value, 'yellow')
    console.print(Panel(
        f"Task: {task.id}\nCategory: {task.category.value}\nStatus: [{colour}]{task.status.value}[/{colour}]",
        title="ayurflow",
    ))

    if task.error:
        console.print(f"[red]❌ {task.error}[/red]")

    result = task.final_result
    if result is None:
        return

    console.print(
        f"Confidence {result.confidence:.2f} | Reliability {result.reliability_score:.2f} | "
        f"Quality {result.quality_score:.2f}"
    )

    findings = Table(title="Primary findings", show_header=True)
    findings.add_column("Finding")
    findings.add_column("Source")
    findings.add_column("Score", justify="right")
    for finding in result.primary_findings:
        findings.add_row(finding.statement, finding.source_step or "", f"{finding.confidence:.2f}")
    console.print(findings)

    if result.recommendations:
        recommendations = Table(title="Recommendations", show_header=True)
        recommendations.add_column("Category")
        recommendations.add_column("Recommendation")
        recommendations.add_column("Confidence", justify="right")
        for rec in result.recommendations:
            recommendations.add_row(rec.category, rec.description, f"{rec.confidence:.2f}")
        console.print(recommendations)

    for conflict in result.conflicts:
        console.print(f"[yellow]⚠️  {conflict.severity.value} conflict: {conflict.description}[/yellow]")
    for gap in result.gaps:
        console.print(f"[yellow]⚠️  Missing {gap.step_id}: {gap.error}[/yellow]")


@cli.command()
@click.pass_obj
def categories(config: OrchestratorConfig):
    """List task categories and their workflow steps"""
    try:
        planner = WorkflowPlanner(config.templates_path)
    except AyurflowError as e:
        console.print(f"[red]❌ {e.message}[/red]")
        sys.exit(2)

    table = Table(title="Workflow templates", show_header=True)
    table.add_column("Category")
    table.add_column("Step")
    table.add_column("Worker")
    table.add_column("Depends on")
    table.add_column("Flags")
    for category in planner.categories():
        description = planner.describe(category)
        for step in description['steps']:
            flags = [name for name in ('parallel', 'optional') if step[name]]
            table.add_row(
                category.value,
                step['step_id'],
                step['worker_type'],
                ", ".join(step['dependencies']),
                ", ".join(flags),
            )
    console.print(table)


@cli.command()
@click.option('--json', 'as_json', is_flag=True, help='Print statuses as JSON')
@click.pass_obj
def workers(config: OrchestratorConfig, as_json: bool):
    """Show configured workers and their health"""
    statuses = asyncio.run(_worker_statuses(config))

    if as_json:
        click.echo(json.dumps(api_response(True, data=statuses), indent=2, default=str))
        return

    table = Table(title="Workers", show_header=True)
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Concurrency", justify="right")
    table.add_column("Timeout (ms)", justify="right")
    table.add_column("Retries", justify="right")
    table.add_column("Capabilities")
    for worker_type, status in statuses.items():
        table.add_row(
            worker_type,
            "✓ healthy" if status['health']['healthy'] else status['status'],
            str(status['max_concurrent_tasks']),
            str(status['timeout_ms']),
            str(status['retry_attempts']),
            ", ".join(status['capabilities']),
        )
    console.print(table)


async def _worker_statuses(config: OrchestratorConfig) -> Dict[str, Dict[str, Any]]:
    async with Coordinator(config, log_events=False) as coordinator:
        return await coordinator.get_worker_statuses()


def main():
    cli()


if __name__ == '__main__':
    main()
