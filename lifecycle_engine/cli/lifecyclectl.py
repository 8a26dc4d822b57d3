#!/usr/bin/env python3
"""
Lifecycle Control CLI - Command Line Interface for the Lifecycle Workflow Engine.

Provides commands for managing workflow templates, starting and driving
workflow instances, handling exceptions, running maintenance sweeps and
serving the REST API.
"""

import logging
import sys
from pathlib import Path
from typing import Dict, Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import load_settings
from ..engine.factory import Engine, build_engine
from ..errors import WorkflowEngineError
from ..integrations.dispatcher import summarize_attempt
from ..models import (
    InstanceRecord,
    InstanceStatus,
    LifecycleType,
    ResolutionStatus,
    Severity,
    StepStatus,
    TemplateStatus,
    utctoday,
)

logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()

DEFAULT_STATE_FILE = ".lifecycle_engine/state.json"

STATUS_STYLES = {
    StepStatus.COMPLETED: "green",
    StepStatus.IN_PROGRESS: "blue",
    StepStatus.BLOCKED: "yellow",
    StepStatus.FAILED: "red",
    StepStatus.SKIPPED: "dim",
    StepStatus.PENDING: "white",
}


class LifecycleController:
    """Builds the engine a CLI invocation works against."""

    def __init__(self, config_path: Optional[str] = None, state_file: Optional[str] = None,
                 mock_mode: bool = True):
        self.settings = load_settings(config_path)
        # Each CLI call is a new process, so state must live on disk.
        self.settings.storage_path = state_file or self.settings.storage_path or DEFAULT_STATE_FILE
        self.settings.integrations.mock_mode = mock_mode
        self._engine: Optional[Engine] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = build_engine(self.settings)
        return self._engine


@click.group()
@click.option('--config', '-c', help='Path to YAML configuration file')
@click.option('--state', help=f'Workflow state file (default: {DEFAULT_STATE_FILE})')
@click.option('--mock/--real', default=True, help='Use mock providers (default) or real endpoints')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, config, state, mock, verbose):
    """Lifecycle Control CLI - HR lifecycle workflow engine"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    ctx.ensure_object(dict)
    ctx.obj['controller'] = LifecycleController(config, state, mock)


def _engine(ctx) -> Engine:
    return ctx.obj['controller'].engine


def _fail(message: str):
    console.print(f"[red]✗ {message}[/red]")
    sys.exit(1)


def _parse_assignments(values: Tuple[str, ...]) -> Dict[str, str]:
    assignments = {}
    for value in values:
        role, sep, person = value.partition('=')
        if not sep or not role or not person:
            raise click.BadParameter(f"Expected ROLE=PERSON, got '{value}'", param_hint='--assign')
        assignments[role.strip()] = person.strip()
    return assignments


# ----------------------------------------------------------------------
# Templates
# ----------------------------------------------------------------------

@cli.group()
def templates():
    """Manage workflow templates."""


@templates.command('list')
@click.option('--type', 'lifecycle_type', type=click.Choice([t.value for t in LifecycleType]),
              help='Filter by lifecycle type')
@click.option('--status', type=click.Choice([s.value for s in TemplateStatus]), help='Filter by status')
@click.pass_context
def list_templates(ctx, lifecycle_type, status):
    """List workflow templates."""
    items = _engine(ctx).templates.list(
        lifecycle_type=LifecycleType(lifecycle_type) if lifecycle_type else None,
        status=TemplateStatus(status) if status else None,
    )
    if not items:
        console.print("[yellow]No templates found[/yellow]")
        return

    table = Table(title=f"Templates ({len(items)})")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Type", style="yellow")
    table.add_column("Scope", style="blue")
    table.add_column("Version", style="magenta")
    table.add_column("Status")
    table.add_column("Steps")

    for template in items:
        scope = "/".join(filter(None, [template.department, template.role])) or "-"
        table.add_row(
            template.id,
            template.name,
            template.lifecycle_type.value,
            scope,
            str(template.version),
            template.status.value,
            str(len(template.steps)),
        )

    console.print(table)


@templates.command('show')
@click.argument('template_id')
@click.pass_context
def show_template(ctx, template_id):
    """Show a template and its steps."""
    try:
        template = _engine(ctx).templates.get(template_id)
    except WorkflowEngineError as e:
        _fail(str(e))

    console.print(Panel.fit(
        f"[bold blue]{template.name}[/bold blue] v{template.version}\n"
        f"{template.lifecycle_type.value} - {template.status.value}"
    ))
    if template.description:
        console.print(template.description)

    table = Table()
    table.add_column("Key", style="cyan")
    table.add_column("Title", style="green")
    table.add_column("Type", style="yellow")
    table.add_column("Day", style="magenta")
    table.add_column("Role")
    table.add_column("Depends on")
    table.add_column("Mandatory")

    for blueprint in template.steps:
        step_type = blueprint.step_type.value
        if blueprint.integration_kind:
            step_type += f" ({blueprint.integration_kind.value})"
        table.add_row(
            blueprint.id,
            blueprint.title,
            step_type,
            str(blueprint.due_day_offset),
            blueprint.default_assignee_role or "-",
            ", ".join(blueprint.prerequisites) or "-",
            "✓" if blueprint.mandatory else "",
        )

    console.print(table)


@templates.command('load')
@click.argument('template_file', type=click.Path(exists=True))
@click.pass_context
def load_templates(ctx, template_file):
    """Load templates from a YAML file."""
    try:
        loaded = _engine(ctx).templates.load_yaml(Path(template_file))
    except WorkflowEngineError as e:
        _fail(f"Invalid template file: {e}")

    console.print(f"[green]✓ Loaded {len(loaded)} templates from {template_file}[/green]")
    for template in loaded:
        console.print(f"  - {template.id} ({template.name} v{template.version}, {template.status.value})")


@templates.command('publish')
@click.argument('template_id')
@click.option('--actor', default='cli', envvar='LIFECYCLE_ACTOR', help='Acting user')
@click.pass_context
def publish_template(ctx, template_id, actor):
    """Publish a draft template."""
    try:
        template = _engine(ctx).templates.publish(template_id, actor)
    except WorkflowEngineError as e:
        _fail(str(e))
    console.print(f"[green]✓ Published {template.name} v{template.version}[/green]")


# ----------------------------------------------------------------------
# Workflow instances
# ----------------------------------------------------------------------

@cli.command()
@click.argument('employee_id')
@click.option('--template', 'template_id', help='Template to instantiate')
@click.option('--type', 'lifecycle_type', type=click.Choice([t.value for t in LifecycleType]),
              help='Pick the best published template for this lifecycle type')
@click.option('--start-date', type=click.DateTime(formats=['%Y-%m-%d']), help='Start date (default: today)')
@click.option('--department', help='Department used to select a template')
@click.option('--role', help='Job role used to select a template')
@click.option('--assign', multiple=True, help='Role assignment ROLE=PERSON (repeatable)')
@click.option('--actor', default='cli', envvar='LIFECYCLE_ACTOR', help='Acting user')
@click.pass_context
def start(ctx, employee_id, template_id, lifecycle_type, start_date, department, role, assign, actor):
    """Start a workflow for an employee."""
    if not template_id and not lifecycle_type:
        raise click.UsageError("Provide --template or --type")

    manager = _engine(ctx).manager
    start_date = start_date.date() if start_date else utctoday()
    assigned_roles = _parse_assignments(assign)

    try:
        if template_id:
            record = manager.instantiate(
                employee_id, start_date, template_id=template_id, actor=actor, assigned_roles=assigned_roles
            )
        else:
            record = manager.instantiate_for_event(
                employee_id, LifecycleType(lifecycle_type), start_date, actor=actor,
                department=department, role=role, assigned_roles=assigned_roles,
            )
    except WorkflowEngineError as e:
        _fail(str(e))

    console.print(f"[green]✓ Started workflow {record.instance.id}[/green]")
    display_record(record)


@cli.command('list')
@click.option('--employee', help='Filter by employee ID')
@click.option('--status', type=click.Choice([s.value for s in InstanceStatus]), help='Filter by status')
@click.option('--limit', default=50, help='Maximum number of workflows to show')
@click.pass_context
def list_workflows(ctx, employee, status, limit):
    """List workflow instances."""
    instances = _engine(ctx).manager.list_instances(
        employee_id=employee, status=InstanceStatus(status) if status else None
    )[:limit]

    if not instances:
        console.print("[yellow]No workflows found[/yellow]")
        return

    table = Table(title=f"Workflows ({len(instances)})")
    table.add_column("ID", style="cyan")
    table.add_column("Employee", style="green")
    table.add_column("Type", style="yellow")
    table.add_column("Status", style="magenta")
    table.add_column("Progress")
    table.add_column("Stage", style="blue")
    table.add_column("Due")

    for instance in instances:
        table.add_row(
            instance.id,
            instance.employee_id,
            instance.lifecycle_type.value,
            instance.status.value,
            f"{instance.completion_percentage}%",
            instance.current_stage,
            instance.expected_completion.isoformat() if instance.expected_completion else "-",
        )

    console.print(table)


@cli.command()
@click.argument('instance_id')
@click.pass_context
def show(ctx, instance_id):
    """Show a workflow with its steps, integrations and exceptions."""
    try:
        record = _engine(ctx).manager.get_record(instance_id)
    except WorkflowEngineError as e:
        _fail(str(e))
    display_record(record)


@cli.command()
@click.argument('instance_id')
@click.argument('step_id')
@click.argument('status', type=click.Choice([s.value for s in StepStatus]))
@click.option('--notes', help='Notes recorded on the step')
@click.option('--actor', default='cli', envvar='LIFECYCLE_ACTOR', help='Acting user')
@click.pass_context
def transition(ctx, instance_id, step_id, status, notes, actor):
    """Move a workflow step to a new status."""
    manager = _engine(ctx).manager
    try:
        step = manager.transition_step(instance_id, step_id, StepStatus(status), actor, notes)
    except WorkflowEngineError as e:
        _fail(str(e))

    instance = manager.get_instance(instance_id)
    console.print(f"[green]✓ {step.title}: {step.status.value}[/green]")
    console.print(f"Workflow {instance.status.value}, {instance.completion_percentage}% complete")


@cli.command()
@click.argument('instance_id')
@click.option('--reason', help='Why the workflow is cancelled')
@click.option('--actor', default='cli', envvar='LIFECYCLE_ACTOR', help='Acting user')
@click.pass_context
def cancel(ctx, instance_id, reason, actor):
    """Cancel a workflow."""
    try:
        _engine(ctx).manager.cancel(instance_id, actor, reason)
    except WorkflowEngineError as e:
        _fail(str(e))
    console.print(f"[yellow]Workflow {instance_id} cancelled[/yellow]")


# ----------------------------------------------------------------------
# Exceptions
# ----------------------------------------------------------------------

@cli.command()
@click.option('--instance', 'instance_id', help='Filter by workflow instance')
@click.option('--status', type=click.Choice([s.value for s in ResolutionStatus]), help='Filter by status')
@click.option('--severity', type=click.Choice([s.value for s in Severity]), help='Filter by severity')
@click.option('--open', 'only_open', is_flag=True, help='Only open and in-progress exceptions')
@click.pass_context
def exceptions(ctx, instance_id, status, severity, only_open):
    """List workflow exceptions."""
    try:
        items = _engine(ctx).exceptions.list_exceptions(
            instance_id,
            ResolutionStatus(status) if status else None,
            Severity(severity) if severity else None,
        )
    except WorkflowEngineError as e:
        _fail(str(e))
    if only_open:
        items = [e for e in items if e.is_open]

    if not items:
        console.print("[green]No exceptions found[/green]")
        return

    table = Table(title=f"Exceptions ({len(items)})")
    table.add_column("ID", style="cyan")
    table.add_column("Workflow", style="blue")
    table.add_column("Kind", style="yellow")
    table.add_column("Severity", style="red")
    table.add_column("Status", style="magenta")
    table.add_column("Title", style="green")
    table.add_column("Assignee")

    for exception in items:
        table.add_row(
            exception.id,
            exception.instance_id,
            exception.kind.value,
            exception.severity.value,
            exception.resolution_status.value,
            exception.title,
            exception.assignee or "-",
        )

    console.print(table)


@cli.command()
@click.argument('exception_id')
@click.option('--notes', help='Resolution notes')
@click.option('--dismiss', is_flag=True, help='Dismiss instead of resolve')
@click.option('--actor', default='cli', envvar='LIFECYCLE_ACTOR', help='Acting user')
@click.pass_context
def resolve(ctx, exception_id, notes, dismiss, actor):
    """Resolve or dismiss an exception."""
    tracker = _engine(ctx).exceptions
    try:
        if dismiss:
            exception = tracker.dismiss(exception_id, actor, notes)
        else:
            exception = tracker.resolve(exception_id, actor, notes)
    except WorkflowEngineError as e:
        _fail(str(e))
    console.print(f"[green]✓ Exception {exception.id} {exception.resolution_status.value}[/green]")


# ----------------------------------------------------------------------
# Maintenance
# ----------------------------------------------------------------------

@cli.command()
@click.pass_context
def sweep(ctx):
    """Retry due integrations and check deadlines once."""
    report = _engine(ctx).sweeper.run_once()

    console.print("[bold blue]Sweep Results[/bold blue]")
    console.print(f"Instances checked: {report['instances_checked']}")
    console.print(f"Integration attempts dispatched: {report['attempts_dispatched']}")
    console.print(f"Timeout exceptions opened: {report['timeouts_opened']}")
    if report['errors']:
        console.print(f"[yellow]Skipped due to errors: {report['errors']}[/yellow]")


@cli.command()
@click.option('--port', default=8000, help='Port to run the API server on')
@click.option('--host', default='127.0.0.1', help='Host to bind the API server to')
@click.pass_context
def serve(ctx, port, host):
    """Start the Lifecycle Engine API server."""
    from ..api.server import start_server

    console.print(f"[green]Starting Lifecycle Engine API server on {host}:{port}[/green]")
    console.print("[blue]Press Ctrl+C to stop[/blue]")

    try:
        start_server(host=host, port=port, reload=False)
    except KeyboardInterrupt:
        console.print("[yellow]Server stopped[/yellow]")


def display_record(record: InstanceRecord):
    """Display a workflow instance with its steps."""
    instance = record.instance
    console.print(Panel.fit(
        f"[bold blue]{instance.name or instance.lifecycle_type.value}[/bold blue] for {instance.employee_id}\n"
        f"Status: {instance.status.value} - {instance.completion_percentage}% - stage {instance.current_stage}"
    ))
    console.print(f"Workflow ID: {instance.id}")
    console.print(f"Started: {instance.start_date.isoformat()}")
    if instance.expected_completion:
        console.print(f"Expected completion: {instance.expected_completion.isoformat()}")

    table = Table(title="Steps")
    table.add_column("#", style="dim")
    table.add_column("Step ID", style="cyan")
    table.add_column("Title", style="green")
    table.add_column("Status")
    table.add_column("Assignee", style="blue")
    table.add_column("Due", style="magenta")

    for step in record.ordered_steps():
        style = STATUS_STYLES.get(step.status, "white")
        table.add_row(
            str(step.order + 1),
            step.id,
            step.title,
            f"[{style}]{step.status.value}[/{style}]",
            step.assignee or step.assignee_role or "-",
            step.due_date.isoformat() if step.due_date else "-",
        )

    console.print(table)

    if record.attempts:
        console.print("\n[bold]Integrations[/bold]")
        for attempt in record.attempts:
            summary = summarize_attempt(attempt)
            line = f"  {summary['kind']}: {summary['status']} ({summary['attempt_count']}/{summary['max_attempts']})"
            if summary['external_id']:
                line += f" ref {summary['external_id']}"
            if summary['error']:
                line += f" [red]{summary['error']}[/red]"
            console.print(line)

    open_exceptions = [e for e in record.exceptions if e.is_open]
    if open_exceptions:
        console.print(f"\n[red]Open exceptions ({len(open_exceptions)})[/red]")
        for exception in open_exceptions:
            console.print(f"  • [{exception.severity.value}] {exception.title} ({exception.id})")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
