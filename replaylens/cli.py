"""ReplayLens CLI — Inspect stored workflows, templates and learned patterns.

Usage:
    replaylens workflows
    replaylens show <workflow_id> [--json]
    replaylens delete <workflow_id>
    replaylens templates
    replaylens make-template <workflow_id> <name>
    replaylens patterns [--limit N]
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from replaylens.config import get_settings
from replaylens.core.engine import STATE_NAME
from replaylens.core.types import iter_steps
from replaylens.exceptions import ReplayLensError, WorkflowNotFoundError
from replaylens.logging import configure_logging
from replaylens.patterns.store import PatternStore
from replaylens.storage.store import WorkflowStore
from replaylens.templates.engine import TemplateEngine

app = typer.Typer(
    name="replaylens",
    help="ReplayLens — record, optimize and replay browser workflows.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

console = Console()

_state: dict[str, Path | None] = {"data_dir": None}


@app.callback()
def main_callback(
    data_dir: Path | None = typer.Option(
        None, "--data-dir", help="Storage directory (default: settings.storage.data_dir)."
    ),
    log_level: str = typer.Option("warning", "--log-level"),
) -> None:
    log_config = get_settings().logging
    configure_logging(
        level=log_level,
        format=log_config.format,
        log_file=str(log_config.file) if log_config.file else None,
    )
    _state["data_dir"] = data_dir


def _store() -> WorkflowStore:
    data_dir = _state["data_dir"] or get_settings().data_dir
    store = WorkflowStore.from_directory(data_dir)
    store.load_all()
    store.load_all_templates()
    return store


def _fmt_ts(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


@app.command("workflows")
def list_workflows() -> None:
    """List stored workflows."""
    workflows = sorted(_store().workflows(), key=lambda w: w.created, reverse=True)

    table = Table(title="Workflows")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Steps", justify="right")
    table.add_column("Complexity", justify="right")
    table.add_column("Created")

    for wf in workflows:
        table.add_row(
            wf.id,
            wf.name,
            wf.category,
            str(wf.metadata.step_count),
            str(wf.metadata.complexity),
            _fmt_ts(wf.created),
        )
    console.print(table)


@app.command("show")
def show_workflow(
    workflow_id: str = typer.Argument(),
    json_output: bool = typer.Option(False, "--json"),
) -> None:
    """Show a workflow and its steps."""
    try:
        workflow = _store().get(workflow_id)
    except ReplayLensError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)
    if workflow is None:
        console.print(f"[red]Workflow not found: {workflow_id}[/red]")
        raise typer.Exit(1)

    if json_output:
        console.print(Syntax(json.dumps(workflow.to_dict(), indent=2), "json"))
        return

    console.print(f"[bold]{workflow.name}[/bold]  ({workflow.id})")
    console.print(workflow.description)
    meta = workflow.metadata
    console.print(
        f"Steps: {meta.step_count}  Complexity: {meta.complexity}  "
        f"Estimated: {meta.estimated_execution_time} ms"
    )
    if workflow.variables:
        console.print(f"Variables: {', '.join(workflow.variables)}")

    table = Table()
    table.add_column("#", justify="right")
    table.add_column("Type")
    table.add_column("Action")
    table.add_column("Target", overflow="fold")
    for i, step in enumerate(iter_steps(workflow.steps)):
        table.add_row(str(i), step.type.value, step.action, step.target or "")
    console.print(table)


@app.command("delete")
def delete_workflow(workflow_id: str = typer.Argument()) -> None:
    """Delete a stored workflow."""
    if not _store().delete(workflow_id):
        console.print(f"[red]Workflow not found: {workflow_id}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Deleted[/green] {workflow_id}")


@app.command("templates")
def list_templates() -> None:
    """List generated templates."""
    table = Table(title="Templates")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Base workflow")
    table.add_column("Variables")

    for tpl in _store().templates():
        table.add_row(
            tpl.id,
            tpl.name,
            tpl.base_workflow_id,
            ", ".join(f"{v.name}:{v.type.value}" for v in tpl.variables),
        )
    console.print(table)


@app.command("make-template")
def make_template(
    workflow_id: str = typer.Argument(),
    name: str = typer.Argument(),
) -> None:
    """Generate a parameterized template from a workflow."""
    try:
        template = TemplateEngine(_store()).generate_template_from_workflow(workflow_id, name)
    except WorkflowNotFoundError:
        console.print(f"[red]Workflow not found: {workflow_id}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]Template created:[/green] {template.id}")
    for var in template.variables:
        console.print(f"  {var.name} ({var.type.value})")


@app.command("patterns")
def list_patterns(limit: int = typer.Option(20, help="Maximum number of patterns to show.")) -> None:
    """Show the most frequent learned step patterns."""
    state = _store().load_state(STATE_NAME) or {}
    patterns = PatternStore(max_patterns=max(1, len(state.get("patterns") or [])))
    patterns.load(state.get("patterns") or [])

    table = Table(title="Patterns")
    table.add_column("Signature", overflow="fold")
    table.add_column("Length", justify="right")
    table.add_column("Frequency", justify="right")
    table.add_column("Last seen")

    for pattern in patterns.most_frequent(limit):
        table.add_row(
            pattern.signature,
            str(pattern.length),
            str(pattern.frequency),
            _fmt_ts(pattern.last_seen),
        )
    console.print(table)


if __name__ == "__main__":
    app()
